"""
Infrarust proxy driven through one route file per hostname.

Infrarust watches its proxies/ directory, so adding or deleting a file is
all it takes for a route change to go live.
"""
import logging
from pathlib import Path
from string import Template
from typing import Dict, List, Mapping

from ..properties import load_resource
from .base import ProxyBackend

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yaml"
ROUTES_DIR = "proxies"


class InfrarustProxy(ProxyBackend):

    name = "infrarust"

    def __init__(self, path: Path, executable_name: str = "infrarust", domain: str = "example.net",
                 port: int = 25565, events=None):
        super().__init__(path, events=events)
        self.executable_name = executable_name
        self.domain = domain
        self.port = port
        self._route_template = Template(load_resource('infrarust_server.yml'))

    @classmethod
    def from_config(cls, config: Mapping, events=None) -> "InfrarustProxy":
        return cls(
            Path(config['PROXY_DIR']) / 'infrarust',
            executable_name=config.get('INFRARUST_EXECUTABLE_NAME', 'infrarust'),
            domain=config.get('PROXY_HOSTNAME', 'example.net'),
            port=config.get('PROXY_PORT', 25565),
            events=events,
        )

    @property
    def routes_dir(self) -> Path:
        return self.path / ROUTES_DIR

    def executable_path(self) -> Path:
        return self.path / self.executable_name

    def launch_args(self) -> List[str]:
        return [str(self.executable_path())]

    def prepare(self):
        config_path = self.path / CONFIG_FILE
        if not config_path.exists():
            template = Template(load_resource('infrarust_config.yml'))
            config_path.write_text(template.safe_substitute(port=self.port), encoding='utf-8')
        self.routes_dir.mkdir(parents=True, exist_ok=True)
        self._prune_stale_routes()

    def route_path(self, hostname: str) -> Path:
        return self.routes_dir / f"{hostname}.yml"

    def render_route(self, hostname: str, address: str) -> str:
        return self._route_template.safe_substitute(
            hostname=f"{hostname}.{self.domain}",
            address=address,
        )

    def apply(self, routes: Dict[str, str]):
        for hostname, address in routes.items():
            if self._routes.get(hostname) != address:
                self._write_route(hostname, address)
                self._routes[hostname] = address

        for hostname in list(self._routes):
            if hostname not in routes:
                self._remove_route(hostname)
                del self._routes[hostname]

    def _write_route(self, hostname: str, address: str):
        logger.debug(f"Routing {hostname}.{self.domain} to {address}")
        self.routes_dir.mkdir(parents=True, exist_ok=True)
        self.route_path(hostname).write_text(self.render_route(hostname, address), encoding='utf-8')

    def _remove_route(self, hostname: str):
        logger.debug(f"Removing route for {hostname}.{self.domain}")
        path = self.route_path(hostname)
        if path.exists():
            path.unlink()

    def _prune_stale_routes(self):
        # files left over from a previous run that the snapshot doesn't know about
        for path in self.routes_dir.glob("*.yml"):
            if path.stem not in self._routes:
                logger.debug(f"Removing stale route file {path.name}")
                path.unlink()
