"""
Velocity proxy driven through one templated config file.

Every route change rewrites velocity.toml from the template and asks the
running proxy to reload it over stdin.
"""
import logging
from pathlib import Path
from string import Template
from typing import Dict, List, Mapping

from ..errors import ProxyProcessMissing
from ..properties import load_resource
from .base import ProxyBackend

logger = logging.getLogger(__name__)

TEMPLATE_FILE = "velocity_config.toml"
CONFIG_FILE = "velocity.toml"
RELOAD_COMMAND = b"velocity reload\n"


class VelocityProxy(ProxyBackend):

    name = "velocity"

    def __init__(self, path: Path, template_path: Path = None, jar_name: str = "velocity.jar",
                 domain: str = "example.net", port: int = 25565, java: str = "java", events=None):
        super().__init__(path, events=events)
        self.template_path = Path(template_path) if template_path else self.path.parent / TEMPLATE_FILE
        self.jar_name = jar_name
        # forced hosts match on the bare domain, without a port
        self.domain = domain.split(":")[0]
        self.port = port
        self.java = java

    @classmethod
    def from_config(cls, config: Mapping, events=None) -> "VelocityProxy":
        proxy_dir = Path(config['PROXY_DIR'])
        return cls(
            proxy_dir / 'velocity',
            template_path=proxy_dir / TEMPLATE_FILE,
            jar_name=config.get('VELOCITY_EXECUTABLE_NAME', 'velocity.jar'),
            domain=config.get('PROXY_HOSTNAME', 'example.net'),
            port=config.get('PROXY_PORT', 25565),
            events=events,
        )

    @property
    def config_path(self) -> Path:
        return self.path / CONFIG_FILE

    def executable_path(self) -> Path:
        return self.path / self.jar_name

    def launch_args(self) -> List[str]:
        return [self.java, "-jar", str(self.executable_path())]

    def prepare(self):
        self._ensure_template()
        if not self.config_path.exists():
            self.write_config(self._routes)

    def _ensure_template(self):
        if not self.template_path.exists():
            self.template_path.parent.mkdir(parents=True, exist_ok=True)
            template = Template(load_resource(TEMPLATE_FILE))
            # leave $servers and $hosts for render()
            self.template_path.write_text(template.safe_substitute(port=self.port), encoding='utf-8')

    def render(self, routes: Dict[str, str]) -> str:
        servers = []
        hosts = []
        for hostname in sorted(routes):
            servers.append(f'{hostname} = "{routes[hostname]}"\n')
            hosts.append(f'"{hostname}.{self.domain}" = [\n    "{hostname}"\n]\n')

        self._ensure_template()
        template = Template(self.template_path.read_text(encoding='utf-8'))
        return template.safe_substitute(servers=''.join(servers), hosts=''.join(hosts))

    def write_config(self, routes: Dict[str, str]):
        logger.info(f"Updating the velocity config ({len(routes)} servers)")
        self.path.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(self.render(routes), encoding='utf-8')

    def apply(self, routes: Dict[str, str]):
        self.write_config(routes)

        handle = self._slot.handle
        if handle is None or handle.poll() is not None:
            raise ProxyProcessMissing(self.name)
        handle.write(RELOAD_COMMAND)
        self._routes = dict(routes)
