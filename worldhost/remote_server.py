"""
Server hosted on another node.

RemoteServer forwards lifecycle commands to the management API of a node
running its own registry; that node supervises the process, so refresh()
has nothing to poll here.
"""
import logging
import threading
from typing import Mapping, Optional
from urllib.parse import urlparse

import requests

from shared.state_machine import ServerStatus

from .hostnames import world_hostname
from .managed_server import ServerInfo
from .world import World

logger = logging.getLogger(__name__)


class RemoteServerError(Exception):
    pass


class RemoteServer:

    def __init__(self, world: World, base_url: str, api_secret: str = "", timeout: float = 30,
                 session: requests.Session = None):
        self.world = world
        self.base_url = base_url.rstrip('/')
        self.api_secret = api_secret
        self.timeout = timeout
        self.session = session or requests.Session()
        self.port: Optional[int] = None
        self._status = ServerStatus.exited(0)
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, world: World, config: Mapping) -> "RemoteServer":
        return cls(
            world,
            config.get('REMOTE_HOST', 'http://localhost:3031'),
            api_secret=config.get('API_SECRET', ''),
            timeout=config.get('REMOTE_TIMEOUT', 30),
        )

    def __repr__(self) -> str:
        return f"<RemoteServer {self.id} at {self.base_url}>"

    @property
    def id(self) -> str:
        return self.world.id

    @property
    def status(self) -> ServerStatus:
        return self._status

    @property
    def host(self) -> str:
        return urlparse(self.base_url).hostname or self.base_url

    @property
    def hostname(self) -> Optional[str]:
        return world_hostname(self.world)

    @property
    def is_running(self) -> bool:
        return self._status.is_running

    def _headers(self) -> dict:
        if self.api_secret:
            return {'Authorization': f"Bearer {self.api_secret}"}
        return {}

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}/api/worlds{path}"
        try:
            resp = self.session.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise RemoteServerError(f"Request to {url} failed: {e}") from e
        if resp.status_code >= 400:
            raise RemoteServerError(f"{method} {url} returned {resp.status_code}: {resp.text[:200]}")
        return resp.json()

    def _adopt(self, data: dict) -> ServerInfo:
        info = ServerInfo.from_dict(data)
        self.port = info.port
        self._status = info.status
        return info

    def info(self) -> ServerInfo:
        with self._lock:
            return ServerInfo(world=self.world, status=self._status, port=self.port)

    def fetch(self) -> ServerInfo:
        """Ask the remote node for the current state of this server."""
        with self._lock:
            return self._adopt(self._request('GET', f"/{self.id}"))

    def update(self, world: World) -> ServerStatus:
        with self._lock:
            self.world = world
            logger.debug(f"Requesting {self.base_url} to update server {self.id}")
            self._adopt(self._request('POST', '', json=world.to_dict()))
            return self._status

    def start(self) -> ServerStatus:
        return self.update(self.world.with_changes(enabled=True))

    def stop(self) -> ServerStatus:
        return self.update(self.world.with_changes(enabled=False))

    def remove(self):
        with self._lock:
            logger.debug(f"Requesting {self.base_url} to remove server {self.id}")
            self._request('POST', f"/{self.id}/remove")
            self.port = None

    def evict(self) -> bool:
        if not self._lock.acquire(blocking=False):
            return False
        try:
            return not self._status.is_running
        finally:
            self._lock.release()

    def refresh(self) -> bool:
        return False

    def close(self):
        pass

    def write_console(self, data):
        raise NotImplementedError("Console access is only available on the node running the server")

    def console_lines(self):
        raise NotImplementedError("Console access is only available on the node running the server")

    def recent_console(self):
        raise NotImplementedError("Console access is only available on the node running the server")

    def properties(self):
        raise NotImplementedError("Properties are only available on the node running the server")

    def set_properties(self, values):
        raise NotImplementedError("Properties are only available on the node running the server")
