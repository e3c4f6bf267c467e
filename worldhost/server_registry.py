import logging
import threading
from typing import Callable, Dict, List, Mapping, Optional

from shared.events import Event, EventType

from .managed_server import ManagedServer, ServerSettings
from .port_allocator import PortAllocator
from .remote_server import RemoteServer
from .world import World

logger = logging.getLogger(__name__)


class ServerRegistry:
    """
    Process-wide map of world id -> server.

    - get-or-create is atomic, so concurrent first access never builds two
      servers for one world
    - the map lock only guards lookups and inserts; server operations run
      under each server's own lock
    - list_all() returns a point-in-time copy for background sweeps
    """

    def __init__(self, factory: Callable[[World], object] = None, events=None):
        self._servers: Dict[str, object] = {}
        self._lock = threading.Lock()
        self.factory = factory
        self.events = events

    @classmethod
    def from_config(cls, config: Mapping, allocator: PortAllocator = None, events=None) -> "ServerRegistry":
        server_type = config.get('SERVER_TYPE', 'internal')

        if server_type == 'remote':
            def factory(world: World):
                return RemoteServer.from_config(world, config)
        elif server_type == 'internal':
            allocator = allocator or PortAllocator.from_config(config)
            settings = ServerSettings.from_config(config)

            def factory(world: World):
                return ManagedServer(world, allocator, settings, events=events)
        else:
            raise ValueError(f"Unknown server type: {server_type}")

        return cls(factory=factory, events=events)

    def get_server(self, world_id: str):
        with self._lock:
            return self._servers.get(world_id)

    def get_or_create(self, world_id: str, factory: Callable[[], object]):
        """Return the server for world_id, building it with factory on first access."""
        with self._lock:
            server = self._servers.get(world_id)
            if server is None:
                server = factory()
                self._servers[world_id] = server
                logger.debug(f"Registered server {world_id}")
            return server

    def get_or_create_server(self, world: World):
        if self.factory is None:
            raise RuntimeError("Registry has no server factory")
        return self.get_or_create(world.id, lambda: self.factory(world))

    def add_server(self, server) -> bool:
        """Insert a prebuilt server; returns False if the id is already taken."""
        with self._lock:
            if server.id in self._servers:
                return False
            self._servers[server.id] = server
            return True

    def remove(self, world_id: str) -> bool:
        """
        Evict an exited server. Running servers, and servers another
        command is working on, are kept; callers stop them first.
        """
        with self._lock:
            server = self._servers.get(world_id)
            if server is None:
                return False
            if not server.evict():
                logger.info(f"Not removing {world_id}, it is running or busy")
                return False
            del self._servers[world_id]

        logger.info(f"Removed server {world_id} from the registry")
        if self.events is not None:
            self.events.publish_world_event(Event(type=EventType.SERVER_REMOVED, world_id=world_id))
        return True

    def list_all(self) -> List[object]:
        with self._lock:
            return list(self._servers.values())

    def list_all_worlds(self) -> List[World]:
        return [server.world for server in self.list_all()]

    def restore(self, worlds) -> int:
        """Start every enabled world; used when the service boots."""
        started = 0
        for world in worlds:
            if not world.enabled:
                continue
            server = self.get_or_create_server(world)
            try:
                server.update(world)
                started += 1
            except Exception as e:
                logger.error(f"Failed to start world {world.id} on startup: {e}")
        logger.info(f"Started {started} enabled worlds")
        return started

    def close_all(self):
        """Kill every attached process; called on service shutdown."""
        for server in self.list_all():
            try:
                server.close()
            except Exception as e:
                logger.error(f"Failed to close server {server.id}: {e}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._servers)

    def __contains__(self, world_id: str) -> bool:
        with self._lock:
            return world_id in self._servers
