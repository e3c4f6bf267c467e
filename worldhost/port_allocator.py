"""
Port allocation for managed game servers.

Ports come from one configured, inclusive range. Allocation always hands out
the lowest free port; the membership test and the insertion into the taken
set happen under a single lock so concurrent starts never share a port.
"""
import logging
import threading
from typing import FrozenSet, Iterable, Mapping, Set

from .errors import NoFreePorts

logger = logging.getLogger(__name__)


class PortAllocator:

    def __init__(self, start: int, end: int, reserved: Iterable[int] = ()):
        if end < start:
            raise ValueError(f"Invalid port range {start}-{end}")
        self.port_range = range(start, end + 1)
        self._reserved: FrozenSet[int] = frozenset(reserved)
        self._taken: Set[int] = set()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Mapping) -> "PortAllocator":
        return cls(
            config.get('PORT_RANGE_START', 24000),
            config.get('PORT_RANGE_END', 25000),
            # the proxy may listen inside the range
            reserved=[config.get('PROXY_PORT', 25565)],
        )

    def allocate(self) -> int:
        with self._lock:
            for port in self.port_range:
                if port not in self._taken and port not in self._reserved:
                    self._taken.add(port)
                    return port
        raise NoFreePorts(self.port_range)

    def release(self, port: int):
        """Free a port. Releasing a port that isn't taken is a no-op."""
        if port is None:
            return
        with self._lock:
            self._taken.discard(port)

    @property
    def taken(self) -> FrozenSet[int]:
        with self._lock:
            return frozenset(self._taken)

    @property
    def available(self) -> int:
        with self._lock:
            return len([p for p in self.port_range if p not in self._taken and p not in self._reserved])

    def __contains__(self, port: int) -> bool:
        with self._lock:
            return port in self._taken
