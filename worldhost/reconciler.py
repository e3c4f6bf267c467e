"""
Background reconciliation between managed servers and the reverse proxy.

Each tick:
1. Watchdog sweep (reclaims ports of servers that exited on their own)
2. Make sure the proxy process is alive
3. Derive {hostname: "host:port"} from every server with a port and hostname
4. Hand the routes to the proxy, which only acts when they changed

Nothing here raises out of a tick; a failing step is logged and retried on
the next one.
"""
import logging
import threading
from typing import Callable, Dict, Mapping, Optional

from .hostnames import world_hostname
from .watchdog import Watchdog

logger = logging.getLogger(__name__)


class Reconciler:

    def __init__(
        self,
        registry,
        proxy,
        hostname_for: Callable = None,
        interval: float = 60,
        watchdog_interval: float = 1,
    ):
        self.registry = registry
        self.proxy = proxy
        self.watchdog = Watchdog(registry)
        self.hostname_for = hostname_for or world_hostname
        self.interval = interval
        self.watchdog_interval = watchdog_interval
        self._stop_event = threading.Event()
        self._threads = []

    @classmethod
    def from_config(cls, config: Mapping, registry, proxy, hostname_for: Callable = None) -> "Reconciler":
        return cls(
            registry,
            proxy,
            hostname_for=hostname_for,
            interval=config.get('PROXY_INTERVAL', 60),
            watchdog_interval=config.get('WATCHDOG_INTERVAL', 1),
        )

    def desired_routes(self) -> Dict[str, str]:
        routes = {}
        for server in self.registry.list_all():
            info = server.info()
            if info.port is None:
                continue
            hostname = self.hostname_for(info.world)
            if not hostname:
                continue
            if hostname in routes:
                logger.warning(f"Hostname {hostname} is claimed by more than one world, keeping the first")
                continue
            routes[hostname] = f"{server.host}:{info.port}"
        return routes

    def tick(self) -> Optional[Dict[str, str]]:
        """Run one reconciliation pass; returns the routes it computed."""
        try:
            self.watchdog.sweep()
        except Exception as e:
            logger.error(f"Watchdog sweep failed: {e}")

        try:
            self.proxy.ensure_running()
        except Exception as e:
            logger.error(f"Failed to start {self.proxy.name}: {e}")

        try:
            routes = self.desired_routes()
        except Exception as e:
            logger.error(f"Failed to compute proxy routes: {e}")
            return None

        try:
            self.proxy.reconcile(routes)
        except Exception as e:
            logger.error(f"Failed to update {self.proxy.name} routes: {e}")
        return routes

    def run(self):
        logger.info(f"Reconciling {self.proxy.name} every {self.interval}s")
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(self.interval)

    def start(self):
        if self._threads:
            return
        self._stop_event.clear()
        self._threads = [
            threading.Thread(target=self.run, name="reconciler", daemon=True),
            threading.Thread(
                target=self.watchdog.run,
                args=(self._stop_event, self.watchdog_interval),
                name="watchdog",
                daemon=True,
            ),
        ]
        for thread in self._threads:
            thread.start()

    def stop(self, timeout: float = 10):
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        try:
            self.proxy.stop()
        except Exception as e:
            logger.error(f"Failed to stop {self.proxy.name}: {e}")

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)
