import logging
import threading

logger = logging.getLogger(__name__)


class Watchdog:
    """Polls every registered server for out-of-band exits."""

    def __init__(self, registry):
        self.registry = registry

    def sweep(self) -> int:
        """Refresh every server once; returns how many were inspected."""
        inspected = 0
        for server in self.registry.list_all():
            try:
                if server.refresh():
                    inspected += 1
            except Exception as e:
                logger.error(f"Failed to refresh server {server.id}: {e}")
        return inspected

    def run(self, stop_event: threading.Event, interval: float = 1.0):
        logger.info(f"Watchdog running every {interval}s")
        while not stop_event.is_set():
            self.sweep()
            stop_event.wait(interval)
