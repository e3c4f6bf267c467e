import logging
import subprocess
import threading
import weakref
from pathlib import Path
from typing import Dict, List, Mapping

from shared.events import proxy_restarted_event, proxy_routes_event
from shared.state_machine import ServerStatus

from ..errors import CannotTerminate, ProxyLaunchFailed
from ..process import HandleSlot, ProcessHandle, exit_code_of

logger = logging.getLogger(__name__)


class ProxyBackend:
    """
    Reverse proxy running as a child process.

    Subclasses decide how routes reach the proxy (apply) and how it is
    launched (executable_path, launch_args, prepare). The base class owns
    the process, the last applied route snapshot and the diffing.
    """

    name = "proxy"

    def __init__(self, path: Path, events=None):
        self.path = Path(path)
        self.events = events
        self._routes: Dict[str, str] = {}
        self._status = ServerStatus.exited(0)
        self._lock = threading.RLock()
        self._slot = HandleSlot()
        self._finalizer = weakref.finalize(self, self._slot.close)

    @property
    def routes(self) -> Dict[str, str]:
        return dict(self._routes)

    @property
    def status(self) -> ServerStatus:
        return self._status

    @property
    def process(self):
        return self._slot.handle

    def executable_path(self) -> Path:
        raise NotImplementedError

    def launch_args(self) -> List[str]:
        raise NotImplementedError

    def prepare(self):
        """Seed whatever config the proxy needs before it is launched."""

    def apply(self, routes: Dict[str, str]):
        raise NotImplementedError

    def start(self):
        with self._lock:
            if self._slot.handle is not None and self._slot.handle.poll() is None:
                logger.debug(f"{self.name} already running")
                return

            self.path.mkdir(parents=True, exist_ok=True)
            executable = self.executable_path()
            if not executable.exists():
                raise ProxyLaunchFailed(self.name, f"executable {executable} not found")

            try:
                self.prepare()
                handle = ProcessHandle.spawn(self.launch_args(), cwd=self.path, name=self.name)
            except OSError as e:
                self._status = ServerStatus.exited(1)
                raise ProxyLaunchFailed(self.name, str(e)) from e

            self._slot.handle = handle
            self._status = ServerStatus.running()
            logger.info(f"Started {self.name} (pid {handle.pid})")

    def ensure_running(self) -> bool:
        """Launch the proxy if it's absent or has exited; True if it was (re)started."""
        with self._lock:
            previous = None
            handle = self._slot.handle
            if handle is not None:
                returncode = handle.poll()
                if returncode is None:
                    return False
                logger.error(f"{self.name} process exited with code {returncode}. Restarting it.")
                self._slot.handle = None
                handle.close()
                previous = exit_code_of(returncode)
                self._status = ServerStatus.exited(previous)

            self.start()
            if self.events is not None:
                self.events.publish_world_event(proxy_restarted_event(self.name, previous))
            return True

    def reconcile(self, routes: Mapping[str, str]) -> bool:
        """Apply routes if they differ from the last applied set; True if anything changed."""
        desired = dict(routes)
        with self._lock:
            if desired == self._routes:
                return False
            logger.info(f"Updating {self.name} routes ({len(desired)} hosts)")
            self.apply(desired)
        if self.events is not None:
            self.events.publish_world_event(proxy_routes_event(self.name, desired))
        return True

    def stop(self) -> ServerStatus:
        with self._lock:
            handle = self._slot.handle
            if handle is None:
                logger.warning(f"No {self.name} process to stop")
                return self._status

            code = None
            try:
                try:
                    handle.kill()
                except OSError:
                    # kill failed, fall back to terminate
                    try:
                        handle.terminate()
                    except OSError as e:
                        raise CannotTerminate(self.name, handle.pid) from e

                try:
                    code = handle.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    pass
            finally:
                self._slot.handle = None
                handle.close()
                self._status = ServerStatus.exited(exit_code_of(code))
            return self._status
