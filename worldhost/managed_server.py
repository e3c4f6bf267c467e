"""
Managed game server.

One ManagedServer supervises at most one OS process for one world:
- Starting/stopping the process and pinning its port
- Detecting out-of-band exits (refresh)
- Console input/output
- File access scoped to the world's working directory

Every operation runs under the server's own lock, so commands on the same
world never interleave while different worlds proceed in parallel.
"""
import logging
import os
import shlex
import shutil
import subprocess
import threading
import weakref
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Mapping, Optional, Union

from shared.events import (
    Event,
    EventType,
    server_started_event,
    server_stopped_event,
    server_exited_event,
    server_start_failed_event,
)
from shared.state_machine import ServerStateMachine, ServerStatus

from .errors import AlreadyRunning, CannotTerminate, Evicted, MissingArtifact, NotRunning
from .hostnames import world_hostname
from .port_allocator import PortAllocator
from .process import HandleSlot, ProcessHandle, exit_code_of
from .properties import (
    create_properties,
    default_properties,
    fabric_proxy_config,
    parse_properties,
    pin_port,
)
from .world import World

logger = logging.getLogger(__name__)

SERVER_JAR = "server.jar"
PROPERTIES_FILE = "server.properties"
EULA_FILE = "eula.txt"
FORWARDING_SECRET_FILE = "forwarding.secret"
FABRIC_PROXY_CONFIG = "config/FabricProxy-Lite.toml"
STOP_COMMAND = b"stop\n"
KILL_WAIT_SECONDS = 5


@dataclass
class ServerSettings:
    versions_dir: Path
    worlds_dir: Path
    host: str = "127.0.0.1"
    java_launch_command: str = "java -jar %min_mem% %max_mem% %jar% -nogui"
    launch_command: str = "%command%"
    minimum_memory: int = 512
    stop_timeout: float = 15
    forwarding_secret: str = ""

    @classmethod
    def from_config(cls, config: Mapping) -> "ServerSettings":
        return cls(
            versions_dir=Path(config['VERSIONS_DIR']),
            worlds_dir=Path(config['WORLDS_DIR']),
            host=config.get('SERVER_HOST', '127.0.0.1'),
            java_launch_command=config.get('JAVA_LAUNCH_COMMAND', cls.java_launch_command),
            launch_command=config.get('LAUNCH_COMMAND', '%command%'),
            minimum_memory=config.get('MINIMUM_MEMORY', 512),
            stop_timeout=config.get('STOP_TIMEOUT', 15),
            forwarding_secret=config.get('FORWARDING_SECRET', ''),
        )


@dataclass(frozen=True)
class ServerInfo:
    world: World
    status: ServerStatus
    port: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'world': self.world.to_dict(),
            'status': self.status.to_dict(),
            'port': self.port,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ServerInfo":
        return cls(
            world=World.from_dict(data['world']),
            status=ServerStatus.from_dict(data.get('status') or {}),
            port=data.get('port'),
        )


def _copy_missing(source: Path, destination: Path):
    """Copy a directory tree without overwriting files that already exist."""
    for root, _dirs, files in os.walk(source):
        target_root = destination / Path(root).relative_to(source)
        target_root.mkdir(parents=True, exist_ok=True)
        for name in files:
            target = target_root / name
            if not target.exists():
                shutil.copy2(Path(root) / name, target)


class ManagedServer:

    def __init__(
        self,
        world: World,
        allocator: PortAllocator,
        settings: ServerSettings,
        events=None,
    ):
        self.world = world
        self.allocator = allocator
        self.settings = settings
        self.events = events
        self.directory = Path(settings.worlds_dir) / str(world.owner_id) / str(world.id)
        self.port: Optional[int] = None
        self._state = ServerStateMachine()
        self._lock = threading.RLock()
        self._slot = HandleSlot()
        self._last_console = None
        self._evicted = False
        # kills the process when this server is collected or the interpreter exits
        self._finalizer = weakref.finalize(self, self._slot.close)

    def __repr__(self) -> str:
        return f"<ManagedServer {self.id} {self.status} port={self.port}>"

    @property
    def id(self) -> str:
        return self.world.id

    @property
    def status(self) -> ServerStatus:
        return self._state.status

    @property
    def host(self) -> str:
        return self.settings.host

    @property
    def hostname(self) -> Optional[str]:
        return world_hostname(self.world)

    @property
    def pid(self) -> Optional[int]:
        handle = self._slot.handle
        return handle.pid if handle else None

    @property
    def is_running(self) -> bool:
        return self._slot.handle is not None

    @property
    def version_path(self) -> Path:
        return Path(self.settings.versions_dir) / str(self.world.version_id)

    def info(self) -> ServerInfo:
        with self._lock:
            return ServerInfo(world=self.world, status=self.status, port=self.port)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> ServerStatus:
        with self._lock:
            if self._evicted:
                raise Evicted(self.id)

            artifact = self.version_path / SERVER_JAR
            if not artifact.exists():
                raise MissingArtifact(self.id, artifact)

            if self._slot.handle is not None:
                raise AlreadyRunning(self.id)

            self.directory.mkdir(parents=True, exist_ok=True)

            self.port = self.allocator.allocate()
            logger.info(f"Assigning port {self.port} to {self.id}")

            try:
                self.initialise_files()
                args = self.launch_args()
                logger.debug(f"Starting server {self.id}: {' '.join(args)}")
                handle = ProcessHandle.spawn(args, cwd=self.directory, name=f"server-{self.id}")
            except Exception as e:
                logger.error(f"Failed to start server {self.id}: {e}")
                self._release_port()
                self._record_exit("fail", 1)
                self._publish(server_start_failed_event(self.id, str(e)))
                raise

            self._slot.handle = handle
            self._last_console = handle.console
            self._state.transition("start")
            logger.info(f"Started server {self.id} (pid {handle.pid}) on port {self.port}")
            self._publish(server_started_event(self.id, self.port, handle.pid))
            return self.status

    def stop(self) -> ServerStatus:
        with self._lock:
            handle = self._slot.handle
            if handle is None:
                logger.debug(f"Not stopping {self.id}, because it's not running")
                return self.status

            forced = False
            code = None
            try:
                handle.write(STOP_COMMAND)
            except OSError as e:
                logger.warning(f"Could not send stop command to {self.id}: {e}")
                forced = True

            if not forced:
                try:
                    code = handle.wait(timeout=self.settings.stop_timeout)
                except subprocess.TimeoutExpired:
                    logger.warning(
                        f"Server {self.id} did not stop within {self.settings.stop_timeout}s, killing it"
                    )
                    forced = True

            try:
                if forced:
                    code = self._force_stop(handle)
            finally:
                self._slot.handle = None
                handle.close()
                self._release_port()
                self._record_exit("stop", exit_code_of(code))

            logger.info(f"Stopped server {self.id} with status {self.status}")
            self._publish(server_stopped_event(self.id, self.status.exit_code, forced=forced))
            return self.status

    def _force_stop(self, handle: ProcessHandle) -> Optional[int]:
        try:
            handle.kill()
        except OSError as kill_error:
            logger.warning(f"Failed to kill {self.id}: {kill_error}, terminating")
            try:
                handle.terminate()
            except OSError as e:
                logger.error(f"Failed to terminate {self.id}: {e}")
                raise CannotTerminate(self.id, handle.pid) from e
        try:
            return handle.wait(timeout=KILL_WAIT_SECONDS)
        except subprocess.TimeoutExpired:
            return None

    def update(self, world: World) -> ServerStatus:
        """Stop, swap in the new world snapshot, and start again if it's enabled."""
        if world.id != self.id:
            raise ValueError(f"Cannot update server {self.id} with world {world.id}")
        with self._lock:
            self.stop()
            self.world = world
            self.directory = Path(self.settings.worlds_dir) / str(world.owner_id) / str(world.id)
            self._publish(Event(type=EventType.SERVER_UPDATED, world_id=self.id, data=world.to_dict()))
            if world.enabled:
                self.start()
            return self.status

    def refresh(self) -> bool:
        """
        Poll the process for an exit without blocking.

        Returns False when another command holds the server; that command
        leaves the server in a consistent state on its own.
        """
        if not self._lock.acquire(blocking=False):
            return False
        try:
            handle = self._slot.handle
            if handle is None:
                return True
            returncode = handle.poll()
            if returncode is None:
                return True

            self._slot.handle = None
            handle.close()
            port = self.port
            self._release_port()
            self._record_exit("exit", exit_code_of(returncode))
            logger.info(
                f"Freed port {port} of {self.id} because the server running on it has exited "
                f"with {self.status}"
            )
            self._publish(server_exited_event(self.id, self.status.exit_code, port))
            return True
        finally:
            self._lock.release()

    def evict(self) -> bool:
        """
        Retire an exited server so it can never start again.

        Returns False if it is running or another command holds it; a
        start in progress has already taken the lock.
        """
        if not self._lock.acquire(blocking=False):
            return False
        try:
            if self._slot.handle is not None:
                return False
            self._evicted = True
            return True
        finally:
            self._lock.release()

    def remove(self):
        """Stop the server and delete its working directory."""
        with self._lock:
            self.stop()
            if self.directory.exists():
                logger.debug(f"Removing directory {self.directory}")
                shutil.rmtree(self.directory)

    def close(self):
        """Kill the process without a graceful shutdown."""
        with self._lock:
            if self._slot.handle is not None:
                logger.warning(f"Killing server {self.id} (pid {self.pid})")
                self._slot.close()
                self._release_port()
                self._record_exit("exit", 1)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def initialise_files(self):
        if self.port is None:
            raise RuntimeError(f"Port not set for {self.id}, cannot initialise files")

        logger.debug(f"Copying version files from {self.version_path} to {self.directory}")
        _copy_missing(self.version_path, self.directory)

        properties = pin_port(self.properties(), self.port)
        logger.debug(f"Writing {PROPERTIES_FILE} for {self.id}")
        self.write_file(PROPERTIES_FILE, create_properties(properties))

        if self.settings.forwarding_secret:
            self.write_file(FORWARDING_SECRET_FILE, self.settings.forwarding_secret)
            self.write_file(FABRIC_PROXY_CONFIG, fabric_proxy_config(self.settings.forwarding_secret))

        self.write_file(EULA_FILE, "eula=true\n")

    def launch_args(self) -> List[str]:
        command = self.settings.java_launch_command
        command = command.replace("%jar%", shlex.quote(str(self.directory / SERVER_JAR)))
        command = command.replace("%min_mem%", f"-Xms{self.settings.minimum_memory}m")
        command = command.replace("%max_mem%", f"-Xmx{self.world.allocated_memory}m")
        command = self.settings.launch_command.replace("%command%", command)
        return shlex.split(command)

    def properties(self) -> dict:
        with self._lock:
            try:
                text = self.read_file(PROPERTIES_FILE)
            except FileNotFoundError:
                text = default_properties()
            return parse_properties(text)

    def set_properties(self, values: Mapping[str, str]) -> dict:
        """Merge values into server.properties; port keys stay pinned."""
        with self._lock:
            properties = self.properties()
            properties.update({str(k): str(v) for k, v in values.items()})
            if self.port is not None:
                properties = pin_port(properties, self.port)
            self.write_file(PROPERTIES_FILE, create_properties(properties))
            return properties

    def read_file(self, path: str) -> str:
        with self._lock:
            return self._resolve(path).read_text(encoding='utf-8')

    def write_file(self, path: str, data: Union[str, bytes]):
        with self._lock:
            target = self._resolve(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(data, bytes):
                target.write_bytes(data)
            else:
                target.write_text(data, encoding='utf-8')

    def remove_file(self, path: str):
        with self._lock:
            self._resolve(path).unlink()

    def _resolve(self, path: str) -> Path:
        root = self.directory.resolve()
        target = (root / path).resolve()
        if target != root and root not in target.parents:
            raise ValueError(f"{path} is outside of the server directory")
        return target

    # ------------------------------------------------------------------
    # Console
    # ------------------------------------------------------------------

    def write_console(self, data: Union[str, bytes]):
        if isinstance(data, str):
            data = data.encode('utf-8')
        with self._lock:
            handle = self._slot.handle
            if handle is None:
                raise NotRunning(self.id)
            handle.write(data)

    def console_lines(self) -> Iterator[str]:
        """Live console output; the iterator ends when the process exits."""
        with self._lock:
            handle = self._slot.handle
            if handle is None:
                return iter(())
            return handle.console.subscribe()

    def recent_console(self) -> List[str]:
        with self._lock:
            if self._last_console is None:
                return []
            return self._last_console.recent()

    # ------------------------------------------------------------------

    def _release_port(self):
        if self.port is not None:
            self.allocator.release(self.port)
            self.port = None

    def _record_exit(self, action: str, code: int):
        if self._state.can_transition(action):
            self._state.transition(action, exit_code=code)
        else:
            self._state.transition("fail", exit_code=code)

    def _publish(self, event: Event):
        if self.events is None:
            return
        self.events.publish_world_event(event)
        self.events.report_server_status(
            self.id, self.status.state.value, port=self.port, exit_code=self.status.exit_code
        )
