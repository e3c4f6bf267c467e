"""
Subprocess ownership for managed servers and proxies.

A ProcessHandle owns one Popen together with the threads draining its
stdout/stderr. Output lines are fanned out to any number of subscribers;
each subscription is an independent generator that ends when the process
closes its output streams.
"""
import logging
import queue
import subprocess
import threading
from collections import deque
from typing import IO, Iterator, List, Optional, Sequence

logger = logging.getLogger(__name__)

_EOF = object()


def exit_code_of(returncode: Optional[int]) -> int:
    """Map a Popen return code to a plain exit code; signals count as 1."""
    if returncode is None or returncode < 0:
        return 1
    return returncode


class ConsoleBroadcaster:
    """
    Fans lines out to subscriber queues and keeps a short history.

    Each subscriber buffers at most `buffer` lines; a subscriber that falls
    behind loses its oldest lines instead of growing
    without bound.
    """

    def __init__(self, history: int = 500, buffer: int = 1000):
        self._lock = threading.Lock()
        self._subscribers: List[queue.Queue] = []
        self._history: deque = deque(maxlen=history)
        self._buffer = buffer
        self._closed = False

    def publish(self, line: str):
        with self._lock:
            self._history.append(line)
            for subscriber in self._subscribers:
                self._offer(subscriber, line)

    def close(self):
        with self._lock:
            self._closed = True
            for subscriber in self._subscribers:
                self._offer(subscriber, _EOF)
            self._subscribers.clear()

    @staticmethod
    def _offer(subscriber: queue.Queue, item):
        while True:
            try:
                subscriber.put_nowait(item)
                return
            except queue.Full:
                try:
                    subscriber.get_nowait()
                except queue.Empty:
                    pass

    def recent(self) -> List[str]:
        with self._lock:
            return list(self._history)

    def subscribe(self) -> Iterator[str]:
        subscriber: queue.Queue = queue.Queue(maxsize=self._buffer)
        with self._lock:
            if self._closed:
                return iter(())
            self._subscribers.append(subscriber)
        return self._drain(subscriber)

    def _drain(self, subscriber: queue.Queue) -> Iterator[str]:
        try:
            while True:
                line = subscriber.get()
                if line is _EOF:
                    return
                yield line
        finally:
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)


class ProcessHandle:

    def __init__(self, popen: subprocess.Popen, name: str = "process"):
        self.popen = popen
        self.name = name
        self.console = ConsoleBroadcaster()
        self._readers = []
        self._open_streams = 0
        self._streams_lock = threading.Lock()
        for stream in (popen.stdout, popen.stderr):
            if stream is not None:
                self._open_streams += 1
                reader = threading.Thread(
                    target=self._read_stream,
                    args=(stream,),
                    name=f"{name}-reader",
                    daemon=True,
                )
                self._readers.append(reader)
                reader.start()
        if not self._readers:
            self.console.close()

    @classmethod
    def spawn(cls, args: Sequence[str], cwd=None, name: str = "process", env=None) -> "ProcessHandle":
        """Start args with every standard stream piped."""
        popen = subprocess.Popen(
            list(args),
            cwd=cwd,
            env=env,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        return cls(popen, name=name)

    @property
    def pid(self) -> int:
        return self.popen.pid

    def poll(self) -> Optional[int]:
        return self.popen.poll()

    def wait(self, timeout: float = None) -> int:
        return self.popen.wait(timeout=timeout)

    def write(self, data: bytes):
        stdin: Optional[IO[bytes]] = self.popen.stdin
        if stdin is None:
            raise BrokenPipeError(f"{self.name} has no stdin")
        stdin.write(data)
        stdin.flush()

    def kill(self):
        self.popen.kill()

    def terminate(self):
        self.popen.terminate()

    def close(self):
        """Kill the process if it's still alive and release its pipes."""
        if self.popen.poll() is None:
            try:
                self.popen.kill()
                self.popen.wait(timeout=5)
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.error(f"Failed to kill {self.name} (pid {self.pid}): {e}")
        if self.popen.stdin is not None:
            try:
                self.popen.stdin.close()
            except OSError:
                pass

    def _read_stream(self, stream: IO[bytes]):
        try:
            for raw in iter(stream.readline, b''):
                self.console.publish(raw.decode('utf-8', errors='replace').rstrip('\r\n'))
        except (OSError, ValueError) as e:
            logger.debug(f"{self.name} output stream closed: {e}")
        finally:
            with self._streams_lock:
                self._open_streams -= 1
                done = self._open_streams == 0
            if done:
                self.console.close()


class HandleSlot:
    """Holds the current handle so a finalizer can kill it without keeping its owner alive."""

    def __init__(self):
        self.handle: Optional[ProcessHandle] = None

    def close(self):
        handle, self.handle = self.handle, None
        if handle is not None:
            handle.close()
