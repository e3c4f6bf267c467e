from typing import Optional


class ServerError(Exception):
    """Base class for lifecycle errors raised by managed servers."""

    def __init__(self, world_id: Optional[str] = None, reason: str = None):
        self.world_id = world_id
        self.reason = reason or "Server error"
        super().__init__(self.reason)


class MissingArtifact(ServerError):
    def __init__(self, world_id: str, path):
        self.path = path
        super().__init__(world_id, f"Version artifact {path} doesn't exist")


class AlreadyRunning(ServerError):
    def __init__(self, world_id: str):
        super().__init__(world_id, f"Server {world_id} is already running")


class NotRunning(ServerError):
    def __init__(self, world_id: str, action: str = "write to console"):
        self.action = action
        super().__init__(world_id, f"Cannot {action}: server {world_id} is not running")


class NoFreePorts(ServerError):
    def __init__(self, port_range: range = None):
        self.port_range = port_range
        reason = "No free ports left"
        if port_range is not None and len(port_range):
            reason = f"No free ports left in {port_range.start}-{port_range.stop - 1}"
        super().__init__(None, reason)


class CannotTerminate(ServerError):
    def __init__(self, world_id: str, pid: Optional[int] = None):
        self.pid = pid
        super().__init__(world_id, f"Failed to kill or terminate process {pid} of {world_id}")


class Evicted(ServerError):
    def __init__(self, world_id: str):
        super().__init__(world_id, f"Server {world_id} was removed from the registry")


class ProxyError(Exception):
    def __init__(self, proxy: str, reason: str):
        self.proxy = proxy
        self.reason = reason
        super().__init__(f"{proxy}: {reason}")


class ProxyProcessMissing(ProxyError):
    def __init__(self, proxy: str):
        super().__init__(proxy, "proxy process is not running, cannot signal reload")


class ProxyLaunchFailed(ProxyError):
    pass
