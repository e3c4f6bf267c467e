from enum import Enum
from dataclasses import dataclass
from datetime import datetime, timezone
import json


class EventType(str, Enum):
    # Server lifecycle
    SERVER_STARTED = "server.started"
    SERVER_STOPPED = "server.stopped"
    SERVER_EXITED = "server.exited"
    SERVER_START_FAILED = "server.start_failed"
    SERVER_UPDATED = "server.updated"
    SERVER_REMOVED = "server.removed"

    # Proxy
    PROXY_RESTARTED = "proxy.restarted"
    PROXY_ROUTES_APPLIED = "proxy.routes_applied"


@dataclass
class Event:
    type: EventType
    world_id: str
    timestamp: str = None
    data: dict = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        if self.data is None:
            self.data = {}

    def to_dict(self) -> dict:
        return {
            "type": self.type.value if isinstance(self.type, EventType) else self.type,
            "world_id": self.world_id,
            "timestamp": self.timestamp,
            "data": self.data
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            type=EventType(data["type"]) if data["type"] in [e.value for e in EventType] else data["type"],
            world_id=data["world_id"],
            timestamp=data.get("timestamp"),
            data=data.get("data", {})
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        return cls.from_dict(json.loads(json_str))


def server_started_event(world_id: str, port: int, pid: int) -> Event:
    return Event(
        type=EventType.SERVER_STARTED,
        world_id=world_id,
        data={
            "port": port,
            "pid": pid
        }
    )


def server_stopped_event(world_id: str, exit_code: int, forced: bool = False) -> Event:
    return Event(
        type=EventType.SERVER_STOPPED,
        world_id=world_id,
        data={
            "exit_code": exit_code,
            "forced": forced
        }
    )


def server_exited_event(world_id: str, exit_code: int, port: int = None) -> Event:
    return Event(
        type=EventType.SERVER_EXITED,
        world_id=world_id,
        data={
            "exit_code": exit_code,
            "port": port
        }
    )


def server_start_failed_event(world_id: str, error: str) -> Event:
    return Event(
        type=EventType.SERVER_START_FAILED,
        world_id=world_id,
        data={"error": error}
    )


def proxy_routes_event(proxy: str, routes: dict) -> Event:
    # proxy events are not bound to a world; the proxy name stands in
    return Event(
        type=EventType.PROXY_ROUTES_APPLIED,
        world_id=proxy,
        data={"routes": routes}
    )


def proxy_restarted_event(proxy: str, previous_exit_code: int = None) -> Event:
    return Event(
        type=EventType.PROXY_RESTARTED,
        world_id=proxy,
        data={"previous_exit_code": previous_exit_code}
    )
