from enum import Enum
from typing import Optional, List
from dataclasses import dataclass


class ServerState(str, Enum):
    RUNNING = "running"
    EXITED = "exited"


class TransitionError(Exception):
    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state} to {to_state}"
        super().__init__(self.reason)


@dataclass(frozen=True)
class ServerStatus:
    state: ServerState
    exit_code: Optional[int] = None

    @classmethod
    def running(cls) -> "ServerStatus":
        return cls(ServerState.RUNNING)

    @classmethod
    def exited(cls, code: int = 0) -> "ServerStatus":
        return cls(ServerState.EXITED, code)

    @property
    def is_running(self) -> bool:
        return self.state == ServerState.RUNNING

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "exit_code": self.exit_code,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ServerStatus":
        try:
            state = ServerState(data.get("state"))
        except ValueError:
            state = ServerState.EXITED
        if state == ServerState.RUNNING:
            return cls.running()
        return cls.exited(data.get("exit_code") or 0)

    def __str__(self) -> str:
        if self.is_running:
            return "Running"
        return f"Exited({self.exit_code})"


@dataclass
class Transition:
    from_state: ServerState
    to_state: ServerState
    action: str


class ServerStateMachine:
    """Tracks the status of one managed server process."""

    TRANSITIONS = [
        Transition(ServerState.EXITED, ServerState.RUNNING, "start"),
        Transition(ServerState.EXITED, ServerState.EXITED, "fail"),
        Transition(ServerState.RUNNING, ServerState.EXITED, "stop"),
        Transition(ServerState.RUNNING, ServerState.EXITED, "exit"),
    ]

    def __init__(self, initial: ServerStatus = None):
        self._status = initial or ServerStatus.exited(0)
        self._history: List[tuple] = []

    @property
    def status(self) -> ServerStatus:
        return self._status

    @property
    def state(self) -> ServerState:
        return self._status.state

    def can_transition(self, action: str) -> bool:
        for t in self.TRANSITIONS:
            if t.from_state == self.state and t.action == action:
                return True
        return False

    def transition(self, action: str, exit_code: int = None) -> ServerStatus:
        for t in self.TRANSITIONS:
            if t.from_state == self.state and t.action == action:
                old = self._status
                if t.to_state == ServerState.RUNNING:
                    self._status = ServerStatus.running()
                else:
                    self._status = ServerStatus.exited(exit_code if exit_code is not None else 0)
                self._history.append((old, action, self._status))
                return self._status

        raise TransitionError(
            self.state.value,
            "unknown",
            f"No valid transition for action '{action}' from state '{self.state.value}'"
        )

    def get_history(self) -> List[tuple]:
        return self._history.copy()
