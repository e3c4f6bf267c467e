from dataclasses import dataclass, asdict, replace
from typing import Optional


@dataclass(frozen=True)
class World:
    """
    Snapshot of a tenant's declared world.

    The persistence layer owns the source of truth; servers only ever hold
    a copy and replace it wholesale on update.
    """
    id: str
    owner_id: str
    name: str
    version_id: str
    allocated_memory: int
    enabled: bool = False
    hostname: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "World":
        return cls(
            id=str(data['id']),
            owner_id=str(data['owner_id']),
            name=data.get('name', ''),
            version_id=str(data['version_id']),
            allocated_memory=int(data['allocated_memory']),
            enabled=bool(data.get('enabled', False)),
            hostname=data.get('hostname'),
        )

    def with_changes(self, **changes) -> "World":
        return replace(self, **changes)
