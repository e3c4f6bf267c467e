import uuid
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy

from .hostnames import into_valid_hostname, is_valid_hostname
from .world import World

db = SQLAlchemy()

TRUE_STRINGS = ('true', '1', 'yes', 'on')
FALSE_STRINGS = ('false', '0', 'no', 'off')


def _utcnow():
    return datetime.now(timezone.utc)


def parse_bool(value) -> bool:
    """Accept JSON booleans, 0/1 and the usual string spellings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    raise ValueError(f"expected a boolean, got {value!r}")


def new_world_id() -> str:
    return f"w_{uuid.uuid4().hex[:12]}"


class WorldRecord(db.Model):
    __tablename__ = 'worlds'

    id = db.Column(db.Integer, primary_key=True)
    world_id = db.Column(db.String(50), unique=True, nullable=False, index=True, default=new_world_id)
    owner_id = db.Column(db.String(50), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    hostname = db.Column(db.String(100), nullable=True, unique=True)  # subdomain under the proxy hostname
    version_id = db.Column(db.String(50), nullable=False)
    allocated_memory = db.Column(db.Integer, nullable=False, default=1024)  # MiB
    enabled = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    UPDATABLE = ('name', 'hostname', 'version_id', 'allocated_memory', 'enabled')

    def to_world(self) -> World:
        return World(
            id=self.world_id,
            owner_id=self.owner_id,
            name=self.name,
            version_id=self.version_id,
            allocated_memory=self.allocated_memory,
            enabled=bool(self.enabled),
            hostname=self.hostname,
        )

    def update_from(self, data: dict):
        for key in self.UPDATABLE:
            if key in data and data[key] is not None:
                value = data[key]
                if key == 'hostname':
                    value = into_valid_hostname(str(value).strip())
                    if value and not is_valid_hostname(value):
                        raise ValueError(f"{value!r} is not a valid hostname")
                    value = value or None
                elif key == 'allocated_memory':
                    value = int(value)
                elif key == 'enabled':
                    value = parse_bool(value)
                setattr(self, key, value)

    @classmethod
    def enabled_worlds(cls):
        return cls.query.filter_by(enabled=True).all()

    def to_dict(self):
        return {
            'id': self.world_id,
            'owner_id': self.owner_id,
            'name': self.name,
            'hostname': self.hostname,
            'version_id': self.version_id,
            'allocated_memory': self.allocated_memory,
            'enabled': self.enabled,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
