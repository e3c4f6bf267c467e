from typing import Optional

from .world import World

ALLOWED_CHARS = set("abcdefghijklmnopqrstuvwxyz0123456789-")
MAX_LABEL_LENGTH = 63


def into_valid_hostname(hostname: str) -> str:
    """Lower-case, keep [a-z0-9-] and turn whitespace into dashes."""
    result = []
    for char in hostname.lower():
        if char in ALLOWED_CHARS:
            result.append(char)
        elif char.isspace():
            result.append('-')
    return ''.join(result)


def is_valid_hostname(hostname: str) -> bool:
    """A single DNS label: [a-z0-9-], at most 63 chars, no dash at either end."""
    if not hostname or len(hostname) > MAX_LABEL_LENGTH:
        return False
    if hostname.startswith('-') or hostname.endswith('-'):
        return False
    return all(char in ALLOWED_CHARS for char in hostname)


def world_hostname(world: World) -> Optional[str]:
    """Subdomain a world is reachable under, or None if it has none."""
    hostname = into_valid_hostname(world.hostname or world.name or '')
    return hostname or None
