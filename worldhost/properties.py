from pathlib import Path
from string import Template
from typing import Dict

RESOURCES_DIR = Path(__file__).parent / 'resources'

PORT_KEYS = ('server-port', 'query.port')


def parse_properties(text: str) -> Dict[str, str]:
    """Parse a java .properties style file, keeping key order."""
    properties = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        key, _, value = line.partition('=')
        properties[key.strip()] = value.strip()
    return properties


def create_properties(properties: Dict[str, str]) -> str:
    return ''.join(f"{key}={value}\n" for key, value in properties.items())


def pin_port(properties: Dict[str, str], port: int) -> Dict[str, str]:
    pinned = dict(properties)
    for key in PORT_KEYS:
        pinned[key] = str(port)
    return pinned


def load_resource(name: str) -> str:
    return (RESOURCES_DIR / name).read_text(encoding='utf-8')


def default_properties() -> str:
    return load_resource('server.properties')


def fabric_proxy_config(secret: str) -> str:
    """FabricProxy-Lite config carrying the proxy's modern forwarding secret."""
    return Template(load_resource('fabricproxy_lite.toml')).safe_substitute(secret=secret)
