from enum import Enum
from typing import Mapping

from .base import ProxyBackend
from .infrarust import InfrarustProxy
from .velocity import VelocityProxy


class ProxyType(str, Enum):
    INFRARUST = "infrarust"
    VELOCITY = "velocity"


PROXY_BACKENDS = {
    ProxyType.INFRARUST: InfrarustProxy,
    ProxyType.VELOCITY: VelocityProxy,
}


def create_proxy(config: Mapping, events=None) -> ProxyBackend:
    """Build the proxy backend selected by PROXY_TYPE."""
    try:
        proxy_type = ProxyType(config.get('PROXY_TYPE', ProxyType.INFRARUST.value))
    except ValueError:
        raise ValueError(f"Unknown proxy type: {config.get('PROXY_TYPE')}")
    return PROXY_BACKENDS[proxy_type].from_config(config, events=events)


__all__ = [
    'ProxyBackend',
    'InfrarustProxy',
    'VelocityProxy',
    'ProxyType',
    'create_proxy',
]
