"""
Configuración: modelos Pydantic y loader de archivos glb-*.yml
"""

from .models import (
    AlarmConfig,
    GlbConfig,
    MonitorConfig,
    PatroniMapping,
    ProxyEndpoint,
    SwitchConfig,
)
from .loader import ConfigLoader

__all__ = [
    "AlarmConfig",
    "ConfigLoader",
    "GlbConfig",
    "MonitorConfig",
    "PatroniMapping",
    "ProxyEndpoint",
    "SwitchConfig",
]
