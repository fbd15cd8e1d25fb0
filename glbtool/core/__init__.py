"""
Core: piezas compartidas (errores, HTTP, alarmas, estado en disco, logging).

Las capas (CLI) importan desde core; nunca al revés.
"""

from glbtool.core.errors import GlbError, ConfigError, ProbeError, SwitchError

__all__ = ["GlbError", "ConfigError", "ProbeError", "SwitchError"]
