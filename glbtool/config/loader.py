"""
Loader de configuraciones glb-*.yml
Carga YAML, expande variables de entorno y convierte a modelos Pydantic
"""

import os
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import ValidationError

from glbtool.core.errors import ConfigError
from .models import GlbConfig


DEFAULT_CONFIG_DIR = Path("/etc/mono")
CONFIG_PREFIX = "glb-"
CONFIG_SUFFIXES = (".yml", ".yaml")


def config_dir(explicit: Optional[Path] = None) -> Path:
    """
    Directorio de configuraciones.
    Resolución: argumento explícito → GLB_CONFIG_DIR → /etc/mono
    """
    if explicit:
        return Path(explicit).expanduser()
    env_dir = os.environ.get("GLB_CONFIG_DIR", "").strip()
    if env_dir:
        return Path(env_dir).expanduser()
    return DEFAULT_CONFIG_DIR


def expand_env(data: Any) -> Any:
    """Expande $VAR / ${VAR} en todos los strings (dicts y listas anidados)"""
    if isinstance(data, str):
        return os.path.expandvars(data) if "$" in data else data
    if isinstance(data, dict):
        return {key: expand_env(value) for key, value in data.items()}
    if isinstance(data, list):
        return [expand_env(item) for item in data]
    return data


def _strip_name(file_name: str) -> str:
    name = file_name
    for suffix in CONFIG_SUFFIXES:
        if name.endswith(suffix):
            name = name[: -len(suffix)]
            break
    if name.startswith(CONFIG_PREFIX):
        name = name[len(CONFIG_PREFIX):]
    return name


class ConfigLoader:
    """Carga configuraciones con nombre desde el directorio de configuración"""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = config_dir(base_dir)

    def resolve(self, name: str) -> Path:
        """
        Ubica el archivo de una configuración

        Args:
            name: Nombre lógico ("example") o nombre de archivo ("glb-example.yml")

        Returns:
            Path del archivo

        Raises:
            ConfigError: Si no existe
        """
        candidates = []
        if name.startswith(CONFIG_PREFIX):
            candidates.append(self.base_dir / name)
            stem = name
        else:
            stem = f"{CONFIG_PREFIX}{name}"
        candidates.extend(self.base_dir / f"{stem}{suffix}" for suffix in CONFIG_SUFFIXES)

        for candidate in candidates:
            if candidate.is_file():
                return candidate
        raise ConfigError(f"Configuración '{name}' no encontrada en {self.base_dir}")

    def discover(self) -> List[str]:
        """Nombres de todas las configuraciones glb-* del directorio (ordenados)"""
        if not self.base_dir.is_dir():
            raise ConfigError(f"No se puede leer el directorio {self.base_dir}")
        names = []
        for entry in sorted(self.base_dir.iterdir()):
            if entry.is_file() and entry.name.startswith(CONFIG_PREFIX) and entry.suffix in CONFIG_SUFFIXES:
                names.append(entry.name)
        return names

    def load_file(self, path: Path) -> GlbConfig:
        """
        Carga y valida un archivo de configuración

        Raises:
            ConfigError: Si el YAML o el esquema son inválidos
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Error al leer {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML inválido en {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{path}: se esperaba un mapeo en la raíz")

        data = expand_env(data)
        data.setdefault("name", _strip_name(path.name))
        try:
            return GlbConfig(**data)
        except ValidationError as e:
            raise ConfigError(f"Configuración inválida en {path}:\n{e}") from e

    def load(self, name: str) -> GlbConfig:
        """Carga una configuración por nombre"""
        return self.load_file(self.resolve(name))

    def load_many(self, names: Optional[List[str]] = None) -> List[GlbConfig]:
        """Carga las configuraciones indicadas, o todas las glb-* si no se indica ninguna"""
        names = list(names or []) or self.discover()
        if not names:
            raise ConfigError(f"No hay configuraciones {CONFIG_PREFIX}* en {self.base_dir}")
        return [self.load(name) for name in names]
