"""
Estado en disco: última política aplicada por (dominio, proxy).

Estructura: {root}/{dominio}/{identificador}/lb_policy
El archivo contiene en texto plano el último destino aplicado con éxito.
No es un mecanismo de coordinación entre instancias concurrentes.
"""

import os
from pathlib import Path
from typing import Dict, Optional


# Ruta por defecto del estado (fuera del repo)
DEFAULT_STATE_ROOT = Path("/tmp/glb")

POLICY_FILE = "lb_policy"


def state_root() -> Path:
    """
    Directorio raíz del estado de GLB Tool.
    Resolución: GLB_STATE_DIR → /tmp/glb
    """
    explicit = os.environ.get("GLB_STATE_DIR", "").strip()
    if explicit:
        return Path(explicit).expanduser()
    return DEFAULT_STATE_ROOT


class PolicyCache:
    """Caché de la última política aplicada"""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else state_root()

    def path_for(self, domain: str, identifier: str) -> Path:
        return self.root / domain / identifier / POLICY_FILE

    def write(self, domain: str, identifier: str, policy: str) -> Path:
        """Crea o sobrescribe la entrada de (dominio, identificador)"""
        path = self.path_for(domain, identifier)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(policy)
        return path

    def read(self, domain: str, identifier: str) -> Optional[str]:
        path = self.path_for(domain, identifier)
        if not path.is_file():
            return None
        return path.read_text().strip()

    def entries(self, domain: str) -> Dict[str, str]:
        """
        Devuelve {identificador: política} para un dominio

        Args:
            domain: Dominio conmutado (ej: test.com)

        Returns:
            Dict vacío si el dominio nunca fue conmutado
        """
        base = self.root / domain
        if not base.is_dir():
            return {}

        result: Dict[str, str] = {}
        for entry in sorted(base.iterdir()):
            policy_path = entry / POLICY_FILE
            if policy_path.is_file():
                result[entry.name] = policy_path.read_text().strip()
        return result
