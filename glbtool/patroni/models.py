"""
Modelos de la respuesta GET /cluster de Patroni
"""

from typing import List, Optional, Union

from pydantic import BaseModel, Field


PRIMARY_ROLES = ("leader", "master")
HEALTHY_STATES = ("running", "streaming")


class NodeStatus(BaseModel):
    """Estado de un miembro del cluster"""
    name: str = ""
    role: str = ""  # leader, master, replica, sync_standby...
    state: str = ""  # running, streaming...
    host: str = ""
    port: int = 0
    timeline: int = 0
    lag: Optional[Union[int, str]] = None  # Patroni puede devolver "unknown"


class ClusterStatus(BaseModel):
    """Respuesta de /cluster"""
    scope: str = ""
    members: List[NodeStatus] = Field(default_factory=list)

    def primary(self) -> Optional[NodeStatus]:
        """Primer miembro con rol leader/master; no verifica que sea único"""
        for member in self.members:
            if member.role in PRIMARY_ROLES:
                return member
        return None

    def member(self, name: str) -> Optional[NodeStatus]:
        for member in self.members:
            if member.name == name:
                return member
        return None

    def healthy_members(self) -> List[NodeStatus]:
        return [m for m in self.members if m.state in HEALTHY_STATES]
