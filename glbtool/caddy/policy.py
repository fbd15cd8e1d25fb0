"""
Políticas de conmutación sobre rutas de Caddy (lógica pura).

Dos familias de destino:
- first_<X>: fija primero el upstream cuyo dial contiene X y usa la política "first"
- round_robin / ip_hash: fija la política de selección nombrada

Las funciones no hacen I/O; devuelven una copia mutada de la ruta.
"""

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from glbtool.core.errors import InvalidSwitchTargetError
from glbtool.caddy.routes import iter_reverse_proxies


PIN_FIRST_PREFIX = "first_"
NAMED_POLICIES = ("round_robin", "ip_hash")


@dataclass(frozen=True)
class SwitchTarget:
    """Destino de conmutación ya validado"""
    raw: str
    pin: Optional[str] = None  # X en first_<X>; None para políticas nombradas

    @property
    def is_pin_first(self) -> bool:
        return self.pin is not None

    @property
    def policy(self) -> str:
        """Valor de load_balancing.selection_policy.policy a escribir"""
        return "first" if self.is_pin_first else self.raw

    def __str__(self) -> str:
        return self.raw


def parse_switch_target(value: str) -> SwitchTarget:
    """
    Valida y parsea un destino de conmutación

    Args:
        value: "first_<X>", "round_robin" o "ip_hash"

    Returns:
        SwitchTarget

    Raises:
        InvalidSwitchTargetError: Si el destino no está soportado
    """
    value = (value or "").strip()
    if value.startswith(PIN_FIRST_PREFIX):
        pin = value[len(PIN_FIRST_PREFIX):]
        if not pin:
            raise InvalidSwitchTargetError(f"Destino '{value}' sin nodo después de 'first_'")
        return SwitchTarget(raw=value, pin=pin)
    if value in NAMED_POLICIES:
        return SwitchTarget(raw=value)
    raise InvalidSwitchTargetError(
        f"Política de balanceo inválida: '{value}' (usa first_<nodo>, {' o '.join(NAMED_POLICIES)})"
    )


def _set_selection_policy(handler: Dict[str, Any], policy: str) -> None:
    """Asigna handler.load_balancing.selection_policy.policy creando objetos intermedios"""
    lb = handler.get("load_balancing")
    if not isinstance(lb, dict):
        lb = {}
        handler["load_balancing"] = lb
    selection = lb.get("selection_policy")
    if not isinstance(selection, dict):
        selection = {}
        lb["selection_policy"] = selection
    selection["policy"] = policy


def _pin_upstream(handler: Dict[str, Any], pin: str) -> None:
    """Intercambia los dos upstreams si el segundo apunta al nodo a fijar"""
    upstreams = handler.get("upstreams")
    if not isinstance(upstreams, list) or len(upstreams) != 2:
        return
    second = upstreams[1] if isinstance(upstreams[1], dict) else {}
    dial = second.get("dial") or ""
    if isinstance(dial, str) and pin in dial:
        handler["upstreams"] = [upstreams[1], upstreams[0]]


def transform_route(route: Dict[str, Any], target: SwitchTarget) -> Dict[str, Any]:
    """
    Calcula la ruta mutada para un destino

    Recorre los reverse_proxy de primer nivel y los anidados en
    subroute.routes[].handle[].

    Args:
        route: Ruta original (no se modifica)
        target: Destino validado

    Returns:
        Copia profunda de la ruta con la política aplicada
    """
    new_route = copy.deepcopy(route)
    for handler in iter_reverse_proxies(new_route):
        if target.is_pin_first:
            _pin_upstream(handler, target.pin)
        _set_selection_policy(handler, target.policy)
    return new_route


def selection_policies(route: Dict[str, Any]) -> List[Optional[str]]:
    """Políticas actuales de cada reverse_proxy de la ruta (para diagnóstico)"""
    result: List[Optional[str]] = []
    for handler in iter_reverse_proxies(route):
        lb = handler.get("load_balancing")
        selection = lb.get("selection_policy") if isinstance(lb, dict) else None
        result.append(selection.get("policy") if isinstance(selection, dict) else None)
    return result
