"""
Resolución de rutas en la configuración de Caddy
Documento: GET /config/apps/http/servers → {servidor: {"routes": [ruta, ...]}}
"""

from typing import Any, Dict, Iterator, Tuple

from glbtool.core.errors import RouteNotFoundError


REVERSE_PROXY = "reverse_proxy"
SUBROUTE = "subroute"


def has_exact_host(route: Dict[str, Any], domain: str) -> bool:
    """True si algún match[].host[] es exactamente el dominio"""
    matches = route.get("match")
    if not isinstance(matches, list):
        return False
    for match in matches:
        if not isinstance(match, dict):
            continue
        hosts = match.get("host")
        if isinstance(hosts, list) and any(isinstance(h, str) and h == domain for h in hosts):
            return True
    return False


def iter_reverse_proxies(route: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """
    Itera los handlers reverse_proxy de una ruta

    Incluye los de primer nivel (handle[]) y los anidados en
    handle[].handler == "subroute" → routes[].handle[].
    Los dicts devueltos son los del documento (mutables).
    """
    handles = route.get("handle")
    if not isinstance(handles, list):
        return
    for handle in handles:
        if not isinstance(handle, dict):
            continue
        handler = handle.get("handler")
        if handler == REVERSE_PROXY:
            yield handle
        elif handler == SUBROUTE:
            subroutes = handle.get("routes")
            if not isinstance(subroutes, list):
                continue
            for subroute in subroutes:
                if not isinstance(subroute, dict):
                    continue
                nested = subroute.get("handle")
                if not isinstance(nested, list):
                    continue
                for nested_handle in nested:
                    if isinstance(nested_handle, dict) and nested_handle.get("handler") == REVERSE_PROXY:
                        yield nested_handle


def has_reverse_proxy(route: Dict[str, Any]) -> bool:
    return next(iter_reverse_proxies(route), None) is not None


def find_route(servers: Dict[str, Any], server_name: str, domain: str) -> Tuple[int, Dict[str, Any]]:
    """
    Busca la primera ruta con host exacto y un reverse_proxy

    Args:
        servers: Documento de servidores de Caddy
        server_name: Clave del servidor (ej: srv0)
        domain: Dominio a buscar en match[].host[]

    Returns:
        Tuple (índice de la ruta, ruta)

    Raises:
        RouteNotFoundError: Si el servidor no existe o ninguna ruta coincide
    """
    if server_name not in servers:
        raise RouteNotFoundError(f"server key {server_name} not found")
    server = servers[server_name]
    if not isinstance(server, dict):
        raise RouteNotFoundError(f"server {server_name} is not an object")
    if "routes" not in server:
        raise RouteNotFoundError(f"server {server_name} has no routes")
    routes = server["routes"]
    if not isinstance(routes, list):
        raise RouteNotFoundError(f"server {server_name} routes is not an array")

    for index, route in enumerate(routes):
        if not isinstance(route, dict):
            continue
        if has_exact_host(route, domain) and has_reverse_proxy(route):
            return index, route

    raise RouteNotFoundError(
        f"no route matched host={domain} with reverse_proxy under server={server_name}"
    )
