"""
Descubrimiento dinámico de endpoints admin

Cada lb_url apunta a un servicio traefik/whoami detrás del balanceador. Su
respuesta incluye "Hostname: <dominio>-<entorno>-<lb>", que se traduce a la
URL admin con la plantilla configurada. Los endpoints que coinciden pasan
al frente; el resto conserva el orden configurado.
"""

import logging
from typing import List, Optional

import requests

from glbtool.config.models import DEFAULT_DISCOVERY_TEMPLATE, ProxyEndpoint


logger = logging.getLogger(__name__)

HOSTNAME_ATTEMPTS = 3


def extract_hostname(session: requests.Session, url: str, timeout: float = 10.0) -> str:
    """
    Obtiene el hostname que reporta un servicio whoami

    Raises:
        requests.RequestException: Si todos los intentos fallan
        ValueError: Si la respuesta no contiene "Hostname:"
    """
    last_error: Optional[requests.RequestException] = None
    for attempt in range(1, HOSTNAME_ATTEMPTS + 1):
        try:
            response = session.get(url, timeout=timeout)
            break
        except requests.RequestException as e:
            logger.debug("Reintentando %s (intento %d): %s", url, attempt, e)
            last_error = e
    else:
        raise last_error

    for line in response.text.splitlines():
        if "Hostname:" in line:
            parts = line.split()
            if len(parts) > 1:
                return parts[1]
            break
    raise ValueError("hostname not found")


def hostname_to_url(hostname: str, template: str = DEFAULT_DISCOVERY_TEMPLATE) -> str:
    """
    Traduce "<dominio>-<entorno>-<lb>" a la URL admin

    Ejemplo: "test-test2-test3" → "https://api.test3.test2.test.biz.tr"

    Raises:
        ValueError: Si el hostname no tiene al menos tres partes
    """
    parts = hostname.split("-")
    if len(parts) < 3:
        raise ValueError("invalid hostname format")
    return template.format(domain=parts[0], env=parts[1], lb=parts[2])


def adjust_endpoints(
    endpoints: List[ProxyEndpoint],
    lb_urls: List[str],
    template: str,
    session: requests.Session,
) -> List[ProxyEndpoint]:
    """
    Reordena los endpoints según los balanceadores que responden

    Args:
        endpoints: Endpoints configurados
        lb_urls: URLs whoami a consultar
        template: Plantilla hostname → URL admin
        session: Sesión HTTP

    Returns:
        Endpoints sin duplicados; primero los descubiertos
    """
    preferred: List[ProxyEndpoint] = []
    for lb_url in lb_urls:
        logger.debug("Consultando %s", lb_url)
        try:
            discovered = hostname_to_url(extract_hostname(session, lb_url), template)
        except (requests.RequestException, ValueError) as e:
            logger.error("No se pudo resolver %s: %s", lb_url, e)
            continue
        for endpoint in endpoints:
            if endpoint.url == discovered.rstrip("/"):
                preferred.append(endpoint)

    result: List[ProxyEndpoint] = []
    seen = set()
    for endpoint in preferred + list(endpoints):
        if endpoint.label in seen:
            continue
        seen.add(endpoint.label)
        result.append(endpoint)

    logger.debug("URLs de API finales: %s", ", ".join(e.label for e in result))
    return result
