"""
Transporte HTTP compartido
Sesión requests con pool de conexiones y reintentos con backoff
"""

import logging
import time
from typing import Callable, Dict, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter


logger = logging.getLogger(__name__)

# (connect, read): el connect cubre también el handshake TLS
DEFAULT_TIMEOUT: Tuple[float, float] = (5.0, 30.0)

INITIAL_BACKOFF = 0.2
MAX_BACKOFF = 2.0
DEFAULT_MAX_ATTEMPTS = 5


def new_session(pool_connections: int = 256, pool_maxsize: int = 128) -> requests.Session:
    """
    Crea una sesión HTTP con pool acotado de conexiones

    Args:
        pool_connections: Número de pools (hosts) a mantener
        pool_maxsize: Conexiones inactivas máximas por host

    Returns:
        requests.Session lista para llamadas intra-datacenter
    """
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_connections, pool_maxsize=pool_maxsize)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def do_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    body_factory: Optional[Callable[[], bytes]] = None,
    headers: Optional[Dict[str, str]] = None,
    auth: Optional[Tuple[str, str]] = None,
    timeout=DEFAULT_TIMEOUT,
    sleep: Callable[[float], None] = time.sleep,
) -> requests.Response:
    """
    Ejecuta una petición reintentando errores de transporte y respuestas 5xx

    El backoff empieza en 200ms y se duplica hasta un tope de 2s. Cualquier
    respuesta 2xx-4xx se devuelve de inmediato.

    Args:
        session: Sesión HTTP
        method: Método HTTP (GET, PATCH, ...)
        url: URL completa
        max_attempts: Intentos totales
        body_factory: Regenera el body antes de cada intento (PATCH/POST)
        headers: Cabeceras adicionales
        auth: Tupla (usuario, contraseña) para Basic Auth
        timeout: Timeout de requests (float o tupla connect/read)
        sleep: Función de espera (inyectable en tests)

    Returns:
        La primera respuesta < 500, o la última 5xx si se agotaron los intentos

    Raises:
        requests.RequestException: Si el último intento falló a nivel de transporte
    """
    if max_attempts < 1:
        raise ValueError("max_attempts debe ser >= 1")

    backoff = INITIAL_BACKOFF
    response: Optional[requests.Response] = None

    for attempt in range(1, max_attempts + 1):
        data = body_factory() if body_factory is not None else None
        start = time.monotonic()
        try:
            response = session.request(
                method,
                url,
                data=data,
                headers=headers,
                auth=auth,
                timeout=timeout,
            )
        except requests.RequestException as e:
            logger.debug("%s %s intento %d falló: %s", method, url, attempt, e)
            if attempt == max_attempts:
                raise
            sleep(backoff)
            backoff = min(backoff * 2, MAX_BACKOFF)
            continue

        latency = time.monotonic() - start
        if response.status_code < 500:
            logger.debug(
                "%s %s intento %d completado: %s (%.3fs)",
                method, url, attempt, response.status_code, latency,
            )
            return response

        logger.debug(
            "%s %s intento %d devolvió %s (%.3fs); se reintentará",
            method, url, attempt, response.status_code, latency,
        )
        if attempt == max_attempts:
            break
        sleep(backoff)
        backoff = min(backoff * 2, MAX_BACKOFF)

    return response
