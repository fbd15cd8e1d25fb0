"""
Sondeo concurrente de clusters Patroni

Lanza un GET {endpoint}/cluster por cada endpoint configurado y devuelve la
primera respuesta válida. Es una carrera, no un quórum: si los endpoints no
coinciden sobre el líder, gana el que responde primero.
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable, List, Optional, TypeVar

import requests
from pydantic import ValidationError

from glbtool.config.models import PatroniMapping
from glbtool.core.errors import ProbeCancelledError, ProbeError, ProbeTimeoutError
from glbtool.core.http import new_session
from .models import ClusterStatus


logger = logging.getLogger(__name__)

T = TypeVar("T")


class ClusterProber:
    """Sondea los endpoints REST de Patroni de una relación"""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        cancel_event: Optional[threading.Event] = None,
        poll_interval: float = 0.1,
    ):
        """
        Args:
            session: Sesión HTTP compartida por los sondeos
            cancel_event: Evento del monitor; si se activa, el sondeo se aborta
            poll_interval: Cada cuánto se revisa la cancelación mientras se espera
        """
        self.session = session or new_session()
        self.cancel_event = cancel_event
        self.poll_interval = poll_interval

    def probe_status(self, mapping: PatroniMapping) -> ClusterStatus:
        """Estado completo del cluster según el primer endpoint que responda"""
        return self._race(mapping, self._fetch_status)

    def probe_primary(self, mapping: PatroniMapping) -> str:
        """
        Nombre del nodo primario del cluster

        Raises:
            ProbeTimeoutError: Si el plazo expira sin respuesta válida
            ProbeError: Si todos los endpoints fallan (incluye cada URL y motivo)
        """
        return self._race(mapping, self._fetch_primary)

    def _fetch_status(self, base_url: str, timeout: float) -> ClusterStatus:
        response = self.session.get(f"{base_url}/cluster", timeout=timeout)
        if response.status_code != 200:
            raise ProbeError(f"HTTP {response.status_code}")
        try:
            return ClusterStatus.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProbeError(f"failed to parse response: {e}") from e

    def _fetch_primary(self, base_url: str, timeout: float) -> str:
        status = self._fetch_status(base_url, timeout)
        primary = status.primary()
        if primary is None or not primary.name:
            raise ProbeError("no primary node found")
        return primary.name

    def _race(self, mapping: PatroniMapping, fetch: Callable[[str, float], T]) -> T:
        urls = mapping.probe_urls()
        if not urls:
            raise ProbeError(f"no Patroni URLs configured for cluster {mapping.cluster}")

        deadline = time.monotonic() + mapping.timeout
        executor = ThreadPoolExecutor(max_workers=len(urls), thread_name_prefix=f"probe-{mapping.cluster}")
        pending = {executor.submit(fetch, url, mapping.timeout): url for url in urls}
        errors: List[str] = []

        try:
            while pending:
                if self.cancel_event is not None and self.cancel_event.is_set():
                    raise ProbeCancelledError(f"probe cancelled for cluster {mapping.cluster}")

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ProbeTimeoutError(f"timeout checking Patroni URLs for cluster {mapping.cluster}")

                done, _ = wait(list(pending), timeout=min(remaining, self.poll_interval), return_when=FIRST_COMPLETED)
                for future in done:
                    url = pending.pop(future)
                    try:
                        result = future.result()
                    except (requests.RequestException, ProbeError) as e:
                        errors.append(f"{url}: {e}")
                        continue
                    if result:
                        logger.debug("Respuesta de %s para %s: %s", url, mapping.cluster, result)
                        return result
                    errors.append(f"{url}: empty result")
        finally:
            # Los sondeos pendientes se abandonan; su timeout HTTP los termina
            executor.shutdown(wait=False, cancel_futures=True)

        raise ProbeError(
            f"failed to check all Patroni URLs for cluster {mapping.cluster}: [{'; '.join(errors)}]"
        )
