"""
Motor de conmutación: aplica un destino a las rutas de cada proxy Caddy

Flujo por (endpoint, dominio):
    GET  {url}/config/apps/http/servers
    → find_route por cada servidor
    → transform_route
    → PATCH {url}/config/apps/http/servers/{servidor}/routes/{índice}
    → PolicyCache
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests
from rich.console import Console
from rich.markup import escape

from glbtool.config.models import GlbConfig, ProxyEndpoint
from glbtool.core import alarm as alarms
from glbtool.core.alarm import AlarmSink, MemoryAlarm, WebhookAlarm, alarm_custom
from glbtool.core.errors import NoChangeThresholdReached, RouteNotFoundError, SwitchError
from glbtool.core.http import do_with_retry, new_session
from glbtool.core.state import PolicyCache
from .discovery import adjust_endpoints
from .policy import SwitchTarget, parse_switch_target, selection_policies, transform_route
from .routes import find_route


logger = logging.getLogger(__name__)

SERVERS_PATH = "/config/apps/http/servers"
MAX_ATTEMPTS = 5


@dataclass
class SwitchReport:
    """Resultado de una corrida de conmutación sobre todos los endpoints"""
    target: str
    failed: List[str] = field(default_factory=list)
    switched: int = 0
    unchanged: int = 0
    stopped_early: bool = False

    @property
    def outcome(self) -> str:
        return "partial" if self.failed else "complete"


class SwitchEngine:
    """Aplica destinos de conmutación a los proxies de una configuración"""

    def __init__(
        self,
        config: GlbConfig,
        session: Optional[requests.Session] = None,
        alarm: Optional[AlarmSink] = None,
        cache: Optional[PolicyCache] = None,
        console: Optional[Console] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            config: Configuración glb-<nombre> (solo lectura)
            session: Sesión HTTP (pool compartido)
            alarm: Destino de alarmas
            cache: Caché de última política aplicada
            console: Console de Rich para salida
            sleep: Función de espera (reintentos y pausas entre iteraciones)
        """
        self.config = config
        self.session = session or new_session()
        self.alarm = alarm or MemoryAlarm()
        self.cache = cache or PolicyCache()
        self.console = console or Console()
        self.sleep = sleep
        self.no_change_count = 0

    @property
    def caddy(self):
        return self.config.caddy

    def _alarm(self, kind: str, message: str) -> None:
        alarm_custom(self.alarm, self.config, kind, message)

    def fetch_servers(self, endpoint: ProxyEndpoint) -> Dict[str, Any]:
        """
        Lee el documento de servidores de un proxy

        Raises:
            SwitchError: Si la petición falla o la respuesta no es 2xx / JSON objeto
        """
        url = f"{endpoint.url}{SERVERS_PATH}"
        logger.debug("GET %s", url)
        try:
            response = do_with_retry(
                self.session, "GET", url,
                auth=endpoint.auth, max_attempts=MAX_ATTEMPTS, sleep=self.sleep,
            )
        except requests.RequestException as e:
            raise SwitchError(f"GET {url} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise SwitchError(f"GET {url} returned {response.status_code}; body={response.text}")
        try:
            servers = response.json()
        except ValueError as e:
            raise SwitchError(f"GET {url} returned invalid JSON: {e}") from e
        if not isinstance(servers, dict):
            raise SwitchError(f"GET {url} did not return an object")
        return servers

    def send_route(self, endpoint: ProxyEndpoint, server_name: str, index: int, route: Dict[str, Any]) -> None:
        """
        PATCH de una ruta completa

        Raises:
            SwitchError: Si la petición falla o la respuesta no es 2xx
        """
        url = f"{endpoint.url}{SERVERS_PATH}/{server_name}/routes/{index}"
        payload = json.dumps(route).encode()
        try:
            response = do_with_retry(
                self.session, "PATCH", url,
                body_factory=lambda: payload,
                headers={"Content-Type": "application/json"},
                auth=endpoint.auth,
                max_attempts=MAX_ATTEMPTS,
                sleep=self.sleep,
            )
        except requests.RequestException as e:
            raise SwitchError(f"failed to send HTTP request: {e}") from e

        if not 200 <= response.status_code < 300:
            raise SwitchError(f"received non-2xx response: {response.status_code}; body={response.text}")

    def switch_to(
        self,
        target: str,
        endpoint: ProxyEndpoint,
        server_name: str,
        domain: str,
        servers: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Aplica un destino a la ruta de un dominio bajo un servidor de Caddy

        Args:
            target: Destino (first_<X>, round_robin, ip_hash)
            endpoint: Proxy sobre el que se aplica
            server_name: Servidor de Caddy (ej: srv0)
            domain: Dominio a conmutar
            servers: Documento de servidores ya leído (si None se lee del proxy)

        Returns:
            True si se envió el PATCH, False si no había cambios

        Raises:
            InvalidSwitchTargetError: Si el destino no está soportado
            NoChangeThresholdReached: Si se superó el umbral de corridas sin cambios
            RouteNotFoundError: Si no hay ruta para el dominio
            SwitchError: Si el PATCH falló tras los reintentos
        """
        switch_target = target if isinstance(target, SwitchTarget) else parse_switch_target(target)

        threshold = self.caddy.nochange_exit_threshold
        if self.no_change_count > threshold:
            raise NoChangeThresholdReached(self.no_change_count, threshold)

        if servers is None:
            servers = self.fetch_servers(endpoint)
        index, route = find_route(servers, server_name, domain)
        logger.debug("Ruta %d de %s para %s, políticas actuales: %s",
                     index, server_name, domain, selection_policies(route))

        new_route = transform_route(route, switch_target)
        if new_route == route and not self.caddy.override_config:
            self.console.print(
                f"Sin cambios: los upstreams ya están en orden {switch_target.pin or switch_target.raw}"
            )
            self.no_change_count += 1
            return False

        self.console.print(f"Enviando cambio de lb_policy a {switch_target}")
        try:
            self.send_route(endpoint, server_name, index, new_route)
        except SwitchError as e:
            reason = str(e).replace('"', "'")
            self.console.print(f"[red]❌ No se pudo conmutar el upstream de {endpoint.label} a {switch_target}[/red]")
            self._alarm(alarms.RED, f"Failed to switch {endpoint.label}'s upstream to {switch_target}: {reason}")
            raise

        self.console.print(f"[green]✅ Upstream de {endpoint.label} conmutado a {switch_target}[/green]")
        self.cache.write(domain, endpoint.identifier, switch_target.raw)
        return True

    def apply_endpoint(self, target: str, endpoint: ProxyEndpoint, domain: str, report: Optional[SwitchReport] = None) -> bool:
        """
        Aplica un destino a todas las rutas del dominio en un proxy

        Returns:
            False si algún PATCH falló

        Raises:
            SwitchError: Si no se pudo leer la configuración del proxy
            NoChangeThresholdReached: Si se superó el umbral de corridas sin cambios
        """
        self.console.print(f"Revisando {endpoint.url} ({endpoint.identifier})")
        servers = self.fetch_servers(endpoint)
        logger.debug("Servidores: %s", ", ".join(sorted(servers)))

        ok = True
        for server_name in sorted(servers):
            try:
                changed = self.switch_to(target, endpoint, server_name, domain, servers=servers)
            except RouteNotFoundError as e:
                logger.debug("%s", e)
                continue
            except SwitchError:
                ok = False
                continue
            if report is not None:
                if changed:
                    report.switched += 1
                else:
                    report.unchanged += 1
        return ok

    def _apply_pair(self, target: SwitchTarget, endpoint: ProxyEndpoint, domain: str, report: SwitchReport) -> None:
        self.console.print(f"Revisando {domain} en {endpoint.url}")
        try:
            ok = self.apply_endpoint(target.raw, endpoint, domain, report)
        except SwitchError as e:
            self.console.print(f"[red]❌ No se pudieron conmutar los upstreams de {endpoint.label}: {escape(str(e))}[/red]")
            ok = False
        if not ok and endpoint.label not in report.failed:
            report.failed.append(endpoint.label)

    def run(self, target: str) -> SwitchReport:
        """
        Conmuta todos los dominios en todos los endpoints de la configuración

        El orden de iteración lo define loop_order (API_URLS: endpoint externo,
        SERVERS: dominio externo). Superar el umbral de corridas sin cambios
        detiene el trabajo restante de esta corrida y se informa en el reporte.

        Raises:
            ConfigError: Si el destino o la configuración son inválidos
        """
        switch_target = parse_switch_target(target)
        self.caddy.validate_for_switch()
        self.no_change_count = 0

        endpoints = list(self.caddy.api_urls)
        if self.caddy.dynamic_api_urls:
            endpoints = adjust_endpoints(
                endpoints, self.caddy.lb_urls, self.caddy.discovery_url_template, self.session
            )
            self.console.print("URLs de API de Caddy: " + ", ".join(e.label for e in endpoints))

        report = SwitchReport(target=switch_target.raw)
        pause = self.caddy.lb_policy_change_sleep

        try:
            if self.caddy.loop_order == "SERVERS":
                for domain in self.caddy.servers:
                    for endpoint in endpoints:
                        self._apply_pair(switch_target, endpoint, domain, report)
                    self.sleep(pause)
            else:
                for endpoint in endpoints:
                    for domain in self.caddy.servers:
                        self._apply_pair(switch_target, endpoint, domain, report)
                    self.sleep(pause)
        except NoChangeThresholdReached as e:
            self.console.print(f"[yellow]{e}[/yellow]")
            report.stopped_early = True
            return report

        domains = ", ".join(self.caddy.servers)
        if report.failed:
            failed = ", ".join(report.failed)
            self.console.print(f"[yellow]⚠️ No se pudieron conmutar los upstreams de: {failed}[/yellow]")
            self._alarm(
                alarms.YELLOW,
                f"Partially failed to switch upstreams to {switch_target} for the following servers: "
                f"{domains}. Failed to switch upstreams for the following URLs: {failed}",
            )
        else:
            labels = ", ".join(e.label for e in endpoints)
            self._alarm(
                alarms.GREEN,
                f"The URL(s) {domains} have been completely switched to {switch_target} on {labels}",
            )
        return report


def create_engine(config: GlbConfig, console: Optional[Console] = None) -> SwitchEngine:
    """Motor con sesión compartida, alarmas por webhook y caché por defecto"""
    session = new_session()
    return SwitchEngine(
        config,
        session=session,
        alarm=WebhookAlarm(config.alarm, session=session),
        console=console,
    )
