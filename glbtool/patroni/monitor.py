"""
Monitor de Patroni: conmutación automática al cambiar el primario

Estados: IDLE → RUNNING → STOPPED (terminal; para reiniciar se crea otra instancia).
La configuración es de solo lectura mientras el monitor existe.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional

from glbtool.config.models import GlbConfig, MonitorConfig, PatroniMapping
from glbtool.core import alarm as alarms
from glbtool.core.alarm import AlarmSink, MemoryAlarm, alarm_custom
from glbtool.core.errors import MonitorStateError, ProbeError
from .prober import ClusterProber


logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    """Estado del monitor"""
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class PatroniMonitor:
    """Vigila el primario de cada cluster y dispara la conmutación"""

    def __init__(
        self,
        config: MonitorConfig,
        switcher: Callable[[str], Any],
        prober: Optional[ClusterProber] = None,
        alarm: Optional[AlarmSink] = None,
        glb_config: Optional[GlbConfig] = None,
    ):
        """
        Args:
            config: Sección patroni_auto_switch
            switcher: Ejecuta la conmutación a un destino (ej: SwitchEngine.run)
            prober: Sondeador de clusters (por defecto uno ligado a la cancelación del monitor)
            alarm: Destino de alarmas
            glb_config: Configuración completa (identificador y stream/topic de alarmas)
        """
        self.config = config
        self.switcher = switcher
        self.alarm = alarm or MemoryAlarm()
        self.glb_config = glb_config or GlbConfig(caddy={"patroni_auto_switch": config})

        self._stop_event = threading.Event()
        self.prober = prober or ClusterProber(cancel_event=self._stop_event)
        self._lock = threading.Lock()
        self._state = MonitorState.IDLE
        self._last_primary: Dict[str, str] = {}
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> MonitorState:
        with self._lock:
            return self._state

    def start(self) -> None:
        """
        Valida, inicializa los primarios conocidos y lanza el hilo de monitoreo

        Raises:
            ConfigError: Si la configuración es inválida o está deshabilitada
            MonitorStateError: Si el monitor ya está corriendo o fue detenido
        """
        self.config.validate_for_start()

        with self._lock:
            if self._state == MonitorState.RUNNING:
                raise MonitorStateError("monitor is already running")
            if self._state == MonitorState.STOPPED:
                raise MonitorStateError("monitor was stopped; create a new instance")
            self._state = MonitorState.RUNNING

        logger.info("Iniciando monitor de Patroni...")

        for mapping in self.config.mappings:
            try:
                primary = self.prober.probe_primary(mapping)
            except ProbeError as e:
                logger.warning("No se pudo obtener el primario inicial del cluster %s: %s", mapping.cluster, e)
                continue
            with self._lock:
                self._last_primary[mapping.cluster] = primary
            logger.info("Primario inicial del cluster %s: %s", mapping.cluster, primary)

        self._thread = threading.Thread(target=self._loop, name="patroni-monitor", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancela el monitoreo; no hace nada si no está corriendo"""
        with self._lock:
            if self._state != MonitorState.RUNNING:
                return
            self._state = MonitorState.STOPPED

        logger.info("Deteniendo monitor de Patroni...")
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _loop(self) -> None:
        while not self._stop_event.wait(self.config.check_interval):
            try:
                self.check_all_clusters()
            except Exception:
                logger.exception("Error inesperado en el ciclo del monitor; se reintenta en el próximo intervalo")
        logger.info("Ciclo del monitor detenido")

    def check_all_clusters(self) -> None:
        """Un tick: revisa cada relación en el orden configurado"""
        for mapping in self.config.mappings:
            if self._stop_event.is_set():
                return
            try:
                self.check_cluster(mapping)
            except ProbeError as e:
                logger.warning("Error revisando el cluster %s: %s", mapping.cluster, e)

    def check_cluster(self, mapping: PatroniMapping) -> Optional[str]:
        """
        Revisa un cluster y conmuta si el primario cambió

        Returns:
            Destino elegido si hubo cambio de primario, None si no

        Raises:
            ProbeError: Si ningún endpoint respondió
        """
        primary = self.prober.probe_primary(mapping)

        with self._lock:
            previous = self._last_primary.get(mapping.cluster)
        if previous is not None and previous == primary:
            return None

        logger.info("Cambio de primario en el cluster %s: %s -> %s", mapping.cluster, previous or "", primary)

        target = mapping.switch_target_for(primary)
        if not target:
            logger.warning("Sin destino de conmutación para el primario %s del cluster %s", primary, mapping.cluster)
            return None

        logger.info("Conmutando a %s por el primario %s", target, primary)
        if self.config.dry_run:
            logger.info("DRY RUN: se conmutaría a %s", target)
        else:
            try:
                self.switcher(target)
            except Exception as e:
                logger.error("Falló la conmutación a %s: %s", target, e)

        with self._lock:
            self._last_primary[mapping.cluster] = primary

        action = f"dry run, would switch to {target}" if self.config.dry_run else f"switched to {target}"
        message = (
            f"Patroni cluster {mapping.cluster} primary changed: "
            f"{previous or ''} -> {primary} ({action})"
        )
        alarm_custom(self.alarm, self.glb_config, alarms.SWITCH, message)
        return target

    def is_running(self) -> bool:
        return self.state == MonitorState.RUNNING

    def get_last_primary(self, cluster: str) -> Optional[str]:
        with self._lock:
            return self._last_primary.get(cluster)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self._state.value,
                "clusters": len(self.config.mappings),
                "check_interval": self.config.check_interval,
                "dry_run": self.config.dry_run,
                "last_primaries": dict(self._last_primary),
            }
