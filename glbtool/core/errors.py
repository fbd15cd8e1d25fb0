"""
Errores de GLB Tool.

El core solo define excepciones; la CLI se encarga del formato de salida
y del código de salida.
"""


class GlbError(Exception):
    """Error base de GLB Tool."""
    pass


class ConfigError(GlbError):
    """Error de configuración (archivo faltante, formato o valores inválidos)."""
    pass


class InvalidSwitchTargetError(ConfigError):
    """Destino de conmutación no soportado (ni first_<X> ni política conocida)."""
    pass


class ProbeError(GlbError):
    """Ningún endpoint de Patroni devolvió un estado válido."""
    pass


class ProbeTimeoutError(ProbeError):
    """El plazo compartido del sondeo expiró sin respuesta válida."""
    pass


class ProbeCancelledError(ProbeError):
    """El sondeo fue abortado porque el monitor se detuvo."""
    pass


class RouteNotFoundError(GlbError):
    """No hay ruta con host exacto y reverse_proxy bajo el servidor indicado."""
    pass


class SwitchError(GlbError):
    """Falló la lectura o la mutación de la configuración de un proxy."""
    pass


class NoChangeThresholdReached(GlbError):
    """
    Se superó el umbral de ejecuciones sin cambios.

    No es fatal: quien ejecuta la corrida decide si detiene el proceso
    o solo el trabajo restante de esa configuración.
    """

    def __init__(self, count: int, threshold: int):
        super().__init__(f"No se realizaron cambios {count} veces (umbral: {threshold})")
        self.count = count
        self.threshold = threshold


class MonitorStateError(GlbError):
    """Transición inválida del monitor (ya en ejecución o ya detenido)."""
    pass
