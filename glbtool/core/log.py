"""
Configuración de logging con Rich.

Los módulos usan logging.getLogger(__name__); la salida para el usuario
se imprime con una Console de Rich.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


LOGGER_NAME = "glbtool"


def setup_logging(verbose: bool = False, console: Optional[Console] = None) -> logging.Logger:
    """
    Configura el logger raíz de glbtool con un RichHandler

    Args:
        verbose: Si True, nivel DEBUG (peticiones HTTP, payloads)
        console: Console de Rich donde escribir (por defecto stderr)

    Returns:
        Logger configurado
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Evitar handlers duplicados si se invoca más de una vez (tests, varios comandos)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
