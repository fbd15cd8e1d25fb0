"""
Vista de diagnóstico: última política aplicada por dominio y proxy
"""

from typing import List, Optional

from rich.console import Console
from rich.table import Table

from glbtool.config.models import GlbConfig
from glbtool.core.state import PolicyCache


MISSING = "-"


def policy_headers(config: GlbConfig) -> List[str]:
    """Cabeceras: SERVERS + un identificador por endpoint"""
    headers = ["SERVERS"]
    for endpoint in config.caddy.api_urls:
        if endpoint.identifier not in headers:
            headers.append(endpoint.identifier)
    return headers


def policy_rows(config: GlbConfig, cache: PolicyCache, console: Optional[Console] = None) -> List[List[str]]:
    """
    Filas de la tabla: un dominio por fila, una política por proxy

    Args:
        config: Configuración
        cache: Caché de políticas
        console: Console de Rich para advertencias

    Returns:
        Lista de filas (dominio, política, ...)
    """
    identifiers = policy_headers(config)[1:]
    rows = []
    for domain in config.caddy.servers:
        entries = cache.entries(domain)
        if not entries and console:
            console.print(
                f"[yellow]⚠️ No hay políticas registradas para {domain}; ejecuta glbtool switch primero[/yellow]"
            )
        rows.append([domain] + [entries.get(identifier, MISSING) for identifier in identifiers])
    return rows


def build_policy_table(config: GlbConfig, cache: PolicyCache, console: Optional[Console] = None) -> Table:
    """Tabla Rich con la última política aplicada"""
    title = f"Config: {config.name}" if config.name else None
    table = Table(title=title, show_header=True, header_style="bold cyan")
    for i, header in enumerate(policy_headers(config)):
        table.add_column(header, style="cyan" if i == 0 else "green")
    for row in policy_rows(config, cache, console):
        table.add_row(*row)
    return table
