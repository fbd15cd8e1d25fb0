"""
Aplicación CLI de GLB Tool

Solo compone comandos; la lógica vive en config, caddy y patroni.
"""

from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from glbtool import __version__
from glbtool.caddy.listing import build_policy_table
from glbtool.caddy.switch import SwitchReport, create_engine
from glbtool.config.loader import ConfigLoader, config_dir as resolve_config_dir
from glbtool.core.errors import ConfigError, GlbError
from glbtool.core.log import setup_logging
from glbtool.core.state import PolicyCache, state_root
from glbtool.patroni.cli import app as patroni_app

app = typer.Typer(
    name="glbtool",
    help="GLB Tool - Conmutación de políticas de balanceo en Caddy",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

app.add_typer(patroni_app, name="patroni", help="Conmutación automática basada en Patroni")


def _load(names: Optional[List[str]], config_dir: Optional[Path]):
    try:
        return ConfigLoader(config_dir).load_many(names)
    except ConfigError as e:
        console.print(f"[red]❌ {escape(str(e))}[/red]")
        raise typer.Exit(code=1)


def _print_report(name: str, report: SwitchReport) -> None:
    table = Table(title=f"Config: {name}", show_header=True, header_style="bold cyan")
    table.add_column("Destino", style="cyan")
    table.add_column("Resultado", style="green")
    table.add_column("Cambiadas", justify="right")
    table.add_column("Sin cambios", justify="right")
    table.add_column("Fallidas", style="red")

    outcome = report.outcome
    if report.stopped_early:
        outcome = f"{outcome} (detenida por umbral sin cambios)"
    table.add_row(
        report.target,
        outcome,
        str(report.switched),
        str(report.unchanged),
        ", ".join(report.failed) or "-",
    )
    console.print(table)


@app.command()
def switch(
    target: str = typer.Argument(..., help="Destino: first_<X>, round_robin o ip_hash"),
    config: Optional[List[str]] = typer.Option(None, "--config", "-c", help="Configuración glb-<nombre> (repetible)"),
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", help="Directorio de configuraciones"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Logs de depuración"),
):
    """
    Conmuta la política de balanceo en todos los proxies configurados

    Ejemplos:
        glbtool switch first_dc1 -c example    # Fija el upstream que contiene "dc1"
        glbtool switch round_robin              # Todas las configuraciones glb-*
    """
    setup_logging(verbose)
    configs = _load(config, config_dir)

    for glb_config in configs:
        console.print(Panel.fit(
            f"[bold cyan]Config: {glb_config.name}[/bold cyan]\n"
            f"[dim]Destino: {target}[/dim]",
            border_style="cyan",
        ))
        engine = create_engine(glb_config, console)
        try:
            report = engine.run(target)
        except ConfigError as e:
            console.print(f"[red]❌ {escape(str(e))}[/red]")
            raise typer.Exit(code=1)
        _print_report(glb_config.name, report)


@app.command("list")
def list_policies(
    config: Optional[List[str]] = typer.Option(None, "--config", "-c", help="Configuración glb-<nombre> (repetible)"),
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", help="Directorio de configuraciones"),
):
    """
    Muestra la última política aplicada por dominio y proxy

    Ejemplo: glbtool list -c example
    """
    configs = _load(config, config_dir)
    cache = PolicyCache()
    for glb_config in configs:
        console.print(build_policy_table(glb_config, cache, console))


@app.command()
def version():
    """Muestra la versión de GLB Tool"""
    console.print(Panel.fit(
        "[bold cyan]GLB Tool[/bold cyan]\n"
        "[dim]Conmutación de políticas de balanceo en Caddy con failover Patroni[/dim]\n\n"
        f"[bold]Versión:[/bold] {__version__}\n"
        f"[bold]Configuración:[/bold] {resolve_config_dir()}\n"
        f"[bold]Estado:[/bold] {state_root()}",
        border_style="cyan"
    ))


def main():
    load_dotenv()
    try:
        app()
    except GlbError as e:
        console.print(f"[red]❌ {escape(str(e))}[/red]")
        raise SystemExit(1)
