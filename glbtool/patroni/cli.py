"""
Módulo Patroni - GLB Tool
Conmutación automática según el primario de los clusters
"""

import signal
import threading
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from glbtool.caddy.switch import create_engine
from glbtool.config.loader import ConfigLoader
from glbtool.core.errors import GlbError, ProbeError
from glbtool.core.log import setup_logging
from .monitor import PatroniMonitor
from .prober import ClusterProber

app = typer.Typer(
    name="patroni",
    help="Conmutación automática basada en Patroni",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


def _wait_for_shutdown() -> None:
    """Bloquea hasta recibir SIGINT o SIGTERM"""
    stop_requested = threading.Event()

    def _handle_signal(signum, frame):
        stop_requested.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    stop_requested.wait()


def _load(names: Optional[List[str]], config_dir: Optional[Path]):
    try:
        return ConfigLoader(config_dir).load_many(names)
    except GlbError as e:
        console.print(f"[red]❌ {escape(str(e))}[/red]")
        raise typer.Exit(code=1)


@app.command()
def monitor(
    config: Optional[List[str]] = typer.Option(None, "--config", "-c", help="Configuración glb-<nombre> (repetible)"),
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", help="Directorio de configuraciones"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Solo registra la conmutación, no la aplica"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Logs de depuración"),
):
    """
    Vigila los clusters Patroni y conmuta al cambiar el primario

    Bloquea hasta recibir SIGINT/SIGTERM.

    Ejemplo: glbtool patroni monitor -c example --dry-run
    """
    setup_logging(verbose)
    configs = _load(config, config_dir)

    # Con -c cada configuración nombrada debe arrancar; sin -c se omiten las que no aplican
    named = bool(config)
    monitors: List[PatroniMonitor] = []
    for glb_config in configs:
        monitor_config = glb_config.caddy.patroni_auto_switch
        if not named and not monitor_config.enabled:
            console.print(f"[dim]⏭️  {glb_config.name}: conmutación automática deshabilitada, se omite[/dim]")
            continue
        if dry_run:
            monitor_config = monitor_config.model_copy(update={"dry_run": True})

        engine = create_engine(glb_config, console)
        instance = PatroniMonitor(
            monitor_config,
            switcher=engine.run,
            alarm=engine.alarm,
            glb_config=glb_config,
        )
        try:
            instance.start()
        except GlbError as e:
            console.print(f"[red]❌ {glb_config.name}: {escape(str(e))}[/red]")
            if named:
                for started in monitors:
                    started.stop()
                raise typer.Exit(code=1)
            continue

        monitors.append(instance)
        console.print(
            f"[green]✅ Monitor iniciado para {glb_config.name} "
            f"({len(monitor_config.mappings)} cluster(s), cada {monitor_config.check_interval:g}s)[/green]"
        )

    if not monitors:
        console.print("[red]❌ No se inició ningún monitor de Patroni[/red]")
        raise typer.Exit(code=1)

    _wait_for_shutdown()
    console.print("[yellow]Deteniendo monitores...[/yellow]")
    for instance in monitors:
        instance.stop()


@app.command()
def check(
    config: Optional[List[str]] = typer.Option(None, "--config", "-c", help="Configuración glb-<nombre> (repetible)"),
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", help="Directorio de configuraciones"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Logs de depuración"),
):
    """
    Sondea una vez cada cluster y muestra su primario

    Ejemplo: glbtool patroni check -c example
    """
    setup_logging(verbose)
    configs = _load(config, config_dir)
    prober = ClusterProber()

    table = Table(title="Primarios Patroni", show_header=True, header_style="bold cyan")
    table.add_column("Config", style="cyan")
    table.add_column("Cluster", style="cyan")
    table.add_column("Primario", style="green")
    table.add_column("Destino", style="yellow")

    for glb_config in configs:
        if not glb_config.caddy.patroni_auto_switch.enabled:
            table.add_row(glb_config.name, "-", "[yellow]Conmutación automática deshabilitada[/yellow]", "-")
            continue
        for mapping in glb_config.caddy.patroni_auto_switch.mappings:
            try:
                primary = prober.probe_primary(mapping)
            except ProbeError as e:
                table.add_row(glb_config.name, mapping.cluster, f"[red]{escape(str(e))}[/red]", "-")
                continue
            table.add_row(glb_config.name, mapping.cluster, primary, mapping.switch_target_for(primary) or "-")

    if not table.row_count:
        console.print(Panel.fit("[yellow]No hay clusters Patroni configurados[/yellow]", border_style="yellow"))
        return
    console.print(table)
