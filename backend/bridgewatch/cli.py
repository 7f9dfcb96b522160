"""Bridgewatch CLI: canal bridge vessel monitor.

Commands:
  bridges : show the configured bridge registry
  replay  : feed a recorded CSV/JSONL position log through the monitor
"""
from __future__ import annotations

import logging
import typer
from pathlib import Path
from typing import Optional
from rich.console import Console
from rich.table import Table

from bridgewatch.config import settings


app = typer.Typer(
    name="bridgewatch",
    help="Vessel monitor for opening bridges along a canal.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    logging.basicConfig(level=(log_level or settings.LOG_LEVEL).upper())


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("bridges")
def bridges(
    config: Optional[Path] = typer.Option(None, "--config", help="Bridge YAML file"),
):
    """List the bridges in canal order (south to north)."""
    from bridgewatch.modules.bridge_registry import load_bridge_registry

    try:
        registry = load_bridge_registry(config)
    except ValueError as e:
        console.print(f"[red]Invalid bridge configuration: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Bridges ({len(registry.bridges)})")
    table.add_column("#", style="cyan")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Lat")
    table.add_column("Lon")
    table.add_column("Radius (m)")
    table.add_column("Role")

    for b in registry.bridges:
        role = "target" if b.is_target else ("alternate text" if b.alternate_text else "")
        table.add_row(
            str(b.order),
            b.id,
            b.name,
            f"{b.lat:.5f}",
            f"{b.lon:.5f}",
            f"{b.radius_m:.0f}",
            role,
        )
    console.print(table)


@app.command("replay")
def replay(
    file: Path = typer.Argument(..., help="CSV or JSONL position log"),
    fmt: Optional[str] = typer.Option(None, "--format", help="csv or jsonl (default: from extension)"),
    config: Optional[Path] = typer.Option(None, "--config", help="Bridge YAML file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print every event, not just bridge text"),
):
    """Replay a recorded position log and print bridge-text changes."""
    from bridgewatch.modules.bridge_registry import load_bridge_registry
    from bridgewatch.modules.monitor import BridgeMonitor
    from bridgewatch.modules.replay import replay_file

    if not file.exists():
        console.print(f"[red]File not found: {file}[/red]")
        raise typer.Exit(1)

    monitor = BridgeMonitor(load_bridge_registry(config))

    def _print_event(event):
        if event.kind == "bridge_text_changed":
            console.print(f"[bold]{event.text}[/bold]")
        elif verbose:
            if event.kind == "status_changed":
                console.print(
                    f"[dim]{event.mmsi}: {event.old_status.value} -> {event.new_status.value}[/dim]"
                )
            elif event.kind == "vessel_approaching":
                console.print(f"[cyan]{event.vessel_name} approaching {event.bridge_name}[/cyan]")
            elif event.kind == "vessel_removed":
                console.print(f"[dim]{event.mmsi}: removed ({event.reason.value})[/dim]")

    try:
        stats = replay_file(file, monitor, fmt=fmt, on_event=_print_event)
    except ValueError as e:
        console.print(f"[red]Replay failed: {e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"\n[green]Replayed {stats['rows']} rows[/green] "
        f"({stats['accepted']} accepted, {stats['rejected']} rejected, "
        f"{stats['events']} events, {stats['tracked']} still tracked)"
    )
    console.print(f"Final: {stats['final_text']}")


if __name__ == "__main__":
    app()
