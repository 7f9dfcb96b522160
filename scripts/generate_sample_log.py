#!/usr/bin/env python3
"""Generate a synthetic position log for `bridgewatch replay`.

Writes one CSV with five vessels exercising the main monitor paths:
  A  Northbound through Klaffbron   : en route to approaching to under bridge to passed
  B  Waiting above Stridsbergsbron  : stationary inside the opening radius
  C  Southbound under Stallbackabron: alternate-text bridge on the way to Stridsbergsbron
  D  GPS glitch                     : one implausible jump between good reports
  E  Leaving the canal              : southbound below Olidebron, no target (idle)
"""
from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import polars as pl
import typer

# Ensure the backend package is importable when running from repo root.
_backend_dir = Path(__file__).resolve().parent.parent / "backend"
if str(_backend_dir) not in sys.path:
    sys.path.insert(0, str(_backend_dir))

from bridgewatch.modules.bridge_registry import load_bridge_registry

cli = typer.Typer(help="Generate a synthetic canal position log for replay testing.")

BASE_TIME = datetime(2025, 6, 1, 10, 0, 0, tzinfo=timezone.utc)

# (mmsi, name, bridge, [(seconds, offset_m, sog_kn, heading)]); heading "n"/"s"
TRACKS: list[tuple[str, str, str, list[tuple[int, float, float, str]]]] = [
    ("265000001", "ELFKUNGEN", "klaffbron", [
        (0, -900, 5.0, "n"), (60, -750, 5.0, "n"), (120, -600, 5.0, "n"),
        (180, -450, 5.0, "n"), (240, -300, 5.0, "n"), (300, -150, 5.0, "n"),
        (330, -40, 5.0, "n"), (360, 40, 5.0, "n"), (390, 110, 5.0, "n"),
        (450, 260, 5.0, "n"),
    ]),
    ("265000002", "VANERSBORG", "stridsbergsbron", [
        (0, 420, 1.5, "s"), (60, 330, 1.2, "s"), (120, 250, 0.1, "s"),
        (180, 245, 0.1, "s"), (240, 245, 0.0, "s"), (300, 244, 0.1, "s"),
        (360, 244, 0.1, "s"), (420, 243, 0.1, "s"),
    ]),
    ("265000003", "GOTA ALV", "stallbackabron", [
        (0, 600, 6.0, "s"), (60, 420, 6.0, "s"), (120, 240, 6.0, "s"),
        (150, 150, 6.0, "s"), (180, 60, 6.0, "s"), (200, 5, 6.0, "s"),
        (230, -90, 6.0, "s"),
    ]),
    ("265000004", "STORMSVALA", "jarnvagsbron", [
        (0, -700, 4.0, "n"), (60, -580, 4.0, "n"), (90, 2500, 4.0, "n"),
        (120, -460, 4.0, "n"), (180, -340, 4.0, "n"),
    ]),
    ("265000005", "LILLA E", "olidebron", [
        (0, -700, 5.0, "s"), (60, -850, 5.0, "s"), (120, -1000, 5.0, "s"),
    ]),
]


def build_rows(config: Path | None = None) -> list[dict]:
    registry = load_bridge_registry(config)
    north = registry.axis_bearing
    south = (north + 180.0) % 360.0
    rows = []
    for mmsi, name, bridge_id, points in TRACKS:
        for seconds, offset, sog, heading in points:
            lat, lon = registry.point_at(bridge_id, offset)
            rows.append({
                "mmsi": mmsi,
                "name": name,
                "timestamp": (BASE_TIME + timedelta(seconds=seconds)).isoformat(),
                "lat": round(lat, 7),
                "lon": round(lon, 7),
                "sog": sog,
                "cog": round(north if heading == "n" else south, 1),
            })
    rows.sort(key=lambda r: (r["timestamp"], r["mmsi"]))
    return rows


@cli.command()
def generate(
    output: Path = typer.Option(Path("sample_log.csv"), "--output", "-o", help="CSV file to write"),
    config: Path = typer.Option(None, "--config", help="Bridge YAML file"),
) -> None:
    """Write the synthetic log as CSV."""
    rows = build_rows(config)
    pl.DataFrame(rows).write_csv(output)
    typer.echo(f"Wrote {len(rows)} reports for {len(TRACKS)} vessels to {output}")


if __name__ == "__main__":
    cli()
