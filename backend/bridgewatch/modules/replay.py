"""Offline replay of recorded position reports.

Feeds a CSV or JSON-lines log through a BridgeMonitor, driving the cleanup
timers from the reports' own timestamps so a recorded afternoon replays in
seconds with the same removals it would have had live.
"""
from __future__ import annotations

import io
import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional

import polars as pl

from bridgewatch.modules.monitor import BridgeMonitor
from bridgewatch.modules.normalize import map_aisstream_message, validate_report
from bridgewatch.schemas.events import MonitorEvent

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {"mmsi", "lat", "lon"}


def normalize_report_dataframe(df: pl.DataFrame) -> pl.DataFrame:
    """Rename common AIS export columns to canonical report field names."""
    df = df.rename({col: col.lower().strip() for col in df.columns})
    rename_map = {
        "shipname": "name",
        "ship_name": "name",
        "vessel_name": "name",
        "latitude": "lat",
        "longitude": "lon",
        "speed": "sog",
        "course": "cog",
        "time": "timestamp",
        "time_utc": "timestamp",
        "datetime": "timestamp",
        "basedatetime": "timestamp",
    }
    # First alias wins; never rename onto a column that already exists
    actual_renames: dict[str, str] = {}
    for k, v in rename_map.items():
        if k in df.columns and v not in df.columns and v not in actual_renames.values():
            actual_renames[k] = v
    if actual_renames:
        df = df.rename(actual_renames)
    return df


def read_csv_rows(source: str | Path | bytes) -> list[dict[str, Any]]:
    if isinstance(source, bytes):
        if source[:3] == b"\xef\xbb\xbf":
            source = source[3:]
        df = pl.read_csv(io.BytesIO(source), infer_schema_length=1000)
    else:
        df = pl.read_csv(source, infer_schema_length=1000)
    df = normalize_report_dataframe(df)
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"CSV missing required columns: {sorted(missing)}")
    return list(df.iter_rows(named=True))


def read_jsonl_rows(path: str | Path) -> list[dict[str, Any]]:
    """Flat report dicts or raw aisstream.io messages, one JSON object per line."""
    rows: list[dict[str, Any]] = []
    content = Path(path).read_text(encoding="utf-8").strip()
    if content.startswith("["):
        items = json.loads(content)
    else:
        items = []
        for lineno, line in enumerate(content.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                items.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Skipping malformed JSON on line %d", lineno)
    for item in items:
        if not isinstance(item, dict):
            continue
        if "MessageType" in item:
            mapped = map_aisstream_message(item)
            if mapped is not None:
                rows.append(mapped)
        else:
            rows.append(item)
    return rows


def detect_format(path: str | Path) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in (".jsonl", ".ndjson", ".json"):
        return "jsonl"
    return "csv"


def replay_rows(
    rows: list[dict[str, Any]],
    monitor: BridgeMonitor,
    on_event: Optional[Callable[[MonitorEvent], Any]] = None,
) -> dict[str, Any]:
    """Feed *rows* to *monitor* in order; returns a summary dict."""
    stats: dict[str, Any] = {"rows": len(rows), "accepted": 0, "rejected": 0, "events": 0}
    clock = None

    if on_event is not None:
        monitor.subscribe(on_event)
    try:
        for row in rows:
            report = validate_report(row)
            if report is None:
                stats["rejected"] += 1
                continue
            stats["accepted"] += 1
            if clock is None or report.timestamp > clock:
                clock = report.timestamp
                stats["events"] += len(monitor.expire_due(clock))
            stats["events"] += len(monitor.process_report(report))
        if clock is not None:
            stats["events"] += len(monitor.expire_due(clock))
    finally:
        if on_event is not None:
            monitor.unsubscribe(on_event)

    stats["tracked"] = len(monitor)
    stats["final_text"] = monitor.bridge_text
    logger.info(
        "Replay: %d rows, %d accepted, %d rejected, %d events",
        stats["rows"], stats["accepted"], stats["rejected"], stats["events"],
    )
    return stats


def replay_file(
    path: str | Path,
    monitor: BridgeMonitor,
    fmt: Optional[str] = None,
    on_event: Optional[Callable[[MonitorEvent], Any]] = None,
) -> dict[str, Any]:
    fmt = fmt or detect_format(path)
    if fmt == "jsonl":
        rows = read_jsonl_rows(path)
    elif fmt == "csv":
        rows = read_csv_rows(path)
    else:
        raise ValueError(f"Unknown replay format: {fmt!r}")
    return replay_rows(rows, monitor, on_event=on_event)
