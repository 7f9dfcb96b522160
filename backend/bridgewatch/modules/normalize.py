"""Position report validation and decoding.

Reports failing basic validity (missing identifier, non-finite or
out-of-range coordinates) are dropped before they reach the state machine.
Speed and course are sanitized rather than rejected: AIS sentinels become
"not available", negative speed is clamped and course is wrapped to 0-360.
"""
from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from bridgewatch.schemas.report import PositionReport
from bridgewatch.utils.geo import normalize_course

logger = logging.getLogger(__name__)

_COMMON_TIMESTAMP_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
]

# AIS "not available" sentinels
_SOG_SENTINEL = 102.2
_COG_SENTINEL = 360.0


def is_non_vessel_mmsi(mmsi: str) -> str | None:
    """Check if an MMSI belongs to a non-vessel station (ITU-R M.585).

    Returns an error string if the MMSI is non-vessel, None otherwise.
    """
    if not mmsi or not re.fullmatch(r"\d{9}", mmsi):
        return None
    if mmsi.startswith("97"):
        return f"Non-vessel MMSI (SAR aircraft / AIS-SART): {mmsi}"
    if mmsi.startswith("99"):
        return f"Non-vessel MMSI (Aid to Navigation): {mmsi}"
    if mmsi.startswith("00"):
        return f"Non-vessel MMSI (coast station): {mmsi}"
    return None


def parse_timestamp_flexible(ts: Any) -> datetime | None:
    """Parse a timestamp from ISO 8601, Unix epoch or common strftime formats.

    Naive results are assumed UTC. Returns None if parsing fails.
    """
    if isinstance(ts, datetime):
        return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)

    # Unix epoch, seconds or milliseconds
    if isinstance(ts, (int, float)) and not isinstance(ts, bool) and math.isfinite(ts):
        value = ts / 1000.0 if ts > 1e11 else ts
        if value > 1_000_000_000:
            try:
                return datetime.fromtimestamp(value, tz=timezone.utc)
            except (OSError, ValueError, OverflowError):
                return None

    if isinstance(ts, str):
        ts_str = ts.strip()
        if not ts_str:
            return None
        try:
            parsed = datetime.fromisoformat(ts_str.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            pass

        for fmt in _COMMON_TIMESTAMP_FORMATS:
            try:
                return datetime.strptime(ts_str, fmt).replace(tzinfo=timezone.utc)
            except ValueError:
                continue

        # Go-style: "2024-12-29 18:22:32.318353 +0000 UTC" (aisstream.io metadata)
        if ts_str.endswith(" UTC"):
            cleaned = ts_str[:-4].strip()
            for go_fmt in ("%Y-%m-%d %H:%M:%S.%f %z", "%Y-%m-%d %H:%M:%S %z"):
                try:
                    return datetime.strptime(cleaned, go_fmt)
                except ValueError:
                    continue

    return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def sanitize_sog(value: Any) -> Optional[float]:
    sog = _as_float(value)
    if sog is None or sog >= _SOG_SENTINEL:
        return None
    return max(sog, 0.0)


def sanitize_cog(value: Any) -> Optional[float]:
    cog = _as_float(value)
    if cog is None or cog >= _COG_SENTINEL:
        return None
    return normalize_course(cog)


def validate_report(
    raw: dict[str, Any], received_at: datetime | None = None,
) -> PositionReport | None:
    """Turn a decoded report dict into a PositionReport, or None if unusable.

    Accepts ``mmsi``, ``lat``, ``lon``, ``sog``, ``cog``, ``name`` (or
    ``vessel_name``/``shipname``) and ``timestamp``. A missing timestamp falls
    back to *received_at* (or now).
    """
    mmsi_raw = raw.get("mmsi")
    if isinstance(mmsi_raw, float) and mmsi_raw.is_integer():
        mmsi_raw = int(mmsi_raw)  # numeric CSV columns
    mmsi = str(mmsi_raw or "").strip()
    if not mmsi or mmsi == "0":
        logger.debug("Dropped report without MMSI: %s", raw)
        return None
    non_vessel = is_non_vessel_mmsi(mmsi)
    if non_vessel:
        logger.debug("Dropped report: %s", non_vessel)
        return None

    lat = _as_float(raw.get("lat"))
    lon = _as_float(raw.get("lon"))
    if lat is None or lon is None:
        logger.debug("Dropped report for %s: invalid coordinates lat=%r lon=%r",
                     mmsi, raw.get("lat"), raw.get("lon"))
        return None
    if not (-90 <= lat <= 90) or not (-180 <= lon <= 180):
        logger.debug("Dropped report for %s: coordinates out of range (%s, %s)", mmsi, lat, lon)
        return None

    ts_raw = raw.get("timestamp")
    ts = parse_timestamp_flexible(ts_raw) if ts_raw not in (None, "") else None
    if ts is None:
        if ts_raw not in (None, ""):
            logger.debug("Dropped report for %s: unparseable timestamp %r", mmsi, ts_raw)
            return None
        ts = received_at or datetime.now(timezone.utc)

    name = raw.get("name") or raw.get("vessel_name") or raw.get("shipname")
    name = (str(name).strip() or None) if name is not None else None

    try:
        return PositionReport(
            mmsi=mmsi,
            lat=lat,
            lon=lon,
            sog=sanitize_sog(raw.get("sog")),
            cog=sanitize_cog(raw.get("cog")),
            name=name,
            timestamp=ts,
        )
    except ValidationError as exc:
        logger.debug("Dropped report for %s: %s", mmsi, exc)
        return None


def map_aisstream_message(msg: dict) -> dict | None:
    """Map an aisstream.io position message to a raw report dict.

    Handles Class A (PositionReport) and Class B
    (StandardClassBPositionReport) message types; anything else yields None.
    """
    msg_type = msg.get("MessageType", "")
    if msg_type not in ("PositionReport", "StandardClassBPositionReport"):
        return None
    meta = msg.get("MetaData") or {}
    report = (msg.get("Message") or {}).get(msg_type) or {}
    if not report:
        return None

    lat = meta.get("latitude")
    if lat is None:
        lat = report.get("Latitude")
    lon = meta.get("longitude")
    if lon is None:
        lon = report.get("Longitude")

    return {
        "mmsi": str(meta.get("MMSI") or report.get("UserID") or ""),
        "name": (meta.get("ShipName") or "").strip() or None,
        "timestamp": meta.get("time_utc"),
        "lat": lat,
        "lon": lon,
        "sog": report.get("Sog"),
        "cog": report.get("Cog"),
    }
