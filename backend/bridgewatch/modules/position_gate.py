"""GPS jump gate.

Rejects physically implausible relocations: a position more than
GPS_JUMP_THRESHOLD_M away from the last accepted one that the vessel could
not have covered at its reported speed in the elapsed time. The rejected
position is remembered; if the next report is consistent with it (a real
relocation seen after a signal gap, not a one-off glitch), the move is
accepted.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from bridgewatch.config import settings
from bridgewatch.models.vessel_track import PendingJump, VesselTrack
from bridgewatch.schemas.report import PositionReport
from bridgewatch.utils.geo import KNOTS_TO_MPS, haversine_meters

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JumpAssessment:
    accept: bool
    distance_m: float
    relocated: bool = False  # accepted because it confirmed a pending jump
    pending: PendingJump | None = None  # set when rejected


def max_plausible_distance_m(sog_kn: float, elapsed_s: float) -> float:
    """Furthest a vessel could credibly move at *sog_kn* in *elapsed_s*."""
    speed_kn = max(sog_kn, settings.GPS_JUMP_MIN_SPEED_KN) * settings.GPS_JUMP_SPEED_FACTOR
    return speed_kn * KNOTS_TO_MPS * max(elapsed_s, 1.0) + settings.GPS_JUMP_SLACK_M


def _elapsed_s(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds()


def assess_jump(track: VesselTrack, report: PositionReport) -> JumpAssessment:
    """Decide whether *report* moves *track* or is a GPS glitch."""
    distance = haversine_meters(track.lat, track.lon, report.lat, report.lon)
    if distance <= settings.GPS_JUMP_THRESHOLD_M:
        return JumpAssessment(accept=True, distance_m=distance)

    speed = max(report.sog or 0.0, track.sog)
    allowed = max_plausible_distance_m(speed, _elapsed_s(track.last_update, report.timestamp))
    if distance <= allowed:
        return JumpAssessment(accept=True, distance_m=distance)

    pending = track.pending_jump
    if pending is not None:
        from_pending = haversine_meters(pending.lat, pending.lon, report.lat, report.lon)
        allowed_from_pending = max_plausible_distance_m(
            speed, _elapsed_s(pending.timestamp, report.timestamp),
        )
        if from_pending <= allowed_from_pending:
            logger.info(
                "%s: relocation of %.0fm confirmed by consecutive reports", track.mmsi, distance,
            )
            return JumpAssessment(accept=True, distance_m=distance, relocated=True)

    logger.info(
        "%s: GPS jump rejected (%.0fm, plausible %.0fm)", track.mmsi, distance, allowed,
    )
    return JumpAssessment(
        accept=False,
        distance_m=distance,
        pending=PendingJump(lat=report.lat, lon=report.lon, timestamp=report.timestamp),
    )
