"""ETA to bridge opening.

Distance and speed are converted to minutes with a distance-dependent speed
floor so that a vessel reporting near-zero speed never produces an ETA of
hours (or infinity). Invalid inputs yield None, never NaN or Infinity.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from bridgewatch.config import settings
from bridgewatch.models.base import WAITING_STATUSES, VesselStatusEnum
from bridgewatch.utils.geo import KNOTS_TO_MPS


@dataclass(frozen=True)
class EtaResult:
    minutes: Optional[float]
    under_bridge: bool = False


def speed_floor_kn(distance_m: float) -> float:
    """Minimum speed assumed for a given remaining distance.

    Interpolated linearly between the anchor points (0 m, near floor),
    (ETA_FLOOR_NEAR_M, medium floor) and (ETA_FLOOR_MEDIUM_M, far floor),
    constant beyond. distance / floor then never grows as distance shrinks,
    so a vessel holding a slow constant speed never sees its ETA go up.
    """
    anchors = (
        (0.0, settings.ETA_FLOOR_NEAR_KN),
        (settings.ETA_FLOOR_NEAR_M, settings.ETA_FLOOR_MEDIUM_KN),
        (settings.ETA_FLOOR_MEDIUM_M, settings.ETA_FLOOR_FAR_KN),
    )
    if distance_m <= 0:
        return anchors[0][1]
    for (d0, f0), (d1, f1) in zip(anchors, anchors[1:]):
        if distance_m < d1:
            return f0 + (f1 - f0) * (distance_m - d0) / (d1 - d0)
    return anchors[-1][1]


def calculate_eta(
    distance_m: Optional[float],
    sog_kn: Optional[float],
    status: Optional[VesselStatusEnum] = None,
) -> EtaResult:
    """Minutes until the vessel reaches the bridge.

    Waiting vessels get no ETA (the opening is imminent, not scheduled);
    under-bridge vessels short-circuit to 0.
    """
    if status == VesselStatusEnum.UNDER_BRIDGE:
        return EtaResult(minutes=0.0, under_bridge=True)
    if status in WAITING_STATUSES:
        return EtaResult(minutes=None)
    if distance_m is None or sog_kn is None:
        return EtaResult(minutes=None)
    if not math.isfinite(distance_m) or not math.isfinite(sog_kn) or distance_m < 0:
        return EtaResult(minutes=None)

    speed_kn = max(sog_kn, speed_floor_kn(distance_m))
    speed_mps = speed_kn * KNOTS_TO_MPS
    minutes = distance_m / speed_mps / 60.0
    if not math.isfinite(minutes):
        return EtaResult(minutes=None)
    return EtaResult(minutes=min(minutes, settings.ETA_MAX_MINUTES))


def format_eta(minutes: Optional[float]) -> Optional[str]:
    """Human-readable ETA fragment, e.g. "in 5 minutes"."""
    if minutes is None or not math.isfinite(minutes):
        return None
    rounded = round(minutes)
    if rounded <= 0:
        return "now"
    if rounded == 1:
        return "in 1 minute"
    return f"in {rounded} minutes"
