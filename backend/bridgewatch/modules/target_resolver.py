"""Target-bridge resolution.

Only the two target bridges are ever assigned as targets. A vessel's target
is the first target bridge ahead of it in its travel direction that it has
not already passed in that direction; no such bridge means the vessel is
leaving the corridor and its target is None.

Direction rule: course over ground is primary. When COG is unavailable or
nearly perpendicular to the canal axis, the vessel's position relative to its
nearest bridge breaks the tie (south of the bridge => northbound).
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from bridgewatch.config import settings
from bridgewatch.models.base import TravelDirectionEnum
from bridgewatch.modules.bridge_registry import BridgeRegistry
from bridgewatch.utils.geo import angle_difference

logger = logging.getLogger(__name__)


def travel_direction(
    cog: Optional[float],
    offset_m: float,
    axis_bearing: float,
) -> Optional[TravelDirectionEnum]:
    """Infer travel direction from COG, falling back to position.

    *offset_m* is the along-canal offset from the nearest bridge (positive =
    north side).
    """
    if cog is not None:
        diff = angle_difference(cog, axis_bearing)
        if abs(diff - 90.0) > settings.DIRECTION_TIE_DEG:
            return TravelDirectionEnum.NORTHBOUND if diff < 90.0 else TravelDirectionEnum.SOUTHBOUND
    if offset_m < 0:
        return TravelDirectionEnum.NORTHBOUND
    if offset_m > 0:
        return TravelDirectionEnum.SOUTHBOUND
    if cog is not None:
        return (
            TravelDirectionEnum.NORTHBOUND
            if angle_difference(cog, axis_bearing) <= 90.0
            else TravelDirectionEnum.SOUTHBOUND
        )
    return None


def is_ahead(offset_m: float, direction: TravelDirectionEnum) -> bool:
    """True when the bridge still lies ahead of a vessel at *offset_m* from it."""
    if direction == TravelDirectionEnum.NORTHBOUND:
        return offset_m < 0
    return offset_m > 0


def resolve_target(
    registry: BridgeRegistry,
    nearest_id: str,
    offset_m: float,
    direction: Optional[TravelDirectionEnum],
    passed: Iterable[str] = (),
    distance_m: Optional[float] = None,
) -> Optional[str]:
    """Return the target bridge id for a vessel, or None when none remains.

    Args:
        nearest_id: the vessel's (hysteresis-stable) nearest bridge.
        offset_m: vessel's along-canal offset from that bridge, positive = north.
        direction: travel direction; None yields no target.
        passed: bridges already passed in this direction; never re-selected.
        distance_m: distance to the nearest bridge, for the at-target shortcut.
    """
    if direction is None:
        return None
    passed_set = set(passed)
    nearest = registry.get(nearest_id)
    if nearest is None:
        return None

    if (
        nearest.is_target
        and nearest.id not in passed_set
        and distance_m is not None
        and distance_m <= nearest.radius_m
        and (is_ahead(offset_m, direction) or abs(offset_m) <= settings.PASSAGE_CLEAR_MARGIN_M)
    ):
        return nearest.id

    idx = registry.index_of(nearest.id)
    if not is_ahead(offset_m, direction):
        idx += 1 if direction == TravelDirectionEnum.NORTHBOUND else -1

    for bridge in registry.walk(idx, direction):
        if bridge.is_target and bridge.id not in passed_set:
            return bridge.id

    logger.debug(
        "No target bridge %s of %s (passed=%s)", direction.value, nearest.id, sorted(passed_set),
    )
    return None
