"""Nearest-bridge assignment with anti-oscillation hysteresis.

A vessel drifting between two bridges would flip its nearest bridge on every
report if the raw minimum were used. The previous assignment is therefore
kept unless the alternative is closer by more than HYSTERESIS_MARGIN of the
previous bridge's current distance.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from bridgewatch.config import settings
from bridgewatch.modules.bridge_registry import BridgeRegistry
from bridgewatch.utils.geo import angle_difference, haversine_meters, initial_bearing

logger = logging.getLogger(__name__)


@dataclass
class ProximityResult:
    bridge_id: str
    distance_m: float
    switched: bool
    is_approaching: bool
    distances: dict[str, float] = field(default_factory=dict)


def bridge_distances(lat: float, lon: float, registry: BridgeRegistry) -> dict[str, float]:
    """Great-circle distance (m) from a position to every bridge."""
    return {
        b.id: haversine_meters(lat, lon, b.lat, b.lon)
        for b in registry.bridges
    }


def is_heading_towards(
    lat: float, lon: float, cog: Optional[float], bridge_lat: float, bridge_lon: float,
    max_angle_deg: float | None = None,
) -> bool:
    """True when the course points at the bridge within the approach angle."""
    if cog is None:
        return False
    if max_angle_deg is None:
        max_angle_deg = settings.APPROACH_ANGLE_DEG
    bearing = initial_bearing(lat, lon, bridge_lat, bridge_lon)
    return angle_difference(cog, bearing) < max_angle_deg


def evaluate_proximity(
    lat: float,
    lon: float,
    cog: Optional[float],
    registry: BridgeRegistry,
    previous_bridge_id: Optional[str] = None,
) -> ProximityResult:
    """Resolve the nearest bridge, honouring the previous assignment.

    The switch test compares against the previous bridge's *current* distance,
    so a vessel moving steadily toward the next bridge switches as soon as it
    is clearly closer to it.
    """
    distances = bridge_distances(lat, lon, registry)
    candidate_id = min(distances, key=lambda bid: distances[bid])
    chosen_id = candidate_id
    switched = False

    if previous_bridge_id is not None and previous_bridge_id in distances:
        if candidate_id != previous_bridge_id:
            prev_distance = distances[previous_bridge_id]
            threshold = prev_distance * (1.0 - settings.HYSTERESIS_MARGIN)
            if distances[candidate_id] < threshold:
                switched = True
                logger.debug(
                    "Nearest bridge switch %s -> %s (%.0fm < %.0fm)",
                    previous_bridge_id, candidate_id, distances[candidate_id], threshold,
                )
            else:
                chosen_id = previous_bridge_id
    elif previous_bridge_id is not None:
        # Unknown previous id (registry reloaded), treat as a fresh assignment
        switched = True

    bridge = registry.get(chosen_id)
    approaching = is_heading_towards(lat, lon, cog, bridge.lat, bridge.lon)
    return ProximityResult(
        bridge_id=chosen_id,
        distance_m=distances[chosen_id],
        switched=switched,
        is_approaching=approaching,
        distances=distances,
    )
