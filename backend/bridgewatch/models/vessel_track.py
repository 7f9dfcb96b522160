"""Mutable per-vessel tracking state.

One VesselTrack exists per MMSI from the first accepted position report until
removal. Everything except the persisted memories (low_speed_since,
inside_radius, passed_bridges, passage_directions, last_passed_*,
approach_latch_bridge_id) is recomputed on each update.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from bridgewatch.models.base import TravelDirectionEnum, VesselStatusEnum


@dataclass
class PendingJump:
    """A rejected relocation waiting for a consistent follow-up report."""
    lat: float
    lon: float
    timestamp: datetime


@dataclass
class VesselTrack:
    mmsi: str
    name: Optional[str]
    lat: float
    lon: float
    sog: float
    cog: Optional[float]
    last_update: datetime
    created_at: datetime

    nearest_bridge_id: Optional[str] = None
    nearest_distance_m: Optional[float] = None
    target_bridge_id: Optional[str] = None
    direction: Optional[TravelDirectionEnum] = None
    status: VesselStatusEnum = VesselStatusEnum.IDLE

    # Persisted memories
    low_speed_since: Optional[datetime] = None
    inside_radius: dict[str, int] = field(default_factory=dict)  # bridge id -> canal side (+1/-1)
    passed_bridges: list[str] = field(default_factory=list)
    passage_directions: dict[str, TravelDirectionEnum] = field(default_factory=dict)
    last_passed_bridge_id: Optional[str] = None
    last_passed_at: Optional[datetime] = None
    final_target_passed: bool = False
    approach_latch_bridge_id: Optional[str] = None

    grace_misses: int = 0
    pending_jump: Optional[PendingJump] = None

    # Derived on each update
    focus_bridge_id: Optional[str] = None
    distance_to_current_m: Optional[float] = None
    distance_to_target_m: Optional[float] = None
    eta_minutes: Optional[float] = None
    is_approaching: bool = False

    def passed_in_direction(self, direction: Optional[TravelDirectionEnum]) -> set[str]:
        """Bridges passed while travelling in *direction*."""
        return {bid for bid, d in self.passage_directions.items() if d == direction}
