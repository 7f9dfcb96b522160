"""Pydantic schemas for vessel snapshots and outbound monitor events."""
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel

from bridgewatch.models.base import RemovalReasonEnum, TravelDirectionEnum, VesselStatusEnum


class VesselSnapshot(BaseModel):
    """Immutable copy of a vessel's derived state, safe to hand to the aggregator."""
    mmsi: str
    name: Optional[str] = None
    lat: float
    lon: float
    sog: float
    cog: Optional[float] = None
    status: VesselStatusEnum
    direction: Optional[TravelDirectionEnum] = None
    current_bridge: Optional[str] = None  # bridge name
    distance_to_current_m: Optional[float] = None
    is_approaching: bool = False  # heading towards the nearest bridge
    target_bridge: Optional[str] = None  # bridge name
    distance_to_target_m: Optional[float] = None
    eta_minutes: Optional[float] = None
    last_passed_bridge: Optional[str] = None
    passed_bridges: list[str] = []
    last_update: datetime

    model_config = {"frozen": True}


class StatusChanged(BaseModel):
    kind: Literal["status_changed"] = "status_changed"
    mmsi: str
    old_status: VesselStatusEnum
    new_status: VesselStatusEnum
    snapshot: VesselSnapshot


class VesselApproaching(BaseModel):
    kind: Literal["vessel_approaching"] = "vessel_approaching"
    mmsi: str
    bridge_name: str
    vessel_name: str
    direction: Optional[TravelDirectionEnum] = None


class VesselRemoved(BaseModel):
    kind: Literal["vessel_removed"] = "vessel_removed"
    mmsi: str
    reason: RemovalReasonEnum
    last_status: VesselStatusEnum


class BridgeTextChanged(BaseModel):
    kind: Literal["bridge_text_changed"] = "bridge_text_changed"
    text: str
    has_relevant_vessels: bool


MonitorEvent = Union[StatusChanged, VesselApproaching, VesselRemoved, BridgeTextChanged]
