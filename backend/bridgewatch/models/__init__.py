"""Tracking models: static bridges, per-vessel state and shared enums."""
from bridgewatch.models.base import (
    APPROACH_FAMILY,
    LOW_CONFIDENCE_STATUSES,
    WAITING_STATUSES,
    RemovalReasonEnum,
    TravelDirectionEnum,
    VesselStatusEnum,
)
from bridgewatch.models.bridge import Bridge
from bridgewatch.models.vessel_track import PendingJump, VesselTrack
