"""Shared enums for vessel tracking models."""
from __future__ import annotations

import enum


class VesselStatusEnum(str, enum.Enum):
    IDLE = "idle"
    EN_ROUTE = "en-route"
    APPROACHING = "approaching"
    WAITING = "waiting"
    UNDER_BRIDGE = "under-bridge"
    PASSED = "passed"
    STALLBACKA_WAITING = "stallbacka-waiting"


class TravelDirectionEnum(str, enum.Enum):
    NORTHBOUND = "northbound"
    SOUTHBOUND = "southbound"


class RemovalReasonEnum(str, enum.Enum):
    TIMEOUT = "timeout"
    GRACE_EXHAUSTED = "grace_exhausted"
    FINAL_TARGET_PASSED = "final_target_passed"
    PROTECTION_EXPIRED = "protection_expired"


# Statuses that count as "at or near a bridge" for the once-per-bridge
# approaching notification.
APPROACH_FAMILY: frozenset[VesselStatusEnum] = frozenset({
    VesselStatusEnum.APPROACHING,
    VesselStatusEnum.WAITING,
    VesselStatusEnum.STALLBACKA_WAITING,
    VesselStatusEnum.UNDER_BRIDGE,
})

# Statuses that tolerate timeout expiries before removal
LOW_CONFIDENCE_STATUSES: frozenset[VesselStatusEnum] = frozenset({
    VesselStatusEnum.IDLE,
    VesselStatusEnum.PASSED,
})

WAITING_STATUSES: frozenset[VesselStatusEnum] = frozenset({
    VesselStatusEnum.WAITING,
    VesselStatusEnum.STALLBACKA_WAITING,
})
