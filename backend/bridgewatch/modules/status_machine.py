"""Per-vessel state machine.

Applies one accepted position report to a VesselTrack: nearest bridge (with
hysteresis), travel direction, passage detection, target stickiness, focus
bridge, status, distances and ETA. Pure with respect to everything outside
the track; the monitor owns locking, timers and events.

Passage model: when a vessel first comes inside a bridge's opening radius,
the side of the bridge it approaches from is recorded. A passage is
confirmed once the vessel is on the other side and clear of the bridge by
PASSAGE_CLEAR_MARGIN_M. Leaving the radius on the recorded side forgets the
entry, so a vessel that turns back never counts as having passed.

Approaching hysteresis: a vessel enters "approaching" within
APPROACHING_RADIUS_M of its focus bridge and, once latched on that bridge,
keeps it until it is farther than APPROACHING_CLEAR_M. A vessel hovering
around the boundary therefore does not flap between en-route and approaching.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from bridgewatch.config import settings
from bridgewatch.models.base import APPROACH_FAMILY, TravelDirectionEnum, VesselStatusEnum
from bridgewatch.models.vessel_track import VesselTrack
from bridgewatch.modules.bridge_registry import BridgeRegistry
from bridgewatch.modules.eta import calculate_eta
from bridgewatch.modules.proximity import ProximityResult, evaluate_proximity
from bridgewatch.modules.target_resolver import is_ahead, resolve_target, travel_direction
from bridgewatch.schemas.events import VesselSnapshot
from bridgewatch.schemas.report import PositionReport

logger = logging.getLogger(__name__)


@dataclass
class UpdateOutcome:
    old_status: VesselStatusEnum
    new_status: VesselStatusEnum
    passages: list[str] = field(default_factory=list)
    target_changed: bool = False
    final_target_passed: bool = False  # became true on this update
    reversed: bool = False

    @property
    def status_changed(self) -> bool:
        return self.old_status != self.new_status


def create_track(report: PositionReport) -> VesselTrack:
    return VesselTrack(
        mmsi=report.mmsi,
        name=report.name,
        lat=report.lat,
        lon=report.lon,
        sog=report.sog or 0.0,
        cog=report.cog,
        last_update=report.timestamp,
        created_at=report.timestamp,
    )


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def _side(offset_m: float) -> int:
    return 1 if offset_m >= 0 else -1


def _approach_side(offset_m: float, direction: Optional[TravelDirectionEnum]) -> int:
    """Side of the bridge the vessel is coming from when first seen inside its radius."""
    if abs(offset_m) > settings.PASSAGE_CLEAR_MARGIN_M or direction is None:
        return _side(offset_m)
    return -1 if direction == TravelDirectionEnum.NORTHBOUND else 1


def detect_passages(
    track: VesselTrack,
    registry: BridgeRegistry,
    distances: dict[str, float],
    direction: Optional[TravelDirectionEnum],
) -> list[str]:
    """Update inside-radius memory and return bridges passed on this report, in canal order."""
    passed: list[str] = []
    for bridge in registry.bridges:
        distance = distances[bridge.id]
        offset = registry.offset_from(bridge.id, track.lat, track.lon)
        recorded = track.inside_radius.get(bridge.id)

        if recorded is None:
            if distance <= bridge.radius_m:
                track.inside_radius[bridge.id] = _approach_side(offset, direction)
            continue

        if _side(offset) != recorded and distance > settings.PASSAGE_CLEAR_MARGIN_M:
            del track.inside_radius[bridge.id]
            passed.append(bridge.id)
        elif distance > bridge.radius_m + settings.PASSAGE_CLEAR_MARGIN_M:
            del track.inside_radius[bridge.id]
    return passed


def update_low_speed_timer(track: VesselTrack, sog: Optional[float], now: datetime) -> None:
    """Start the continuity timer when speed drops to the waiting threshold; clear it above."""
    if sog is None:
        return
    if sog > settings.WAITING_SPEED_KN:
        track.low_speed_since = None
    elif track.low_speed_since is None:
        track.low_speed_since = now


def _resolve_direction(
    track: VesselTrack,
    cog: Optional[float],
    sog: float,
    offset_m: float,
    axis_bearing: float,
) -> tuple[Optional[TravelDirectionEnum], bool]:
    """Return (direction, reversed). A flip needs a real course at steering speed."""
    candidate = travel_direction(cog, offset_m, axis_bearing)
    if track.direction is None or candidate is None:
        return candidate or track.direction, False
    if candidate == track.direction:
        return candidate, False
    if cog is not None and sog >= settings.DIRECTION_MIN_SPEED_KN:
        return candidate, True
    return track.direction, False


def approach_limit_m(track: VesselTrack, bridge_id: Optional[str]) -> float:
    """Approaching radius for *bridge_id*, widened while the vessel is latched on it."""
    if bridge_id is not None and track.approach_latch_bridge_id == bridge_id:
        return settings.APPROACHING_CLEAR_M
    return settings.APPROACHING_RADIUS_M


def focus_bridge_id(
    track: VesselTrack,
    registry: BridgeRegistry,
    proximity: ProximityResult,
) -> Optional[str]:
    """Bridge the vessel's status refers to.

    The nearest bridge is in focus when it is close and relevant to the
    journey: the target itself, an unpassed bridge ahead on the way to the
    target, or the alternate-text bridge. Otherwise the target is in focus.
    """
    nearest = registry.get(proximity.bridge_id)
    if nearest is not None and proximity.distance_m <= approach_limit_m(track, nearest.id):
        if nearest.id == track.target_bridge_id:
            return nearest.id
        relevant = track.target_bridge_id is not None or nearest.alternate_text
        if relevant and nearest.id not in track.passed_in_direction(track.direction):
            offset = registry.offset_from(nearest.id, track.lat, track.lon)
            ahead = track.direction is not None and is_ahead(offset, track.direction)
            if ahead or proximity.distance_m <= nearest.radius_m:
                return nearest.id
    return track.target_bridge_id


def compute_status(
    track: VesselTrack,
    registry: BridgeRegistry,
    now: datetime,
) -> VesselStatusEnum:
    """Status from the track's derived fields, first match wins."""
    if (
        track.last_passed_at is not None
        and (now - track.last_passed_at).total_seconds() <= settings.PASSED_HOLD_S
    ):
        return VesselStatusEnum.PASSED

    focus_alternate = registry.is_alternate(track.focus_bridge_id)
    if track.target_bridge_id is None and not focus_alternate:
        return VesselStatusEnum.IDLE

    distance = track.distance_to_current_m
    if distance is not None:
        if distance <= settings.UNDER_BRIDGE_RADIUS_M:
            return VesselStatusEnum.UNDER_BRIDGE
        if (
            distance <= settings.OPENING_RADIUS_M
            and track.low_speed_since is not None
            and (now - track.low_speed_since).total_seconds() >= settings.WAITING_CONTINUITY_S
        ):
            return VesselStatusEnum.STALLBACKA_WAITING if focus_alternate else VesselStatusEnum.WAITING
        if distance <= approach_limit_m(track, track.focus_bridge_id):
            return VesselStatusEnum.APPROACHING

    if track.target_bridge_id is not None:
        return VesselStatusEnum.EN_ROUTE
    return VesselStatusEnum.IDLE


def update_approach_latch(track: VesselTrack) -> None:
    """Hold the focus bridge while the vessel is at or near it; release otherwise."""
    if track.status in APPROACH_FAMILY and track.focus_bridge_id is not None:
        track.approach_latch_bridge_id = track.focus_bridge_id
    else:
        track.approach_latch_bridge_id = None


def _target_eta(track: VesselTrack, sog: float) -> Optional[float]:
    # Status short-circuits only apply when the status refers to the target itself
    status = track.status if track.focus_bridge_id == track.target_bridge_id else None
    return calculate_eta(track.distance_to_target_m, sog, status).minutes


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

def apply_report(
    track: VesselTrack,
    report: PositionReport,
    registry: BridgeRegistry,
    relocated: bool = False,
) -> UpdateOutcome:
    """Move *track* to the reported position and recompute everything derived.

    *relocated* marks a confirmed GPS relocation: inside-radius memory is
    discarded and the target resolved afresh.
    """
    now = report.timestamp
    old_status = track.status
    sog = report.sog if report.sog is not None else track.sog

    track.lat = report.lat
    track.lon = report.lon
    track.sog = sog
    track.cog = report.cog
    track.last_update = now
    track.pending_jump = None
    track.grace_misses = 0
    if report.name:
        track.name = report.name

    if relocated:
        track.inside_radius.clear()
        track.nearest_bridge_id = None
        track.approach_latch_bridge_id = None

    proximity = evaluate_proximity(
        report.lat, report.lon, report.cog, registry, previous_bridge_id=track.nearest_bridge_id,
    )
    track.nearest_bridge_id = proximity.bridge_id
    track.nearest_distance_m = proximity.distance_m
    track.is_approaching = proximity.is_approaching
    nearest_offset = registry.offset_from(proximity.bridge_id, report.lat, report.lon)

    direction, reversed_ = _resolve_direction(
        track, report.cog, sog, nearest_offset, registry.axis_bearing,
    )
    if reversed_:
        logger.info("%s: direction reversed to %s", track.mmsi, direction.value)
    track.direction = direction

    outcome = UpdateOutcome(old_status=old_status, new_status=old_status, reversed=reversed_)

    passages = detect_passages(track, registry, proximity.distances, direction)
    for bridge_id in passages:
        track.passed_bridges.append(bridge_id)
        # Passage direction follows the geometry, not the (possibly noisy) course
        now_north = registry.offset_from(bridge_id, report.lat, report.lon) >= 0
        track.passage_directions[bridge_id] = (
            TravelDirectionEnum.NORTHBOUND if now_north else TravelDirectionEnum.SOUTHBOUND
        )
        track.last_passed_bridge_id = bridge_id
        track.last_passed_at = now
        logger.info("%s: passed %s", track.mmsi, registry.name_of(bridge_id))
    outcome.passages = passages

    target_passed = track.target_bridge_id is not None and track.target_bridge_id in passages
    must_resolve = (
        target_passed
        or reversed_
        or relocated
        or (track.target_bridge_id is None and not track.final_target_passed)
    )
    if reversed_ or relocated:
        track.final_target_passed = False

    if must_resolve:
        previous_target = track.target_bridge_id
        new_target = resolve_target(
            registry,
            proximity.bridge_id,
            nearest_offset,
            direction,
            passed=track.passed_in_direction(direction),
            distance_m=proximity.distance_m,
        )
        track.target_bridge_id = new_target
        outcome.target_changed = new_target != previous_target
        if outcome.target_changed:
            logger.info(
                "%s: target %s -> %s", track.mmsi,
                registry.name_of(previous_target), registry.name_of(new_target),
            )
        if target_passed and new_target is None:
            track.final_target_passed = True
            outcome.final_target_passed = True

    track.focus_bridge_id = focus_bridge_id(track, registry, proximity)
    track.distance_to_current_m = (
        proximity.distances.get(track.focus_bridge_id) if track.focus_bridge_id else None
    )
    track.distance_to_target_m = (
        proximity.distances.get(track.target_bridge_id) if track.target_bridge_id else None
    )

    update_low_speed_timer(track, report.sog, now)
    track.status = compute_status(track, registry, now)
    update_approach_latch(track)
    track.eta_minutes = _target_eta(track, sog)

    outcome.new_status = track.status
    return outcome


def refresh_status(track: VesselTrack, registry: BridgeRegistry, now: datetime) -> UpdateOutcome:
    """Re-evaluate time-dependent status (passed hold, waiting continuity) without a new position."""
    old_status = track.status
    track.status = compute_status(track, registry, now)
    update_approach_latch(track)
    track.eta_minutes = _target_eta(track, track.sog)
    return UpdateOutcome(old_status=old_status, new_status=track.status)


def snapshot_of(track: VesselTrack, registry: BridgeRegistry) -> VesselSnapshot:
    return VesselSnapshot(
        mmsi=track.mmsi,
        name=track.name,
        lat=track.lat,
        lon=track.lon,
        sog=track.sog,
        cog=track.cog,
        status=track.status,
        direction=track.direction,
        current_bridge=registry.name_of(track.focus_bridge_id),
        distance_to_current_m=track.distance_to_current_m,
        is_approaching=track.is_approaching,
        target_bridge=registry.name_of(track.target_bridge_id),
        distance_to_target_m=track.distance_to_target_m,
        eta_minutes=track.eta_minutes,
        last_passed_bridge=registry.name_of(track.last_passed_bridge_id),
        passed_bridges=[registry.name_of(b) or b for b in track.passed_bridges],
        last_update=track.last_update,
    )
