"""Bridge-text aggregation.

Turns the snapshots of all tracked vessels into one human-readable sentence:
one phrase per target bridge (plus the alternate-text bridge for vessels
passing it without a target), built from the highest-priority vessel of the
group and a count of the others. Pure: the same snapshots always produce the
same text.
"""
from __future__ import annotations

import logging
import math
from typing import Iterable, Optional

from bridgewatch.config import settings
from bridgewatch.models.base import APPROACH_FAMILY, WAITING_STATUSES, VesselStatusEnum
from bridgewatch.models.bridge import Bridge
from bridgewatch.modules.bridge_registry import BridgeRegistry
from bridgewatch.modules.eta import format_eta
from bridgewatch.schemas.events import VesselSnapshot

logger = logging.getLogger(__name__)

_PRIORITY = {
    VesselStatusEnum.UNDER_BRIDGE: 0,
    VesselStatusEnum.WAITING: 1,
    VesselStatusEnum.STALLBACKA_WAITING: 1,
    VesselStatusEnum.PASSED: 2,
    VesselStatusEnum.APPROACHING: 3,
    VesselStatusEnum.EN_ROUTE: 3,
}


def _is_valid(snapshot: VesselSnapshot) -> bool:
    if not math.isfinite(snapshot.lat) or not math.isfinite(snapshot.lon):
        return False
    if not math.isfinite(snapshot.sog):
        return False
    return snapshot.eta_minutes is None or math.isfinite(snapshot.eta_minutes)


def _within_radius(snapshot: VesselSnapshot, bridge: Optional[Bridge]) -> bool:
    return (
        bridge is not None
        and snapshot.distance_to_current_m is not None
        and snapshot.distance_to_current_m <= bridge.radius_m
    )


def _group_bridge(snapshot: VesselSnapshot, registry: BridgeRegistry) -> Optional[Bridge]:
    """Bridge the vessel is reported under, or None when it is not relevant."""
    if not _is_valid(snapshot):
        logger.debug("Skipping invalid snapshot for %s", snapshot.mmsi)
        return None
    if snapshot.status == VesselStatusEnum.IDLE:
        return None

    current = registry.by_name(snapshot.current_bridge)
    target = registry.by_name(snapshot.target_bridge)
    if target is not None:
        group = target
    elif current is not None and current.alternate_text and snapshot.status in APPROACH_FAMILY:
        group = current
    else:
        return None

    if snapshot.sog <= settings.STATIONARY_SPEED_KN and not _within_radius(snapshot, current):
        return None
    return group


def relevant_groups(
    snapshots: Iterable[VesselSnapshot], registry: BridgeRegistry,
) -> list[tuple[Bridge, list[VesselSnapshot]]]:
    """Relevant vessels grouped by bridge, groups in canal order."""
    groups: dict[str, list[VesselSnapshot]] = {}
    for snapshot in snapshots:
        bridge = _group_bridge(snapshot, registry)
        if bridge is not None:
            groups.setdefault(bridge.id, []).append(snapshot)
    return [
        (b, groups[b.id]) for b in registry.bridges if b.id in groups
    ]


def has_relevant_vessels(snapshots: Iterable[VesselSnapshot], registry: BridgeRegistry) -> bool:
    return bool(relevant_groups(snapshots, registry))


def _sort_key(snapshot: VesselSnapshot) -> tuple:
    eta = snapshot.eta_minutes if snapshot.eta_minutes is not None else math.inf
    return (_PRIORITY.get(snapshot.status, 9), eta, snapshot.mmsi)


def _is_awaiting_target(snapshot: VesselSnapshot, registry: BridgeRegistry) -> bool:
    """Waiting at, or already inside the opening radius of, its target."""
    if snapshot.target_bridge is None or snapshot.current_bridge != snapshot.target_bridge:
        return False
    if snapshot.status in WAITING_STATUSES:
        return True
    return (
        snapshot.status == VesselStatusEnum.APPROACHING
        and _within_radius(snapshot, registry.by_name(snapshot.current_bridge))
    )


def _eta_suffix(snapshot: VesselSnapshot) -> str:
    eta = format_eta(snapshot.eta_minutes)
    if eta is None or snapshot.target_bridge is None:
        return ""
    return f", estimated bridge opening {eta}"


def _more_suffix(count: int) -> str:
    if count <= 0:
        return ""
    if count == 1:
        return ", 1 more vessel on the way"
    return f", {count} more vessels on the way"


def _on_way(snapshot: VesselSnapshot) -> str:
    if snapshot.target_bridge is None:
        return ""
    return f" on its way to {snapshot.target_bridge}"


def _phrase(rep: VesselSnapshot, group: list[VesselSnapshot], registry: BridgeRegistry) -> str:
    others = len(group) - 1
    bridge_name = rep.current_bridge
    target = rep.target_bridge
    current = registry.by_name(bridge_name)
    at_alternate = current is not None and current.alternate_text
    at_target = bridge_name is None or bridge_name == target
    status = rep.status

    if status == VesselStatusEnum.UNDER_BRIDGE:
        if at_target:
            return f"Bridge opening in progress at {target}" + _more_suffix(others)
        if at_alternate:
            text = f"A vessel is passing under {bridge_name}{_on_way(rep)}{_eta_suffix(rep)}"
            return text + _more_suffix(others)
        text = f"Bridge opening in progress at {bridge_name}{_on_way(rep)}{_eta_suffix(rep)}"
        return text + _more_suffix(others)

    if at_alternate and (
        status == VesselStatusEnum.STALLBACKA_WAITING
        or (status == VesselStatusEnum.APPROACHING and _within_radius(rep, current))
    ):
        text = f"A vessel will shortly pass under {bridge_name}{_on_way(rep)}{_eta_suffix(rep)}"
        return text + _more_suffix(others)

    if _is_awaiting_target(rep, registry):
        awaiting = sum(1 for s in group if _is_awaiting_target(s, registry))
        if awaiting == len(group) and awaiting > 1:
            return f"{awaiting} vessels are awaiting bridge opening at {target}"
        return f"A vessel is awaiting bridge opening at {target}" + _more_suffix(others)

    if status in WAITING_STATUSES:
        text = f"A vessel is awaiting opening of {bridge_name}{_on_way(rep)}{_eta_suffix(rep)}"
        return text + _more_suffix(others)

    if status == VesselStatusEnum.PASSED:
        passed = rep.last_passed_bridge or bridge_name
        text = f"A vessel has just passed {passed}{_on_way(rep)}{_eta_suffix(rep)}"
        return text + _more_suffix(others)

    if status == VesselStatusEnum.APPROACHING:
        if at_target:
            return f"A vessel is approaching {target}{_eta_suffix(rep)}" + _more_suffix(others)
        if target is None:
            return f"A vessel is approaching {bridge_name}" + _more_suffix(others)
        text = f"A vessel at {bridge_name} is approaching {target}{_eta_suffix(rep)}"
        return text + _more_suffix(others)

    return f"A vessel is on its way to {target}{_eta_suffix(rep)}" + _more_suffix(others)


def generate_bridge_text(snapshots: Iterable[VesselSnapshot], registry: BridgeRegistry) -> str:
    """One sentence describing every relevant vessel, or the default message."""
    phrases = []
    for _bridge, group in relevant_groups(snapshots, registry):
        ordered = sorted(group, key=_sort_key)
        phrases.append(_phrase(ordered[0], ordered, registry))
    if not phrases:
        return registry.default_message()
    return "; ".join(phrases)
