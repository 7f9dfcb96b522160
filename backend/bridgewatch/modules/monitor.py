"""BridgeMonitor: owns the tracked vessels and turns reports into events.

All mutation (report processing, timer expiry, removal) happens under one
re-entrant lock, so cancelling or re-arming a vessel's cleanup timer is
atomic with the state change that caused it. Events are appended to an
outbox while the lock is held, so the outbox order is the mutation order.
Listeners are called only after the lock is released, by one delivering
thread at a time: a thread that finds delivery already in progress leaves
its events to that thread. Listeners therefore see events, and in
particular successive bridge texts, in the order the state changed. A
failing listener is logged and never affects the others or the monitor's
state.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from bridgewatch.config import settings
from bridgewatch.models.base import (
    APPROACH_FAMILY,
    LOW_CONFIDENCE_STATUSES,
    RemovalReasonEnum,
    VesselStatusEnum,
)
from bridgewatch.models.vessel_track import VesselTrack
from bridgewatch.modules.bridge_registry import BridgeRegistry, get_default_registry
from bridgewatch.modules.bridge_text import generate_bridge_text, has_relevant_vessels
from bridgewatch.modules.cleanup_scheduler import CleanupScheduler, TimerKind, timeout_for
from bridgewatch.modules.normalize import validate_report
from bridgewatch.modules.position_gate import assess_jump
from bridgewatch.modules.status_machine import (
    UpdateOutcome,
    apply_report,
    create_track,
    refresh_status,
    snapshot_of,
)
from bridgewatch.schemas.events import (
    BridgeTextChanged,
    MonitorEvent,
    StatusChanged,
    VesselApproaching,
    VesselRemoved,
    VesselSnapshot,
)
from bridgewatch.schemas.report import PositionReport

logger = logging.getLogger(__name__)

Listener = Callable[[MonitorEvent], Any]


class BridgeMonitor:
    def __init__(self, registry: BridgeRegistry | None = None):
        self.registry = registry or get_default_registry()
        self._tracks: dict[str, VesselTrack] = {}
        self._lock = threading.RLock()
        self._scheduler = CleanupScheduler()
        self._notified: set[tuple[str, str]] = set()  # (mmsi, bridge id)
        self._listeners: list[Listener] = []
        self._outbox: deque[MonitorEvent] = deque()
        self._delivery_lock = threading.Lock()
        self._bridge_text = self.registry.default_message()

    # ── Listeners ────────────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _deliver(self) -> None:
        """Drain the outbox in order unless another thread is already draining it."""
        while self._delivery_lock.acquire(blocking=False):
            try:
                while True:
                    with self._lock:
                        if not self._outbox:
                            break
                        event = self._outbox.popleft()
                        listeners = list(self._listeners)
                    for listener in listeners:
                        try:
                            listener(event)
                        except Exception:
                            logger.exception("Listener %r failed on %s event", listener, event.kind)
            finally:
                self._delivery_lock.release()
            # Events queued between the last check and the release are ours to deliver
            with self._lock:
                if not self._outbox:
                    return

    # ── Read side ────────────────────────────────────────────────────────────

    def __len__(self) -> int:
        with self._lock:
            return len(self._tracks)

    def __contains__(self, mmsi: str) -> bool:
        with self._lock:
            return mmsi in self._tracks

    def snapshots(self) -> list[VesselSnapshot]:
        with self._lock:
            return [snapshot_of(t, self.registry) for t in self._tracks.values()]

    def snapshot(self, mmsi: str) -> Optional[VesselSnapshot]:
        with self._lock:
            track = self._tracks.get(mmsi)
            return snapshot_of(track, self.registry) if track is not None else None

    @property
    def bridge_text(self) -> str:
        with self._lock:
            return self._bridge_text

    @property
    def has_relevant_vessels(self) -> bool:
        with self._lock:
            return has_relevant_vessels(self.snapshots(), self.registry)

    def next_deadline(self) -> Optional[datetime]:
        with self._lock:
            return self._scheduler.next_deadline()

    # ── Write side ───────────────────────────────────────────────────────────

    def process_report(
        self,
        report: PositionReport | dict,
        received_at: datetime | None = None,
    ) -> list[MonitorEvent]:
        """Apply one position report; returns the events it produced.

        The events are delivered to listeners in order before this returns,
        unless another thread is delivering at the time; that thread then
        delivers them after its own.
        """
        if not isinstance(report, PositionReport):
            report = validate_report(report, received_at=received_at)
            if report is None:
                return []

        with self._lock:
            events = self._process_locked(report)
            self._outbox.extend(events)
        self._deliver()
        return events

    def _process_locked(self, report: PositionReport) -> list[MonitorEvent]:
        events: list[MonitorEvent] = []
        track = self._tracks.get(report.mmsi)

        if track is None:
            track = create_track(report)
            self._tracks[report.mmsi] = track
            logger.info("Tracking %s (%s)", report.mmsi, report.name or "unnamed")
            outcome = apply_report(track, report, self.registry)
        else:
            if report.timestamp < track.last_update:
                logger.debug(
                    "%s: ignoring out-of-order report (%s < %s)",
                    report.mmsi, report.timestamp, track.last_update,
                )
                return events
            assessment = assess_jump(track, report)
            if not assessment.accept:
                # Liveness only: the vessel is still transmitting
                track.pending_jump = assessment.pending
                track.last_update = report.timestamp
                self._reschedule(track)
                return events
            outcome = apply_report(track, report, self.registry, relocated=assessment.relocated)

        events.extend(self._outcome_events(track, outcome))
        self._reschedule(track)
        events.extend(self._text_events())
        return events

    def _outcome_events(self, track: VesselTrack, outcome: UpdateOutcome) -> list[MonitorEvent]:
        events: list[MonitorEvent] = []
        if outcome.status_changed:
            logger.debug(
                "%s: %s -> %s", track.mmsi, outcome.old_status.value, outcome.new_status.value,
            )
            events.append(StatusChanged(
                mmsi=track.mmsi,
                old_status=outcome.old_status,
                new_status=outcome.new_status,
                snapshot=snapshot_of(track, self.registry),
            ))
        events.extend(self._approach_events(track))
        return events

    def _approach_events(self, track: VesselTrack) -> list[MonitorEvent]:
        """Fire once per (vessel, bridge) on entering the approach family."""
        focus = track.focus_bridge_id
        active = focus if track.status in APPROACH_FAMILY else None
        for key in [k for k in self._notified if k[0] == track.mmsi and k[1] != active]:
            self._notified.discard(key)

        if active is None or (track.mmsi, active) in self._notified:
            return []
        self._notified.add((track.mmsi, active))
        bridge_name = self.registry.name_of(active) or active
        logger.info("%s approaching %s", track.name or track.mmsi, bridge_name)
        return [VesselApproaching(
            mmsi=track.mmsi,
            bridge_name=bridge_name,
            vessel_name=track.name or track.mmsi,
            direction=track.direction,
        )]

    def _text_events(self) -> list[MonitorEvent]:
        snapshots = [snapshot_of(t, self.registry) for t in self._tracks.values()]
        text = generate_bridge_text(snapshots, self.registry)
        if text == self._bridge_text:
            return []
        self._bridge_text = text
        logger.info("Bridge text: %s", text)
        return [BridgeTextChanged(
            text=text,
            has_relevant_vessels=has_relevant_vessels(snapshots, self.registry),
        )]

    # ── Cleanup ──────────────────────────────────────────────────────────────

    def _is_protected(self, track: VesselTrack) -> bool:
        target = self.registry.get(track.target_bridge_id)
        return (
            target is not None
            and track.distance_to_target_m is not None
            and track.distance_to_target_m <= target.radius_m
        )

    def _is_low_confidence(self, track: VesselTrack) -> bool:
        """Idle, or went silent within PASSED_HOLD_S of a passage.

        The second case holds after the passed status itself has lapsed: the
        shortest cleanup timeout is longer than the passed window.
        """
        if track.status in LOW_CONFIDENCE_STATUSES:
            return True
        return (
            track.last_passed_at is not None
            and (track.last_update - track.last_passed_at).total_seconds() <= settings.PASSED_HOLD_S
        )

    def _reschedule(self, track: VesselTrack, base: datetime | None = None) -> None:
        if track.final_target_passed and track.last_passed_at is not None:
            existing = self._scheduler.get(track.mmsi)
            if existing is None or existing.kind != TimerKind.FINAL_HOLD:
                deadline = track.last_passed_at + timedelta(seconds=settings.PASSED_HOLD_S)
                self._scheduler.schedule(track.mmsi, deadline, TimerKind.FINAL_HOLD)
            return
        start = base or track.last_update
        deadline = start + timeout_for(track.nearest_distance_m, track.status)
        self._scheduler.schedule(track.mmsi, deadline, TimerKind.TIMEOUT)

    def _remove_locked(self, mmsi: str, reason: RemovalReasonEnum) -> list[MonitorEvent]:
        track = self._tracks.pop(mmsi, None)
        if track is None:
            return []
        self._scheduler.cancel(mmsi)
        self._notified = {k for k in self._notified if k[0] != mmsi}
        logger.info("Removed %s (%s, last status %s)", mmsi, reason.value, track.status.value)
        return [VesselRemoved(mmsi=mmsi, reason=reason, last_status=track.status)]

    def remove(self, mmsi: str, reason: RemovalReasonEnum = RemovalReasonEnum.TIMEOUT) -> bool:
        with self._lock:
            events = self._remove_locked(mmsi, reason)
            if events:
                events.extend(self._text_events())
            self._outbox.extend(events)
        self._deliver()
        return bool(events)

    def expire_due(self, now: datetime | None = None) -> list[MonitorEvent]:
        """Handle every cleanup timer due at *now* and refresh time-dependent statuses."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            events = self._expire_locked(now)
            self._outbox.extend(events)
        self._deliver()
        return events

    def _expire_locked(self, now: datetime) -> list[MonitorEvent]:
        events: list[MonitorEvent] = []
        for timer in self._scheduler.pop_due(now):
            track = self._tracks.get(timer.mmsi)
            if track is None:
                continue
            if timer.kind == TimerKind.FINAL_HOLD:
                events.extend(self._remove_locked(track.mmsi, RemovalReasonEnum.FINAL_TARGET_PASSED))
                continue

            if self._is_protected(track):
                silence = now - track.last_update
                if silence < timedelta(minutes=settings.PROTECTION_MAX_SILENCE_MIN):
                    logger.debug("%s: inside opening radius, cleanup deferred", track.mmsi)
                    self._reschedule(track, base=now)
                    continue
                events.extend(self._remove_locked(track.mmsi, RemovalReasonEnum.PROTECTION_EXPIRED))
                continue

            if self._is_low_confidence(track):
                track.grace_misses += 1
                if track.grace_misses <= settings.GRACE_MISSES:
                    logger.debug(
                        "%s: grace miss %d/%d", track.mmsi, track.grace_misses, settings.GRACE_MISSES,
                    )
                    self._reschedule(track, base=now)
                    continue
                events.extend(self._remove_locked(track.mmsi, RemovalReasonEnum.GRACE_EXHAUSTED))
                continue

            events.extend(self._remove_locked(track.mmsi, RemovalReasonEnum.TIMEOUT))

        for track in list(self._tracks.values()):
            if now < track.last_update:
                continue
            outcome = refresh_status(track, self.registry, now)
            if outcome.status_changed:
                events.extend(self._outcome_events(track, outcome))

        events.extend(self._text_events())
        return events


async def run_expiry_loop(
    monitor: BridgeMonitor,
    interval: float | None = None,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Call ``monitor.expire_due`` every *interval* seconds until *stop_event* is set."""
    interval = interval if interval is not None else settings.EXPIRY_POLL_INTERVAL_S
    stop_event = stop_event or asyncio.Event()
    while not stop_event.is_set():
        monitor.expire_due(datetime.now(timezone.utc))
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
