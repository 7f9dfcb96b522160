"""Per-vessel cleanup timers.

Timers are deadlines keyed by MMSI, never references to tracks, so a timer
can never revive a vessel that has already been removed. The scheduler holds
no lock of its own; BridgeMonitor calls it while holding the registry lock,
which makes cancel/reschedule atomic with the state mutation.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from bridgewatch.config import settings
from bridgewatch.models.base import WAITING_STATUSES, VesselStatusEnum

logger = logging.getLogger(__name__)


class TimerKind(str, enum.Enum):
    TIMEOUT = "timeout"
    FINAL_HOLD = "final_hold"  # post-passage removal after the final target


@dataclass(frozen=True)
class CleanupTimer:
    mmsi: str
    deadline: datetime
    kind: TimerKind
    generation: int


def timeout_for(distance_m: Optional[float], status: VesselStatusEnum) -> timedelta:
    """Zone-based inactivity timeout.

    <= 300 m from the nearest bridge: 20 min; <= 600 m: 10 min; farther: 2 min.
    Waiting vessels (either waiting status) always get 20 min.
    """
    if status in WAITING_STATUSES:
        return timedelta(minutes=settings.TIMEOUT_WAITING_MIN)
    if distance_m is None:
        return timedelta(minutes=settings.TIMEOUT_FAR_MIN)
    if distance_m <= settings.TIMEOUT_NEAR_ZONE_M:
        return timedelta(minutes=settings.TIMEOUT_NEAR_MIN)
    if distance_m <= settings.TIMEOUT_MEDIUM_ZONE_M:
        return timedelta(minutes=settings.TIMEOUT_MEDIUM_MIN)
    return timedelta(minutes=settings.TIMEOUT_FAR_MIN)


class CleanupScheduler:
    """Cancellable deadlines keyed by vessel identifier."""

    def __init__(self) -> None:
        self._timers: dict[str, CleanupTimer] = {}
        self._generation = 0

    def __len__(self) -> int:
        return len(self._timers)

    def __contains__(self, mmsi: str) -> bool:
        return mmsi in self._timers

    def get(self, mmsi: str) -> Optional[CleanupTimer]:
        return self._timers.get(mmsi)

    def schedule(self, mmsi: str, deadline: datetime, kind: TimerKind = TimerKind.TIMEOUT) -> CleanupTimer:
        """Replace any pending timer for *mmsi* with a new deadline."""
        self._generation += 1
        timer = CleanupTimer(mmsi=mmsi, deadline=deadline, kind=kind, generation=self._generation)
        self._timers[mmsi] = timer
        return timer

    def cancel(self, mmsi: str) -> bool:
        return self._timers.pop(mmsi, None) is not None

    def next_deadline(self) -> Optional[datetime]:
        if not self._timers:
            return None
        return min(t.deadline for t in self._timers.values())

    def pop_due(self, now: datetime) -> list[CleanupTimer]:
        """Remove and return every timer whose deadline is at or before *now*, oldest first."""
        due = sorted(
            (t for t in self._timers.values() if t.deadline <= now),
            key=lambda t: (t.deadline, t.generation),
        )
        for timer in due:
            del self._timers[timer.mmsi]
        return due
