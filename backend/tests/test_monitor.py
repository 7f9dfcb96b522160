"""Tests for BridgeMonitor: vessel registry, cleanup, events and listeners (monitor.py)."""
import asyncio
import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from bridgewatch.models.base import RemovalReasonEnum, VesselStatusEnum


@pytest.fixture
def monitor(registry):
    from bridgewatch.modules.monitor import BridgeMonitor
    return BridgeMonitor(registry)


def _kinds(events, kind):
    return [e for e in events if e.kind == kind]


# =====================================================================
# Scenario A: one northbound vessel through Klaffbron
# =====================================================================

class TestScenarioA:
    def test_bridge_text_through_passage(self, monitor, make_report):
        texts = []
        monitor.subscribe(lambda e: texts.append(e.text) if e.kind == "bridge_text_changed" else None)

        monitor.process_report(make_report("klaffbron", -800, seconds=0))
        assert monitor.bridge_text == "A vessel is on its way to Klaffbron, estimated bridge opening in 5 minutes"

        monitor.process_report(make_report("klaffbron", -400, seconds=80))
        assert monitor.bridge_text == "A vessel is approaching Klaffbron, estimated bridge opening in 3 minutes"

        monitor.process_report(make_report("klaffbron", -250, seconds=110))
        assert monitor.bridge_text == "A vessel is awaiting bridge opening at Klaffbron"

        monitor.process_report(make_report("klaffbron", -30, seconds=150))
        assert monitor.bridge_text == "Bridge opening in progress at Klaffbron"
        assert monitor.snapshot("265123456").eta_minutes == 0.0

        monitor.process_report(make_report("klaffbron", 60, seconds=175))
        assert monitor.bridge_text.startswith("A vessel has just passed Klaffbron on its way to Stridsbergsbron")
        snap = monitor.snapshot("265123456")
        assert snap.status == VesselStatusEnum.PASSED
        assert snap.target_bridge == "Stridsbergsbron"

        assert len(texts) == 5
        assert monitor.has_relevant_vessels is True

    def test_approaching_event_fires_once_per_bridge(self, monitor, make_report):
        approaching = []
        monitor.subscribe(lambda e: approaching.append(e) if e.kind == "vessel_approaching" else None)
        for offset, seconds in ((-800, 0), (-400, 80), (-250, 110), (-30, 150), (60, 175)):
            monitor.process_report(make_report("klaffbron", offset, seconds=seconds))
        assert len(approaching) == 1
        assert approaching[0].bridge_name == "Klaffbron"
        assert approaching[0].vessel_name == "TESTBOAT"
        assert approaching[0].direction.value == "northbound"

    def test_approaching_not_repeated_while_hovering_at_boundary(self, monitor, make_report):
        approaching = []
        monitor.subscribe(lambda e: approaching.append(e) if e.kind == "vessel_approaching" else None)
        offsets = (-700, -495, -505, -495, -505, -495)
        for k, offset in enumerate(offsets):
            monitor.process_report(make_report("klaffbron", offset, seconds=30 * k))
            if k > 0:
                assert monitor.snapshot("265123456").status == VesselStatusEnum.APPROACHING
        assert len(approaching) == 1

    def test_snapshot_exposes_heading_towards_bridge(self, monitor, make_report, southbound):
        monitor.process_report(make_report("klaffbron", -400, mmsi="265000001"))
        monitor.process_report(make_report("klaffbron", -400, cog=southbound, mmsi="265000002"))
        assert monitor.snapshot("265000001").is_approaching is True
        assert monitor.snapshot("265000002").is_approaching is False

    def test_status_changed_events(self, monitor, make_report):
        events = monitor.process_report(make_report("klaffbron", -800, seconds=0))
        events += monitor.process_report(make_report("klaffbron", -400, seconds=80))
        changes = [(e.old_status, e.new_status) for e in _kinds(events, "status_changed")]
        assert changes == [
            (VesselStatusEnum.IDLE, VesselStatusEnum.EN_ROUTE),
            (VesselStatusEnum.EN_ROUTE, VesselStatusEnum.APPROACHING),
        ]


# =====================================================================
# Scenario B and C
# =====================================================================

class TestScenarioB:
    def test_waiting_vessel_represents_group(self, monitor, make_report):
        monitor.process_report(make_report("klaffbron", -150, seconds=0, sog=0.1, mmsi="265000001"))
        monitor.process_report(make_report("klaffbron", -150, seconds=120, sog=0.1, mmsi="265000001"))
        monitor.process_report(make_report("klaffbron", -450, seconds=120, sog=4.0, mmsi="265000002"))
        assert monitor.snapshot("265000001").status == VesselStatusEnum.WAITING
        assert monitor.bridge_text == "A vessel is awaiting bridge opening at Klaffbron, 1 more vessel on the way"


class TestScenarioC:
    def _pass_final_target(self, monitor, make_report, southbound):
        for offset, seconds in ((400, 0), (250, 60), (30, 140), (-60, 180)):
            monitor.process_report(make_report("klaffbron", offset, seconds=seconds, cog=southbound))

    def test_final_target_passed_not_reported(self, monitor, make_report, southbound):
        self._pass_final_target(monitor, make_report, southbound)
        snap = monitor.snapshot("265123456")
        assert snap.status == VesselStatusEnum.PASSED
        assert snap.target_bridge is None
        assert monitor.bridge_text == "No vessels are near Klaffbron or Stridsbergsbron"
        assert monitor.has_relevant_vessels is False

    def test_removed_after_hold_not_extended_by_updates(self, monitor, make_report, southbound, t0):
        self._pass_final_target(monitor, make_report, southbound)
        monitor.process_report(make_report("klaffbron", -150, seconds=200, cog=southbound))
        monitor.expire_due(t0 + timedelta(seconds=239))
        assert "265123456" in monitor
        events = monitor.expire_due(t0 + timedelta(seconds=240))
        removed = _kinds(events, "vessel_removed")
        assert [e.reason for e in removed] == [RemovalReasonEnum.FINAL_TARGET_PASSED]
        assert "265123456" not in monitor


# =====================================================================
# Cleanup
# =====================================================================

class TestCleanup:
    def test_idle_vessel_survives_grace_misses(self, monitor, make_report, southbound, t0):
        monitor.process_report(make_report("olidebron", -2000, seconds=0, cog=southbound))
        assert monitor.snapshot("265123456").status == VesselStatusEnum.IDLE
        for k in (1, 2, 3):
            monitor.expire_due(t0 + timedelta(minutes=2 * k))
            assert "265123456" in monitor
        events = monitor.expire_due(t0 + timedelta(minutes=8))
        assert [e.reason for e in _kinds(events, "vessel_removed")] == [RemovalReasonEnum.GRACE_EXHAUSTED]
        assert len(monitor) == 0

    def test_grace_counter_resets_on_update(self, monitor, make_report, southbound, t0):
        monitor.process_report(make_report("olidebron", -2000, seconds=0, cog=southbound))
        monitor.expire_due(t0 + timedelta(minutes=2))
        monitor.expire_due(t0 + timedelta(minutes=4))
        monitor.process_report(make_report("olidebron", -2010, seconds=300, cog=southbound))
        for k in (1, 2, 3):
            monitor.expire_due(t0 + timedelta(seconds=300) + timedelta(minutes=2 * k))
            assert "265123456" in monitor

    def test_vessel_silent_after_passage_survives_grace_misses(self, monitor, make_report, t0):
        for offset, seconds in ((-800, 0), (-400, 80), (-250, 110), (-30, 150), (60, 175)):
            monitor.process_report(make_report("klaffbron", offset, seconds=seconds))
        assert monitor.snapshot("265123456").status == VesselStatusEnum.PASSED
        base = t0 + timedelta(seconds=175)

        for k in (1, 2, 3):
            events = monitor.expire_due(base + timedelta(minutes=20 * k))
            assert _kinds(events, "vessel_removed") == []
            assert "265123456" in monitor
        # The passed window itself lapsed long ago
        assert monitor.snapshot("265123456").status == VesselStatusEnum.EN_ROUTE

        events = monitor.expire_due(base + timedelta(minutes=80))
        assert [e.reason for e in _kinds(events, "vessel_removed")] == [RemovalReasonEnum.GRACE_EXHAUSTED]
        assert len(monitor) == 0

    def test_en_route_vessel_removed_on_first_expiry(self, monitor, make_report, t0):
        monitor.process_report(make_report("klaffbron", -800, seconds=0))
        assert monitor.expire_due(t0 + timedelta(minutes=9)) == []
        assert "265123456" in monitor
        events = monitor.expire_due(t0 + timedelta(minutes=10))
        assert [e.reason for e in _kinds(events, "vessel_removed")] == [RemovalReasonEnum.TIMEOUT]
        assert monitor.bridge_text == monitor.registry.default_message()

    def test_vessel_inside_target_radius_is_protected(self, monitor, make_report, t0):
        monitor.process_report(make_report("klaffbron", -200, seconds=0, sog=3.0))
        monitor.expire_due(t0 + timedelta(minutes=20))
        monitor.expire_due(t0 + timedelta(minutes=40))
        assert "265123456" in monitor
        events = monitor.expire_due(t0 + timedelta(minutes=60))
        assert [e.reason for e in _kinds(events, "vessel_removed")] == [RemovalReasonEnum.PROTECTION_EXPIRED]

    def test_update_restarts_timer(self, monitor, make_report, t0):
        monitor.process_report(make_report("klaffbron", -800, seconds=0))
        monitor.process_report(make_report("klaffbron", -790, seconds=300))
        monitor.expire_due(t0 + timedelta(minutes=10))
        assert "265123456" in monitor
        assert monitor.next_deadline() == t0 + timedelta(seconds=300) + timedelta(minutes=10)

    def test_manual_remove(self, monitor, make_report):
        listener = MagicMock()
        monitor.process_report(make_report("klaffbron", -800))
        monitor.subscribe(listener)
        assert monitor.remove("265123456") is True
        assert monitor.remove("265123456") is False
        kinds = [call.args[0].kind for call in listener.call_args_list]
        assert "vessel_removed" in kinds
        assert monitor.next_deadline() is None


# =====================================================================
# Ingestion edge cases
# =====================================================================

class TestIngestion:
    def test_raw_dict_accepted(self, monitor, at):
        lat, lon = at("klaffbron", -800)
        events = monitor.process_report({
            "mmsi": "265123456", "lat": lat, "lon": lon, "sog": 5.0, "cog": 30.0,
            "timestamp": "2025-06-01T10:00:00Z",
        })
        assert events
        assert "265123456" in monitor

    def test_invalid_dict_dropped(self, monitor):
        assert monitor.process_report({"mmsi": "", "lat": 58.0, "lon": 12.0}) == []
        assert len(monitor) == 0

    def test_out_of_order_report_ignored(self, monitor, make_report):
        monitor.process_report(make_report("klaffbron", -400, seconds=60))
        before = monitor.snapshot("265123456")
        assert monitor.process_report(make_report("klaffbron", -800, seconds=30)) == []
        assert monitor.snapshot("265123456") == before

    def test_gps_jump_only_refreshes_liveness(self, monitor, make_report, t0):
        monitor.process_report(make_report("klaffbron", -400, seconds=0))
        before = monitor.snapshot("265123456")
        assert monitor.process_report(make_report("klaffbron", 1600, seconds=10)) == []
        after = monitor.snapshot("265123456")
        assert (after.lat, after.lon) == (before.lat, before.lon)
        assert monitor.next_deadline() == t0 + timedelta(seconds=10) + timedelta(minutes=10)

    def test_confirmed_relocation_accepted(self, monitor, make_report):
        monitor.process_report(make_report("klaffbron", -400, seconds=0))
        monitor.process_report(make_report("klaffbron", 1000, seconds=10))
        monitor.process_report(make_report("klaffbron", 1010, seconds=20))
        snap = monitor.snapshot("265123456")
        assert snap.target_bridge == "Stridsbergsbron"
        assert snap.passed_bridges == []


# =====================================================================
# Listeners
# =====================================================================

class TestListeners:
    def test_failing_listener_does_not_affect_others(self, monitor, make_report):
        failing = MagicMock(side_effect=RuntimeError("boom"))
        ok = MagicMock()
        monitor.subscribe(failing)
        monitor.subscribe(ok)
        events = monitor.process_report(make_report("klaffbron", -400))
        assert events
        assert ok.call_count == len(events)
        assert "265123456" in monitor

    def test_unsubscribe(self, monitor, make_report):
        listener = MagicMock()
        monitor.subscribe(listener)
        monitor.unsubscribe(listener)
        monitor.process_report(make_report("klaffbron", -400))
        listener.assert_not_called()


# =====================================================================
# Concurrency: one lock for mutation, ordered delivery
# =====================================================================

class TestConcurrency:
    def test_bridge_texts_delivered_in_mutation_order(self, monitor, make_report, southbound):
        texts = []
        blocked = threading.Event()
        release = threading.Event()

        def listener(event):
            if event.kind != "bridge_text_changed":
                return
            texts.append(event.text)
            if len(texts) == 1:
                blocked.set()
                release.wait(timeout=5)

        monitor.subscribe(listener)
        worker = threading.Thread(
            target=monitor.process_report,
            args=(make_report("klaffbron", -800, mmsi="265000001"),),
        )
        worker.start()
        assert blocked.wait(timeout=5)

        # Delivery is busy on the worker; this update must neither block nor overtake it
        monitor.process_report(make_report("stridsbergsbron", 800, cog=southbound, mmsi="265000002"))
        assert len(texts) == 1

        release.set()
        worker.join(timeout=5)
        assert not worker.is_alive()
        assert len(texts) == 2
        assert "Stridsbergsbron" not in texts[0]
        assert "Stridsbergsbron" in texts[1]
        assert texts[-1] == monitor.bridge_text

    def test_timer_due_during_update_does_not_remove_updated_vessel(self, monitor, make_report, t0):
        from bridgewatch.modules import monitor as monitor_module
        monitor.process_report(make_report("klaffbron", -800, seconds=0))
        due = t0 + timedelta(minutes=10)
        in_flight = threading.Event()
        real_apply = monitor_module.apply_report

        def slow_apply(*args, **kwargs):
            in_flight.set()
            time.sleep(0.1)
            return real_apply(*args, **kwargs)

        expired = []

        def expire():
            in_flight.wait(timeout=5)
            expired.extend(monitor.expire_due(due))

        with patch.object(monitor_module, "apply_report", side_effect=slow_apply):
            worker = threading.Thread(target=expire)
            worker.start()
            monitor.process_report(make_report("klaffbron", -790, seconds=600))
            worker.join(timeout=5)

        assert not worker.is_alive()
        assert _kinds(expired, "vessel_removed") == []
        assert monitor.snapshot("265123456").last_update == t0 + timedelta(seconds=600)
        assert monitor.next_deadline() == t0 + timedelta(seconds=600) + timedelta(minutes=10)

    def test_vessel_removed_by_timer_returns_as_new_track(self, monitor, make_report, t0):
        monitor.process_report(make_report("klaffbron", -800, seconds=0))
        due = t0 + timedelta(minutes=10)
        in_flight = threading.Event()
        real_pop_due = monitor._scheduler.pop_due

        def slow_pop_due(now):
            in_flight.set()
            time.sleep(0.1)
            return real_pop_due(now)

        monitor._scheduler.pop_due = slow_pop_due
        reported = []

        def report():
            in_flight.wait(timeout=5)
            reported.extend(monitor.process_report(make_report("klaffbron", -790, seconds=600)))

        worker = threading.Thread(target=report)
        worker.start()
        expired = monitor.expire_due(due)
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert [e.reason for e in _kinds(expired, "vessel_removed")] == [RemovalReasonEnum.TIMEOUT]
        # The report landed after the removal and started a fresh track
        changes = _kinds(reported, "status_changed")
        assert changes and changes[0].old_status == VesselStatusEnum.IDLE
        assert monitor.snapshot("265123456").last_update == t0 + timedelta(seconds=600)
        assert monitor.next_deadline() == t0 + timedelta(seconds=600) + timedelta(minutes=10)


class TestExpiryLoop:
    def test_runs_until_stopped(self):
        from bridgewatch.modules.monitor import run_expiry_loop
        monitor = MagicMock()

        async def _run():
            stop = asyncio.Event()
            task = asyncio.create_task(run_expiry_loop(monitor, interval=0.01, stop_event=stop))
            await asyncio.sleep(0.05)
            stop.set()
            await asyncio.wait_for(task, timeout=1)

        asyncio.run(_run())
        assert monitor.expire_due.call_count >= 1
