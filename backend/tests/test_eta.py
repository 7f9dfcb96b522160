"""Tests for ETA calculation and formatting (eta.py)."""
import math

import pytest

from bridgewatch.models.base import VesselStatusEnum


class TestCalculateEta:
    def test_plain_distance_over_speed(self):
        from bridgewatch.modules.eta import calculate_eta
        result = calculate_eta(1000.0, 5.0)
        assert result.minutes == pytest.approx(1000 / (5 * 1852 / 3600) / 60, rel=1e-6)
        assert result.under_bridge is False

    def test_near_floor_applies_to_crawling_vessel(self):
        from bridgewatch.modules.eta import calculate_eta
        assert calculate_eta(100.0, 0.1).minutes == pytest.approx(calculate_eta(100.0, 0.5).minutes)

    def test_medium_floor(self):
        from bridgewatch.modules.eta import calculate_eta, speed_floor_kn
        assert speed_floor_kn(300.0) == pytest.approx(1.5 + 0.5 * 100 / 300)
        assert calculate_eta(300.0, 0.0).minutes == pytest.approx(300 / (speed_floor_kn(300.0) * 1852 / 3600) / 60)

    def test_far_floor(self):
        from bridgewatch.modules.eta import calculate_eta
        assert calculate_eta(800.0, 0.0).minutes == pytest.approx(800 / (2.0 * 1852 / 3600) / 60)

    def test_capped(self):
        from bridgewatch.modules.eta import calculate_eta
        assert calculate_eta(50_000.0, 2.0).minutes == 120

    def test_under_bridge_is_zero(self):
        from bridgewatch.modules.eta import calculate_eta
        result = calculate_eta(20.0, 3.0, VesselStatusEnum.UNDER_BRIDGE)
        assert result.minutes == 0.0
        assert result.under_bridge is True

    @pytest.mark.parametrize("status", [VesselStatusEnum.WAITING, VesselStatusEnum.STALLBACKA_WAITING])
    def test_waiting_has_no_eta(self, status):
        from bridgewatch.modules.eta import calculate_eta
        assert calculate_eta(200.0, 0.1, status).minutes is None

    @pytest.mark.parametrize("distance,sog", [
        (None, 5.0), (500.0, None), (-1.0, 5.0), (float("nan"), 5.0), (500.0, float("inf")),
    ])
    def test_invalid_inputs(self, distance, sog):
        from bridgewatch.modules.eta import calculate_eta
        assert calculate_eta(distance, sog).minutes is None

    def test_never_nan_or_infinite(self):
        from bridgewatch.modules.eta import calculate_eta
        for distance in (0.0, 1.0, 199.9, 200.0, 499.9, 500.0, 10_000.0):
            for sog in (0.0, 0.01, 0.5, 3.0, 30.0):
                minutes = calculate_eta(distance, sog).minutes
                assert minutes is not None and math.isfinite(minutes) and minutes >= 0

    def test_monotonic_as_vessel_closes_in(self):
        from bridgewatch.modules.eta import calculate_eta
        previous = math.inf
        for distance in range(3000, -1, -50):
            minutes = calculate_eta(float(distance), 4.5).minutes
            assert minutes <= previous
            previous = minutes

    @pytest.mark.parametrize("sog", [0.0, 0.3, 1.0, 1.6])
    def test_monotonic_for_slow_vessel_across_floor_bands(self, sog):
        from bridgewatch.modules.eta import calculate_eta
        previous = math.inf
        for distance in (700, 520, 510, 501, 500, 499, 480, 300, 201, 200, 199, 150, 50, 0):
            minutes = calculate_eta(float(distance), sog).minutes
            assert minutes <= previous + 1e-9
            previous = minutes

    def test_floor_is_continuous_at_band_edges(self):
        from bridgewatch.modules.eta import speed_floor_kn
        for edge in (200.0, 500.0):
            assert speed_floor_kn(edge - 1e-6) == pytest.approx(speed_floor_kn(edge), abs=1e-6)
        assert speed_floor_kn(0.0) == 0.5
        assert speed_floor_kn(200.0) == pytest.approx(1.5)
        assert speed_floor_kn(500.0) == pytest.approx(2.0)


class TestFormatEta:
    @pytest.mark.parametrize("minutes,expected", [
        (0.0, "now"), (0.4, "now"), (1.2, "in 1 minute"), (6.48, "in 6 minutes"), (14.6, "in 15 minutes"),
    ])
    def test_format(self, minutes, expected):
        from bridgewatch.modules.eta import format_eta
        assert format_eta(minutes) == expected

    def test_none(self):
        from bridgewatch.modules.eta import format_eta
        assert format_eta(None) is None
        assert format_eta(float("nan")) is None
