"""Shared test fixtures: the canal registry and positions placed relative to its bridges."""
from datetime import datetime, timedelta, timezone

import pytest

from bridgewatch.modules.bridge_registry import DEFAULT_BRIDGES, BridgeRegistry, _bridges_from_config
from bridgewatch.schemas.report import PositionReport


T0 = datetime(2025, 6, 1, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def registry():
    """The built-in five-bridge canal, independent of any YAML on disk."""
    return BridgeRegistry(_bridges_from_config({"bridges": DEFAULT_BRIDGES}))


@pytest.fixture
def at(registry):
    """at(bridge_id, offset_m) -> (lat, lon) on the canal axis; positive offset = north."""
    return registry.point_at


@pytest.fixture
def northbound(registry):
    return registry.axis_bearing


@pytest.fixture
def southbound(registry):
    return (registry.axis_bearing + 180.0) % 360.0


@pytest.fixture
def make_report(at, northbound):
    """make_report(bridge_id, offset_m, seconds=0, sog=5.0, cog=northbound, mmsi=...)."""
    def _make(bridge_id, offset_m, seconds=0, sog=5.0, cog="north",
              mmsi="265123456", name="TESTBOAT"):
        lat, lon = at(bridge_id, offset_m)
        if cog == "north":
            cog = northbound
        return PositionReport(
            mmsi=mmsi,
            lat=lat,
            lon=lon,
            sog=sog,
            cog=cog,
            name=name,
            timestamp=T0 + timedelta(seconds=seconds),
        )
    return _make


@pytest.fixture
def t0():
    return T0
