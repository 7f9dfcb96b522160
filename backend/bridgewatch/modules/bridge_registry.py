"""Static bridge registry for the canal.

Bridges are loaded from a YAML file (``config/bridges.yaml`` by default) and
fall back to the built-in Trollhätte kanal definition when the file is
missing. The registry is ordered south -> north and answers sequence and
geometry questions for the proximity engine and target resolver.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml

from bridgewatch.config import settings
from bridgewatch.models.base import TravelDirectionEnum
from bridgewatch.models.bridge import Bridge
from bridgewatch.utils.geo import along_axis_offset, destination_point, initial_bearing

logger = logging.getLogger(__name__)

DEFAULT_BRIDGES: list[dict[str, Any]] = [
    {"id": "olidebron", "name": "Olidebron",
     "lat": 58.272743083145855, "lon": 12.275115821922993},
    {"id": "klaffbron", "name": "Klaffbron",
     "lat": 58.28409551543077, "lon": 12.283929525245636, "target": True},
    {"id": "jarnvagsbron", "name": "Järnvägsbron",
     "lat": 58.29164042152742, "lon": 12.292025280073759},
    {"id": "stridsbergsbron", "name": "Stridsbergsbron",
     "lat": 58.293524096154634, "lon": 12.294566425158054, "target": True},
    {"id": "stallbackabron", "name": "Stallbackabron",
     "lat": 58.31142992293701, "lon": 12.31456385688822, "alternate_text": True},
]

_DEFAULT_REGISTRY: "BridgeRegistry | None" = None


class BridgeRegistry:
    """Ordered, immutable view of the canal's bridges."""

    def __init__(self, bridges: list[Bridge]):
        if len(bridges) < 2:
            raise ValueError("A canal needs at least two bridges")
        ordered = sorted(bridges, key=lambda b: b.order)
        for prev, cur in zip(ordered, ordered[1:]):
            if cur.order <= prev.order:
                raise ValueError(
                    f"Bridge order must be strictly increasing: {prev.id}={prev.order}, {cur.id}={cur.order}"
                )
        ids = [b.id for b in ordered]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate bridge ids: {ids}")
        targets = [b for b in ordered if b.is_target]
        if len(targets) != 2:
            raise ValueError(f"Exactly two target bridges required, got {len(targets)}")

        self._bridges: tuple[Bridge, ...] = tuple(ordered)
        self._by_id: dict[str, Bridge] = {b.id: b for b in ordered}
        self._by_name: dict[str, Bridge] = {b.name: b for b in ordered}
        self._index: dict[str, int] = {b.id: i for i, b in enumerate(ordered)}
        # Canal runs roughly NE; axis points from the southernmost to the northernmost bridge
        first, last = ordered[0], ordered[-1]
        self.axis_bearing: float = initial_bearing(first.lat, first.lon, last.lat, last.lon)

    # --- lookups ---

    @property
    def bridges(self) -> tuple[Bridge, ...]:
        return self._bridges

    @property
    def target_bridges(self) -> tuple[Bridge, ...]:
        return tuple(b for b in self._bridges if b.is_target)

    def get(self, bridge_id: Optional[str]) -> Optional[Bridge]:
        if bridge_id is None:
            return None
        return self._by_id.get(bridge_id)

    def by_name(self, name: Optional[str]) -> Optional[Bridge]:
        if name is None:
            return None
        return self._by_name.get(name)

    def name_of(self, bridge_id: Optional[str]) -> Optional[str]:
        bridge = self.get(bridge_id)
        return bridge.name if bridge else None

    def index_of(self, bridge_id: str) -> int:
        """Position in the south -> north sequence (-1 if unknown)."""
        return self._index.get(bridge_id, -1)

    def is_target(self, bridge_id: Optional[str]) -> bool:
        bridge = self.get(bridge_id)
        return bool(bridge and bridge.is_target)

    def is_alternate(self, bridge_id: Optional[str]) -> bool:
        bridge = self.get(bridge_id)
        return bool(bridge and bridge.alternate_text)

    # --- sequence / geometry ---

    def walk(self, start_index: int, direction: TravelDirectionEnum) -> Iterator[Bridge]:
        """Yield bridges from *start_index* onward in the travel direction."""
        step = 1 if direction == TravelDirectionEnum.NORTHBOUND else -1
        i = start_index
        while 0 <= i < len(self._bridges):
            yield self._bridges[i]
            i += step

    def offset_from(self, bridge_id: str, lat: float, lon: float) -> float:
        """Signed along-canal distance (m) of a position from a bridge; positive = north side."""
        bridge = self._by_id[bridge_id]
        return along_axis_offset(lat, lon, bridge.lat, bridge.lon, self.axis_bearing)

    def point_at(self, bridge_id: str, offset_m: float) -> tuple[float, float]:
        """Position *offset_m* along the canal axis from a bridge (inverse of offset_from)."""
        bridge = self._by_id[bridge_id]
        if offset_m == 0:
            return bridge.lat, bridge.lon
        bearing = self.axis_bearing if offset_m > 0 else self.axis_bearing + 180.0
        return destination_point(bridge.lat, bridge.lon, bearing, abs(offset_m))

    def default_message(self) -> str:
        names = " or ".join(b.name for b in self.target_bridges)
        return f"No vessels are near {names}"


def _bridges_from_config(data: dict[str, Any]) -> list[Bridge]:
    radius = float(data.get("opening_radius_m", settings.OPENING_RADIUS_M))
    entries = data.get("bridges") or []
    bridges = []
    for order, entry in enumerate(entries):
        try:
            bridges.append(Bridge(
                id=str(entry["id"]),
                name=str(entry["name"]),
                lat=float(entry["lat"]),
                lon=float(entry["lon"]),
                order=int(entry.get("order", order)),
                radius_m=float(entry.get("radius_m", radius)),
                is_target=bool(entry.get("target", False)),
                alternate_text=bool(entry.get("alternate_text", False)),
            ))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid bridge entry #{order}: {entry!r} ({exc})") from exc
    return bridges


def load_bridge_registry(path: str | Path | None = None) -> BridgeRegistry:
    """Build a registry from YAML, or from the built-in canal when the file is absent."""
    config_path = Path(path) if path is not None else Path(settings.BRIDGES_CONFIG)
    if not config_path.is_absolute() and not config_path.exists():
        # Relative to the repository root, as when run from a source checkout
        config_path = Path(__file__).resolve().parent.parent.parent.parent / config_path
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        registry = BridgeRegistry(_bridges_from_config(data))
        logger.info("Loaded %d bridges from %s", len(registry.bridges), config_path)
        return registry
    logger.warning("%s not found, using built-in bridge definitions", config_path)
    return BridgeRegistry(_bridges_from_config({"bridges": DEFAULT_BRIDGES}))


def get_default_registry() -> BridgeRegistry:
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        _DEFAULT_REGISTRY = load_bridge_registry()
    return _DEFAULT_REGISTRY
