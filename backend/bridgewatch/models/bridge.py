"""Static bridge definition."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Bridge:
    id: str
    name: str
    lat: float
    lon: float
    order: int  # canal index, strictly increasing south -> north
    radius_m: float = 300.0  # opening radius
    is_target: bool = False
    # High bridge: rendered as "passing under", never "awaiting opening"
    alternate_text: bool = False
