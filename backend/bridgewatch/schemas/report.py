"""Pydantic schema for a decoded AIS position report."""
from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class PositionReport(BaseModel):
    mmsi: str
    lat: float
    lon: float
    sog: Optional[float] = None  # knots, None = not available
    cog: Optional[float] = None  # degrees, None = not available
    name: Optional[str] = None
    timestamp: datetime

    model_config = {"frozen": True}

    @field_validator("mmsi")
    @classmethod
    def mmsi_must_be_present(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("MMSI is required")
        return v

    @field_validator("lat", "lon")
    @classmethod
    def coordinates_must_be_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("coordinates must be finite")
        return v
