"""Shared geodesic utilities.

Canonical haversine distance, initial bearing and angle helpers used by the
proximity engine, target resolver and GPS jump gate.
"""
from __future__ import annotations

import math

_EARTH_RADIUS_M: float = 6_371_000.0  # Earth mean radius in metres

KNOTS_TO_MPS: float = 1852.0 / 3600.0


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres between two WGS-84 coordinates."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lon2 - lon1)
    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    )
    return _EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def initial_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial great-circle bearing from point 1 to point 2, degrees in [0, 360)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dlam = math.radians(lon2 - lon1)
    y = math.sin(dlam) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlam)
    return normalize_course(math.degrees(math.atan2(y, x)))


def normalize_course(deg: float) -> float:
    """Wrap any finite angle into [0, 360)."""
    return ((deg % 360.0) + 360.0) % 360.0


def angle_difference(a: float, b: float) -> float:
    """Smallest absolute difference between two bearings (0-180)."""
    diff = abs(normalize_course(a) - normalize_course(b))
    return 360.0 - diff if diff > 180.0 else diff


def along_axis_offset(
    lat: float, lon: float, ref_lat: float, ref_lon: float, axis_bearing: float,
) -> float:
    """Signed distance (m) of a point from a reference, projected on an axis.

    Positive means the point lies in the direction of *axis_bearing* from the
    reference.
    """
    dist = haversine_meters(ref_lat, ref_lon, lat, lon)
    if dist == 0.0:
        return 0.0
    bearing = initial_bearing(ref_lat, ref_lon, lat, lon)
    return dist * math.cos(math.radians(bearing - axis_bearing))


def destination_point(
    lat: float, lon: float, bearing_deg: float, distance_m: float,
) -> tuple[float, float]:
    """Point reached from (lat, lon) after *distance_m* on an initial bearing."""
    d = distance_m / _EARTH_RADIUS_M
    b = math.radians(bearing_deg)
    phi1, lam1 = math.radians(lat), math.radians(lon)
    phi2 = math.asin(math.sin(phi1) * math.cos(d) + math.cos(phi1) * math.sin(d) * math.cos(b))
    lam2 = lam1 + math.atan2(
        math.sin(b) * math.sin(d) * math.cos(phi1),
        math.cos(d) - math.sin(phi1) * math.sin(phi2),
    )
    return math.degrees(phi2), math.degrees(lam2)
