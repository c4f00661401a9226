"""
Geometry helpers: Haversine distance, ETA and zone containment.

Assumption
----------
Great-circle distance stands in for road distance and a flat average city
speed stands in for live traffic.  Swapping in a routing service only
touches this module.
"""

from __future__ import annotations

import math
from typing import Any, Sequence

EARTH_RADIUS_KM = 6_371.0

# A provider whose position moves by more than this many degrees on either
# axis between two updates is re-evaluated for zone membership.
ZONE_CHANGE_DEGREES = 0.1


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def eta_minutes(distance_km: float, speed_kmh: float = 30.0) -> int:
    """Minutes to cover *distance_km* at *speed_kmh*, rounded up."""
    if distance_km <= 0:
        return 0
    return math.ceil(distance_km / speed_kmh * 60)


def moved_significantly(
    prev_lat: float | None,
    prev_lng: float | None,
    lat: float,
    lng: float,
) -> bool:
    if prev_lat is None or prev_lng is None:
        return True
    return (
        abs(lat - prev_lat) > ZONE_CHANGE_DEGREES
        or abs(lng - prev_lng) > ZONE_CHANGE_DEGREES
    )


def _ring(boundary: Any) -> Sequence[Sequence[float]]:
    """Accept a bare ``[[lng, lat], ...]`` ring or a GeoJSON Polygon dict."""
    if isinstance(boundary, dict):
        coords = boundary.get("coordinates") or []
        return coords[0] if coords else []
    return boundary or []


def point_in_polygon(lat: float, lng: float, boundary: Any) -> bool:
    """
    Ray-casting containment test.

    Vertices are ``[lng, lat]`` pairs (GeoJSON order).  A ring with fewer
    than three vertices contains nothing.
    """
    ring = _ring(boundary)
    if len(ring) < 3:
        return False

    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > lat) != (yj > lat):
            x_cross = (xj - xi) * (lat - yi) / (yj - yi) + xi
            if lng < x_cross:
                inside = not inside
        j = i
    return inside
