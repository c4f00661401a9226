"""
Nearby-Provider Search
======================

1. **Spatial Binning**  -- every provider carries the H3 cell of its last
   reported position (resolution 6 by default, ~36 km² hexagons).
2. **Candidate fetch**  -- a booking's pickup is expanded into the grid
   disk of cells that covers the search radius; the DB query is a plain
   ``h3_cell IN (...)`` lookup on an indexed column.
3. **Exact filter**     -- Haversine distance removes corner cells outside
   the radius; the survivors are ranked nearest first and truncated.

Dispatch plans
--------------
Each booking kind has an ordered list of ``(radius_km, max_providers)``
attempts.  The dispatcher runs attempt *n* only once attempt *n-1* produced
no acceptance within the offer TTL.  When the plan is exhausted the booking
becomes NO_DRIVER_AVAILABLE.

Complexity
----------
Let P = providers in the covering cells, k = requested limit.
* Cell expansion:  O(r²) with r = grid rings (small, bounded by radius)
* Filter + rank:   O(P log P)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, TypeVar

import h3

from .distance import haversine_km
from .enums import BookingKind

T = TypeVar("T")


@dataclass(frozen=True)
class DispatchAttempt:
    radius_km: float
    max_providers: int


DISPATCH_PLANS: dict[BookingKind, tuple[DispatchAttempt, ...]] = {
    BookingKind.RIDE: (DispatchAttempt(15, 10), DispatchAttempt(30, 8)),
    BookingKind.TAXI: (DispatchAttempt(15, 10), DispatchAttempt(30, 8)),
    BookingKind.MOVING: (DispatchAttempt(25, 5), DispatchAttempt(50, 10)),
    BookingKind.EMERGENCY: (DispatchAttempt(20, 3), DispatchAttempt(40, 5)),
}

DELIVERY_SEARCH = DispatchAttempt(15, 10)


def dispatch_attempt(kind: BookingKind, attempt_no: int) -> DispatchAttempt | None:
    """Return the *attempt_no*-th (0-based) attempt, or None when exhausted."""
    plan = DISPATCH_PLANS.get(kind, ())
    if attempt_no < len(plan):
        return plan[attempt_no]
    return None


def cell_for(lat: float, lng: float, resolution: int = 6) -> str:
    """Map a geo-point to an H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)


def cells_within(
    lat: float, lng: float, radius_km: float, resolution: int = 6
) -> list[str]:
    """Cells of the grid disk that fully covers a circle of *radius_km*."""
    origin = cell_for(lat, lng, resolution)
    # Centre-to-centre distance between neighbouring cells is ~sqrt(3) x edge
    spacing = h3.average_hexagon_edge_length(resolution, unit="km") * math.sqrt(3)
    rings = max(1, math.ceil(radius_km / spacing) + 1)
    return list(h3.grid_disk(origin, rings))


def rank_candidates(
    lat: float,
    lng: float,
    candidates: Iterable[T],
    radius_km: float,
    limit: int | None = None,
) -> list[tuple[T, float]]:
    """
    Keep candidates within *radius_km* of ``(lat, lng)``, nearest first.

    Candidates must expose ``current_lat`` / ``current_lng``; ones without
    a known position are skipped.
    """
    ranked: list[tuple[T, float]] = []
    for candidate in candidates:
        c_lat = getattr(candidate, "current_lat", None)
        c_lng = getattr(candidate, "current_lng", None)
        if c_lat is None or c_lng is None:
            continue
        distance = haversine_km(lat, lng, c_lat, c_lng)
        if distance <= radius_km:
            ranked.append((candidate, distance))

    ranked.sort(key=lambda pair: pair[1])
    if limit is not None:
        ranked = ranked[:limit]
    return ranked
