"""Unit tests for distance, zone geometry and provider matching."""

from types import SimpleNamespace

import pytest

from src.domain.distance import eta_minutes, haversine_km, moved_significantly, point_in_polygon
from src.domain.enums import BookingKind
from src.domain.matching import cell_for, cells_within, dispatch_attempt, rank_candidates

ACCRA = (5.6037, -0.1870)
KUMASI = (6.6885, -1.6244)

# [lng, lat] ring around greater Accra
ACCRA_RING = [[-0.40, 5.45], [0.05, 5.45], [0.05, 5.80], [-0.40, 5.80]]


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(*ACCRA, *ACCRA) == 0.0

    def test_known_distance(self):
        # Accra -> Kumasi ~200 km as the crow flies
        d = haversine_km(*ACCRA, *KUMASI)
        assert 190.0 < d < 210.0

    def test_symmetric(self):
        d1 = haversine_km(5.0, -0.1, 6.0, -1.0)
        d2 = haversine_km(6.0, -1.0, 5.0, -0.1)
        assert abs(d1 - d2) < 1e-6


class TestEta:
    def test_rounds_up(self):
        assert eta_minutes(10.0, 30.0) == 20
        assert eta_minutes(10.1, 30.0) == 21

    def test_zero_distance(self):
        assert eta_minutes(0.0) == 0


class TestZoneGeometry:
    def test_point_inside_ring(self):
        assert point_in_polygon(*ACCRA, ACCRA_RING)

    def test_point_outside_ring(self):
        assert not point_in_polygon(*KUMASI, ACCRA_RING)

    def test_geojson_polygon(self):
        polygon = {"type": "Polygon", "coordinates": [ACCRA_RING]}
        assert point_in_polygon(*ACCRA, polygon)

    def test_degenerate_ring_contains_nothing(self):
        assert not point_in_polygon(*ACCRA, ACCRA_RING[:2])
        assert not point_in_polygon(*ACCRA, None)

    def test_first_fix_counts_as_move(self):
        assert moved_significantly(None, None, *ACCRA)

    def test_small_move_is_ignored(self):
        assert not moved_significantly(5.60, -0.18, 5.65, -0.20)

    def test_large_move(self):
        assert moved_significantly(5.60, -0.18, 5.75, -0.18)


class TestH3Cell:
    def test_returns_string(self):
        cell = cell_for(*ACCRA, 6)
        assert isinstance(cell, str)
        assert len(cell) > 0

    def test_nearby_points_same_cell(self):
        """Two points ~15 m apart share a resolution-6 cell."""
        assert cell_for(5.6037, -0.1870, 6) == cell_for(5.6038, -0.1871, 6)

    def test_distant_points_different_cell(self):
        assert cell_for(*ACCRA, 6) != cell_for(*KUMASI, 6)

    def test_disk_covers_radius(self):
        cells = cells_within(*ACCRA, 15.0, 6)
        # A point 10 km north must fall inside the searched disk
        assert cell_for(ACCRA[0] + 0.09, ACCRA[1], 6) in cells
        assert cell_for(*ACCRA, 6) in cells


class TestDispatchPlan:
    def test_ride_attempts(self):
        first = dispatch_attempt(BookingKind.RIDE, 0)
        second = dispatch_attempt(BookingKind.RIDE, 1)
        assert (first.radius_km, first.max_providers) == (15, 10)
        assert (second.radius_km, second.max_providers) == (30, 8)

    def test_plan_exhausted(self):
        assert dispatch_attempt(BookingKind.RIDE, 2) is None

    def test_emergency_is_tight(self):
        assert dispatch_attempt(BookingKind.EMERGENCY, 0).max_providers == 3


class TestRankCandidates:
    def _provider(self, lat, lng):
        return SimpleNamespace(current_lat=lat, current_lng=lng)

    def test_nearest_first_within_radius(self):
        near = self._provider(5.605, -0.188)
        mid = self._provider(5.650, -0.190)
        far = self._provider(*KUMASI)
        ranked = rank_candidates(*ACCRA, [mid, far, near], radius_km=15.0)
        assert [c for c, _ in ranked] == [near, mid]
        assert ranked[0][1] < ranked[1][1]

    def test_limit(self):
        providers = [self._provider(5.60 + i * 0.001, -0.187) for i in range(5)]
        assert len(rank_candidates(*ACCRA, providers, 15.0, limit=2)) == 2

    def test_skips_unknown_position(self):
        assert rank_candidates(*ACCRA, [self._provider(None, None)], 15.0) == []

    @pytest.mark.parametrize("radius", [0.0, 0.01])
    def test_tiny_radius(self, radius):
        assert rank_candidates(*ACCRA, [self._provider(5.65, -0.19)], radius) == []
