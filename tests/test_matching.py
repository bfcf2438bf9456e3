"""Unit tests for distance, H3 binning and dispatch ranking."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from src.domain.distance import haversine_km, valid_coordinates
from src.domain.entities import Location
from src.domain.enums import DriverStatus
from src.domain.errors import StaleDataError
from src.domain.matching import (
    cells_within,
    ensure_dispatchable,
    location_cell,
    rank_candidates,
)

NOW = datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)
PICKUP = Location(13.8844, 122.2603)


@dataclass
class Entry:
    driver_id: str
    latitude: float
    longitude: float
    is_online: bool = True
    status: DriverStatus = DriverStatus.AVAILABLE
    last_updated: datetime = NOW


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(13.88, 122.26, 13.88, 122.26) == 0.0

    def test_one_degree_of_latitude(self):
        # 2 * pi * 6371 / 360
        assert haversine_km(0, 0, 1, 0) == pytest.approx(111.195, abs=0.01)

    def test_symmetric(self):
        d1 = haversine_km(13.0, 122.0, 14.0, 123.0)
        d2 = haversine_km(14.0, 123.0, 13.0, 122.0)
        assert abs(d1 - d2) < 1e-9


class TestCoordinates:
    @pytest.mark.parametrize(
        "lat, lng",
        [(90, 180), (-90, -180), (0, 0), (13.88, 122.26)],
    )
    def test_valid(self, lat, lng):
        assert valid_coordinates(lat, lng)

    @pytest.mark.parametrize(
        "lat, lng",
        [(91, 0), (0, 181), (-90.5, 0), (None, 0), (float("nan"), 0)],
    )
    def test_invalid(self, lat, lng):
        assert not valid_coordinates(lat, lng)


class TestH3:
    def test_nearby_points_same_cell(self):
        assert location_cell(13.8844, 122.2603) == location_cell(13.8845, 122.2604)

    def test_disk_covers_radius(self):
        cells = cells_within(PICKUP.latitude, PICKUP.longitude, 2.0)
        # a point ~1.9 km north must fall inside the disk
        assert location_cell(13.9015, 122.2603) in cells

    def test_disk_excludes_far_points(self):
        cells = cells_within(PICKUP.latitude, PICKUP.longitude, 1.0)
        assert location_cell(14.0, 122.5) not in cells


class TestDispatchRanking:
    def test_nearest_first(self):
        far = Entry("far", 13.90, 122.28)
        near = Entry("near", 13.885, 122.261)
        mid = Entry("mid", 13.89, 122.265)
        ranked = rank_candidates([far, near, mid], PICKUP, NOW)
        assert [r.entry.driver_id for r in ranked] == ["near", "mid", "far"]
        assert ranked[0].distance_km < ranked[1].distance_km

    def test_stale_entry_excluded_despite_available_flag(self):
        stale = Entry("stale", 13.8845, 122.2604, last_updated=NOW - timedelta(minutes=11))
        fresh = Entry("fresh", 13.90, 122.28, last_updated=NOW - timedelta(minutes=9))
        ranked = rank_candidates([stale, fresh], PICKUP, NOW)
        assert [r.entry.driver_id for r in ranked] == ["fresh"]

    def test_only_available_and_online(self):
        entries = [
            Entry("busy", 13.8845, 122.2604, status=DriverStatus.ON_RIDE),
            Entry("off", 13.8845, 122.2604, is_online=False),
            Entry("off-flag", 13.8845, 122.2604, status=DriverStatus.OFFLINE),
            Entry("ok", 13.8845, 122.2604),
        ]
        assert [r.entry.driver_id for r in rank_candidates(entries, PICKUP, NOW)] == ["ok"]

    def test_invalid_coordinates_skipped(self):
        entries = [Entry("bad", 95.0, 122.26), Entry("ok", 13.8845, 122.2604)]
        assert [r.entry.driver_id for r in rank_candidates(entries, PICKUP, NOW)] == ["ok"]

    def test_limit_caps_results(self):
        entries = [Entry(f"d{i}", 13.8844 + i * 0.001, 122.2603) for i in range(5)]
        ranked = rank_candidates(entries, PICKUP, NOW, limit=2)
        assert [r.entry.driver_id for r in ranked] == ["d0", "d1"]

    def test_radius_cut(self):
        entries = [Entry("in", 13.8900, 122.2603), Entry("out", 13.95, 122.2603)]
        ranked = rank_candidates(entries, PICKUP, NOW, radius_km=2.0)
        assert [r.entry.driver_id for r in ranked] == ["in"]

    def test_equal_distance_ties_break_on_id(self):
        entries = [Entry("b", 13.8850, 122.2603), Entry("a", 13.8850, 122.2603)]
        assert [r.entry.driver_id for r in rank_candidates(entries, PICKUP, NOW)] == ["a", "b"]

    def test_ensure_dispatchable_raises_for_stale(self):
        with pytest.raises(StaleDataError):
            ensure_dispatchable(
                Entry("x", 0, 0, last_updated=NOW - timedelta(minutes=30)),
                NOW,
                timedelta(minutes=10),
            )
