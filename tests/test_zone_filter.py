import pytest

from patrol_planner.models.domain import BaseLocation, Zone
from patrol_planner.models.exceptions import InvalidInput
from patrol_planner.services.geospatial import distance_km
from patrol_planner.services.routing.candidates import filter_candidates

BASE = BaseLocation(lat=13.05, lng=80.25)


def _zone(zid, risk: int, lat: float, lng: float) -> Zone:
    return Zone(id=zid, name=f"Zone {zid}", lat=lat, lng=lng, risk=risk)


def _grid() -> list[Zone]:
    zones = []
    for i in range(-5, 6):
        for j in range(-5, 6):
            zones.append(_zone(f"G{i}_{j}", (i * j) % 11, 13.05 + i * 0.03, 80.25 + j * 0.03))
    return zones


def test_filter_keeps_zones_within_radius():
    near = _zone(1, 9, 13.08, 80.27)
    far = _zone(2, 3, 13.10, 80.30)

    assert {zone.id for zone in filter_candidates([near, far], BASE, 20)} == {1, 2}
    assert [zone.id for zone in filter_candidates([near, far], BASE, 5)] == [1]
    assert filter_candidates([near, far], BASE, 1) == []


def test_filter_boundary_is_inclusive():
    zone = _zone(1, 9, 13.08, 80.27)
    exact = distance_km(BASE, zone)

    assert filter_candidates([zone], BASE, exact) == [zone]


@pytest.mark.parametrize("radius_km", [0.0, 2.5, 5.0, 10.0, 25.0])
def test_filter_partitions_by_radius(radius_km):
    zones = _grid()
    kept = filter_candidates(zones, BASE, radius_km)
    kept_ids = {zone.id for zone in kept}

    assert all(distance_km(BASE, zone) <= radius_km for zone in kept)
    assert all(distance_km(BASE, zone) > radius_km for zone in zones if zone.id not in kept_ids)


def test_filter_empty_input():
    assert filter_candidates([], BASE, 10) == []


@pytest.mark.parametrize("radius_km", [-1, float("nan")])
def test_filter_rejects_invalid_radius(radius_km):
    with pytest.raises(InvalidInput):
        filter_candidates([_zone(1, 9, 13.08, 80.27)], BASE, radius_km)
