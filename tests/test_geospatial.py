import math

import pytest

from patrol_planner.models.domain import BaseLocation
from patrol_planner.models.exceptions import InvalidInput
from patrol_planner.services.geospatial import (
    distance_km,
    haversine_km,
    path_length_km,
    validate_coordinates,
)


def test_haversine_one_degree_along_equator():
    assert haversine_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(6371.0 * math.pi / 180, rel=1e-9)


def test_distance_is_symmetric_and_zero_for_same_point():
    a = BaseLocation(lat=13.05, lng=80.25)
    b = BaseLocation(lat=13.08, lng=80.27)

    assert distance_km(a, b) == pytest.approx(distance_km(b, a))
    assert distance_km(a, a) == 0.0
    assert distance_km(a, b) > 0


def test_triangle_inequality_holds_for_nearby_points():
    a = BaseLocation(lat=13.05, lng=80.25)
    b = BaseLocation(lat=13.08, lng=80.27)
    c = BaseLocation(lat=13.10, lng=80.30)

    assert distance_km(a, c) <= distance_km(a, b) + distance_km(b, c) + 1e-9


def test_path_length_sums_legs():
    points = [
        BaseLocation(lat=13.05, lng=80.25),
        BaseLocation(lat=13.08, lng=80.27),
        BaseLocation(lat=13.05, lng=80.25),
    ]

    assert path_length_km(points) == pytest.approx(2 * distance_km(points[0], points[1]))
    assert path_length_km(points[:1]) == 0.0
    assert path_length_km([]) == 0.0


@pytest.mark.parametrize(
    "lat, lng",
    [(90.5, 0.0), (-91.0, 10.0), (0.0, 180.01), (0.0, -200.0), (float("nan"), 0.0), ("north", 1.0)],
)
def test_validate_coordinates_rejects_invalid(lat, lng):
    with pytest.raises(InvalidInput):
        validate_coordinates(lat, lng)


def test_validate_coordinates_accepts_bounds():
    validate_coordinates(90.0, 180.0)
    validate_coordinates(-90.0, -180.0)
