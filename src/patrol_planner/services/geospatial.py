"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Iterable, Protocol

from ..models.exceptions import InvalidInput

EARTH_RADIUS_KM = 6371.0


class Coordinate(Protocol):
    lat: float
    lng: float


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two objects exposing ``lat``/``lng``."""

    return haversine_km(a.lat, a.lng, b.lat, b.lng)


def path_length_km(points: Iterable[Coordinate]) -> float:
    """Sum of consecutive leg distances along ``points``."""

    total = 0.0
    previous = None
    for point in points:
        if previous is not None:
            total += distance_km(previous, point)
        previous = point
    return total


def validate_coordinates(lat: float, lng: float, *, label: str = "coordinate") -> None:
    """Raise InvalidInput unless (lat, lng) is a finite WGS-84 coordinate."""

    try:
        lat_value = float(lat)
        lng_value = float(lng)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"{label} has non-numeric coordinates ({lat!r}, {lng!r}).") from exc
    if not (math.isfinite(lat_value) and math.isfinite(lng_value)):
        raise InvalidInput(f"{label} has non-finite coordinates ({lat!r}, {lng!r}).")
    if not -90.0 <= lat_value <= 90.0:
        raise InvalidInput(f"{label} latitude {lat_value} is outside [-90, 90].")
    if not -180.0 <= lng_value <= 180.0:
        raise InvalidInput(f"{label} longitude {lng_value} is outside [-180, 180].")
