"""Scan-radius filtering of patrol zones around headquarters."""

from __future__ import annotations

from typing import Sequence

from ...models.domain import BaseLocation, Zone
from ...models.exceptions import InvalidInput
from ..geospatial import distance_km


def filter_candidates(zones: Sequence[Zone], base: BaseLocation, radius_km: float) -> list[Zone]:
    """Return the zones within ``radius_km`` of ``base`` (boundary inclusive).

    Input order is preserved but callers must not rely on it. An empty result
    is a valid outcome.
    """
    if not radius_km >= 0:
        raise InvalidInput(f"radius_km must be >= 0 (got {radius_km}).")
    return [zone for zone in zones if distance_km(base, zone) <= radius_km]
