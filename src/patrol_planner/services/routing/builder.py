"""Greedy risk-aware route construction.

Zones meeting the risk threshold are appended one at a time starting from
headquarters until no remaining zone fits the distance budget, then the route
closes back at headquarters. Two selection policies are supported:

* safety first: the riskiest zone whose sortie from HQ (out and back) still
  fits in the remaining budget, nearest first on ties. Because the check looks
  at the sortie rather than the detour from the current position, a route may
  end above the budget by at most the distance from the previous waypoint back
  to HQ.
* distance limited: the nearest zone that still leaves enough budget to return
  to HQ. These routes never exceed the budget.

The result is deterministic for identical inputs; it is a heuristic and makes
no claim of maximal risk coverage.
"""

from __future__ import annotations

import logging
from typing import Sequence

from ...models.domain import BaseLocation, Zone
from ...models.exceptions import InvalidInput
from ..geospatial import distance_km, path_length_km
from .models import RoutePlan

logger = logging.getLogger(__name__)


def rank_qualifying(candidates: Sequence[Zone], base: BaseLocation, risk_threshold: int) -> list[Zone]:
    """Zones with ``risk >= risk_threshold``, riskiest first, then nearest to HQ, then by id."""

    qualifying = [zone for zone in candidates if zone.risk is not None and zone.risk >= risk_threshold]
    qualifying.sort(key=lambda zone: (-zone.risk, distance_km(base, zone), str(zone.id)))
    return qualifying


def _next_zone(
    pending: list[tuple[int, Zone]],
    current: Zone,
    base: BaseLocation,
    remaining_km: float,
    prioritize_safety: bool,
) -> tuple[int, Zone] | None:
    best: tuple[int, Zone] | None = None
    best_key: tuple | None = None
    for rank, zone in pending:
        leg = distance_km(current, zone)
        back = distance_km(zone, base)
        if prioritize_safety:
            if 2 * back > remaining_km:
                continue
            key = (-zone.risk, leg, rank)
        else:
            if leg + back > remaining_km:
                continue
            key = (leg, rank)
        if best_key is None or key < best_key:
            best, best_key = (rank, zone), key
    return best


def build_route(
    candidates: Sequence[Zone],
    base: BaseLocation,
    km_limit: float,
    risk_threshold: int,
    prioritize_safety: bool,
) -> RoutePlan:
    """Build an HQ -> zones -> HQ waypoint sequence within ``km_limit``.

    Args:
        candidates: Zones already filtered to the scan radius.
        base: Headquarters location.
        km_limit: Distance budget in kilometers.
        risk_threshold: Minimum risk a zone needs to be considered.
        prioritize_safety: Select by risk (True) or by proximity (False).

    Returns:
        RoutePlan whose route starts and ends with the HQ waypoint. When no
        zone qualifies or fits, the route is ``[HQ, HQ]`` with zero distance.
    """
    if not km_limit >= 0:
        raise InvalidInput(f"km_limit must be >= 0 (got {km_limit}).")

    headquarters = base.as_waypoint()
    pending = list(enumerate(rank_qualifying(candidates, base, risk_threshold)))

    route: list[Zone] = [headquarters]
    current = headquarters
    remaining_km = float(km_limit)
    while pending:
        choice = _next_zone(pending, current, base, remaining_km, prioritize_safety)
        if choice is None:
            break
        _, zone = choice
        remaining_km -= distance_km(current, zone)
        route.append(zone)
        current = zone
        pending.remove(choice)
    route.append(headquarters)

    total_distance = path_length_km(route)
    logger.debug(
        "Built route with %d zone(s), %.3f km (limit %.3f km, min risk %d, safety first=%s)",
        len(route) - 2,
        total_distance,
        km_limit,
        risk_threshold,
        prioritize_safety,
    )
    return RoutePlan(
        route=tuple(route),
        total_distance_km=total_distance,
        km_limit=float(km_limit),
        min_risk=risk_threshold,
        prioritize_safety=prioritize_safety,
    )
