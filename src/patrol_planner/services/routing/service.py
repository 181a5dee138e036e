"""Patrol routing orchestration service."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ...config import settings
from ...models.domain import BaseLocation, Zone
from ...models.exceptions import DecisionRequired
from ...schemas.patrol import (
    BaseLocationModel,
    CandidatesRequest,
    CandidatesResponse,
    GenerateRouteResponse,
    PatrolPlanRequest,
    PatrolPlanResponse,
    ReachabilityRequest,
    ReachabilityResponse,
    RoadRouteRequest,
    RoadRouteResponse,
    WaypointModel,
    ZoneModel,
)
from .candidates import filter_candidates
from .coordinator import DecisionResolver, RetryCoordinator
from .models import BudgetOverrun, OverrunPolicy, RoadRoute, RoutePlan
from .road_route import RoadRouteAdapter

logger = logging.getLogger(__name__)


def _resolve_base(payload_base: Optional[BaseLocationModel]) -> BaseLocation:
    if payload_base is None:
        return BaseLocation(lat=settings.default_base_lat, lng=settings.default_base_lng)
    return BaseLocation(lat=payload_base.lat, lng=payload_base.lng)


def _to_zones(models: Sequence[ZoneModel]) -> list[Zone]:
    return [Zone(id=model.id, name=model.name, lat=model.lat, lng=model.lng, risk=model.risk) for model in models]


def static_decision(policy: Optional[OverrunPolicy]) -> DecisionResolver:
    """Resolver answering every overrun with ``policy``, or DecisionRequired when there is none."""

    def decide(overrun: BudgetOverrun) -> OverrunPolicy:
        if policy is None:
            raise DecisionRequired(overrun)
        return policy

    return decide


def _plan_response(plan: RoutePlan, radius_km: float, tolerance_km: float) -> PatrolPlanResponse:
    return PatrolPlanResponse(
        route=[
            WaypointModel(
                id=zone.id,
                name=zone.name,
                lat=zone.lat,
                lng=zone.lng,
                risk=zone.risk,
                risk_level=zone.risk_level,
                is_headquarters=zone.is_headquarters,
            )
            for zone in plan.route
        ],
        total_distance_km=plan.total_distance_km,
        km_limit=plan.km_limit,
        radius_km=radius_km,
        min_risk=plan.min_risk,
        prioritize_safety=plan.prioritize_safety,
        attempts=plan.attempts,
        decision=plan.decision,
        over_budget=plan.over_budget(tolerance_km),
        zones_visited=plan.zones_visited,
    )


def _road_response(road: RoadRoute) -> RoadRouteResponse:
    return RoadRouteResponse(
        route_coords=road.route_coords,
        distance_km=road.distance_km,
        duration_min=road.duration_min,
    )


def find_candidates(payload: CandidatesRequest) -> CandidatesResponse:
    base = _resolve_base(payload.base)
    radius_km = payload.radius_km if payload.radius_km is not None else settings.default_scan_radius_km
    zones = _to_zones(payload.zones)
    kept = {id(zone) for zone in filter_candidates(zones, base, radius_km)}
    return CandidatesResponse(
        base=BaseLocationModel(lat=base.lat, lng=base.lng),
        radius_km=radius_km,
        zones=[model for model, zone in zip(payload.zones, zones) if id(zone) in kept],
    )


def plan_patrol(payload: PatrolPlanRequest) -> PatrolPlanResponse:
    base = _resolve_base(payload.base)
    km_limit = payload.km_limit if payload.km_limit is not None else settings.default_km_limit
    radius_km = payload.radius_km if payload.radius_km is not None else settings.default_scan_radius_km

    coordinator = RetryCoordinator()
    plan = coordinator.plan(_to_zones(payload.zones), base, km_limit, radius_km, static_decision(payload.overrun_policy))
    return _plan_response(plan, radius_km, coordinator.tolerance_km)


async def generate_patrol_route(payload: PatrolPlanRequest) -> GenerateRouteResponse:
    """Plan the patrol and resolve it onto roads, as one request."""
    base = _resolve_base(payload.base)
    km_limit = payload.km_limit if payload.km_limit is not None else settings.default_km_limit
    radius_km = payload.radius_km if payload.radius_km is not None else settings.default_scan_radius_km

    coordinator = RetryCoordinator()
    plan = await coordinator.plan_async(
        _to_zones(payload.zones), base, km_limit, radius_km, static_decision(payload.overrun_policy)
    )
    road = await RoadRouteAdapter().ato_road_route(plan.route)
    logger.info(
        f"Generated patrol route: {plan.zones_visited} zone(s), {plan.total_distance_km:.2f} km straight-line, "
        f"{road.distance_km:.2f} km by road, {road.duration_min:.1f} min"
    )
    return GenerateRouteResponse(
        plan=_plan_response(plan, radius_km, coordinator.tolerance_km),
        road_route=_road_response(road),
    )


async def resolve_road_route(payload: RoadRouteRequest) -> RoadRouteResponse:
    road = await RoadRouteAdapter().ato_road_route(
        [BaseLocation(lat=point.lat, lng=point.lng) for point in payload.waypoints]
    )
    return _road_response(road)


async def check_reachability(payload: ReachabilityRequest) -> ReachabilityResponse:
    base = _resolve_base(payload.base)
    point = BaseLocation(lat=payload.point.lat, lng=payload.point.lng)
    reachable = await RoadRouteAdapter().ais_road_reachable(base, point)
    return ReachabilityResponse(reachable=reachable)
