"""Patrol planning endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...models.exceptions import (
    DecisionRequired,
    DecisionTimeout,
    InvalidInput,
    PatrolPlanningError,
    RoutingUnavailable,
)
from ...schemas.patrol import (
    CandidatesRequest,
    CandidatesResponse,
    GenerateRouteResponse,
    PatrolPlanRequest,
    PatrolPlanResponse,
    ReachabilityRequest,
    ReachabilityResponse,
    RoadRouteRequest,
    RoadRouteResponse,
)
from ...services.routing.models import OverrunPolicy
from ...services.routing.service import (
    check_reachability,
    find_candidates,
    generate_patrol_route,
    plan_patrol,
    resolve_road_route,
)

router = APIRouter(prefix="/patrol", tags=["patrol"])


def _http_error(exc: Exception, action: str) -> HTTPException:
    if isinstance(exc, DecisionRequired):
        overrun = exc.overrun
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "km_limit": overrun.km_limit,
                "tolerance_km": overrun.tolerance_km,
                "total_distance_km": overrun.total_distance_km,
                "overrun_km": overrun.overrun_km,
                "options": [policy.value for policy in OverrunPolicy],
            },
        )
    if isinstance(exc, InvalidInput):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, RoutingUnavailable):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if isinstance(exc, DecisionTimeout):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc))
    logging.exception(f"Error while trying to {action}: {exc}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {str(exc)}",
    )


@router.post("/candidates", response_model=CandidatesResponse, status_code=status.HTTP_200_OK)
def candidates(payload: CandidatesRequest) -> CandidatesResponse:
    """Zones within the scan radius of HQ."""
    try:
        return find_candidates(payload)
    except Exception as exc:
        raise _http_error(exc, "filter zones") from exc


@router.post("/plan", response_model=PatrolPlanResponse, status_code=status.HTTP_200_OK)
def plan(payload: PatrolPlanRequest) -> PatrolPlanResponse:
    try:
        return plan_patrol(payload)
    except Exception as exc:
        raise _http_error(exc, "plan patrol route") from exc


@router.post("/road-route", response_model=RoadRouteResponse, status_code=status.HTTP_200_OK)
async def road_route(payload: RoadRouteRequest) -> RoadRouteResponse:
    try:
        return await resolve_road_route(payload)
    except Exception as exc:
        raise _http_error(exc, "resolve road route") from exc


@router.post("/generate", response_model=GenerateRouteResponse, status_code=status.HTTP_200_OK)
async def generate(payload: PatrolPlanRequest) -> GenerateRouteResponse:
    """Plan the patrol and follow it on roads.

    A 409 response means the first attempt exceeded the budget and the request
    carried no ``overrun_policy``; resubmit with one of the listed options.
    """
    try:
        return await generate_patrol_route(payload)
    except Exception as exc:
        raise _http_error(exc, "generate patrol route") from exc


@router.post("/reachability", response_model=ReachabilityResponse, status_code=status.HTTP_200_OK)
async def reachability(payload: ReachabilityRequest) -> ReachabilityResponse:
    try:
        return await check_reachability(payload)
    except PatrolPlanningError as exc:
        raise _http_error(exc, "check reachability") from exc
