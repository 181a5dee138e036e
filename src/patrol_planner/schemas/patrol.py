"""Patrol planning request/response schemas."""

from __future__ import annotations

from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from ..services.routing.models import OverrunPolicy


class BaseLocationModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class ZoneModel(BaseModel):
    id: Union[int, str]
    name: str = ""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    risk: int = Field(..., ge=0, le=10)


class CandidatesRequest(BaseModel):
    zones: List[ZoneModel]
    base: Optional[BaseLocationModel] = Field(default=None, description="HQ location; defaults to the configured HQ.")
    radius_km: Optional[float] = Field(default=None, ge=0)


class CandidatesResponse(BaseModel):
    base: BaseLocationModel
    radius_km: float
    zones: List[ZoneModel]


class PatrolPlanRequest(BaseModel):
    zones: List[ZoneModel] = Field(..., description="Zone snapshot, unique by id.")
    base: Optional[BaseLocationModel] = Field(default=None, description="HQ location; defaults to the configured HQ.")
    km_limit: Optional[float] = Field(default=None, ge=0, description="Distance budget in kilometers.")
    radius_km: Optional[float] = Field(default=None, ge=0, description="Scan radius around HQ in kilometers.")
    overrun_policy: Optional[OverrunPolicy] = Field(
        default=None,
        description="Answer to use if the first attempt exceeds the budget. "
        "When omitted and a decision is needed, the API responds 409.",
    )


class WaypointModel(BaseModel):
    id: Union[int, str]
    name: str
    lat: float
    lng: float
    risk: Optional[int] = None
    risk_level: Optional[str] = None
    is_headquarters: bool = False


class PatrolPlanResponse(BaseModel):
    route: List[WaypointModel]
    total_distance_km: float
    km_limit: float
    radius_km: float
    min_risk: int
    prioritize_safety: bool
    attempts: int
    decision: Optional[OverrunPolicy] = None
    over_budget: bool
    zones_visited: int


class RoadRouteRequest(BaseModel):
    waypoints: List[BaseLocationModel] = Field(..., min_length=2, description="Ordered stops, HQ first and last.")


class RoadRouteResponse(BaseModel):
    route_coords: List[Tuple[float, float]]
    distance_km: float
    duration_min: float


class GenerateRouteResponse(BaseModel):
    plan: PatrolPlanResponse
    road_route: RoadRouteResponse


class ReachabilityRequest(BaseModel):
    point: BaseLocationModel
    base: Optional[BaseLocationModel] = None


class ReachabilityResponse(BaseModel):
    reachable: bool
