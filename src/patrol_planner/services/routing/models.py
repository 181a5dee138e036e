"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ...models.domain import Zone


class OverrunPolicy(str, Enum):
    SAFETY_FIRST = "safety_first"
    DISTANCE_LIMITED = "distance_limited"


@dataclass(frozen=True, slots=True)
class RoutePlan:
    route: tuple[Zone, ...]
    total_distance_km: float
    km_limit: float
    min_risk: int
    prioritize_safety: bool
    attempts: int = 1
    decision: Optional[OverrunPolicy] = None

    @property
    def zones_visited(self) -> int:
        return max(len(self.route) - 2, 0)

    def over_budget(self, tolerance_km: float = 0.0) -> bool:
        return self.total_distance_km > self.km_limit + tolerance_km


@dataclass(frozen=True, slots=True)
class BudgetOverrun:
    km_limit: float
    tolerance_km: float
    total_distance_km: float
    first_attempt: RoutePlan

    @property
    def overrun_km(self) -> float:
        return self.total_distance_km - self.km_limit


@dataclass(frozen=True, slots=True)
class RoadRoute:
    route_coords: list[tuple[float, float]]
    distance_km: float
    duration_min: float
