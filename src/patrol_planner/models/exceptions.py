"""Exceptions raised by the patrol planning core.

Every error derives from :class:`PatrolPlanningError` so the API layer can map
the whole family to HTTP responses in one place.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..services.routing.models import BudgetOverrun


class PatrolPlanningError(Exception):
    """Base class for planning failures surfaced to the caller."""


class InvalidInput(PatrolPlanningError, ValueError):
    """Malformed coordinates, risk scores, budgets or decisions."""


class RoutingUnavailable(PatrolPlanningError):
    """The directions provider failed or returned unusable data."""


class DecisionTimeout(PatrolPlanningError, TimeoutError):
    """The overrun decision was not returned in time.

    No plan is accepted without an explicit decision.
    """


class DecisionRequired(PatrolPlanningError):
    """The decision resolver has no answer for a budget overrun.

    Attributes:
        overrun: Description of the first attempt exceeding the budget.
    """

    def __init__(self, overrun: "BudgetOverrun") -> None:
        self.overrun = overrun
        super().__init__(
            f"First attempt covers {overrun.total_distance_km:.2f} km, exceeding the "
            f"{overrun.km_limit:.2f} km budget by {overrun.overrun_km:.2f} km "
            f"(tolerance {overrun.tolerance_km:.2f} km). Choose 'safety_first' or 'distance_limited'."
        )
