"""Two-attempt patrol planning with a caller-supplied overrun decision."""

from __future__ import annotations

import asyncio
import inspect
import logging
import queue
import threading
from dataclasses import replace
from typing import Any, Awaitable, Callable, Sequence, Union

from ...config import settings
from ...models.domain import MAX_RISK, BaseLocation, Zone
from ...models.exceptions import DecisionTimeout, InvalidInput
from ..geospatial import validate_coordinates
from .builder import build_route
from .candidates import filter_candidates
from .models import BudgetOverrun, OverrunPolicy, RoutePlan

logger = logging.getLogger(__name__)

DecisionResolver = Callable[[BudgetOverrun], Union[OverrunPolicy, str]]
AsyncDecisionResolver = Callable[[BudgetOverrun], Awaitable[Union[OverrunPolicy, str]]]
RouteBuilderFn = Callable[[Sequence[Zone], BaseLocation, float, int, bool], RoutePlan]


def min_risk_for_tolerance(tolerance: int) -> int:
    """Minimum zone risk admitted under a given risk tolerance."""
    return MAX_RISK - tolerance


def validate_plan_inputs(zones: Sequence[Zone], base: BaseLocation, km_limit: float, radius_km: float) -> None:
    validate_coordinates(base.lat, base.lng, label="base location")
    if not km_limit >= 0:
        raise InvalidInput(f"km_limit must be >= 0 (got {km_limit}).")
    if not radius_km >= 0:
        raise InvalidInput(f"radius_km must be >= 0 (got {radius_km}).")
    seen: set = set()
    for zone in zones:
        validate_coordinates(zone.lat, zone.lng, label=f"zone {zone.id!r}")
        risk = zone.risk
        if isinstance(risk, bool) or not isinstance(risk, int) or not 0 <= risk <= MAX_RISK:
            raise InvalidInput(f"zone {zone.id!r} risk must be an integer in [0, {MAX_RISK}] (got {risk!r}).")
        if zone.id in seen:
            raise InvalidInput(f"zone id {zone.id!r} appears more than once.")
        seen.add(zone.id)


def _coerce_decision(value: Any) -> OverrunPolicy:
    if isinstance(value, OverrunPolicy):
        return value
    try:
        return OverrunPolicy(value)
    except (ValueError, TypeError) as exc:
        raise InvalidInput(
            f"Overrun decision must be one of {[policy.value for policy in OverrunPolicy]} (got {value!r})."
        ) from exc


class RetryCoordinator:
    """Runs the route builder once, and a second time after an overrun decision.

    Attempt 1 uses the strict risk tolerance with safety first. When its
    distance exceeds ``km_limit + tolerance_km`` the resolver is asked once for
    an :class:`OverrunPolicy` and attempt 2 runs with the relaxed tolerance.
    The second result is returned as is, even when still over budget.
    """

    def __init__(
        self,
        *,
        tolerance_km: float | None = None,
        strict_risk_tolerance: int | None = None,
        relaxed_risk_tolerance: int | None = None,
        decision_timeout_seconds: float | None = None,
        builder: RouteBuilderFn = build_route,
    ) -> None:
        self.tolerance_km = tolerance_km if tolerance_km is not None else settings.distance_tolerance_km
        self.strict_risk_tolerance = (
            strict_risk_tolerance if strict_risk_tolerance is not None else settings.strict_risk_tolerance
        )
        self.relaxed_risk_tolerance = (
            relaxed_risk_tolerance if relaxed_risk_tolerance is not None else settings.relaxed_risk_tolerance
        )
        self.decision_timeout_seconds = (
            decision_timeout_seconds if decision_timeout_seconds is not None else settings.decision_timeout_seconds
        )
        self.builder = builder

    @property
    def strict_min_risk(self) -> int:
        return min_risk_for_tolerance(self.strict_risk_tolerance)

    @property
    def relaxed_min_risk(self) -> int:
        return min_risk_for_tolerance(self.relaxed_risk_tolerance)

    def plan(
        self,
        zones: Sequence[Zone],
        base: BaseLocation,
        km_limit: float,
        radius_km: float,
        decide: DecisionResolver,
    ) -> RoutePlan:
        candidates, plan_a = self._first_attempt(zones, base, km_limit, radius_km)
        if not plan_a.over_budget(self.tolerance_km):
            return plan_a
        decision = self._wait_for_decision(decide, self._overrun(plan_a, km_limit))
        return self._second_attempt(candidates, base, km_limit, decision)

    async def plan_async(
        self,
        zones: Sequence[Zone],
        base: BaseLocation,
        km_limit: float,
        radius_km: float,
        decide: DecisionResolver | AsyncDecisionResolver,
    ) -> RoutePlan:
        """Asyncio variant of :meth:`plan`; cancelling the task abandons the decision."""
        candidates, plan_a = self._first_attempt(zones, base, km_limit, radius_km)
        if not plan_a.over_budget(self.tolerance_km):
            return plan_a
        decision = await self._wait_for_decision_async(decide, self._overrun(plan_a, km_limit))
        return self._second_attempt(candidates, base, km_limit, decision)

    def _first_attempt(
        self, zones: Sequence[Zone], base: BaseLocation, km_limit: float, radius_km: float
    ) -> tuple[list[Zone], RoutePlan]:
        validate_plan_inputs(zones, base, km_limit, radius_km)
        candidates = filter_candidates(zones, base, radius_km)
        plan_a = self.builder(candidates, base, km_limit, self.strict_min_risk, True)
        logger.info(
            "Attempt 1: %d/%d candidate zone(s) within %.2f km, %d visited, %.2f km (limit %.2f + %.2f km)",
            len(candidates),
            len(zones),
            radius_km,
            plan_a.zones_visited,
            plan_a.total_distance_km,
            km_limit,
            self.tolerance_km,
        )
        return candidates, plan_a

    def _overrun(self, plan_a: RoutePlan, km_limit: float) -> BudgetOverrun:
        overrun = BudgetOverrun(
            km_limit=km_limit,
            tolerance_km=self.tolerance_km,
            total_distance_km=plan_a.total_distance_km,
            first_attempt=plan_a,
        )
        logger.info("Attempt 1 exceeds budget by %.2f km, requesting overrun decision", overrun.overrun_km)
        return overrun

    def _second_attempt(
        self, candidates: list[Zone], base: BaseLocation, km_limit: float, decision: OverrunPolicy
    ) -> RoutePlan:
        prioritize_safety = decision is OverrunPolicy.SAFETY_FIRST
        plan_b = self.builder(candidates, base, km_limit, self.relaxed_min_risk, prioritize_safety)
        logger.info(
            "Attempt 2 (%s): %d zone(s) visited, %.2f km (limit %.2f km)",
            decision.value,
            plan_b.zones_visited,
            plan_b.total_distance_km,
            km_limit,
        )
        return replace(plan_b, attempts=2, decision=decision)

    def _wait_for_decision(self, decide: DecisionResolver, overrun: BudgetOverrun) -> OverrunPolicy:
        if self.decision_timeout_seconds is None:
            return _coerce_decision(decide(overrun))

        outcome: queue.Queue = queue.Queue(maxsize=1)
        _run_resolver_in_background(decide, overrun, lambda ok, value: outcome.put((ok, value)))
        try:
            ok, value = outcome.get(timeout=self.decision_timeout_seconds)
        except queue.Empty as exc:
            raise DecisionTimeout(
                f"No overrun decision within {self.decision_timeout_seconds:.1f}s; no plan accepted."
            ) from exc
        if not ok:
            raise value
        return _coerce_decision(value)

    async def _wait_for_decision_async(
        self, decide: DecisionResolver | AsyncDecisionResolver, overrun: BudgetOverrun
    ) -> OverrunPolicy:
        async def resolve() -> Any:
            if inspect.iscoroutinefunction(decide):
                return await decide(overrun)
            result = await _resolve_on_daemon_thread(decide, overrun)
            if inspect.isawaitable(result):
                result = await result
            return result

        try:
            raw_decision = await asyncio.wait_for(resolve(), timeout=self.decision_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise DecisionTimeout(
                f"No overrun decision within {self.decision_timeout_seconds:.1f}s; no plan accepted."
            ) from exc
        return _coerce_decision(raw_decision)


def _run_resolver_in_background(
    decide: DecisionResolver, overrun: BudgetOverrun, deliver: Callable[[bool, Any], None]
) -> None:
    """Call ``decide`` on a daemon thread and hand ``(ok, result_or_error)`` to ``deliver``.

    A resolver abandoned after a timeout must not keep the interpreter alive at exit.
    """

    def run() -> None:
        try:
            result = decide(overrun)
        except Exception as exc:
            deliver(False, exc)
        else:
            deliver(True, result)

    threading.Thread(target=run, name="overrun-decision", daemon=True).start()


def _resolve_on_daemon_thread(decide: DecisionResolver, overrun: BudgetOverrun) -> asyncio.Future:
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def settle(ok: bool, value: Any) -> None:
        if future.done():
            return
        if ok:
            future.set_result(value)
        else:
            future.set_exception(value)

    def deliver(ok: bool, value: Any) -> None:
        try:
            loop.call_soon_threadsafe(settle, ok, value)
        except RuntimeError:
            logger.debug("Overrun decision arrived after the event loop closed; ignoring it")

    _run_resolver_in_background(decide, overrun, deliver)
    return future
