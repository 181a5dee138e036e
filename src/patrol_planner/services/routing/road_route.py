"""Conversion of planned waypoints into a road-following route."""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from ...config import settings
from ...models.exceptions import InvalidInput, RoutingUnavailable
from ..geospatial import Coordinate, haversine_km, path_length_km, validate_coordinates
from .directions import DirectionsClient, DirectionsResult, get_directions_client
from .models import RoadRoute

logger = logging.getLogger(__name__)

_PROVIDER_ERRORS = (httpx.HTTPError, ConnectionError, ValueError, KeyError, TypeError)


class RoadRouteAdapter:
    """Turns an ordered waypoint sequence into a RoadRoute with one directions request.

    Provider failures surface as :class:`RoutingUnavailable`; there is no
    straight-line fallback.
    """

    def __init__(self, client: DirectionsClient | None = None, *, snap_tolerance_km: float | None = None) -> None:
        self._client = client
        self.snap_tolerance_km = (
            snap_tolerance_km if snap_tolerance_km is not None else settings.endpoint_snap_tolerance_km
        )

    @property
    def client(self) -> DirectionsClient:
        if self._client is None:
            try:
                self._client = get_directions_client()
            except ValueError as exc:
                raise RoutingUnavailable(f"Directions provider is not configured: {exc}") from exc
        return self._client

    def to_road_route(self, waypoints: Sequence[Coordinate]) -> RoadRoute:
        points = _waypoint_points(waypoints)
        if len(set(points)) == 1:
            return _stationary_route(points)
        try:
            result = self.client.route(points)
        except _PROVIDER_ERRORS as exc:
            logger.warning(f"Road routing failed for {len(points)} waypoints: {exc}")
            raise RoutingUnavailable(f"Road routing failed: {exc}") from exc
        return self._build(waypoints, points, result)

    async def ato_road_route(self, waypoints: Sequence[Coordinate]) -> RoadRoute:
        points = _waypoint_points(waypoints)
        if len(set(points)) == 1:
            return _stationary_route(points)
        try:
            result = await self.client.aroute(points)
        except _PROVIDER_ERRORS as exc:
            logger.warning(f"Road routing failed for {len(points)} waypoints: {exc}")
            raise RoutingUnavailable(f"Road routing failed: {exc}") from exc
        return self._build(waypoints, points, result)

    def is_road_reachable(self, base: Coordinate, point: Coordinate) -> bool:
        """Whether the provider can route from ``base`` to ``point`` by road."""
        try:
            self.to_road_route([base, point])
        except RoutingUnavailable:
            return False
        return True

    async def ais_road_reachable(self, base: Coordinate, point: Coordinate) -> bool:
        try:
            await self.ato_road_route([base, point])
        except RoutingUnavailable:
            return False
        return True

    def _build(
        self,
        waypoints: Sequence[Coordinate],
        points: list[tuple[float, float]],
        result: DirectionsResult,
    ) -> RoadRoute:
        if result.waypoint_count != len(points):
            raise RoutingUnavailable(
                f"Directions provider routed {result.waypoint_count} stops for {len(points)} waypoints."
            )
        coords = list(result.coordinates)
        if not coords:
            raise RoutingUnavailable("Directions provider returned an empty route geometry.")

        if self._gap_km(coords[0], points[0]) > self.snap_tolerance_km:
            coords.insert(0, points[0])
        if self._gap_km(coords[-1], points[-1]) > self.snap_tolerance_km:
            coords.append(points[-1])

        geodesic_km = path_length_km(waypoints)
        road_km = result.distance_m / 1000.0
        if road_km < geodesic_km:
            logger.debug(f"Provider distance {road_km:.3f} km below geodesic {geodesic_km:.3f} km, using geodesic")
        return RoadRoute(
            route_coords=coords,
            distance_km=max(road_km, geodesic_km),
            duration_min=result.duration_s / 60.0,
        )

    @staticmethod
    def _gap_km(a: tuple[float, float], b: tuple[float, float]) -> float:
        return haversine_km(a[0], a[1], b[0], b[1])


def _waypoint_points(waypoints: Sequence[Coordinate]) -> list[tuple[float, float]]:
    if len(waypoints) < 2:
        raise InvalidInput("A road route needs at least two waypoints.")
    points = []
    for index, waypoint in enumerate(waypoints):
        validate_coordinates(waypoint.lat, waypoint.lng, label=f"waypoint {index}")
        points.append((float(waypoint.lat), float(waypoint.lng)))
    return points


def _stationary_route(points: list[tuple[float, float]]) -> RoadRoute:
    return RoadRoute(route_coords=[points[0], points[-1]], distance_km=0.0, duration_min=0.0)
