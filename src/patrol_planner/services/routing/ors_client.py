"""HTTP client for the OpenRouteService directions API."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Sequence

import httpx

from ...config import settings
from .directions import DirectionsResult

DEFAULT_ORS_BASE_URL = "https://api.openrouteservice.org"

# OSRM-style profile names accepted in settings
_PROFILE_ALIASES = {
    "driving": "driving-car",
    "cycling": "cycling-regular",
    "walking": "foot-walking",
}

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

logger = logging.getLogger(__name__)


class OpenRouteServiceClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
        async_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.directions_base_url or DEFAULT_ORS_BASE_URL).rstrip("/")
        self.api_key = api_key or settings.directions_api_key
        if not self.api_key:
            raise ValueError("OpenRouteService API key is not configured.")
        raw_profile = profile or settings.directions_profile
        self.profile = _PROFILE_ALIASES.get(raw_profile, raw_profile)
        self.timeout = timeout if timeout is not None else settings.directions_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.directions_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.directions_backoff_seconds
        self.transport = transport
        self.async_transport = async_transport

    def _headers(self) -> dict[str, str]:
        return {"Authorization": self.api_key, "Content-Type": "application/json"}

    def _route_request(self, coordinates: Sequence[tuple[float, float]]) -> tuple[str, dict]:
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for an OpenRouteService route.")
        body = {"coordinates": [[lon, lat] for lat, lon in coordinates]}
        return f"{self.base_url}/v2/directions/{self.profile}/geojson", body

    def route(self, coordinates: Sequence[tuple[float, float]]) -> DirectionsResult:
        """Get the road route through ``coordinates`` ((lat, lon) tuples) in the given order."""
        url, body = self._route_request(coordinates)
        with httpx.Client(timeout=httpx.Timeout(self.timeout, connect=10.0), transport=self.transport) as client:
            attempt = 0
            while True:
                try:
                    response = client.post(url, json=body, headers=self._headers())
                    response.raise_for_status()
                    return parse_geojson_response(response.json())
                except httpx.HTTPStatusError as e:
                    attempt += 1
                    if e.response.status_code not in _RETRYABLE_STATUS_CODES or attempt > self.max_retries:
                        raise
                    time.sleep(self.backoff_seconds * attempt)
                except httpx.TransportError as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"OpenRouteService request failed after {self.max_retries} retries: {e}")
                        raise ConnectionError(f"Failed to reach OpenRouteService at {self.base_url}: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OpenRouteService error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)

    async def aroute(self, coordinates: Sequence[tuple[float, float]]) -> DirectionsResult:
        url, body = self._route_request(coordinates)
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0), transport=self.async_transport
        ) as client:
            attempt = 0
            while True:
                try:
                    response = await client.post(url, json=body, headers=self._headers())
                    response.raise_for_status()
                    return parse_geojson_response(response.json())
                except httpx.HTTPStatusError as e:
                    attempt += 1
                    if e.response.status_code not in _RETRYABLE_STATUS_CODES or attempt > self.max_retries:
                        raise
                    await asyncio.sleep(self.backoff_seconds * attempt)
                except httpx.TransportError as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(f"Failed to reach OpenRouteService at {self.base_url}: {e}") from e
                    await asyncio.sleep(self.backoff_seconds * (2 ** (attempt - 1)))


def _as_dict(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"OpenRouteService {what} is not a JSON object.")
    return value


def _line_point(point: Any) -> tuple[float, float]:
    if not isinstance(point, (list, tuple)) or len(point) < 2:
        raise ValueError(f"OpenRouteService line point {point!r} is not a [lon, lat] pair.")
    return float(point[1]), float(point[0])


def parse_geojson_response(data: Any) -> DirectionsResult:
    """Normalize an OpenRouteService GeoJSON directions response."""
    if not isinstance(data, dict):
        raise ValueError("OpenRouteService response is not a JSON object.")
    if "error" in data:
        error = data["error"]
        message = error.get("message") if isinstance(error, dict) else error
        raise ValueError(f"OpenRouteService route request failed: {message}")

    features = data.get("features") or []
    if not isinstance(features, list) or not features:
        raise ValueError("OpenRouteService response contains no route features.")
    feature = _as_dict(features[0], "route feature")
    line = _as_dict(feature.get("geometry"), "route geometry").get("coordinates") or []
    if not isinstance(line, list) or len(line) < 2:
        raise ValueError("OpenRouteService route is missing its line geometry.")
    properties = _as_dict(feature.get("properties"), "route properties")
    summary = _as_dict(properties.get("summary"), "route summary")
    way_points = properties.get("way_points") or []
    if not isinstance(way_points, list):
        raise ValueError("OpenRouteService route has malformed way_points.")

    return DirectionsResult(
        coordinates=[_line_point(point) for point in line],
        # ORS omits distance/duration for zero-length routes
        distance_m=float(summary.get("distance", 0.0)),
        duration_s=float(summary.get("duration", 0.0)),
        waypoint_count=len(way_points),
    )
