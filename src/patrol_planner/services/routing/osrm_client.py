"""HTTP client for interacting with OSRM services."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Sequence

import httpx

from ...config import settings
from .directions import DirectionsResult

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
        async_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.directions_base_url
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.base_url = self.base_url.rstrip("/")
        self.profile = profile or settings.directions_profile
        self.timeout = timeout if timeout is not None else settings.directions_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.directions_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.directions_backoff_seconds
        self.transport = transport
        self.async_transport = async_transport

    def _get_client(self) -> httpx.Client:
        return httpx.Client(timeout=httpx.Timeout(self.timeout, connect=10.0), transport=self.transport)

    def _get_async_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0), transport=self.async_transport)

    def _route_request(self, coordinates: Sequence[tuple[float, float]]) -> tuple[str, dict]:
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM route.")

        # OSRM route endpoint expects coordinates as "lon,lat;lon,lat;..."
        coordinate_str = ";".join(f"{lon},{lat}" for lat, lon in coordinates)
        params = {
            "overview": "full",
            "geometries": "polyline",
            "steps": "false",
        }
        return f"{self.base_url}/route/v1/{self.profile}/{coordinate_str}", params

    def route(self, coordinates: Sequence[tuple[float, float]]) -> DirectionsResult:
        """Get the road route through ``coordinates`` ((lat, lon) tuples) in the given order."""
        url, params = self._route_request(coordinates)

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    return parse_route_response(response.json())
                except httpx.HTTPStatusError as e:
                    attempt += 1
                    if e.response.status_code not in _RETRYABLE_STATUS_CODES or attempt > self.max_retries:
                        raise
                    time.sleep(self.backoff_seconds * attempt)
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"OSRM route request timed out after {self.max_retries} retries: {e}")
                        raise
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM route timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except (httpx.TransportError, OSError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(f"Failed to connect to OSRM service at {self.base_url}: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
        finally:
            client.close()

    async def aroute(self, coordinates: Sequence[tuple[float, float]]) -> DirectionsResult:
        """Asyncio variant of :meth:`route`; cancelling the task aborts the request."""
        url, params = self._route_request(coordinates)

        async with self._get_async_client() as client:
            attempt = 0
            while True:
                try:
                    response = await client.get(url, params=params)
                    response.raise_for_status()
                    return parse_route_response(response.json())
                except httpx.HTTPStatusError as e:
                    attempt += 1
                    if e.response.status_code not in _RETRYABLE_STATUS_CODES or attempt > self.max_retries:
                        raise
                    await asyncio.sleep(self.backoff_seconds * attempt)
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"OSRM route request timed out after {self.max_retries} retries: {e}")
                        raise
                    await asyncio.sleep(self.backoff_seconds * (2 ** (attempt - 1)))
                except (httpx.TransportError, OSError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(f"Failed to connect to OSRM service at {self.base_url}: {e}") from e
                    await asyncio.sleep(self.backoff_seconds * (2 ** (attempt - 1)))


def parse_route_response(data: Any) -> DirectionsResult:
    """Normalize an OSRM /route response, raising ValueError when it is unusable."""
    if not isinstance(data, dict):
        raise ValueError("OSRM route response is not a JSON object.")
    if data.get("code") != "Ok":
        error_msg = data.get("message", "Unknown OSRM route error")
        raise ValueError(f"OSRM route request failed: {error_msg}")

    routes = data.get("routes") or []
    if not isinstance(routes, list) or not routes:
        raise ValueError("OSRM route response contains no routes.")
    best = routes[0]
    if not isinstance(best, dict):
        raise ValueError("OSRM route entry is not a JSON object.")
    geometry = best.get("geometry")
    if not isinstance(geometry, str) or not geometry:
        raise ValueError("OSRM route response is missing the polyline geometry.")
    try:
        coordinates = decode_polyline(geometry)
    except IndexError as exc:
        raise ValueError("OSRM route geometry is not a valid polyline.") from exc

    waypoints = data.get("waypoints") or []
    if not isinstance(waypoints, list):
        raise ValueError("OSRM route response has malformed waypoints.")
    return DirectionsResult(
        coordinates=coordinates,
        distance_m=float(best["distance"]),
        duration_s=float(best["duration"]),
        waypoint_count=len(waypoints),
    )


def decode_polyline(polyline: str) -> list[tuple[float, float]]:
    """Decode Google polyline string to list of (lat, lon) coordinates.

    OSRM uses Google's polyline encoding format (precision 5) for route geometry.
    """
    coordinates = []
    index = 0
    lat = 0
    lon = 0

    while index < len(polyline):
        # Decode latitude
        shift = 0
        result = 0
        while True:
            b = ord(polyline[index]) - 63
            index += 1
            result |= (b & 0x1f) << shift
            shift += 5
            if b < 0x20:
                break
        dlat = ~(result >> 1) if (result & 1) else (result >> 1)
        lat += dlat

        # Decode longitude
        shift = 0
        result = 0
        while True:
            b = ord(polyline[index]) - 63
            index += 1
            result |= (b & 0x1f) << shift
            shift += 5
            if b < 0x20:
                break
        dlon = ~(result >> 1) if (result & 1) else (result >> 1)
        lon += dlon

        coordinates.append((lat / 1e5, lon / 1e5))

    return coordinates
