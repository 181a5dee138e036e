"""Provider-neutral directions contract and client factory."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

import httpx

from ...config import settings


@dataclass(slots=True)
class DirectionsResult:
    """Normalized directions response.

    ``coordinates`` are (lat, lon) pairs in travel order; ``waypoint_count`` is
    the number of stops the provider routed through.
    """

    coordinates: list[tuple[float, float]]
    distance_m: float
    duration_s: float
    waypoint_count: int


class DirectionsClient(Protocol):
    def route(self, coordinates: Sequence[tuple[float, float]]) -> DirectionsResult: ...

    async def aroute(self, coordinates: Sequence[tuple[float, float]]) -> DirectionsResult: ...


def get_directions_client(
    provider: str | None = None,
    *,
    transport: httpx.BaseTransport | None = None,
    async_transport: httpx.AsyncBaseTransport | None = None,
) -> DirectionsClient:
    """Instantiate the configured directions client.

    Raises ValueError when the provider is unknown or not configured.
    """
    from .ors_client import OpenRouteServiceClient
    from .osrm_client import OSRMClient

    match provider or settings.directions_provider:
        case "osrm":
            return OSRMClient(transport=transport, async_transport=async_transport)
        case "openrouteservice":
            return OpenRouteServiceClient(transport=transport, async_transport=async_transport)
        case other:
            raise ValueError(f"Unknown directions provider '{other}'.")


def check_health(provider: str | None = None, *, transport: httpx.BaseTransport | None = None) -> bool:
    """Check directions service health with a minimal two-point route request.

    Public endpoints may not expose a /health endpoint, so connectivity is
    tested by routing between two points in Berlin.
    """
    try:
        client = get_directions_client(provider, transport=transport)
        client.route([(52.517037, 13.388860), (52.496891, 13.385983)])
    except (httpx.HTTPError, ConnectionError, ValueError, KeyError, TypeError):
        return False
    return True
