import json
from urllib.parse import unquote

import httpx
import pytest

from patrol_planner.config import settings
from patrol_planner.models.domain import BaseLocation
from patrol_planner.models.exceptions import InvalidInput, RoutingUnavailable
from patrol_planner.services.geospatial import haversine_km, path_length_km
from patrol_planner.services.routing.directions import check_health, get_directions_client
from patrol_planner.services.routing.ors_client import OpenRouteServiceClient
from patrol_planner.services.routing.osrm_client import OSRMClient, decode_polyline
from patrol_planner.services.routing.road_route import RoadRouteAdapter

BASE = BaseLocation(lat=13.05, lng=80.25)
ZONE_A = BaseLocation(lat=13.08, lng=80.27)
ZONE_B = BaseLocation(lat=13.03, lng=80.22)


@pytest.fixture
def anyio_backend():
    return "asyncio"


def encode_polyline(points):
    """Google polyline encoding (precision 5)."""

    def encode_value(value):
        value = ~(value << 1) if value < 0 else value << 1
        chunks = []
        while value >= 0x20:
            chunks.append(chr((0x20 | (value & 0x1F)) + 63))
            value >>= 5
        chunks.append(chr(value + 63))
        return "".join(chunks)

    encoded = []
    prev_lat = prev_lon = 0
    for lat, lon in points:
        lat_i, lon_i = round(lat * 1e5), round(lon * 1e5)
        encoded.append(encode_value(lat_i - prev_lat))
        encoded.append(encode_value(lon_i - prev_lon))
        prev_lat, prev_lon = lat_i, lon_i
    return "".join(encoded)


def _requested_points(request: httpx.Request) -> list[tuple[float, float]]:
    coordinate_str = unquote(request.url.path).rsplit("/", 1)[-1]
    points = []
    for pair in coordinate_str.split(";"):
        lon, lat = pair.split(",")
        points.append((float(lat), float(lon)))
    return points


class FakeOSRM:
    """Answers /route requests with a geometry through the requested stops."""

    def __init__(self, distance_m=9500.0, duration_s=900.0, offset_deg=0.0, waypoint_count=None, status_code=200):
        self.distance_m = distance_m
        self.duration_s = duration_s
        self.offset_deg = offset_deg
        self.waypoint_count = waypoint_count
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"message": "upstream failure"})
        points = _requested_points(request)
        geometry = [(lat + self.offset_deg, lng) for lat, lng in points]
        count = self.waypoint_count if self.waypoint_count is not None else len(points)
        return httpx.Response(
            200,
            json={
                "code": "Ok",
                "routes": [
                    {"geometry": encode_polyline(geometry), "distance": self.distance_m, "duration": self.duration_s}
                ],
                "waypoints": [{"location": [lng, lat]} for lat, lng in points[:count]],
            },
        )


def _osrm_adapter(handler) -> RoadRouteAdapter:
    transport = httpx.MockTransport(handler)
    client = OSRMClient(
        base_url="http://osrm.test",
        profile="driving",
        max_retries=0,
        backoff_seconds=0,
        transport=transport,
        async_transport=transport,
    )
    return RoadRouteAdapter(client, snap_tolerance_km=0.05)


def test_polyline_helper_matches_decoder():
    points = [(38.5, -120.2), (40.7, -120.95), (43.252, -126.453)]

    assert encode_polyline(points) == "_p~iF~ps|U_ulLnnqC_mqNvxq`@"
    assert decode_polyline(encode_polyline(points)) == points


def test_road_route_follows_waypoints_in_order():
    fake = FakeOSRM()
    waypoints = [BASE, ZONE_A, ZONE_B, BASE]

    road = _osrm_adapter(fake).to_road_route(waypoints)

    assert len(fake.requests) == 1
    request = fake.requests[0]
    assert request.method == "GET"
    assert unquote(request.url.path).startswith("/route/v1/driving/")
    assert request.url.params["geometries"] == "polyline"
    assert _requested_points(request) == [(13.05, 80.25), (13.08, 80.27), (13.03, 80.22), (13.05, 80.25)]

    assert haversine_km(*road.route_coords[0], BASE.lat, BASE.lng) <= 0.05
    assert haversine_km(*road.route_coords[-1], BASE.lat, BASE.lng) <= 0.05
    assert road.route_coords[1] == pytest.approx((13.08, 80.27))
    assert road.distance_km == pytest.approx(9.5)
    assert road.distance_km >= path_length_km(waypoints)
    assert road.duration_min == pytest.approx(15.0)


def test_route_endpoints_are_anchored_to_headquarters():
    # ~220 m north of every stop
    road = _osrm_adapter(FakeOSRM(offset_deg=0.002)).to_road_route([BASE, ZONE_A, BASE])

    assert road.route_coords[0] == (BASE.lat, BASE.lng)
    assert road.route_coords[-1] == (BASE.lat, BASE.lng)
    assert len(road.route_coords) == 5


def test_provider_distance_below_geodesic_is_clamped():
    waypoints = [BASE, ZONE_A, BASE]

    road = _osrm_adapter(FakeOSRM(distance_m=1000.0)).to_road_route(waypoints)

    assert road.distance_km == pytest.approx(path_length_km(waypoints))


def test_stationary_route_needs_no_request():
    fake = FakeOSRM()

    road = _osrm_adapter(fake).to_road_route([BASE, BASE])

    assert fake.requests == []
    assert road.distance_km == 0.0
    assert road.duration_min == 0.0
    assert road.route_coords == [(BASE.lat, BASE.lng), (BASE.lat, BASE.lng)]


def _no_route(request):
    return httpx.Response(200, json={"code": "NoRoute", "message": "Impossible route between points"})


def _refuse_connection(request):
    raise httpx.ConnectError("connection refused", request=request)


@pytest.mark.parametrize(
    "handler",
    [
        _no_route,
        FakeOSRM(status_code=500),
        _refuse_connection,
        FakeOSRM(waypoint_count=2),
        lambda request: httpx.Response(200, json={"code": "Ok", "routes": [{"distance": 1, "duration": 1}]}),
        lambda request: httpx.Response(200, json=[]),
        lambda request: httpx.Response(200, json={"code": "Ok", "routes": ["x"]}),
        lambda request: httpx.Response(200, json={"code": "Ok", "routes": {"geometry": "_p~iF~ps|U"}}),
        lambda request: httpx.Response(200, text="<html>busy</html>"),
    ],
    ids=[
        "no-route",
        "server-error",
        "connect-error",
        "dropped-waypoint",
        "missing-geometry",
        "array-payload",
        "route-not-object",
        "routes-not-list",
        "not-json",
    ],
)
def test_provider_failures_raise_routing_unavailable(handler):
    with pytest.raises(RoutingUnavailable):
        _osrm_adapter(handler).to_road_route([BASE, ZONE_A, BASE])


def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"code": "InvalidQuery"})

    transport = httpx.MockTransport(handler)
    client = OSRMClient(base_url="http://osrm.test", max_retries=3, backoff_seconds=0, transport=transport)

    with pytest.raises(RoutingUnavailable):
        RoadRouteAdapter(client).to_road_route([BASE, ZONE_A])
    assert len(calls) == 1


def test_server_errors_are_retried():
    responses = [httpx.Response(503), None]
    fake = FakeOSRM()

    def handler(request):
        response = responses.pop(0)
        return response if response is not None else fake(request)

    transport = httpx.MockTransport(handler)
    client = OSRMClient(base_url="http://osrm.test", max_retries=2, backoff_seconds=0, transport=transport)

    road = RoadRouteAdapter(client).to_road_route([BASE, ZONE_A, BASE])
    assert road.duration_min == pytest.approx(15.0)


def test_single_waypoint_is_invalid():
    with pytest.raises(InvalidInput):
        _osrm_adapter(FakeOSRM()).to_road_route([BASE])


def test_reachability():
    assert _osrm_adapter(FakeOSRM()).is_road_reachable(BASE, ZONE_A) is True
    assert _osrm_adapter(_no_route).is_road_reachable(BASE, ZONE_A) is False


def test_unconfigured_provider_raises_routing_unavailable(monkeypatch):
    monkeypatch.setattr(settings, "directions_provider", "osrm")
    monkeypatch.setattr(settings, "directions_base_url", None)

    with pytest.raises(RoutingUnavailable):
        RoadRouteAdapter().to_road_route([BASE, ZONE_A, BASE])


def test_unknown_provider_is_rejected():
    with pytest.raises(ValueError):
        get_directions_client("valhalla")


def test_check_health(monkeypatch):
    monkeypatch.setattr(settings, "directions_base_url", "http://osrm.test")
    monkeypatch.setattr(settings, "directions_backoff_seconds", 0.0)

    assert check_health("osrm", transport=httpx.MockTransport(FakeOSRM())) is True
    assert check_health("osrm", transport=httpx.MockTransport(_refuse_connection)) is False


@pytest.mark.anyio
async def test_async_road_route():
    fake = FakeOSRM(distance_m=12000.0, duration_s=1500.0)

    road = await _osrm_adapter(fake).ato_road_route([BASE, ZONE_A, ZONE_B, BASE])

    assert len(fake.requests) == 1
    assert road.distance_km == pytest.approx(12.0)
    assert road.duration_min == pytest.approx(25.0)


@pytest.mark.anyio
async def test_async_road_route_failure():
    with pytest.raises(RoutingUnavailable):
        await _osrm_adapter(_no_route).ato_road_route([BASE, ZONE_A, BASE])
    assert await _osrm_adapter(_no_route).ais_road_reachable(BASE, ZONE_A) is False


def _ors_handler(requests):
    def handler(request):
        requests.append(request)
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "type": "FeatureCollection",
                "features": [
                    {
                        "geometry": {"type": "LineString", "coordinates": body["coordinates"]},
                        "properties": {
                            "summary": {"distance": 8400.0, "duration": 780.0},
                            "way_points": list(range(len(body["coordinates"]))),
                        },
                    }
                ],
            },
        )

    return handler


def test_openrouteservice_client():
    requests = []
    client = OpenRouteServiceClient(
        base_url="http://ors.test",
        api_key="secret",
        profile="driving",
        max_retries=0,
        transport=httpx.MockTransport(_ors_handler(requests)),
    )

    road = RoadRouteAdapter(client).to_road_route([BASE, ZONE_A, BASE])

    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/v2/directions/driving-car/geojson"
    assert request.headers["Authorization"] == "secret"
    assert json.loads(request.content) == {"coordinates": [[80.25, 13.05], [80.27, 13.08], [80.25, 13.05]]}
    assert road.route_coords == [(13.05, 80.25), (13.08, 80.27), (13.05, 80.25)]
    assert road.distance_km == pytest.approx(8.4)
    assert road.duration_min == pytest.approx(13.0)


def test_openrouteservice_error_response():
    def handler(request):
        return httpx.Response(200, json={"error": {"code": 2010, "message": "Could not find routable point"}})

    client = OpenRouteServiceClient(
        base_url="http://ors.test", api_key="secret", max_retries=0, transport=httpx.MockTransport(handler)
    )

    with pytest.raises(RoutingUnavailable):
        RoadRouteAdapter(client).to_road_route([BASE, ZONE_A])


def test_openrouteservice_requires_api_key(monkeypatch):
    monkeypatch.setattr(settings, "directions_api_key", None)

    with pytest.raises(ValueError):
        OpenRouteServiceClient(base_url="http://ors.test")


def _ors_feature(coordinates, properties=None):
    if properties is None:
        properties = {"summary": {"distance": 100.0, "duration": 10.0}, "way_points": [0, 1]}
    return {"features": [{"geometry": {"coordinates": coordinates}, "properties": properties}]}


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"features": ["x"]},
        {"features": {"geometry": {}}},
        _ors_feature([[80.25], [80.25]]),
        _ors_feature([[80.25, 13.05], "80.27,13.08"]),
        _ors_feature([[80.25, 13.05], [80.27, None]]),
        _ors_feature([[80.25, 13.05], [80.27, 13.08]], properties=["summary"]),
        _ors_feature([[80.25, 13.05], [80.27, 13.08]], properties={"summary": "fast", "way_points": [0, 1]}),
        {"features": [{"geometry": "LineString"}]},
    ],
    ids=[
        "array-payload",
        "feature-not-object",
        "features-not-list",
        "short-point",
        "point-not-pair",
        "null-coordinate",
        "properties-not-object",
        "summary-not-object",
        "geometry-not-object",
    ],
)
def test_malformed_openrouteservice_response_raises_routing_unavailable(payload):
    client = OpenRouteServiceClient(
        base_url="http://ors.test",
        api_key="secret",
        max_retries=0,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=payload)),
    )

    with pytest.raises(RoutingUnavailable):
        RoadRouteAdapter(client).to_road_route([BASE, ZONE_A])


def test_check_health_handles_malformed_response(monkeypatch):
    monkeypatch.setattr(settings, "directions_base_url", "http://osrm.test")

    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"code": "Ok", "routes": ["x"]}))
    assert check_health("osrm", transport=transport) is False
