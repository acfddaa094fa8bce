try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import httpx
import pytest

from fleetlink.clients.fleet_api import (
    FleetApiClient,
    FleetVehicle,
    VehicleFetchError,
    parse_vehicle_list,
)


def test_parse_vehicle_list_normalizes_entries() -> None:
    body = {
        "response": [
            {"id": 1, "vin": "5YJ3E1EA7KF000001", "display_name": "Daily", "state": "online"},
            {"id": 2, "vin": "5YJ3E1EA7KF000002", "display_name": None, "state": "asleep"},
        ],
        "count": 2,
    }

    vehicles = parse_vehicle_list(body)

    assert vehicles == [
        FleetVehicle(id="1", vin="5YJ3E1EA7KF000001", display_name="Daily", state="online"),
        FleetVehicle(id="2", vin="5YJ3E1EA7KF000002", display_name="", state="asleep"),
    ]


def test_field_names_are_matched_case_insensitively() -> None:
    body = {"Response": [{"ID": "9", "VIN": "VIN9", "displayName": "Weekend", "State": "online"}]}

    (vehicle,) = parse_vehicle_list(body)

    assert vehicle.id == "9"
    assert vehicle.vin == "VIN9"
    assert vehicle.display_name == "Weekend"
    assert vehicle.state == "online"


@pytest.mark.parametrize("body", [None, {}, {"response": None, "count": 0}])
def test_absent_list_is_empty(body) -> None:
    assert parse_vehicle_list(body) == []


def test_non_object_items_are_ignored() -> None:
    body = {"response": ["junk", None, {"vin": "VIN1"}]}

    assert [vehicle.vin for vehicle in parse_vehicle_list(body)] == ["VIN1"]


@pytest.mark.parametrize("body", [["not", "an", "object"], {"response": "oops"}])
def test_malformed_envelope_raises(body) -> None:
    with pytest.raises(VehicleFetchError):
        parse_vehicle_list(body)


@pytest.mark.asyncio
async def test_list_vehicles_sends_bearer_token(fleet_settings) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"response": [{"vin": "VIN1", "display_name": "Car"}]})

    client = FleetApiClient(fleet_settings, transport=httpx.MockTransport(handler))

    vehicles = await client.list_vehicles("access-token")

    assert [vehicle.vin for vehicle in vehicles] == ["VIN1"]
    assert seen[0].method == "GET"
    assert str(seen[0].url) == "https://api.fleet.test/api/1/vehicles"
    assert seen[0].headers["Authorization"] == "Bearer access-token"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "outcome",
    [
        httpx.Response(401, json={"error": "unauthorized"}),
        httpx.Response(503, text="unavailable"),
        httpx.Response(200, text="<html>"),
        httpx.ConnectError("connection refused"),
    ],
)
async def test_list_vehicles_failures_raise(fleet_settings, outcome) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    client = FleetApiClient(fleet_settings, transport=httpx.MockTransport(handler))

    with pytest.raises(VehicleFetchError):
        await client.list_vehicles("access-token")
