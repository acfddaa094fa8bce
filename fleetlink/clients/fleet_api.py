"""
Client for the manufacturer's vehicle-listing API.

Unlike the OAuth client, failures here raise: reporting an empty fleet on
error would be indistinguishable from an account with no vehicles.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from fleetlink.core.config import FleetSettings

logger = logging.getLogger(__name__)


class FleetApiError(Exception):
    """Base error for vehicle API failures."""


class VehicleFetchError(FleetApiError):
    """Raised when the vehicle list cannot be retrieved or parsed."""


class FleetVehicle(BaseModel):
    """One entry of the provider's vehicle list, with text fields normalized."""

    id: str = ""
    vin: str = ""
    display_name: str = ""
    state: str = ""

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "FleetVehicle":
        fields = {_fold(key): value for key, value in payload.items()}
        return cls(
            id=_text(fields.get("id")),
            vin=_text(fields.get("vin")),
            display_name=_text(fields.get("displayname")),
            state=_text(fields.get("state")),
        )


def _fold(key: Any) -> str:
    # "display_name", "displayName" and "DisplayName" all match.
    return str(key).lower().replace("_", "")


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def parse_vehicle_list(body: Any) -> List[FleetVehicle]:
    """Normalize the ``{"response": [...], "count": n}`` envelope."""
    if body is None:
        return []
    if not isinstance(body, dict):
        raise VehicleFetchError("Vehicle list response is not a JSON object.")
    envelope = {_fold(key): value for key, value in body.items()}
    items = envelope.get("response")
    if items is None:
        return []
    if not isinstance(items, list):
        raise VehicleFetchError("Vehicle list 'response' field is not a list.")
    return [FleetVehicle.from_payload(item) for item in items if isinstance(item, dict)]


class FleetApiClient:
    """Read-only access to the vehicles owned by a manufacturer account."""

    VEHICLES_PATH = "/api/1/vehicles"

    def __init__(
        self,
        settings: FleetSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = settings.api_base_url.rstrip("/")
        self._timeout = settings.http_timeout_seconds
        self._transport = transport

    async def list_vehicles(self, access_token: str) -> List[FleetVehicle]:
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.get(f"{self._base_url}{self.VEHICLES_PATH}", headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise VehicleFetchError(f"Failed to fetch vehicles: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise VehicleFetchError("Vehicle list response is not valid JSON.") from exc

        vehicles = parse_vehicle_list(body)
        logger.debug("Fleet API returned %d vehicles", len(vehicles))
        return vehicles


__all__ = [
    "FleetApiClient",
    "FleetApiError",
    "FleetVehicle",
    "VehicleFetchError",
    "parse_vehicle_list",
]
