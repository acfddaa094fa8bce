"""
Reconcile the manufacturer's vehicle list into locally owned records.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Set

from fleetlink.clients.fleet_api import FleetVehicle
from fleetlink.models.account import AccountLink, User
from fleetlink.models.vehicle import VehicleRecord
from fleetlink.services.token_cipher import TokenCipher

logger = logging.getLogger(__name__)


class UnitOfWork(Protocol):
    def save_user(self, user: User) -> None: ...

    def save_vehicle(self, vehicle: VehicleRecord) -> None: ...

    def commit(self) -> None: ...


class VehicleRepository(Protocol):
    def find_vehicles_by_identifier(self, vehicle_identifier: str) -> List[VehicleRecord]: ...

    def unit_of_work(self) -> UnitOfWork: ...


class VehicleSource(Protocol):
    async def list_vehicles(self, access_token: str) -> List[FleetVehicle]: ...


class VehicleReconciler:
    """Merge one account's remote fleet into local storage.

    Reconciliation only ever adds or updates records owned by the syncing
    account. Records owned by another account are never touched, even when
    the vehicle identifier collides, and records missing from the fetch are
    left as they are.

    Runs for the same account are not serialized here; callers must hold a
    per-account lock.
    """

    def __init__(
        self,
        repository: VehicleRepository,
        vehicle_source: VehicleSource,
        token_cipher: TokenCipher,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repository = repository
        self._source = vehicle_source
        self._cipher = token_cipher
        self._clock = clock

    async def reconcile(self, link: Optional[AccountLink]) -> int:
        """Return the number of records created or updated in this run."""
        if link is None or not link.is_active or not link.access_token:
            logger.warning("Skipping vehicle sync; no active account link with tokens")
            return 0

        access_token = self._cipher.decrypt(link.access_token)
        vehicles = await self._source.list_vehicles(access_token or "")
        logger.info("Found %d vehicles for account %s", len(vehicles), link.account_id)

        unit_of_work = self._repository.unit_of_work()
        now = self._clock()
        changed = 0
        seen: Set[str] = set()

        for vehicle in vehicles:
            identifier = vehicle.vin.strip()
            if not identifier:
                logger.warning("Ignoring vehicle %r without an identifier", vehicle.id)
                continue
            if identifier in seen:
                continue
            seen.add(identifier)

            existing = self._repository.find_vehicles_by_identifier(identifier)
            owned = next((r for r in existing if r.account_id == link.account_id), None)

            if owned is not None:
                owned.update_display_name(vehicle.display_name)
                owned.record_sync(now)
                unit_of_work.save_vehicle(owned)
                changed += 1
                logger.info("Updated vehicle %s for account %s", identifier, link.account_id)
            elif existing:
                logger.info(
                    "Vehicle %s is owned by another account; skipping for %s",
                    identifier,
                    link.account_id,
                )
            else:
                record = VehicleRecord.link(
                    link.account_id, identifier, vehicle.display_name, now=now
                )
                unit_of_work.save_vehicle(record)
                changed += 1
                logger.info("Added new vehicle %s for account %s", identifier, link.account_id)

        unit_of_work.commit()
        return changed


__all__ = ["UnitOfWork", "VehicleReconciler", "VehicleRepository", "VehicleSource"]
