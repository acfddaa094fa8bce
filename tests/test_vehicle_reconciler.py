try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from fleetlink.clients.fleet_api import FleetVehicle, VehicleFetchError
from fleetlink.clients.sqlite_store import SQLiteStore
from fleetlink.models.account import AccountLink
from fleetlink.models.vehicle import VehicleRecord
from fleetlink.services.token_cipher import TokenCipher
from fleetlink.services.vehicle_sync import VehicleReconciler

NOW = datetime(2025, 5, 1, 8, 0, tzinfo=timezone.utc)


class FakeVehicleSource:
    def __init__(self, vehicles: List[FleetVehicle] | None = None, error: Exception | None = None):
        self.vehicles = vehicles or []
        self.error = error
        self.tokens: List[str] = []

    async def list_vehicles(self, access_token: str) -> List[FleetVehicle]:
        self.tokens.append(access_token)
        if self.error is not None:
            raise self.error
        return list(self.vehicles)


@pytest.fixture
def store(tmp_path) -> SQLiteStore:
    return SQLiteStore(str(tmp_path / "fleet.db"))


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(secret="sync-secret")


def active_link(cipher: TokenCipher, account_id: str = "acct-A") -> AccountLink:
    return AccountLink.create(account_id, now=NOW).with_tokens(
        cipher.encrypt("plain-access"),
        cipher.encrypt("plain-refresh"),
        NOW + timedelta(hours=8),
        now=NOW,
    )


def seed(store: SQLiteStore, *records: VehicleRecord) -> None:
    unit_of_work = store.unit_of_work()
    for record in records:
        unit_of_work.save_vehicle(record)
    unit_of_work.commit()


def reconciler(store, source, cipher, now=NOW) -> VehicleReconciler:
    return VehicleReconciler(store, source, cipher, clock=lambda: now)


@pytest.mark.asyncio
async def test_new_vehicles_are_created_with_decrypted_token(store, cipher) -> None:
    source = FakeVehicleSource(
        [FleetVehicle(vin="VIN1", display_name="Daily"), FleetVehicle(vin="VIN2")]
    )

    count = await reconciler(store, source, cipher).reconcile(active_link(cipher))

    assert count == 2
    assert source.tokens == ["plain-access"]
    records = {r.vehicle_identifier: r for r in store.list_vehicles_for_account("acct-A")}
    assert set(records) == {"VIN1", "VIN2"}
    assert records["VIN1"].display_name == "Daily"
    assert records["VIN2"].display_name is None
    assert records["VIN1"].last_synced_at == NOW


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(store, cipher) -> None:
    source = FakeVehicleSource([FleetVehicle(vin="VIN1", display_name="Daily")])
    link = active_link(cipher)

    await reconciler(store, source, cipher).reconcile(link)
    first = store.list_vehicles_for_account("acct-A")
    count = await reconciler(store, source, cipher, now=NOW + timedelta(hours=1)).reconcile(link)
    second = store.list_vehicles_for_account("acct-A")

    assert count == 1
    assert len(second) == 1
    assert second[0].id == first[0].id
    assert second[0].linked_at == first[0].linked_at
    assert second[0].last_synced_at == NOW + timedelta(hours=1)


@pytest.mark.asyncio
async def test_display_name_is_updated_for_owned_vehicle(store, cipher) -> None:
    seed(store, VehicleRecord.link("acct-A", "VIN1", "Old name", now=NOW - timedelta(days=3)))
    source = FakeVehicleSource([FleetVehicle(vin="VIN1", display_name="New name")])

    count = await reconciler(store, source, cipher).reconcile(active_link(cipher))

    (record,) = store.list_vehicles_for_account("acct-A")
    assert count == 1
    assert record.display_name == "New name"
    assert record.linked_at == NOW - timedelta(days=3)
    assert record.last_synced_at == NOW


@pytest.mark.asyncio
async def test_vehicle_owned_by_other_account_is_left_alone(store, cipher) -> None:
    foreign = VehicleRecord.link("acct-B", "VIN1", "Theirs", now=NOW - timedelta(days=1))
    seed(store, foreign)
    source = FakeVehicleSource(
        [FleetVehicle(vin="VIN1", display_name="Mine now"), FleetVehicle(vin="VIN2")]
    )

    count = await reconciler(store, source, cipher).reconcile(active_link(cipher))

    assert count == 1
    (other,) = store.list_vehicles_for_account("acct-B")
    assert other.id == foreign.id
    assert other.display_name == "Theirs"
    assert other.last_synced_at == NOW - timedelta(days=1)
    assert [r.vehicle_identifier for r in store.list_vehicles_for_account("acct-A")] == ["VIN2"]


@pytest.mark.asyncio
async def test_missing_remote_vehicles_are_kept(store, cipher) -> None:
    seed(store, VehicleRecord.link("acct-A", "VIN-OLD", now=NOW - timedelta(days=7)))
    source = FakeVehicleSource([FleetVehicle(vin="VIN-NEW")])

    await reconciler(store, source, cipher).reconcile(active_link(cipher))

    identifiers = sorted(r.vehicle_identifier for r in store.list_vehicles_for_account("acct-A"))
    assert identifiers == ["VIN-NEW", "VIN-OLD"]
    old = store.find_vehicles_by_identifier("VIN-OLD")[0]
    assert old.is_active is True


@pytest.mark.asyncio
async def test_blank_and_duplicate_identifiers_are_skipped(store, cipher) -> None:
    source = FakeVehicleSource(
        [
            FleetVehicle(id="1", vin=""),
            FleetVehicle(id="2", vin="   "),
            FleetVehicle(id="3", vin="VIN1", display_name="First"),
            FleetVehicle(id="4", vin="VIN1", display_name="Second"),
        ]
    )

    count = await reconciler(store, source, cipher).reconcile(active_link(cipher))

    assert count == 1
    (record,) = store.list_vehicles_for_account("acct-A")
    assert record.display_name == "First"


@pytest.mark.asyncio
async def test_empty_remote_list_changes_nothing(store, cipher) -> None:
    count = await reconciler(store, FakeVehicleSource([]), cipher).reconcile(active_link(cipher))

    assert count == 0
    assert store.list_vehicles_for_account("acct-A") == []


@pytest.mark.asyncio
async def test_inactive_or_tokenless_links_skip_the_fetch(store, cipher) -> None:
    source = FakeVehicleSource([FleetVehicle(vin="VIN1")])
    sync = reconciler(store, source, cipher)

    assert await sync.reconcile(None) == 0
    assert await sync.reconcile(AccountLink.create("acct-A", now=NOW)) == 0
    assert await sync.reconcile(active_link(cipher).deactivate()) == 0
    assert source.tokens == []


@pytest.mark.asyncio
async def test_fetch_failure_propagates_and_commits_nothing(store, cipher) -> None:
    seed(store, VehicleRecord.link("acct-A", "VIN1", "Keep", now=NOW - timedelta(days=1)))
    source = FakeVehicleSource(error=VehicleFetchError("provider down"))

    with pytest.raises(VehicleFetchError):
        await reconciler(store, source, cipher).reconcile(active_link(cipher))

    (record,) = store.list_vehicles_for_account("acct-A")
    assert record.display_name == "Keep"
    assert record.last_synced_at == NOW - timedelta(days=1)


class BlockingVehicleSource:
    def __init__(self, vehicles: List[FleetVehicle]) -> None:
        self.vehicles = vehicles
        self.entered = asyncio.Event()

    async def list_vehicles(self, access_token: str) -> List[FleetVehicle]:
        self.entered.set()
        await asyncio.Event().wait()
        return list(self.vehicles)


@pytest.mark.asyncio
async def test_cancellation_during_fetch_commits_nothing(store, cipher) -> None:
    seed(store, VehicleRecord.link("acct-A", "VIN1", "Keep", now=NOW - timedelta(days=1)))
    source = BlockingVehicleSource(
        [FleetVehicle(vin="VIN1", display_name="New"), FleetVehicle(vin="VIN2")]
    )

    task = asyncio.create_task(reconciler(store, source, cipher).reconcile(active_link(cipher)))
    await source.entered.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    (record,) = store.list_vehicles_for_account("acct-A")
    assert record.display_name == "Keep"
    assert record.last_synced_at == NOW - timedelta(days=1)
