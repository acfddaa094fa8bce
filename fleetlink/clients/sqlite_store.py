"""SQLite-backed persistence for users, account links and vehicles."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from fleetlink.models.account import AccountLink, ExternalIdentity, User
from fleetlink.models.vehicle import VehicleRecord


def _ensure_directory(db_path: Path) -> None:
    if db_path.parent and not db_path.parent.exists():
        db_path.parent.mkdir(parents=True, exist_ok=True)


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _link_to_json(link: Optional[AccountLink]) -> Optional[str]:
    if link is None:
        return None
    return json.dumps(
        {
            "account_id": link.account_id,
            "linked_at": _dt(link.linked_at),
            "is_active": link.is_active,
            "access_token": link.access_token,
            "refresh_token": link.refresh_token,
            "token_expires_at": _dt(link.token_expires_at),
            "last_synced_at": _dt(link.last_synced_at),
        }
    )


def _link_from_json(raw: Optional[str]) -> Optional[AccountLink]:
    if not raw:
        return None
    data: Dict[str, Any] = json.loads(raw)
    return AccountLink(
        account_id=data["account_id"],
        linked_at=_parse_dt(data["linked_at"]),  # type: ignore[arg-type]
        is_active=bool(data.get("is_active")),
        access_token=data.get("access_token"),
        refresh_token=data.get("refresh_token"),
        token_expires_at=_parse_dt(data.get("token_expires_at")),
        last_synced_at=_parse_dt(data.get("last_synced_at")),
    )


class SQLiteStore:
    """Repository for the user aggregate and vehicle records.

    Reads go straight to the database; writes are staged on a
    ``SQLiteUnitOfWork`` and land together in a single transaction.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        _ensure_directory(self._db_path)
        self._ensure_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    external_id TEXT NOT NULL UNIQUE,
                    email TEXT,
                    created_at TEXT NOT NULL,
                    account_link TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS vehicles (
                    id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    vehicle_identifier TEXT NOT NULL,
                    display_name TEXT,
                    is_active INTEGER NOT NULL,
                    linked_at TEXT NOT NULL,
                    last_synced_at TEXT,
                    UNIQUE (account_id, vehicle_identifier)
                )
                """
            )

    def get_user(self, user_id: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE external_id = ?", (external_id,)
            ).fetchone()
        return self._row_to_user(row) if row else None

    def find_vehicles_by_identifier(self, vehicle_identifier: str) -> List[VehicleRecord]:
        """Return every local record for an identifier, whichever account owns it."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM vehicles WHERE vehicle_identifier = ? ORDER BY linked_at",
                (vehicle_identifier,),
            ).fetchall()
        return [self._row_to_vehicle(row) for row in rows]

    def list_vehicles_for_account(self, account_id: str) -> List[VehicleRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM vehicles WHERE account_id = ? ORDER BY linked_at",
                (account_id,),
            ).fetchall()
        return [self._row_to_vehicle(row) for row in rows]

    def unit_of_work(self) -> "SQLiteUnitOfWork":
        return SQLiteUnitOfWork(self)

    def _write(self, users: List[User], vehicles: List[VehicleRecord]) -> None:
        with self._connect() as conn:
            for user in users:
                conn.execute(
                    """
                    INSERT INTO users (id, external_id, email, created_at, account_link)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        email = excluded.email,
                        account_link = excluded.account_link
                    """,
                    (
                        user.id,
                        user.external_identity.value,
                        user.email,
                        user.created_at.isoformat(),
                        _link_to_json(user.account_link),
                    ),
                )
            for vehicle in vehicles:
                conn.execute(
                    """
                    INSERT INTO vehicles (
                        id,
                        account_id,
                        vehicle_identifier,
                        display_name,
                        is_active,
                        linked_at,
                        last_synced_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        display_name = excluded.display_name,
                        is_active = excluded.is_active,
                        last_synced_at = excluded.last_synced_at
                    """,
                    (
                        vehicle.id,
                        vehicle.account_id,
                        vehicle.vehicle_identifier,
                        vehicle.display_name,
                        int(vehicle.is_active),
                        vehicle.linked_at.isoformat(),
                        _dt(vehicle.last_synced_at),
                    ),
                )

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            external_identity=ExternalIdentity(row["external_id"]),
            email=row["email"],
            created_at=datetime.fromisoformat(row["created_at"]),
            account_link=_link_from_json(row["account_link"]),
        )

    @staticmethod
    def _row_to_vehicle(row: sqlite3.Row) -> VehicleRecord:
        return VehicleRecord(
            id=row["id"],
            account_id=row["account_id"],
            vehicle_identifier=row["vehicle_identifier"],
            display_name=row["display_name"],
            is_active=bool(row["is_active"]),
            linked_at=datetime.fromisoformat(row["linked_at"]),
            last_synced_at=_parse_dt(row["last_synced_at"]),
        )


class SQLiteUnitOfWork:
    """Collects pending writes and commits them atomically."""

    def __init__(self, store: SQLiteStore) -> None:
        self._store = store
        self._users: Dict[str, User] = {}
        self._vehicles: Dict[str, VehicleRecord] = {}

    def save_user(self, user: User) -> None:
        self._users[user.id] = user

    def save_vehicle(self, vehicle: VehicleRecord) -> None:
        self._vehicles[vehicle.id] = vehicle

    @property
    def pending(self) -> int:
        return len(self._users) + len(self._vehicles)

    def commit(self) -> None:
        """Write every staged entity in one transaction, or none of them."""
        if not self.pending:
            return
        self._store._write(list(self._users.values()), list(self._vehicles.values()))
        self._users.clear()
        self._vehicles.clear()


__all__ = ["SQLiteStore", "SQLiteUnitOfWork"]
