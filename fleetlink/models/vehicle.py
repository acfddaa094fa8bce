"""
Domain models for locally tracked vehicles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4


def _clean_display_name(display_name: Optional[str]) -> Optional[str]:
    if display_name is None:
        return None
    cleaned = display_name.strip()
    return cleaned or None


@dataclass(slots=True)
class VehicleRecord:
    """A vehicle as claimed by one manufacturer account."""

    account_id: str
    vehicle_identifier: str
    display_name: Optional[str] = None
    id: str = field(default_factory=lambda: uuid4().hex)
    is_active: bool = True
    linked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_synced_at: Optional[datetime] = None

    @classmethod
    def link(
        cls,
        account_id: str,
        vehicle_identifier: str,
        display_name: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> "VehicleRecord":
        """Create a record for a vehicle seen for the first time."""
        if not vehicle_identifier or not vehicle_identifier.strip():
            raise ValueError("Vehicle identifier cannot be empty.")
        linked_at = now or datetime.now(timezone.utc)
        return cls(
            account_id=account_id,
            vehicle_identifier=vehicle_identifier.strip(),
            display_name=_clean_display_name(display_name),
            linked_at=linked_at,
            last_synced_at=linked_at,
        )

    def update_display_name(self, display_name: Optional[str]) -> None:
        self.display_name = _clean_display_name(display_name)

    def record_sync(self, synced_at: Optional[datetime] = None) -> None:
        self.last_synced_at = synced_at or datetime.now(timezone.utc)


__all__ = ["VehicleRecord"]
