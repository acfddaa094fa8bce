"""
Domain models for local users and their link to a manufacturer account.

``AccountLink`` is an immutable value: every transition returns a new link and
the owning ``User`` swaps its reference, so callers holding an older link can
never mutate the current one through an alias.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountLinkError(Exception):
    """Raised when a link transition is attempted from an invalid state."""


class AlreadyLinkedError(AccountLinkError):
    """The user already has an active manufacturer account linked."""


class NoAccountLinkedError(AccountLinkError):
    """The user has never linked a manufacturer account."""


class AccountNotActiveError(AccountLinkError):
    """The user's link exists but has been deactivated."""


class AlreadyActiveError(AccountLinkError):
    """Reactivation was requested for a link that is already active."""


class LinkStatus(str, enum.Enum):
    UNLINKED = "unlinked"
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity-provider subject that a local user signs in with."""

    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError("External identity cannot be empty.")
        object.__setattr__(self, "value", self.value.strip())

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AccountLink:
    """Snapshot of a user's connection to a manufacturer account.

    Token fields hold ciphertext produced by ``TokenCipher``; this model never
    sees plaintext tokens.
    """

    account_id: str
    linked_at: datetime
    is_active: bool = True
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None

    @classmethod
    def create(cls, account_id: str, *, now: Optional[datetime] = None) -> "AccountLink":
        if not account_id or not account_id.strip():
            raise ValueError("Account identifier cannot be empty.")
        return cls(account_id=account_id.strip(), linked_at=now or _utcnow())

    @property
    def status(self) -> LinkStatus:
        return LinkStatus.ACTIVE if self.is_active else LinkStatus.INACTIVE

    def with_tokens(
        self,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        *,
        now: Optional[datetime] = None,
    ) -> "AccountLink":
        return replace(
            self,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=expires_at,
            last_synced_at=now or _utcnow(),
        )

    def with_refresh_token(
        self, refresh_token: str, *, now: Optional[datetime] = None
    ) -> "AccountLink":
        return replace(self, refresh_token=refresh_token, last_synced_at=now or _utcnow())

    def with_sync(self, synced_at: datetime) -> "AccountLink":
        return replace(self, last_synced_at=synced_at)

    def deactivate(self) -> "AccountLink":
        return replace(
            self,
            is_active=False,
            access_token=None,
            refresh_token=None,
            token_expires_at=None,
        )

    def reactivate(self) -> "AccountLink":
        return replace(self, is_active=True)


@dataclass(slots=True)
class User:
    """Local user aggregate owning at most one active ``AccountLink``."""

    external_identity: ExternalIdentity
    id: str = field(default_factory=lambda: uuid4().hex)
    email: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    account_link: Optional[AccountLink] = None

    @property
    def link_status(self) -> LinkStatus:
        if self.account_link is None:
            return LinkStatus.UNLINKED
        return self.account_link.status

    def _require_active_link(self) -> AccountLink:
        if self.account_link is None:
            raise NoAccountLinkedError("No manufacturer account linked.")
        if not self.account_link.is_active:
            raise AccountNotActiveError("Manufacturer account is not active.")
        return self.account_link

    def link_account(self, account_id: str, *, now: Optional[datetime] = None) -> AccountLink:
        """Create a fresh link; a previous link must be deactivated first."""
        if self.account_link is not None and self.account_link.is_active:
            raise AlreadyLinkedError(
                "User already has an active manufacturer account linked."
            )
        self.account_link = AccountLink.create(account_id, now=now)
        return self.account_link

    def update_tokens(
        self,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        *,
        now: Optional[datetime] = None,
    ) -> AccountLink:
        link = self._require_active_link()
        self.account_link = link.with_tokens(access_token, refresh_token, expires_at, now=now)
        return self.account_link

    def update_refresh_token(
        self, refresh_token: str, *, now: Optional[datetime] = None
    ) -> AccountLink:
        link = self._require_active_link()
        self.account_link = link.with_refresh_token(refresh_token, now=now)
        return self.account_link

    def record_vehicle_sync(self, synced_at: Optional[datetime] = None) -> AccountLink:
        link = self._require_active_link()
        self.account_link = link.with_sync(synced_at or _utcnow())
        return self.account_link

    def unlink_account(self) -> AccountLink:
        """Deactivate the link and drop all token material."""
        link = self._require_active_link()
        self.account_link = link.deactivate()
        return self.account_link

    def reactivate_account(self) -> AccountLink:
        if self.account_link is None:
            raise NoAccountLinkedError("No manufacturer account linked.")
        if self.account_link.is_active:
            raise AlreadyActiveError("Manufacturer account is already active.")
        self.account_link = self.account_link.reactivate()
        return self.account_link


__all__ = [
    "AccountLink",
    "AccountLinkError",
    "AccountNotActiveError",
    "AlreadyActiveError",
    "AlreadyLinkedError",
    "ExternalIdentity",
    "LinkStatus",
    "NoAccountLinkedError",
    "User",
]
