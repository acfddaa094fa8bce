"""
Orchestrates linking a local user to a manufacturer account.

Covers the whole handshake (state issue and validation, code exchange,
encrypted token storage) plus the follow-up operations on an existing link:
token refresh, unlink with revocation, reactivation and vehicle sync.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional, Protocol

from fleetlink.clients.fleet_auth import extract_subject
from fleetlink.models.account import (
    AccountLink,
    AccountLinkError,
    AccountNotActiveError,
    AlreadyActiveError,
    AlreadyLinkedError,
    ExternalIdentity,
    NoAccountLinkedError,
    User,
)
from fleetlink.models.oauth import TokenResponse
from fleetlink.models.vehicle import VehicleRecord
from fleetlink.services.authorization_state import (
    AuthorizationStateStore,
    StateConsumeOutcome,
)
from fleetlink.services.token_cipher import TokenCipher, TokenDecryptionError
from fleetlink.services.vehicle_sync import UnitOfWork, VehicleReconciler

logger = logging.getLogger(__name__)


class LinkErrorCode(str, enum.Enum):
    MISSING_USER = "missing_user"
    MISSING_CODE = "missing_code"
    INVALID_STATE = "invalid_state"
    STATE_MISMATCH = "state_mismatch"
    STATE_EXPIRED = "state_expired"
    EXCHANGE_FAILED = "exchange_failed"
    MISSING_SUBJECT = "missing_subject"
    ACCOUNT_ALREADY_LINKED = "account_already_linked"
    NO_ACCOUNT_LINKED = "no_account_linked"
    ACCOUNT_NOT_ACTIVE = "account_not_active"
    ALREADY_ACTIVE = "already_active"
    NO_REFRESH_TOKEN = "no_refresh_token"
    REFRESH_FAILED = "refresh_failed"


_MESSAGES = {
    LinkErrorCode.MISSING_USER: "User identity is required",
    LinkErrorCode.MISSING_CODE: "Authorization code is required",
    LinkErrorCode.INVALID_STATE: "Invalid state",
    LinkErrorCode.STATE_MISMATCH: "State mismatch",
    LinkErrorCode.STATE_EXPIRED: "State expired",
    LinkErrorCode.EXCHANGE_FAILED: "Failed to exchange code for tokens",
    LinkErrorCode.MISSING_SUBJECT: "Failed to get identity information",
    LinkErrorCode.ACCOUNT_ALREADY_LINKED: "A different account is already linked",
    LinkErrorCode.NO_ACCOUNT_LINKED: "No account linked",
    LinkErrorCode.ACCOUNT_NOT_ACTIVE: "Account is not active",
    LinkErrorCode.ALREADY_ACTIVE: "Account is already active",
    LinkErrorCode.NO_REFRESH_TOKEN: "No refresh token available",
    LinkErrorCode.REFRESH_FAILED: "Failed to refresh tokens",
}

_STATE_ERRORS = {
    StateConsumeOutcome.MISSING: LinkErrorCode.INVALID_STATE,
    StateConsumeOutcome.OWNER_MISMATCH: LinkErrorCode.STATE_MISMATCH,
    StateConsumeOutcome.EXPIRED: LinkErrorCode.STATE_EXPIRED,
}

_DOMAIN_ERRORS = {
    AlreadyLinkedError: LinkErrorCode.ACCOUNT_ALREADY_LINKED,
    NoAccountLinkedError: LinkErrorCode.NO_ACCOUNT_LINKED,
    AccountNotActiveError: LinkErrorCode.ACCOUNT_NOT_ACTIVE,
    AlreadyActiveError: LinkErrorCode.ALREADY_ACTIVE,
}


class LinkingError(Exception):
    """A rejected linking request with a stable, user-facing error code."""

    def __init__(self, code: LinkErrorCode, message: Optional[str] = None) -> None:
        self.code = code
        self.message = message or _MESSAGES[code]
        super().__init__(self.message)

    @classmethod
    def from_domain(cls, exc: AccountLinkError) -> "LinkingError":
        return cls(_DOMAIN_ERRORS[type(exc)], str(exc))


class UserNotFoundError(Exception):
    """Raised when no local user exists for an external identity."""


def _identity(external_id: Optional[str]) -> ExternalIdentity:
    try:
        return ExternalIdentity(external_id or "")
    except ValueError as exc:
        raise LinkingError(LinkErrorCode.MISSING_USER) from exc


class OAuthClient(Protocol):
    def build_authorization_url(self, state: str) -> str: ...

    async def exchange_authorization_code(self, code: str) -> Optional[TokenResponse]: ...

    async def refresh_token(self, refresh_token: str) -> Optional[TokenResponse]: ...

    async def revoke_token(self, token: str) -> bool: ...


class UserRepository(Protocol):
    def get_user(self, user_id: str) -> Optional[User]: ...

    def get_user_by_external_id(self, external_id: str) -> Optional[User]: ...

    def list_vehicles_for_account(self, account_id: str) -> List[VehicleRecord]: ...

    def unit_of_work(self) -> UnitOfWork: ...


@dataclass(frozen=True)
class AuthorizationRequest:
    authorization_url: str
    state: str


@dataclass(frozen=True)
class LinkOutcome:
    account_id: str
    synced_vehicles: Optional[int]


class AccountLinkService:
    """Application service behind the account-linking endpoints."""

    def __init__(
        self,
        *,
        repository: UserRepository,
        oauth_client: OAuthClient,
        state_store: AuthorizationStateStore,
        token_cipher: TokenCipher,
        reconciler: VehicleReconciler,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repository = repository
        self._oauth = oauth_client
        self._states = state_store
        self._cipher = token_cipher
        self._reconciler = reconciler
        self._clock = clock
        # Entries live only while a sync holds or awaits them.
        self._sync_locks: Dict[str, asyncio.Lock] = {}
        self._sync_lock_users: Dict[str, int] = {}

    def ensure_user(self, external_id: str, email: Optional[str] = None) -> User:
        """Return the local user for an identity, creating it on first sight."""
        identity = _identity(external_id)
        user = self._repository.get_user_by_external_id(identity.value)
        if user is not None:
            return user
        user = User(external_identity=identity, email=email, created_at=self._clock())
        self._commit(user)
        logger.info("Created local user %s", user.id)
        return user

    def initiate(self, external_id: str) -> AuthorizationRequest:
        state = self._states.issue(_identity(external_id).value)
        return AuthorizationRequest(
            authorization_url=self._oauth.build_authorization_url(state),
            state=state,
        )

    async def complete(self, external_id: str, code: str, state: str) -> LinkOutcome:
        """Finish the handshake and store the encrypted tokens.

        A vehicle sync runs afterwards; its failure is logged and reported as
        ``synced_vehicles=None`` but never undoes the link.
        """
        external_id = _identity(external_id).value
        if not code or not code.strip():
            raise LinkingError(LinkErrorCode.MISSING_CODE)

        outcome = self._states.consume(state, external_id)
        if outcome is not StateConsumeOutcome.OK:
            raise LinkingError(_STATE_ERRORS[outcome])

        user = self._require_user(external_id)

        tokens = await self._oauth.exchange_authorization_code(code)
        if tokens is None or not tokens.access_token:
            logger.error("Failed to exchange code for tokens for user %s", user.id)
            raise LinkingError(LinkErrorCode.EXCHANGE_FAILED)

        account_id = extract_subject(tokens.id_token)
        if not account_id:
            logger.error("No account subject found in identity token for user %s", user.id)
            raise LinkingError(LinkErrorCode.MISSING_SUBJECT)

        current = user.account_link
        if current is not None and current.is_active and current.account_id != account_id:
            raise LinkingError(LinkErrorCode.ACCOUNT_ALREADY_LINKED)

        now = self._clock()
        if current is None or not current.is_active:
            user.link_account(account_id, now=now)
        self._store_tokens(user, tokens, fallback_refresh_token="", now=now)
        self._commit(user)
        logger.info("Linked account %s to user %s", account_id, user.id)

        synced: Optional[int]
        try:
            synced = await self.sync_vehicles(external_id)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Failed to sync vehicles for user %s", user.id)
            synced = None
        else:
            logger.info("Synced %d vehicles for user %s", synced, user.id)

        return LinkOutcome(account_id=account_id, synced_vehicles=synced)

    async def refresh_tokens(self, external_id: str) -> AccountLink:
        user = self._require_user(external_id)
        link = user.account_link
        if link is None:
            raise LinkingError(LinkErrorCode.NO_ACCOUNT_LINKED)
        if not link.is_active:
            raise LinkingError(LinkErrorCode.ACCOUNT_NOT_ACTIVE)
        if not link.refresh_token:
            raise LinkingError(LinkErrorCode.NO_REFRESH_TOKEN)

        try:
            refresh_token = self._cipher.decrypt(link.refresh_token) or ""
        except TokenDecryptionError as exc:
            logger.warning("Stored refresh token for user %s cannot be decrypted", user.id)
            raise LinkingError(LinkErrorCode.REFRESH_FAILED) from exc
        tokens = await self._oauth.refresh_token(refresh_token)
        if tokens is None or not tokens.access_token:
            raise LinkingError(LinkErrorCode.REFRESH_FAILED)

        self._store_tokens(user, tokens, fallback_refresh_token=refresh_token, now=self._clock())
        self._commit(user)
        logger.info("Refreshed tokens for user %s", user.id)
        return user.account_link  # type: ignore[return-value]

    async def unlink(self, external_id: str) -> AccountLink:
        """Revoke the access token (best effort) and deactivate the link."""
        user = self._require_user(external_id)
        link = user.account_link
        if link is not None and link.is_active and link.access_token:
            await self._revoke_access_token(user, link.access_token)

        try:
            updated = user.unlink_account()
        except AccountLinkError as exc:
            raise LinkingError.from_domain(exc) from exc
        self._commit(user)
        logger.info("Unlinked account from user %s", user.id)
        return updated

    def reactivate(self, external_id: str) -> AccountLink:
        user = self._require_user(external_id)
        try:
            updated = user.reactivate_account()
        except AccountLinkError as exc:
            raise LinkingError.from_domain(exc) from exc
        self._commit(user)
        logger.info("Reactivated account %s for user %s", updated.account_id, user.id)
        return updated

    async def sync_vehicles(self, external_id: str) -> int:
        """Reconcile the user's fleet; fetch errors propagate to the caller."""
        user = self._require_user(external_id)
        link = user.account_link
        if link is None or not link.is_active or not link.access_token:
            return await self._reconciler.reconcile(link)

        async with self._account_lock(link.account_id):
            count = await self._reconciler.reconcile(link)

        refreshed = self._repository.get_user(user.id)
        current = refreshed.account_link if refreshed is not None else None
        if current is not None and current.is_active and current.account_id == link.account_id:
            refreshed.record_vehicle_sync(self._clock())
            self._commit(refreshed)
        return count

    def list_vehicles(self, external_id: str) -> List[VehicleRecord]:
        user = self._require_user(external_id)
        if user.account_link is None:
            return []
        return self._repository.list_vehicles_for_account(user.account_link.account_id)

    @asynccontextmanager
    async def _account_lock(self, account_id: str) -> AsyncIterator[None]:
        lock = self._sync_locks.setdefault(account_id, asyncio.Lock())
        self._sync_lock_users[account_id] = self._sync_lock_users.get(account_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._sync_lock_users[account_id] -= 1
            if not self._sync_lock_users[account_id]:
                del self._sync_lock_users[account_id]
                del self._sync_locks[account_id]

    async def _revoke_access_token(self, user: User, encrypted_token: str) -> None:
        try:
            access_token = self._cipher.decrypt(encrypted_token) or ""
        except TokenDecryptionError:
            logger.warning(
                "Skipping token revocation for user %s; token cannot be decrypted", user.id
            )
            return
        if not await self._oauth.revoke_token(access_token):
            logger.warning("Provider did not confirm token revocation for user %s", user.id)

    def _require_user(self, external_id: str) -> User:
        identity = _identity(external_id)
        user = self._repository.get_user_by_external_id(identity.value)
        if user is None:
            raise UserNotFoundError(f"No user found for identity {identity.value}.")
        return user

    def _store_tokens(
        self,
        user: User,
        tokens: TokenResponse,
        *,
        fallback_refresh_token: str,
        now: datetime,
    ) -> None:
        refresh_token = tokens.refresh_token or fallback_refresh_token
        try:
            user.update_tokens(
                self._cipher.encrypt(tokens.access_token) or "",
                self._cipher.encrypt(refresh_token) or "",
                tokens.expires_at(now),
                now=now,
            )
        except AccountLinkError as exc:
            raise LinkingError.from_domain(exc) from exc

    def _commit(self, user: User) -> None:
        unit_of_work = self._repository.unit_of_work()
        unit_of_work.save_user(user)
        unit_of_work.commit()


__all__ = [
    "AccountLinkService",
    "AuthorizationRequest",
    "LinkErrorCode",
    "LinkOutcome",
    "LinkingError",
    "UserNotFoundError",
]
