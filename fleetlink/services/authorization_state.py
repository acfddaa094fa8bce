"""Single-use CSRF state tokens for the account-linking handshake."""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from fleetlink.clients.fleet_auth import generate_state
from fleetlink.models.oauth import AuthorizationStateEntry

logger = logging.getLogger(__name__)

DEFAULT_STATE_TTL = timedelta(minutes=10)


class StateCache(Protocol):
    def put(self, entry: AuthorizationStateEntry, ttl_seconds: float) -> None: ...

    def pop(self, state: str) -> Optional[AuthorizationStateEntry]: ...


class StateConsumeOutcome(str, enum.Enum):
    MISSING = "missing"
    OWNER_MISMATCH = "owner_mismatch"
    EXPIRED = "expired"
    OK = "ok"


class AuthorizationStateStore:
    """Issue and consume opaque state values bound to the initiating account.

    Every consume attempt removes the entry before inspecting it, so a state
    that was presented with the wrong owner or too late cannot be replayed.
    The cache keeps entries for twice the validity window so late callbacks
    are reported as expired rather than unknown.
    """

    def __init__(
        self,
        cache: StateCache,
        *,
        ttl: timedelta = DEFAULT_STATE_TTL,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._cache = cache
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, owner_id: str) -> str:
        if not owner_id:
            raise ValueError("An owner is required to issue an authorization state.")
        state = generate_state()
        entry = AuthorizationStateEntry(state=state, owner_id=owner_id, created_at=self._clock())
        self._cache.put(entry, self._ttl.total_seconds() * 2)
        return state

    def consume(self, state: str, claimed_owner_id: str) -> StateConsumeOutcome:
        if not state:
            return StateConsumeOutcome.MISSING
        entry = self._cache.pop(state)
        if entry is None:
            logger.warning("Unknown OAuth state presented by %s", claimed_owner_id)
            return StateConsumeOutcome.MISSING
        if entry.owner_id != claimed_owner_id:
            logger.warning("OAuth state owner mismatch for %s", claimed_owner_id)
            return StateConsumeOutcome.OWNER_MISMATCH
        if entry.is_expired(self._clock(), self._ttl):
            logger.warning("OAuth state expired for %s", claimed_owner_id)
            return StateConsumeOutcome.EXPIRED
        return StateConsumeOutcome.OK


__all__ = [
    "AuthorizationStateStore",
    "DEFAULT_STATE_TTL",
    "StateCache",
    "StateConsumeOutcome",
]
