"""
Models for the OAuth handshake with the manufacturer's authorization server.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AuthorizationStateEntry(BaseModel):
    """A pending authorization request awaiting its callback."""

    state: str = Field(..., description="Opaque value echoed back by the provider.")
    owner_id: str = Field(..., description="Local account that started the flow.")
    created_at: datetime

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.created_at > ttl


class TokenResponse(BaseModel):
    """Token endpoint payload; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str = ""
    id_token: str = ""
    token_type: str = "Bearer"
    expires_in: int = 3600

    @field_validator("refresh_token", "id_token", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("token_type", mode="before")
    @classmethod
    def _default_token_type(cls, value: Any) -> Any:
        return value or "Bearer"

    @field_validator("expires_in", mode="before")
    @classmethod
    def _default_expiry(cls, value: Any) -> Any:
        return 3600 if value is None else value

    def expires_at(self, now: Optional[datetime] = None) -> datetime:
        issued = now or datetime.now(timezone.utc)
        return issued + timedelta(seconds=self.expires_in)


__all__ = ["AuthorizationStateEntry", "TokenResponse"]
