"""Schemas related to the account-linking flow."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    user_id: str = Field(..., description="Identity of the user completing the flow.")
    code: str = Field("", description="Authorization code returned by the provider.")
    state: str = Field(..., description="Opaque state token issued when starting OAuth.")


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str
    state: str


class AccountLinkView(BaseModel):
    """Public view of a link; token material is never exposed."""

    account_id: str
    is_active: bool
    linked_at: datetime
    token_expires_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None


class LinkCompletedResponse(BaseModel):
    success: bool = True
    message: str = "Account linked successfully"
    account_id: str
    synced_vehicles: Optional[int] = None


class VehicleView(BaseModel):
    id: str
    account_id: str
    vehicle_identifier: str
    display_name: Optional[str] = None
    is_active: bool
    linked_at: datetime
    last_synced_at: Optional[datetime] = None


class VehicleSyncResponse(BaseModel):
    success: bool = True
    synced_count: int


__all__ = [
    "AccountLinkView",
    "AuthorizationUrlResponse",
    "LinkCompletedResponse",
    "OAuthCallbackPayload",
    "VehicleSyncResponse",
    "VehicleView",
]
