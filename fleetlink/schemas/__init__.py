"""Public schema exports."""

from .auth import (
    AccountLinkView,
    AuthorizationUrlResponse,
    LinkCompletedResponse,
    OAuthCallbackPayload,
    VehicleSyncResponse,
    VehicleView,
)

__all__ = [
    "AccountLinkView",
    "AuthorizationUrlResponse",
    "LinkCompletedResponse",
    "OAuthCallbackPayload",
    "VehicleSyncResponse",
    "VehicleView",
]
