"""Service layer exports."""

from .account_linking import (
    AccountLinkService,
    AuthorizationRequest,
    LinkErrorCode,
    LinkingError,
    LinkOutcome,
    UserNotFoundError,
)
from .authorization_state import AuthorizationStateStore, StateConsumeOutcome
from .token_cipher import TokenCipher, TokenDecryptionError
from .vehicle_sync import VehicleReconciler

__all__ = [
    "AccountLinkService",
    "AuthorizationRequest",
    "AuthorizationStateStore",
    "LinkErrorCode",
    "LinkOutcome",
    "LinkingError",
    "StateConsumeOutcome",
    "TokenCipher",
    "TokenDecryptionError",
    "UserNotFoundError",
    "VehicleReconciler",
]
