"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from datetime import timedelta
from functools import lru_cache

from fleetlink.clients import (
    FleetApiClient,
    FleetOAuthClient,
    MemoryStateCache,
    SQLiteStateCache,
    SQLiteStore,
)
from fleetlink.core.config import get_settings
from fleetlink.services import (
    AccountLinkService,
    AuthorizationStateStore,
    TokenCipher,
    VehicleReconciler,
)
from fleetlink.services.authorization_state import StateCache


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_fleet_oauth_client() -> FleetOAuthClient:
    """Create a singleton OAuth client for the manufacturer's auth server."""
    return FleetOAuthClient(_settings().fleet)


@lru_cache()
def get_fleet_api_client() -> FleetApiClient:
    """Provide the vehicle-listing API client."""
    return FleetApiClient(_settings().fleet)


@lru_cache()
def get_sqlite_store() -> SQLiteStore:
    """Provide shared SQLite repository."""
    return SQLiteStore(_settings().database_path)


@lru_cache()
def get_state_cache() -> StateCache:
    """Provide the TTL cache backing pending OAuth states."""
    settings = _settings()
    if settings.oauth.state_backend == "sqlite":
        return SQLiteStateCache(settings.database_path)
    return MemoryStateCache()


@lru_cache()
def get_authorization_state_store() -> AuthorizationStateStore:
    """Provide the single-use OAuth state store."""
    settings = _settings()
    return AuthorizationStateStore(
        get_state_cache(),
        ttl=timedelta(seconds=settings.oauth.state_ttl_seconds),
    )


@lru_cache()
def get_token_cipher() -> TokenCipher:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.fleet.client_secret
    return TokenCipher(secret=secret)


@lru_cache()
def get_vehicle_reconciler() -> VehicleReconciler:
    """Provide the fleet reconciler bound to the shared store."""
    return VehicleReconciler(
        get_sqlite_store(),
        get_fleet_api_client(),
        get_token_cipher(),
    )


@lru_cache()
def get_account_link_service() -> AccountLinkService:
    """Provide the account-linking service; one instance keeps per-account sync locks."""
    return AccountLinkService(
        repository=get_sqlite_store(),
        oauth_client=get_fleet_oauth_client(),
        state_store=get_authorization_state_store(),
        token_cipher=get_token_cipher(),
        reconciler=get_vehicle_reconciler(),
    )


__all__ = [
    "get_account_link_service",
    "get_authorization_state_store",
    "get_fleet_api_client",
    "get_fleet_oauth_client",
    "get_sqlite_store",
    "get_state_cache",
    "get_token_cipher",
    "get_vehicle_reconciler",
]
