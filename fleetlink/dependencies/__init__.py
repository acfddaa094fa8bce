"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_account_link_service,
    get_authorization_state_store,
    get_fleet_api_client,
    get_fleet_oauth_client,
    get_sqlite_store,
    get_state_cache,
    get_token_cipher,
    get_vehicle_reconciler,
)
from .config import get_app_settings

__all__ = [
    "get_account_link_service",
    "get_app_settings",
    "get_authorization_state_store",
    "get_fleet_api_client",
    "get_fleet_oauth_client",
    "get_sqlite_store",
    "get_state_cache",
    "get_token_cipher",
    "get_vehicle_reconciler",
]
