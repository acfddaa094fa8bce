"""Expose constructed client wrappers."""

from .fleet_api import FleetApiClient, FleetApiError, FleetVehicle, VehicleFetchError
from .fleet_auth import FleetOAuthClient, extract_subject, generate_state
from .sqlite_store import SQLiteStore, SQLiteUnitOfWork
from .state_cache import MemoryStateCache, SQLiteStateCache

__all__ = [
    "FleetApiClient",
    "FleetApiError",
    "FleetOAuthClient",
    "FleetVehicle",
    "MemoryStateCache",
    "SQLiteStateCache",
    "SQLiteStore",
    "SQLiteUnitOfWork",
    "VehicleFetchError",
    "extract_subject",
    "generate_state",
]
