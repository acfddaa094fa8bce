"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from fleetlink.core.config import FleetSettings


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def fleet_settings() -> FleetSettings:
    return FleetSettings(
        FLEET_CLIENT_ID="client",
        FLEET_CLIENT_SECRET="secret",
        FLEET_REDIRECT_URI="https://example.com/callback",
        FLEET_AUTH_BASE_URL="https://auth.fleet.test",
        FLEET_API_BASE_URL="https://api.fleet.test",
        FLEET_HTTP_TIMEOUT=2.0,
    )
