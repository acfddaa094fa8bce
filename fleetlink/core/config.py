"""
Application configuration models and helpers.

Centralizes settings for the account-linking API, the OAuth client and the
vehicle reconciliation jobs so they share one configuration surface.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AnyHttpUrl, Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_CONFIG = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
    populate_by_name=True,
)


class FleetSettings(BaseSettings):
    """Configuration required for talking to the manufacturer's fleet APIs."""

    model_config = _ENV_CONFIG

    client_id: str = Field(..., validation_alias="FLEET_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="FLEET_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="FLEET_REDIRECT_URI")
    auth_base_url: str = Field(
        "https://fleet-auth.prd.vn.cloud.tesla.com",
        validation_alias="FLEET_AUTH_BASE_URL",
    )
    api_base_url: str = Field(
        "https://fleet-api.prd.vn.cloud.tesla.com",
        validation_alias="FLEET_API_BASE_URL",
    )
    http_timeout_seconds: float = Field(
        10.0,
        validation_alias="FLEET_HTTP_TIMEOUT",
        description="Upper bound for every call to the authorization server or fleet API.",
    )


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = _ENV_CONFIG

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    model_config = _ENV_CONFIG

    state_ttl_seconds: int = Field(600, validation_alias="OAUTH_STATE_TTL")
    state_backend: Literal["memory", "sqlite"] = Field(
        "memory",
        validation_alias="OAUTH_STATE_BACKEND",
        description="Use 'sqlite' when several workers must share pending states.",
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = _ENV_CONFIG

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    database_path: str = Field("data/fleetlink.db", validation_alias="FLEETLINK_DB_PATH")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the front-end.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    fleet: FleetSettings = Field(default_factory=FleetSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "FleetSettings",
    "OAuthSettings",
    "SecuritySettings",
    "get_settings",
]
