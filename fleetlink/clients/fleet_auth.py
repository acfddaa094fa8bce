"""
OAuth utilities for the manufacturer's authorization server.

These helpers build the consent URL and manage the token lifecycle. Token
endpoint failures are logged and reported as ``None``/``False``; callers decide
how to surface them.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import secrets
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from fleetlink.core.config import FleetSettings
from fleetlink.models.oauth import TokenResponse

logger = logging.getLogger(__name__)

SCOPES = ("openid", "vehicle_device_data", "offline_access")


def generate_state() -> str:
    """Return 128 random bits as URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(secrets.token_bytes(16)).decode("ascii").rstrip("=")


def extract_subject(id_token: str) -> str:
    """Read the ``sub`` claim from an ID token without verifying its signature.

    The token is only trusted because it came straight from the token endpoint
    over TLS. Returns an empty string when the token cannot be parsed or has
    no subject.
    """
    if not id_token:
        return ""
    parts = id_token.split(".")
    if len(parts) < 2:
        return ""
    segment = parts[1]
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
        claims = json.loads(raw)
    except (binascii.Error, ValueError):
        return ""
    if not isinstance(claims, dict):
        return ""
    subject = claims.get("sub")
    return subject if isinstance(subject, str) else ""


class FleetOAuthClient:
    """Build authorization URLs and call the token and revocation endpoints."""

    AUTHORIZE_PATH = "/oauth2/v3/authorize"
    TOKEN_PATH = "/oauth2/v3/token"
    REVOKE_PATH = "/oauth2/v3/revoke"

    def __init__(
        self,
        settings: FleetSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._base_url = settings.auth_base_url.rstrip("/")
        self._transport = transport

    @property
    def token_url(self) -> str:
        return f"{self._base_url}{self.TOKEN_PATH}"

    def build_authorization_url(self, state: str) -> str:
        """Construct the consent URL for the given state value."""
        params = {
            "client_id": self._settings.client_id,
            "redirect_uri": str(self._settings.redirect_uri),
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "state": state,
        }
        return f"{self._base_url}{self.AUTHORIZE_PATH}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> Optional[TokenResponse]:
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": str(self._settings.redirect_uri),
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
        }
        return await self._request_tokens(payload, action="exchange authorization code")

    async def refresh_token(self, refresh_token: str) -> Optional[TokenResponse]:
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
        }
        return await self._request_tokens(payload, action="refresh token")

    async def revoke_token(self, token: str) -> bool:
        """Ask the provider to revoke a token; ``True`` on any 2xx answer."""
        payload = {"token": token, "client_id": self._settings.client_id}
        try:
            async with self._client() as client:
                response = await client.post(f"{self._base_url}{self.REVOKE_PATH}", data=payload)
        except httpx.HTTPError as exc:
            logger.error("Error revoking fleet token: %s", exc)
            return False
        if not response.is_success:
            logger.warning("Fleet token revocation rejected: %s", response.status_code)
        return response.is_success

    async def _request_tokens(
        self, payload: Dict[str, Any], *, action: str
    ) -> Optional[TokenResponse]:
        try:
            async with self._client() as client:
                response = await client.post(self.token_url, data=payload)
        except httpx.HTTPError as exc:
            logger.error("Failed to %s: %s", action, exc)
            return None

        if not response.is_success:
            logger.error(
                "Failed to %s: %s - %s", action, response.status_code, response.text
            )
            return None

        try:
            return TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            logger.error("Failed to %s: malformed token payload (%s)", action, exc)
            return None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.http_timeout_seconds, transport=self._transport
        )


__all__ = ["FleetOAuthClient", "SCOPES", "extract_subject", "generate_state"]
