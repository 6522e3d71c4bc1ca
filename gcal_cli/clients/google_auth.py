"""
Google OAuth utilities.

These helpers build the consent URL, guard the round trip with a signed state
value and talk to the token endpoint for code and refresh-token exchanges.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from gcal_cli.core.config import GoogleSettings, OAuthSettings
from gcal_cli.models.oauth import OAuthTokenResponse

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base class for failures of the interactive authorization flow."""


class CallbackBindError(AuthError):
    """Raised when the local callback listener cannot bind its port."""


class AuthorizationDeniedError(AuthError):
    """Raised when the provider never hands back an authorization code."""


class AuthorizationTimeoutError(AuthorizationDeniedError):
    """Raised when the user does not complete consent within the allowed time."""


class OAuthStateError(AuthError):
    """Raised when the state echoed by the provider is forged or stale."""


class OAuthTokenExchangeError(AuthError):
    """Raised when the token endpoint returns an error."""

    def __init__(self, message: str, *, error_code: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code

    @property
    def requires_reauthorization(self) -> bool:
        """True when the grant itself was rejected and retrying cannot help."""
        return self.error_code == "invalid_grant"


class OAuthTransportError(OAuthTokenExchangeError):
    """Raised when the token endpoint could not be reached."""


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise OAuthStateError("OAuth state is not valid base64.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise OAuthStateError("Invalid OAuth state signature.")
        return json.loads(serialized)


class GoogleOAuthClient:
    """Build Google authorization URLs and exchange codes and refresh tokens."""

    def __init__(
        self,
        google_settings: GoogleSettings,
        oauth_settings: OAuthSettings,
        *,
        redirect_uri: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._google = google_settings
        self._oauth = oauth_settings
        self._redirect_uri = redirect_uri
        self._transport = transport
        self._timeout = timeout

    def _resolve_redirect_uri(self, redirect_uri: str | None) -> str:
        resolved = redirect_uri or self._redirect_uri
        if not resolved:
            raise ValueError("A redirect URI is required for the authorization code flow.")
        return resolved

    def build_authorization_url(
        self,
        state: str,
        redirect_uri: str | None = None,
        access_type: str = "offline",
    ) -> str:
        """Construct the Google OAuth consent URL."""
        params = {
            "client_id": self._google.client_id,
            "redirect_uri": self._resolve_redirect_uri(redirect_uri),
            "response_type": "code",
            "scope": " ".join(self._oauth.scopes),
            "access_type": access_type,
            "include_granted_scopes": "true",
            "prompt": "consent",
            "state": state,
        }
        query = urlencode(params)
        return f"{self._google.auth_url}?{query}"

    async def exchange_authorization_code(
        self, code: str, redirect_uri: str | None = None
    ) -> OAuthTokenResponse:
        """Exchange an authorization code for tokens."""
        payload = {
            "code": code,
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "redirect_uri": self._resolve_redirect_uri(redirect_uri),
            "grant_type": "authorization_code",
        }
        return await self._request_token(payload, grant="authorization_code")

    async def refresh_token(self, refresh_token: str) -> OAuthTokenResponse:
        """Refresh the access token using a stored refresh token."""
        payload = {
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        return await self._request_token(payload, grant="refresh_token")

    async def _request_token(self, payload: Dict[str, str], *, grant: str) -> OAuthTokenResponse:
        logger.debug("Requesting %s grant from %s", grant, self._google.token_url)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self._google.token_url, data=payload)
        except httpx.HTTPError as exc:
            raise OAuthTransportError(
                f"Token endpoint unreachable during {grant} exchange: {exc}"
            ) from exc

        if response.status_code != httpx.codes.OK:
            error_code = _extract_error_code(response)
            logger.error(
                "Token endpoint rejected %s exchange (status=%s, error=%s)",
                grant,
                response.status_code,
                error_code,
            )
            raise OAuthTokenExchangeError(response.text, error_code=error_code)

        try:
            return OAuthTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise OAuthTokenExchangeError(
                f"Incomplete token payload returned from Google for {grant} exchange."
            ) from exc


def _extract_error_code(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        error = body.get("error")
        return error if isinstance(error, str) else None
    return None


__all__ = [
    "AuthError",
    "AuthorizationDeniedError",
    "AuthorizationTimeoutError",
    "CallbackBindError",
    "GoogleOAuthClient",
    "OAuthStateEncoder",
    "OAuthStateError",
    "OAuthTokenExchangeError",
    "OAuthTransportError",
]
