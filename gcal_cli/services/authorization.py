"""
Interactive authorization-code flow driven from the terminal.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
import uuid
import webbrowser
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from gcal_cli.clients.callback_server import CallbackListener
from gcal_cli.clients.google_auth import (
    GoogleOAuthClient,
    OAuthStateEncoder,
    OAuthStateError,
)
from gcal_cli.core.config import CallbackSettings
from gcal_cli.models.oauth import StoredToken
from gcal_cli.services.token_store import TokenStore

logger = logging.getLogger(__name__)


def _issue_state(state_encoder: OAuthStateEncoder, user_id: str) -> str:
    return state_encoder.encode(
        {
            "nonce": uuid.uuid4().hex,
            "user_id": user_id,
            "issued_at": datetime.now(timezone.utc).isoformat(),
        }
    )


def _verify_state(
    state_encoder: OAuthStateEncoder,
    *,
    issued: str,
    returned: Optional[str],
    user_id: str,
    ttl_seconds: int,
) -> None:
    if not returned or not hmac.compare_digest(issued, returned):
        raise OAuthStateError("OAuth state returned by the provider does not match.")

    state_data = state_encoder.decode(returned)
    if state_data.get("user_id") != user_id:
        raise OAuthStateError("OAuth state was issued for a different user.")

    issued_at = datetime.fromisoformat(state_data["issued_at"])
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)
    if datetime.now(timezone.utc) - issued_at > timedelta(seconds=ttl_seconds):
        raise OAuthStateError("OAuth state token has expired.")


async def run_authorization_flow(
    *,
    user_id: str,
    oauth_client: GoogleOAuthClient,
    token_store: TokenStore,
    state_encoder: OAuthStateEncoder,
    callback_settings: CallbackSettings,
    state_ttl_seconds: int = 900,
    open_browser: Callable[[str], Any] = webbrowser.open,
) -> StoredToken:
    """Run consent in the browser, capture the code locally and store the token.

    The listener is bound and accepting connections before the browser is
    opened, and it has fully shut down before the code is exchanged.
    """
    logger.info("Starting OAuth authentication flow for user %s", user_id)
    state = _issue_state(state_encoder, user_id)
    timeout = callback_settings.timeout_seconds or None

    async with CallbackListener.from_settings(callback_settings) as listener:
        redirect_uri = listener.redirect_uri(callback_settings.redirect_host)
        authorization_url = oauth_client.build_authorization_url(
            state=state, redirect_uri=redirect_uri
        )

        logger.info("Opening browser with URL: %s", authorization_url)
        # Console browsers block until the redirect is served, so keep the loop free.
        if not await asyncio.to_thread(open_browser, authorization_url):
            logger.warning("Could not open a browser; visit the URL above manually")

        logger.info("Waiting for authorization code...")
        callback = await listener.wait_for_callback(timeout)
        logger.info("Received authorization code, shutting down listener")

    _verify_state(
        state_encoder,
        issued=state,
        returned=callback.state,
        user_id=user_id,
        ttl_seconds=state_ttl_seconds,
    )

    token = await oauth_client.exchange_authorization_code(
        callback.code, redirect_uri=redirect_uri
    )
    stored = token_store.save(user_id, token)
    logger.info("Authentication completed successfully for user %s", user_id)
    return stored


__all__ = ["run_authorization_flow"]
