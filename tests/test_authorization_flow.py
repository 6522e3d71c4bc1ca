from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import socket
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx
import pytest

from gcal_cli.clients.google_auth import (
    AuthorizationTimeoutError,
    OAuthStateEncoder,
    OAuthStateError,
)
from gcal_cli.core.config import CallbackSettings
from gcal_cli.models.oauth import OAuthTokenResponse
from gcal_cli.services.authorization import run_authorization_flow


class DummyOAuthClient:
    def __init__(self) -> None:
        self.states: list[str] = []
        self.redirect_uris: list[str | None] = []
        self.codes: list[tuple[str, str | None]] = []

    def build_authorization_url(self, state: str, redirect_uri: str | None = None) -> str:
        self.states.append(state)
        self.redirect_uris.append(redirect_uri)
        query = urlencode({"state": state, "redirect_uri": redirect_uri})
        return f"https://oauth.example.com/auth?{query}"

    async def exchange_authorization_code(
        self, code: str, redirect_uri: str | None = None
    ) -> OAuthTokenResponse:
        self.codes.append((code, redirect_uri))
        return OAuthTokenResponse(
            access_token="access-token", refresh_token="refresh-token", expires_in=3600
        )


class BrowserStub:
    """Plays a console browser: blocks on the redirect back to the listener."""

    def __init__(self, *, code: str = "ABC123", state: str | None = None, visit: bool = True) -> None:
        self.code = code
        self.state = state
        self.visit = visit
        self.urls: list[str] = []
        self.responses: list[httpx.Response] = []

    def __call__(self, url: str) -> bool:
        self.urls.append(url)
        if self.visit:
            query = parse_qs(urlsplit(url).query)
            params = {"code": self.code, "state": self.state or query["state"][0]}
            with httpx.Client(trust_env=False, timeout=5) as client:
                self.responses.append(client.get(query["redirect_uri"][0], params=params))
        return True


def _callback_settings(timeout: float = 5.0) -> CallbackSettings:
    return CallbackSettings(
        OAUTH_CALLBACK_HOST="127.0.0.1",
        OAUTH_CALLBACK_PORT=0,
        OAUTH_REDIRECT_HOST="127.0.0.1",
        OAUTH_CALLBACK_TIMEOUT=timeout,
        OAUTH_CALLBACK_SETTLE_SECONDS=0,
    )


@pytest.mark.anyio
async def test_flow_captures_code_and_stores_token(token_store) -> None:
    # The browser stub blocks on its GET, so the listener must keep serving meanwhile.
    oauth_client = DummyOAuthClient()
    browser = BrowserStub()

    stored = await run_authorization_flow(
        user_id="user-1",
        oauth_client=oauth_client,
        token_store=token_store,
        state_encoder=OAuthStateEncoder("state-secret"),
        callback_settings=_callback_settings(),
        open_browser=browser,
    )

    assert stored.access_token == "access-token"
    assert stored.refresh_token == "refresh-token"

    redirect_uri = oauth_client.redirect_uris[0]
    assert redirect_uri.startswith("http://127.0.0.1:")
    assert redirect_uri.endswith("/oauth/callback")
    assert oauth_client.codes == [("ABC123", redirect_uri)]

    assert [response.status_code for response in browser.responses] == [200]

    loaded = token_store.load("user-1")
    assert loaded is not None
    assert loaded.access_token == "access-token"


@pytest.mark.anyio
async def test_flow_rejects_forged_state(token_store) -> None:
    oauth_client = DummyOAuthClient()
    browser = BrowserStub(state="forged-state")

    with pytest.raises(OAuthStateError):
        await run_authorization_flow(
            user_id="user-1",
            oauth_client=oauth_client,
            token_store=token_store,
            state_encoder=OAuthStateEncoder("state-secret"),
            callback_settings=_callback_settings(),
            open_browser=browser,
        )

    assert [response.status_code for response in browser.responses] == [200]
    assert oauth_client.codes == []
    assert token_store.load("user-1") is None


@pytest.mark.anyio
async def test_flow_rejects_expired_state(token_store) -> None:
    oauth_client = DummyOAuthClient()
    browser = BrowserStub()

    with pytest.raises(OAuthStateError):
        await run_authorization_flow(
            user_id="user-1",
            oauth_client=oauth_client,
            token_store=token_store,
            state_encoder=OAuthStateEncoder("state-secret"),
            callback_settings=_callback_settings(),
            state_ttl_seconds=-1,
            open_browser=browser,
        )

    assert oauth_client.codes == []


@pytest.mark.anyio
async def test_flow_times_out_when_consent_is_abandoned(token_store) -> None:
    oauth_client = DummyOAuthClient()
    browser = BrowserStub(visit=False)

    with pytest.raises(AuthorizationTimeoutError):
        await run_authorization_flow(
            user_id="user-1",
            oauth_client=oauth_client,
            token_store=token_store,
            state_encoder=OAuthStateEncoder("state-secret"),
            callback_settings=_callback_settings(timeout=0.2),
            open_browser=browser,
        )

    assert len(browser.urls) == 1
    assert oauth_client.codes == []
    assert token_store.load("user-1") is None


@pytest.mark.anyio
async def test_flow_opens_browser_only_after_listener_accepts(token_store) -> None:
    oauth_client = DummyOAuthClient()
    browser = BrowserStub()
    reachable: list[bool] = []

    def connecting_browser(url: str) -> bool:
        redirect_uri = parse_qs(urlsplit(url).query)["redirect_uri"][0]
        parts = urlsplit(redirect_uri)
        with socket.create_connection((parts.hostname, parts.port), timeout=1):
            reachable.append(True)
        return browser(url)

    await run_authorization_flow(
        user_id="user-1",
        oauth_client=oauth_client,
        token_store=token_store,
        state_encoder=OAuthStateEncoder("state-secret"),
        callback_settings=_callback_settings(),
        open_browser=connecting_browser,
    )

    assert reachable == [True]
