from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from gcal_cli.clients.google_auth import (
    GoogleOAuthClient,
    OAuthStateEncoder,
    OAuthStateError,
    OAuthTokenExchangeError,
    OAuthTransportError,
)
from gcal_cli.core.config import CALENDAR_SCOPE, GoogleSettings, OAuthSettings

REDIRECT_URI = "http://localhost:8080/oauth/callback"


def _client(handler=None) -> tuple[GoogleOAuthClient, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    settings = GoogleSettings(
        GOOGLE_CLIENT_ID="client",
        GOOGLE_CLIENT_SECRET="secret",
        GOOGLE_TOKEN_URL="https://oauth.example/token",
    )
    client = GoogleOAuthClient(
        settings,
        OAuthSettings(),
        redirect_uri=REDIRECT_URI,
        transport=httpx.MockTransport(record) if handler else None,
    )
    return client, requests


def _form(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


def test_authorization_url_carries_scope_state_and_redirect() -> None:
    client, _ = _client()

    url = client.build_authorization_url(state="state-123")

    parts = urlsplit(url)
    query = {key: values[0] for key, values in parse_qs(parts.query).items()}
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == (
        "https://accounts.google.com/o/oauth2/v2/auth"
    )
    assert query["client_id"] == "client"
    assert query["redirect_uri"] == REDIRECT_URI
    assert query["response_type"] == "code"
    assert query["scope"] == CALENDAR_SCOPE
    assert query["access_type"] == "offline"
    assert query["state"] == "state-123"


def test_authorization_url_accepts_redirect_override() -> None:
    client, _ = _client()

    url = client.build_authorization_url(
        state="s", redirect_uri="http://127.0.0.1:5555/oauth/callback"
    )

    query = parse_qs(urlsplit(url).query)
    assert query["redirect_uri"] == ["http://127.0.0.1:5555/oauth/callback"]


@pytest.mark.anyio
async def test_exchange_authorization_code_posts_grant() -> None:
    client, requests = _client(
        lambda request: httpx.Response(
            200,
            json={
                "access_token": "access",
                "refresh_token": "refresh",
                "expires_in": 3599,
                "token_type": "Bearer",
            },
        )
    )

    token = await client.exchange_authorization_code("the-code")

    assert token.access_token == "access"
    assert token.refresh_token == "refresh"
    assert token.expires_in == 3599
    form = _form(requests[0])
    assert str(requests[0].url) == "https://oauth.example/token"
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "the-code"
    assert form["redirect_uri"] == REDIRECT_URI
    assert form["client_secret"] == "secret"


@pytest.mark.anyio
async def test_refresh_token_posts_refresh_grant() -> None:
    client, requests = _client(
        lambda request: httpx.Response(200, json={"access_token": "new", "expires_in": 3600})
    )

    token = await client.refresh_token("refresh-1")

    assert token.access_token == "new"
    assert token.refresh_token is None
    form = _form(requests[0])
    assert form["grant_type"] == "refresh_token"
    assert form["refresh_token"] == "refresh-1"


@pytest.mark.anyio
async def test_rejected_grant_requires_reauthorization() -> None:
    client, _ = _client(
        lambda request: httpx.Response(
            400, json={"error": "invalid_grant", "error_description": "Token has been revoked."}
        )
    )

    with pytest.raises(OAuthTokenExchangeError) as excinfo:
        await client.refresh_token("revoked")

    assert excinfo.value.error_code == "invalid_grant"
    assert excinfo.value.requires_reauthorization is True
    assert not isinstance(excinfo.value, OAuthTransportError)


@pytest.mark.anyio
async def test_server_error_is_not_a_reauthorization() -> None:
    client, _ = _client(lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(OAuthTokenExchangeError) as excinfo:
        await client.refresh_token("refresh")

    assert excinfo.value.error_code is None
    assert excinfo.value.requires_reauthorization is False


@pytest.mark.anyio
async def test_network_failure_raises_transport_error() -> None:
    def fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = _client(fail)

    with pytest.raises(OAuthTransportError):
        await client.refresh_token("refresh")


@pytest.mark.anyio
async def test_incomplete_payload_is_rejected() -> None:
    client, _ = _client(lambda request: httpx.Response(200, json={"expires_in": 3600}))

    with pytest.raises(OAuthTokenExchangeError):
        await client.exchange_authorization_code("code")


def test_exchange_requires_redirect_uri() -> None:
    client = GoogleOAuthClient(
        GoogleSettings(GOOGLE_CLIENT_ID="client", GOOGLE_CLIENT_SECRET="secret"),
        OAuthSettings(),
    )

    with pytest.raises(ValueError):
        client.build_authorization_url(state="s")


def test_state_encoder_roundtrip() -> None:
    encoder = OAuthStateEncoder("secret")
    payload = {"nonce": "abc", "user_id": "user-1"}

    assert encoder.decode(encoder.encode(payload)) == payload


@pytest.mark.parametrize("token", ["not-base64!!", "c2hvcnQ="])
def test_state_encoder_rejects_garbage(token: str) -> None:
    with pytest.raises(OAuthStateError):
        OAuthStateEncoder("secret").decode(token)


def test_state_encoder_rejects_foreign_signature() -> None:
    state = OAuthStateEncoder("one").encode({"user_id": "user-1"})

    with pytest.raises(OAuthStateError):
        OAuthStateEncoder("two").decode(state)
