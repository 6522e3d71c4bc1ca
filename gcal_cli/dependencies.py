"""
Factory functions that wire configuration into shared clients and services.
"""

from functools import lru_cache

from gcal_cli.clients import (
    GoogleCalendarClient,
    GoogleOAuthClient,
    OAuthStateEncoder,
    SQLiteKeyValueStore,
)
from gcal_cli.clients.callback_server import CALLBACK_PATH
from gcal_cli.core.config import AppSettings, get_settings
from gcal_cli.services import TokenCipherService, TokenStore


@lru_cache()
def get_app_settings() -> AppSettings:
    """Ensure configuration is created once per process."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the Google client secret."""
    settings = get_app_settings()
    return OAuthStateEncoder(secret_key=settings.google.client_secret)


@lru_cache()
def get_google_oauth_client() -> GoogleOAuthClient:
    """Create a singleton Google OAuth client."""
    settings = get_app_settings()
    callback = settings.callback
    return GoogleOAuthClient(
        settings.google,
        settings.oauth,
        redirect_uri=f"http://{callback.redirect_host}:{callback.port}{CALLBACK_PATH}",
    )


@lru_cache()
def get_sqlite_store() -> SQLiteKeyValueStore:
    """Provide the on-disk key-value store backing the token cache."""
    settings = get_app_settings()
    return SQLiteKeyValueStore(settings.token_store.path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = get_app_settings()
    secret = settings.token_store.encryption_secret or settings.google.client_secret
    return TokenCipherService(secret=secret)


@lru_cache()
def get_token_store() -> TokenStore:
    """Provide the process-wide token store."""
    settings = get_app_settings()
    return TokenStore(
        get_sqlite_store(),
        get_token_cipher_service(),
        refresh_threshold_seconds=settings.token_store.refresh_threshold_seconds,
    )


@lru_cache()
def get_calendar_client() -> GoogleCalendarClient:
    """Provide Google Calendar client instance."""
    settings = get_app_settings()
    return GoogleCalendarClient(
        token_store=get_token_store(),
        oauth_client=get_google_oauth_client(),
        calendar_id=settings.google.calendar_id,
        scopes=settings.oauth.scopes,
    )


__all__ = [
    "get_app_settings",
    "get_calendar_client",
    "get_google_oauth_client",
    "get_oauth_state_encoder",
    "get_sqlite_store",
    "get_token_cipher_service",
    "get_token_store",
]
