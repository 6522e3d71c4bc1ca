"""
Application configuration models and helpers.

Centralizes settings management so the CLI commands, the callback listener and
the token store share a consistent configuration surface.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_REFRESH_THRESHOLD_SECONDS = 300
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"


def _load_env_file(path: str = ".env") -> None:
    """Load key=value pairs from a .env file without overriding the environment."""
    env_path = Path(path)
    if not env_path.exists():
        return
    load_dotenv(env_path, override=False)


_load_env_file()


class _Section(BaseSettings):
    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")


class GoogleSettings(_Section):
    """Credentials and endpoints of the Google OAuth client."""

    client_id: str = Field(..., alias="GOOGLE_CLIENT_ID")
    client_secret: str = Field(..., alias="GOOGLE_CLIENT_SECRET")
    auth_url: str = Field(
        "https://accounts.google.com/o/oauth2/v2/auth", alias="GOOGLE_AUTH_URL"
    )
    token_url: str = Field("https://oauth2.googleapis.com/token", alias="GOOGLE_TOKEN_URL")
    calendar_id: str = Field(
        "primary",
        alias="GOOGLE_CALENDAR_ID",
        description="Calendar that receives events created from the CLI.",
    )


class OAuthSettings(_Section):
    """OAuth flow configuration."""

    state_ttl_seconds: int = Field(900, alias="OAUTH_STATE_TTL")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        (CALENDAR_SCOPE,),
        alias="OAUTH_SCOPES",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())


class CallbackSettings(_Section):
    """Where the local redirect listener binds and how long it waits."""

    host: str = Field("127.0.0.1", alias="OAUTH_CALLBACK_HOST")
    port: int = Field(8080, ge=0, le=65535, alias="OAUTH_CALLBACK_PORT")
    redirect_host: str = Field(
        "localhost",
        alias="OAUTH_REDIRECT_HOST",
        description="Host name registered with the provider for the redirect URI.",
    )
    timeout_seconds: float = Field(
        300.0,
        ge=0,
        alias="OAUTH_CALLBACK_TIMEOUT",
        description="Maximum wait for the authorization code; 0 waits forever.",
    )
    settle_seconds: float = Field(0.2, ge=0, alias="OAUTH_CALLBACK_SETTLE_SECONDS")


class TokenStoreSettings(_Section):
    """Location and refresh policy of the persistent token store."""

    path: str = Field("token_store.sqlite3", alias="TOKEN_STORE_PATH")
    refresh_threshold_seconds: int = Field(
        DEFAULT_REFRESH_THRESHOLD_SECONDS,
        ge=0,
        alias="TOKEN_REFRESH_THRESHOLD_SECONDS",
        description="Tokens with less remaining lifetime are refreshed on read.",
    )
    encryption_secret: str | None = Field(
        None,
        alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for sealing stored tokens. "
            "Falls back to the Google client secret."
        ),
    )


class AppSettings(_Section):
    """Root settings object for the CLI."""

    model_config = SettingsConfigDict(
        populate_by_name=True,
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    log_level: str = Field("INFO", alias="APP_LOG_LEVEL")
    default_user_id: str = Field("default_user", alias="DEFAULT_USER_ID")
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    callback: CallbackSettings = Field(default_factory=CallbackSettings)
    token_store: TokenStoreSettings = Field(default_factory=TokenStoreSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "CALENDAR_SCOPE",
    "CallbackSettings",
    "DEFAULT_REFRESH_THRESHOLD_SECONDS",
    "GoogleSettings",
    "OAuthSettings",
    "TokenStoreSettings",
    "get_settings",
]
