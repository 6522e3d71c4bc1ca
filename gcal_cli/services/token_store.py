"""
Persistent per-user OAuth token cache with refresh-on-read.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from gcal_cli.clients.sqlite_store import SQLiteKeyValueStore
from gcal_cli.core.config import DEFAULT_REFRESH_THRESHOLD_SECONDS
from gcal_cli.models.oauth import OAuthTokenResponse, StoredToken
from gcal_cli.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


class TokenStoreError(Exception):
    """Base class for token store failures."""


class TokenSerializationError(TokenStoreError):
    """Raised when a token record cannot be encoded for storage."""


class TokenStorageError(TokenStoreError):
    """Raised when the underlying store cannot be read or written."""


class TokenNotFoundError(TokenStoreError):
    """Raised when no usable token exists and the user must authorize again."""


class TokenState(str, Enum):
    ABSENT = "absent"
    CORRUPT = "corrupt"
    EXPIRED = "expired"
    NEAR_EXPIRY = "near_expiry"
    FRESH = "fresh"


@dataclass(frozen=True)
class TokenStatus:
    state: TokenState
    remaining_seconds: Optional[float] = None
    has_refresh_token: bool = False


class RefreshingOAuthClient(Protocol):
    async def refresh_token(self, refresh_token: str) -> OAuthTokenResponse: ...


class TokenStore:
    """Manages access to persisted OAuth tokens, keyed by user identifier."""

    def __init__(
        self,
        store: SQLiteKeyValueStore,
        token_cipher: TokenCipherService,
        *,
        refresh_threshold_seconds: int = DEFAULT_REFRESH_THRESHOLD_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._cipher = token_cipher
        self._refresh_threshold = refresh_threshold_seconds
        self._clock = clock

    @property
    def refresh_threshold_seconds(self) -> int:
        return self._refresh_threshold

    @staticmethod
    def _key(user_id: str) -> str:
        return f"user#{user_id}"

    def _read_raw(self, user_id: str) -> Optional[bytes]:
        try:
            return self._store.get(self._key(user_id))
        except sqlite3.Error as exc:
            raise TokenStorageError(f"Failed to read token for user {user_id}: {exc}") from exc

    def _decode(self, user_id: str, raw: bytes) -> Optional[StoredToken]:
        try:
            return StoredToken.model_validate_json(self._cipher.unseal(raw))
        except (ValueError, ValidationError) as exc:
            logger.warning("Discarding unreadable token record for user %s: %s", user_id, exc)
            return None

    def _read(self, user_id: str) -> Optional[StoredToken]:
        raw = self._read_raw(user_id)
        if raw is None:
            return None
        return self._decode(user_id, raw)

    def save(self, user_id: str, token: OAuthTokenResponse) -> StoredToken:
        """Persist ``token`` for ``user_id``, replacing any previous record.

        The expiry is always derived from ``expires_in`` relative to now. A
        response without a refresh token keeps the refresh token of the
        previous record, since Google omits it when refreshing.
        """
        refresh_token = token.refresh_token
        if refresh_token is None:
            previous = self._read(user_id)
            if previous is not None and previous.refresh_token:
                logger.debug("Carrying forward refresh token for user %s", user_id)
                refresh_token = previous.refresh_token

        expires_at = None
        if token.expires_in is not None:
            expires_at = int(self._clock()) + token.expires_in

        record = StoredToken(
            access_token=token.access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )

        try:
            sealed = self._cipher.seal(record.model_dump_json().encode("utf-8"))
        except (TypeError, ValueError) as exc:
            raise TokenSerializationError(
                f"Failed to serialize token for user {user_id}: {exc}"
            ) from exc

        try:
            self._store.put(self._key(user_id), sealed)
        except (sqlite3.Error, OSError) as exc:
            raise TokenStorageError(f"Failed to persist token for user {user_id}: {exc}") from exc

        logger.info("Saved token for user %s (expires_at=%s)", user_id, expires_at)
        return record

    def load(self, user_id: str) -> Optional[StoredToken]:
        """Return the stored token, or None when absent, unreadable or expired."""
        token = self._read(user_id)
        if token is None:
            return None
        if token.is_expired(self._clock()):
            logger.info("Stored token for user %s has expired", user_id)
            return None
        return token

    async def ensure_valid(
        self, user_id: str, oauth_client: RefreshingOAuthClient
    ) -> StoredToken:
        """Retrieve a token for a user, refreshing it when close to expiry."""
        token = self.load(user_id)
        if token is None:
            raise TokenNotFoundError(
                f"No token found for user {user_id}; re-authorization required."
            )

        remaining = token.remaining_lifetime(self._clock())
        if remaining is None or remaining >= self._refresh_threshold:
            return token

        if not token.refresh_token:
            logger.warning(
                "Token for user %s expires in %ds and has no refresh token; using it as-is",
                user_id,
                remaining,
            )
            return token

        logger.info("Token for user %s expires in %ds; refreshing", user_id, remaining)
        refreshed = await oauth_client.refresh_token(token.refresh_token)
        return self.save(user_id, refreshed)

    def delete(self, user_id: str) -> bool:
        try:
            removed = self._store.delete(self._key(user_id))
        except sqlite3.Error as exc:
            raise TokenStorageError(f"Failed to delete token for user {user_id}: {exc}") from exc
        if removed:
            logger.info("Deleted token for user %s", user_id)
        return removed

    def describe(self, user_id: str) -> TokenStatus:
        """Report the state of a user's record without refreshing it."""
        raw = self._read_raw(user_id)
        if raw is None:
            return TokenStatus(TokenState.ABSENT)
        token = self._decode(user_id, raw)
        if token is None:
            return TokenStatus(TokenState.CORRUPT)

        has_refresh = bool(token.refresh_token)
        remaining = token.remaining_lifetime(self._clock())
        if remaining is None:
            return TokenStatus(TokenState.FRESH, None, has_refresh)
        if remaining <= 0:
            return TokenStatus(TokenState.EXPIRED, remaining, has_refresh)
        if remaining < self._refresh_threshold:
            return TokenStatus(TokenState.NEAR_EXPIRY, remaining, has_refresh)
        return TokenStatus(TokenState.FRESH, remaining, has_refresh)


__all__ = [
    "TokenNotFoundError",
    "TokenSerializationError",
    "TokenState",
    "TokenStatus",
    "TokenStorageError",
    "TokenStore",
    "TokenStoreError",
]
