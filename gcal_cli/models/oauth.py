"""
Domain models for OAuth token persistence.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class OAuthTokenResponse(BaseModel):
    """Token payload returned by the provider's token endpoint."""

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = Field(
        None, ge=0, description="Lifetime of the access token in seconds."
    )
    token_type: Optional[str] = None
    scope: Optional[str] = None


class StoredToken(BaseModel):
    """Represents a token record persisted in the token store."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = Field(
        None, description="Absolute Unix timestamp (seconds) computed at save time."
    )

    def remaining_lifetime(self, now: float) -> Optional[float]:
        """Seconds left before expiry, or None for a non-expiring token."""
        if self.expires_at is None:
            return None
        return self.expires_at - now

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


__all__ = ["OAuthTokenResponse", "StoredToken"]
