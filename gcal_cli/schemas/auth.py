"""Schemas related to OAuth flows."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class AuthorizationCallback(BaseModel):
    """Parameters captured from the provider's redirect to the local listener."""

    code: str = Field(..., description="Authorization code returned by Google OAuth.")
    state: Optional[str] = Field(
        None, description="Opaque state token issued when starting OAuth."
    )


__all__ = ["AuthorizationCallback"]
