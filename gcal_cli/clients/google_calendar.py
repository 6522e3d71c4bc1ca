"""Google Calendar client wrapper for creating events."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, TYPE_CHECKING

import httplib2
from google.auth.exceptions import TransportError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from gcal_cli.schemas.calendar import CalendarEventRequest, CreatedEvent

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from gcal_cli.clients.google_auth import GoogleOAuthClient
    from gcal_cli.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class CalendarApiError(Exception):
    """Raised when the Calendar API rejects a request or cannot be reached."""


class GoogleCalendarClient:
    """Create events in the user's calendar with a stored bearer token."""

    def __init__(
        self,
        token_store: "TokenStore",
        oauth_client: "GoogleOAuthClient",
        *,
        calendar_id: str = "primary",
        scopes: tuple[str, ...] = (),
    ) -> None:
        self._token_store = token_store
        self._oauth_client = oauth_client
        self._calendar_id = calendar_id
        self._scopes = scopes

    async def create_event(
        self, *, user_id: str, event: CalendarEventRequest
    ) -> CreatedEvent:
        """Insert ``event`` and return its identifier and link."""
        token = await self._token_store.ensure_valid(user_id, self._oauth_client)
        logger.debug(
            "Token available (first 10 chars): %s...", token.access_token[:10]
        )
        # No refresh token here: refreshing is owned by the token store.
        credentials = Credentials(token=token.access_token, scopes=list(self._scopes))

        def _execute_insert() -> Dict[str, Any]:
            service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
            return (
                service.events()
                .insert(calendarId=self._calendar_id, body=event.to_api_body())
                .execute()
            )

        logger.info("Sending event creation request to Google Calendar API...")
        try:
            result = await asyncio.to_thread(_execute_insert)
        except HttpError as exc:
            raise CalendarApiError(f"Calendar API rejected the event: {exc}") from exc
        except (OSError, httplib2.HttpLib2Error, TransportError) as exc:
            raise CalendarApiError(f"Calendar API unreachable: {exc}") from exc

        created = CreatedEvent(id=result.get("id", ""), html_link=result.get("htmlLink", ""))
        logger.info("Event created successfully (id=%s)", created.id)
        return created


__all__ = ["CalendarApiError", "GoogleCalendarClient"]
