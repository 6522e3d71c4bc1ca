"""Schemas for the calendar event call."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CalendarEventRequest(BaseModel):
    """Event created by the ``create-event`` command."""

    summary: str = Field(..., min_length=1)
    start: datetime
    end: datetime
    description: Optional[str] = None
    time_zone: str = "UTC"

    @classmethod
    def from_description(
        cls, description: str, *, now: datetime | None = None
    ) -> "CalendarEventRequest":
        """Schedule a one hour event starting an hour from now."""
        now = now or datetime.now(timezone.utc)
        return cls(
            summary=description,
            start=now + timedelta(hours=1),
            end=now + timedelta(hours=2),
            description=f"Created by CLI tool: {description}",
        )

    def to_api_body(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "description": self.description,
            "start": {"dateTime": self.start.isoformat(), "timeZone": self.time_zone},
            "end": {"dateTime": self.end.isoformat(), "timeZone": self.time_zone},
        }


class CreatedEvent(BaseModel):
    id: str = ""
    html_link: str = ""


__all__ = ["CalendarEventRequest", "CreatedEvent"]
