from .auth import AuthorizationCallback
from .calendar import CalendarEventRequest, CreatedEvent

__all__ = [
    "AuthorizationCallback",
    "CalendarEventRequest",
    "CreatedEvent",
]
