from .callback_server import CallbackHandoff, CallbackListener
from .google_auth import GoogleOAuthClient, OAuthStateEncoder
from .google_calendar import GoogleCalendarClient
from .sqlite_store import SQLiteKeyValueStore

__all__ = [
    "CallbackHandoff",
    "CallbackListener",
    "GoogleCalendarClient",
    "GoogleOAuthClient",
    "OAuthStateEncoder",
    "SQLiteKeyValueStore",
]
