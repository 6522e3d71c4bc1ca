"""Command-line Google Calendar client with a persistent OAuth token store."""

__version__ = "0.1.0"
