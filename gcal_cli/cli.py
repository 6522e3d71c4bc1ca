"""Command-line entry point.

Authorize once, then create calendar events with the stored credentials::

    # Open the consent page and store the resulting token.
    gcal-cli auth

    # Create an event starting an hour from now.
    gcal-cli create-event "Dentist appointment"

    # Inspect or remove the stored token.
    gcal-cli status
    gcal-cli logout
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import webbrowser
from typing import Callable

from pydantic import ValidationError

from gcal_cli import dependencies
from gcal_cli.clients.google_auth import (
    AuthorizationDeniedError,
    CallbackBindError,
    OAuthStateError,
    OAuthTokenExchangeError,
    OAuthTransportError,
)
from gcal_cli.clients.google_calendar import CalendarApiError
from gcal_cli.core.config import AppSettings
from gcal_cli.core.logging import configure_logging
from gcal_cli.schemas.calendar import CalendarEventRequest
from gcal_cli.services.authorization import run_authorization_flow
from gcal_cli.services.token_store import (
    TokenNotFoundError,
    TokenState,
    TokenStoreError,
)

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_REAUTHORIZATION_REQUIRED = 3
EXIT_TRANSIENT_ERROR = 4
EXIT_RUNTIME_ERROR = 5

_REAUTHORIZE_HINT = "Run `gcal-cli auth` to authorize again."


def _open_browser(url: str) -> bool:
    print(f"Opening the Google consent page. If nothing happens, visit:\n  {url}")
    return webbrowser.open(url)


def _run_auth(args: argparse.Namespace, settings: AppSettings) -> int:
    stored = asyncio.run(
        run_authorization_flow(
            user_id=args.user,
            oauth_client=dependencies.get_google_oauth_client(),
            token_store=dependencies.get_token_store(),
            state_encoder=dependencies.get_oauth_state_encoder(),
            callback_settings=settings.callback,
            state_ttl_seconds=settings.oauth.state_ttl_seconds,
            open_browser=_open_browser,
        )
    )
    renewable = "with" if stored.refresh_token else "without"
    print(f"Authorized user {args.user} ({renewable} refresh token).")
    return EXIT_OK


def _run_create_event(args: argparse.Namespace, settings: AppSettings) -> int:
    print(f"Attempting to create event: {args.description}")
    event = CalendarEventRequest.from_description(args.description)
    created = asyncio.run(
        dependencies.get_calendar_client().create_event(user_id=args.user, event=event)
    )
    print(f"Event created: {created.id}")
    if created.html_link:
        print(created.html_link)
    return EXIT_OK


def _run_status(args: argparse.Namespace, settings: AppSettings) -> int:
    status = dependencies.get_token_store().describe(args.user)
    print(f"user:          {args.user}")
    print(f"state:         {status.state.value}")
    if status.state in (TokenState.ABSENT, TokenState.CORRUPT):
        print(_REAUTHORIZE_HINT)
        return EXIT_REAUTHORIZATION_REQUIRED

    if status.remaining_seconds is None:
        print("expires in:    never")
    else:
        print(f"expires in:    {int(status.remaining_seconds)}s")
    print(f"refreshable:   {'yes' if status.has_refresh_token else 'no'}")
    if status.state is TokenState.EXPIRED:
        print(_REAUTHORIZE_HINT)
        return EXIT_REAUTHORIZATION_REQUIRED
    return EXIT_OK


def _run_logout(args: argparse.Namespace, settings: AppSettings) -> int:
    if dependencies.get_token_store().delete(args.user):
        print(f"Removed stored token for user {args.user}.")
    else:
        print(f"No stored token for user {args.user}.")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gcal-cli",
        description="Authorize against Google and create calendar events.",
    )
    parser.add_argument(
        "--user",
        default=None,
        help="User identifier whose token is used (default: DEFAULT_USER_ID).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: APP_LOG_LEVEL or INFO).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "auth",
        help="Open the consent page in a browser and store the resulting token.",
    )
    create_parser = subparsers.add_parser(
        "create-event",
        help="Create an event starting one hour from now.",
    )
    create_parser.add_argument("description", help="Event summary and description.")
    subparsers.add_parser("status", help="Show the state of the stored token.")
    subparsers.add_parser("logout", help="Delete the stored token.")

    return parser


def _report(message: str, hint: str | None = None) -> None:
    print(message, file=sys.stderr)
    if hint:
        print(hint, file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = dependencies.get_app_settings()
    except ValidationError as exc:
        _report(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}"
        )
        return EXIT_VALIDATION_ERROR

    configure_logging(args.log_level or settings.log_level)
    args.user = args.user or settings.default_user_id

    handlers: dict[str, Callable[[argparse.Namespace, AppSettings], int]] = {
        "auth": _run_auth,
        "create-event": _run_create_event,
        "status": _run_status,
        "logout": _run_logout,
    }

    try:
        return handlers[args.command](args, settings)
    except TokenNotFoundError as exc:
        _report(str(exc), _REAUTHORIZE_HINT)
        return EXIT_REAUTHORIZATION_REQUIRED
    except (AuthorizationDeniedError, OAuthStateError) as exc:
        _report(f"Authorization did not complete: {exc}", _REAUTHORIZE_HINT)
        return EXIT_REAUTHORIZATION_REQUIRED
    except OAuthTransportError as exc:
        _report(f"Could not reach Google; try again later: {exc}")
        return EXIT_TRANSIENT_ERROR
    except OAuthTokenExchangeError as exc:
        if exc.requires_reauthorization:
            _report("Google rejected the stored grant.", _REAUTHORIZE_HINT)
            return EXIT_REAUTHORIZATION_REQUIRED
        _report(f"Token exchange failed: {exc}")
        return EXIT_TRANSIENT_ERROR
    except CalendarApiError as exc:
        _report(str(exc))
        return EXIT_TRANSIENT_ERROR
    except CallbackBindError as exc:
        _report(f"{exc}. Set OAUTH_CALLBACK_PORT to a free port.")
        return EXIT_RUNTIME_ERROR
    except TokenStoreError as exc:
        _report(f"Token store failure: {exc}")
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
