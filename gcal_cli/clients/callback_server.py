"""
Local HTTP listener that catches the OAuth2 redirect callback.

The listener binds a loopback socket before anything else happens so the
browser can never be redirected to a port nobody is listening on. It serves a
single FastAPI route under uvicorn, hands the first authorization code to the
waiting flow and shuts down cooperatively once asked to.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from gcal_cli.clients.google_auth import (
    AuthorizationDeniedError,
    AuthorizationTimeoutError,
    CallbackBindError,
)
from gcal_cli.core.config import CallbackSettings
from gcal_cli.schemas.auth import AuthorizationCallback

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/oauth/callback"
_STARTUP_POLL_SECONDS = 0.01

CALLBACK_PAGE = """<!doctype html>
<html>
  <head><title>gcal-cli</title></head>
  <body>
    <h1>You can close this window</h1>
    <p>Return to the terminal to see whether authorization completed.</p>
    <p>If the terminal reports an error, run <code>gcal-cli auth</code> again.</p>
  </body>
</html>
"""


class CallbackHandoff:
    """One-shot hand-off of the authorization callback to the waiting flow.

    Exactly one value is ever delivered and exactly one is received. Extra
    deliveries are dropped with a warning instead of raising, so a second
    browser tab hitting the callback cannot break the server.
    """

    def __init__(self) -> None:
        self._future: Optional[asyncio.Future[AuthorizationCallback]] = None
        self._received = False

    def _get_future(self) -> asyncio.Future[AuthorizationCallback]:
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    @property
    def delivered(self) -> bool:
        return self._future is not None and self._future.done()

    def deliver(self, callback: AuthorizationCallback) -> bool:
        """Hand the callback over; returns False when one was already delivered."""
        future = self._get_future()
        if future.done():
            logger.warning("Authorization code already delivered; dropping duplicate callback")
            return False
        future.set_result(callback)
        return True

    async def wait(self, timeout: float | None = None) -> AuthorizationCallback:
        """Wait for the callback; ``timeout=None`` waits indefinitely."""
        if self._received:
            raise RuntimeError("Authorization callback has already been received.")
        future = self._get_future()
        try:
            callback = await asyncio.wait_for(asyncio.shield(future), timeout)
        except asyncio.TimeoutError as exc:
            raise AuthorizationTimeoutError(
                f"No authorization code received within {timeout:g} seconds."
            ) from exc
        self._received = True
        return callback


def build_callback_app(handoff: CallbackHandoff) -> FastAPI:
    """Create the ASGI app that forwards redirect parameters to ``handoff``."""
    app = FastAPI(
        title="gcal-cli OAuth callback",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get(CALLBACK_PATH, response_class=HTMLResponse)
    async def oauth_callback(request: Request) -> HTMLResponse:
        params = request.query_params
        logger.info("Received callback with parameters: %s", sorted(params.keys()))
        code = params.get("code")
        if code:
            logger.info("Got authorization code, length: %d", len(code))
            handoff.deliver(AuthorizationCallback(code=code, state=params.get("state")))
        elif params.get("error"):
            logger.error("Authorization was not granted (error=%s)", params.get("error"))
        else:
            logger.error("No code parameter in callback")
        return HTMLResponse(CALLBACK_PAGE, status_code=200)

    return app


class CallbackListener:
    """Short-lived loopback server for a single authorization attempt."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8080,
        *,
        handoff: CallbackHandoff | None = None,
        settle_seconds: float = 0.0,
    ) -> None:
        self.host = host
        self._requested_port = port
        self._bound_port: int | None = None
        self._settle_seconds = settle_seconds
        self.handoff = handoff or CallbackHandoff()
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: CallbackSettings) -> "CallbackListener":
        return cls(
            host=settings.host,
            port=settings.port,
            settle_seconds=settings.settle_seconds,
        )

    @property
    def port(self) -> int:
        """The bound port, which differs from the requested one when that was 0."""
        if self._bound_port is None:
            raise RuntimeError("Callback listener has not been started.")
        return self._bound_port

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def redirect_uri(self, host: str = "localhost") -> str:
        return f"http://{host}:{self.port}{CALLBACK_PATH}"

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self._requested_port))
            sock.listen(128)
        except OSError as exc:
            sock.close()
            raise CallbackBindError(
                f"Could not bind OAuth callback listener to "
                f"{self.host}:{self._requested_port}: {exc}"
            ) from exc
        return sock

    async def start(self) -> None:
        """Bind, start serving and return once connections are being accepted."""
        if self._task is not None:
            raise RuntimeError("Callback listener is already running.")

        sock = self._bind()
        self._bound_port = sock.getsockname()[1]
        config = uvicorn.Config(
            build_callback_app(self.handoff),
            lifespan="off",
            log_config=None,
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(
            self._server.serve(sockets=[sock]), name="oauth-callback-listener"
        )

        while not self._server.started:
            if self._task.done():
                task = self._task
                self._task = None
                self._server = None
                sock.close()
                cause = None if task.cancelled() else task.exception()
                raise CallbackBindError(
                    f"Callback listener on {self.host}:{self._bound_port} stopped during startup."
                ) from cause
            await asyncio.sleep(_STARTUP_POLL_SECONDS)

        if self._settle_seconds:
            await asyncio.sleep(self._settle_seconds)
        logger.info(
            "Callback listener accepting connections on http://%s:%d%s",
            self.host,
            self._bound_port,
            CALLBACK_PATH,
        )

    async def wait_for_callback(self, timeout: float | None = None) -> AuthorizationCallback:
        """Wait for the redirect; fails early if the server stops first."""
        if self._task is None:
            raise RuntimeError("Callback listener has not been started.")

        waiter = asyncio.ensure_future(self.handoff.wait(timeout))
        done, _ = await asyncio.wait(
            {waiter, self._task}, return_when=asyncio.FIRST_COMPLETED
        )
        if waiter in done:
            return waiter.result()

        waiter.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await waiter
        raise AuthorizationDeniedError(
            "Callback listener stopped before an authorization code arrived."
        )

    async def shutdown(self) -> None:
        """Request graceful shutdown and wait for the server task to finish."""
        if self._task is None:
            return
        if self._server is not None:
            self._server.should_exit = True
        try:
            await self._task
        finally:
            self._task = None
            self._server = None
        logger.info("Callback listener shut down")

    async def __aenter__(self) -> "CallbackListener":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()


__all__ = [
    "CALLBACK_PAGE",
    "CALLBACK_PATH",
    "CallbackHandoff",
    "CallbackListener",
    "build_callback_app",
]
