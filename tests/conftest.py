"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except ImportError:  # pragma: no cover - rootdir-relative import
    import _bootstrap  # type: ignore # noqa: F401

from pathlib import Path

import pytest

from gcal_cli.clients.sqlite_store import SQLiteKeyValueStore
from gcal_cli.services.token_cipher import TokenCipherService
from gcal_cli.services.token_store import TokenStore


class FakeClock:
    """Manually advanced stand-in for ``time.time``."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store(tmp_path: Path) -> SQLiteKeyValueStore:
    return SQLiteKeyValueStore(str(tmp_path / "store" / "tokens.sqlite3"))


@pytest.fixture
def token_cipher() -> TokenCipherService:
    return TokenCipherService(secret="secret-key")


@pytest.fixture
def token_store(kv_store, token_cipher, clock) -> TokenStore:
    return TokenStore(kv_store, token_cipher, clock=clock)
