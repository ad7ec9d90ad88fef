"""Shared fakes for tests that talk to an async psycopg connection."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from runlog_workers.metrics import reset_metrics


class FakeTransaction:
    """Mimics psycopg's async transaction context manager."""

    def __init__(self):
        self.entered = 0

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False  # don't suppress exceptions


class FakeCursor:
    """Mimics psycopg's async cursor context manager."""

    def __init__(self, rows=None, one=None, rowcount=0):
        self.execute = AsyncMock()
        self.executemany = AsyncMock()
        self.fetchall = AsyncMock(return_value=rows or [])
        self.fetchone = AsyncMock(return_value=one)
        self.rowcount = rowcount

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


def make_mock_conn(cursor: FakeCursor | None = None) -> AsyncMock:
    conn = AsyncMock()
    conn.transaction = MagicMock(return_value=FakeTransaction())
    conn.execute = AsyncMock()
    conn.commit = AsyncMock()
    fake_cursor = cursor or FakeCursor()
    conn.cursor = MagicMock(return_value=fake_cursor)
    conn._fake_cursor = fake_cursor  # expose for assertions
    return conn


@pytest.fixture
def mock_conn():
    """Mock async connection with transaction and cursor support."""
    return make_mock_conn()


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()
