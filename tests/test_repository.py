"""Tests for training entry persistence (fake async connection)."""

import uuid
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import psycopg
import pytest

from conftest import FakeCursor, make_mock_conn
from runlog_workers.entries import NumberingUpdate
from runlog_workers.errors import DataUnavailableError, NumberingWriteConflict
from runlog_workers.repository import (
    apply_numbering_updates,
    fetch_owner_entries,
    fetch_unlinked_planned,
    lock_owner,
)

OWNER = uuid.UUID("6f1c3a52-0d4e-4c7b-9a51-2f3e8b7d1c00")


def _row(**overrides):
    row = {
        "id": uuid.uuid4(),
        "owner_id": OWNER,
        "status": "completed",
        "entry_date": date(2026, 1, 6),
        "planned_date": None,
        "distance_km": 10.0,
        "duration_seconds": 3000,
        "avg_heart_rate": 150,
        "sequence_number": 1,
        "training_week": 1,
        "linked_plan_id": None,
        "created_at": datetime(2026, 1, 6, 7, 30, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


def _updates(n):
    return [
        NumberingUpdate(entry_id=f"e{i}", sequence_number=i + 1, training_week=1)
        for i in range(n)
    ]


class TestLockOwner:
    @pytest.mark.asyncio
    async def test_takes_transaction_scoped_advisory_lock(self, mock_conn):
        await lock_owner(mock_conn, OWNER)
        sql, params = mock_conn.execute.call_args.args
        assert "pg_advisory_xact_lock" in sql
        assert params == (str(OWNER),)


class TestFetchOwnerEntries:
    @pytest.mark.asyncio
    async def test_rows_become_entries(self):
        plan_id = uuid.uuid4()
        rows = [
            _row(linked_plan_id=plan_id),
            _row(id=plan_id, status="planned", entry_date=None,
                 planned_date=date(2026, 1, 6), distance_km=None,
                 duration_seconds=None, avg_heart_rate=None),
        ]
        conn = make_mock_conn(FakeCursor(rows=rows))

        entries = await fetch_owner_entries(conn, str(OWNER))

        assert [e.status for e in entries] == ["completed", "planned"]
        assert entries[0].owner_id == str(OWNER)
        assert entries[0].linked_plan_id == str(plan_id)
        assert entries[1].id == str(plan_id)
        assert entries[1].distance_km == 0.0
        sql, params = conn._fake_cursor.execute.call_args.args
        assert "FROM training_entries" in sql
        assert params == (str(OWNER),)

    @pytest.mark.asyncio
    async def test_no_rows(self, mock_conn):
        assert await fetch_owner_entries(mock_conn, str(OWNER)) == []

    @pytest.mark.asyncio
    async def test_database_error_is_data_unavailable(self):
        cursor = FakeCursor()
        cursor.execute = AsyncMock(side_effect=psycopg.OperationalError("connection lost"))
        conn = make_mock_conn(cursor)

        with pytest.raises(DataUnavailableError) as exc_info:
            await fetch_owner_entries(conn, str(OWNER))
        assert exc_info.value.code == "data_unavailable"
        assert exc_info.value.owner_id == str(OWNER)

    @pytest.mark.asyncio
    async def test_invalid_row_is_data_unavailable(self):
        conn = make_mock_conn(FakeCursor(rows=[_row(entry_date=None)]))
        with pytest.raises(DataUnavailableError, match="failed validation"):
            await fetch_owner_entries(conn, str(OWNER))


class TestFetchUnlinkedPlanned:
    @pytest.mark.asyncio
    async def test_returns_planned_entries(self):
        rows = [_row(status="planned", entry_date=None, planned_date=date(2026, 1, 9))]
        conn = make_mock_conn(FakeCursor(rows=rows))

        entries = await fetch_unlinked_planned(conn, str(OWNER))

        assert len(entries) == 1
        assert entries[0].effective_date == date(2026, 1, 9)
        sql = conn._fake_cursor.execute.call_args.args[0]
        assert "NOT EXISTS" in sql

    @pytest.mark.asyncio
    async def test_database_error_is_data_unavailable(self):
        cursor = FakeCursor()
        cursor.fetchall = AsyncMock(side_effect=psycopg.OperationalError("timeout"))
        conn = make_mock_conn(cursor)
        with pytest.raises(DataUnavailableError):
            await fetch_unlinked_planned(conn, str(OWNER))


class TestApplyNumberingUpdates:
    @pytest.mark.asyncio
    async def test_empty_batch_is_a_no_op(self, mock_conn):
        assert await apply_numbering_updates(mock_conn, "owner-1", []) == 0
        mock_conn.transaction.assert_not_called()
        mock_conn.cursor.assert_not_called()

    @pytest.mark.asyncio
    async def test_writes_batch_in_one_transaction(self):
        conn = make_mock_conn(FakeCursor(rowcount=3))

        applied = await apply_numbering_updates(conn, "owner-1", _updates(3))

        assert applied == 3
        conn.transaction.assert_called_once()
        conn._fake_cursor.executemany.assert_awaited_once()
        sql, params = conn._fake_cursor.executemany.call_args.args
        assert "UPDATE training_entries" in sql
        assert params == [
            (1, 1, "e0", "owner-1"),
            (2, 1, "e1", "owner-1"),
            (3, 1, "e2", "owner-1"),
        ]

    @pytest.mark.asyncio
    async def test_null_training_week_is_written(self):
        conn = make_mock_conn(FakeCursor(rowcount=1))
        update = NumberingUpdate(entry_id="u1", sequence_number=9, training_week=None)
        await apply_numbering_updates(conn, "owner-1", [update])
        _, params = conn._fake_cursor.executemany.call_args.args
        assert params == [(9, None, "u1", "owner-1")]

    @pytest.mark.asyncio
    async def test_missing_row_is_write_conflict(self):
        conn = make_mock_conn(FakeCursor(rowcount=2))
        with pytest.raises(NumberingWriteConflict, match="touched 2 of 3"):
            await apply_numbering_updates(conn, "owner-1", _updates(3))

    @pytest.mark.asyncio
    async def test_database_error_is_write_conflict(self):
        cursor = FakeCursor()
        cursor.executemany = AsyncMock(
            side_effect=psycopg.errors.SerializationFailure("could not serialize")
        )
        conn = make_mock_conn(cursor)

        with pytest.raises(NumberingWriteConflict) as exc_info:
            await apply_numbering_updates(conn, "owner-1", _updates(2))
        assert exc_info.value.code == "write_conflict"
        assert isinstance(exc_info.value.__cause__, psycopg.errors.SerializationFailure)
