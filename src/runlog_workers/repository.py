"""PostgreSQL access for training entries (psycopg, async).

Expected table::

    training_entries (
        id               uuid primary key,
        owner_id         uuid not null,
        status           text not null,          -- 'completed' | 'planned'
        entry_date       date,
        planned_date     date,
        distance_km      double precision not null default 0,
        duration_seconds integer,
        avg_heart_rate   integer,
        sequence_number  integer,
        training_week    integer,
        linked_plan_id   uuid references training_entries(id),
        created_at       timestamptz not null default now()
    )

Read failures surface as DataUnavailableError, write failures as
NumberingWriteConflict. The numbering batch is all-or-nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import psycopg
from psycopg.rows import dict_row
from pydantic import ValidationError

from .entries import NumberingUpdate, TrainingEntry
from .errors import DataUnavailableError, NumberingWriteConflict

logger = logging.getLogger(__name__)

_ENTRY_COLUMNS = """
    id, owner_id, status, entry_date, planned_date, distance_km,
    duration_seconds, avg_heart_rate, sequence_number, training_week,
    linked_plan_id, created_at
"""


def _rows_to_entries(rows: Sequence[dict[str, Any]], owner_id: str) -> list[TrainingEntry]:
    try:
        return [TrainingEntry.model_validate(row) for row in rows]
    except ValidationError as exc:
        raise DataUnavailableError(
            f"Stored training entry failed validation: {exc.errors()[0].get('msg')}",
            owner_id=owner_id,
        ) from exc


async def lock_owner(conn: psycopg.AsyncConnection[Any], owner_id: str) -> None:
    """Serialize numbering passes for one owner (released at transaction end)."""
    await conn.execute(
        "SELECT pg_advisory_xact_lock(hashtext(%s)::bigint)",
        (str(owner_id),),
    )


async def fetch_owner_entries(
    conn: psycopg.AsyncConnection[Any], owner_id: str
) -> list[TrainingEntry]:
    """All completed and planned entries for one owner."""
    try:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                f"""
                SELECT {_ENTRY_COLUMNS}
                FROM training_entries
                WHERE owner_id = %s
                ORDER BY COALESCE(entry_date, planned_date) ASC NULLS LAST,
                         created_at ASC, id ASC
                """,
                (owner_id,),
            )
            rows = await cur.fetchall()
    except psycopg.Error as exc:
        logger.error(
            "Failed to load training entries for owner=%s", owner_id,
            extra={"runlog_owner_id": owner_id},
        )
        raise DataUnavailableError(
            f"Could not load training entries: {exc}", owner_id=owner_id
        ) from exc
    return _rows_to_entries(rows, owner_id)


async def fetch_unlinked_planned(
    conn: psycopg.AsyncConnection[Any], owner_id: str
) -> list[TrainingEntry]:
    """Planned entries that no completed entry links to."""
    try:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                f"""
                SELECT {_ENTRY_COLUMNS}
                FROM training_entries p
                WHERE p.owner_id = %s
                  AND p.status = 'planned'
                  AND NOT EXISTS (
                      SELECT 1 FROM training_entries c
                      WHERE c.owner_id = p.owner_id
                        AND c.status = 'completed'
                        AND c.linked_plan_id = p.id
                  )
                ORDER BY p.planned_date ASC NULLS LAST, p.created_at ASC, p.id ASC
                """,
                (owner_id,),
            )
            rows = await cur.fetchall()
    except psycopg.Error as exc:
        raise DataUnavailableError(
            f"Could not load planned entries: {exc}", owner_id=owner_id
        ) from exc
    return _rows_to_entries(rows, owner_id)


async def apply_numbering_updates(
    conn: psycopg.AsyncConnection[Any],
    owner_id: str,
    updates: Sequence[NumberingUpdate],
) -> int:
    """Write all updates in one transaction; returns the number of rows changed.

    If any row is missing (deleted concurrently) or the statement fails,
    the whole batch rolls back and NumberingWriteConflict is raised.
    """
    if not updates:
        return 0

    params = [
        (u.sequence_number, u.training_week, u.entry_id, owner_id)
        for u in updates
    ]
    try:
        async with conn.transaction():
            async with conn.cursor() as cur:
                await cur.executemany(
                    """
                    UPDATE training_entries
                    SET sequence_number = %s, training_week = %s
                    WHERE id = %s AND owner_id = %s
                    """,
                    params,
                )
                changed = cur.rowcount
                if changed != len(params):
                    raise NumberingWriteConflict(
                        f"Numbering batch touched {changed} of {len(params)} entries",
                        owner_id=owner_id,
                    )
    except psycopg.Error as exc:
        raise NumberingWriteConflict(
            f"Numbering batch failed: {exc}", owner_id=owner_id
        ) from exc
    return changed
