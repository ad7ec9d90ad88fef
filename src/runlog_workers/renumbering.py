"""Renumbering passes against the database.

Write paths call renumber_owner() synchronously before serving any
numbering-dependent read, or enqueue_renumbering() when the pass can be
deferred to the worker (e.g. after deletions the client already hides).

A pass runs in one transaction under a per-owner advisory lock:
load entries -> plan_renumbering() -> apply the diff atomically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Json

from .entries import NumberingUpdate
from .errors import NumberingInvariantError, NumberingWriteConflict
from .metrics import record_renumber_pass, record_write_conflict
from .numbering import plan_renumbering, preview_position
from .registry import register
from .repository import apply_numbering_updates, fetch_owner_entries, lock_owner

logger = logging.getLogger(__name__)

RECALCULATE_JOB_TYPE = "numbering.recalculate"
JOBS_CHANNEL = "runlog_jobs"


@dataclass(frozen=True)
class RenumberResult:
    owner_id: str
    entries_total: int
    updates: tuple[NumberingUpdate, ...]
    applied: int
    dry_run: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.updates)


async def renumber_owner(
    conn: psycopg.AsyncConnection[Any],
    owner_id: str,
    *,
    dry_run: bool = False,
) -> RenumberResult:
    """Recompute and persist numbering for one owner.

    Raises DataUnavailableError when entries cannot be loaded (nothing is
    written) and NumberingWriteConflict when the batch fails (nothing is
    written; the whole pass can be retried).
    """
    owner_id = str(owner_id)
    applied = 0
    async with conn.transaction():
        await lock_owner(conn, owner_id)
        entries = await fetch_owner_entries(conn, owner_id)
        updates = plan_renumbering(entries)
        if updates and not dry_run:
            try:
                applied = await apply_numbering_updates(conn, owner_id, updates)
            except NumberingWriteConflict:
                record_write_conflict()
                logger.warning(
                    "Numbering batch rejected for owner=%s (%d updates)",
                    owner_id,
                    len(updates),
                    extra={"runlog_owner_id": owner_id, "runlog_updates": len(updates)},
                )
                raise

    record_renumber_pass(applied)
    logger.info(
        "Renumbered owner=%s: %d entries, %d updates%s",
        owner_id,
        len(entries),
        len(updates),
        " (dry run)" if dry_run else "",
        extra={
            "runlog_owner_id": owner_id,
            "runlog_entries": len(entries),
            "runlog_updates": len(updates),
        },
    )
    return RenumberResult(
        owner_id=owner_id,
        entries_total=len(entries),
        updates=tuple(updates),
        applied=applied,
        dry_run=dry_run,
    )


async def enqueue_renumbering(
    conn: psycopg.AsyncConnection[Any],
    owner_id: str,
    *,
    max_retries: int = 3,
) -> bool:
    """Schedule a deferred renumbering pass. Returns False if one is already pending."""
    owner_id = str(owner_id)
    async with conn.cursor(row_factory=dict_row) as cur:
        await cur.execute(
            """
            INSERT INTO background_jobs (user_id, job_type, payload, max_retries)
            SELECT %s, %s, %s, %s
            WHERE NOT EXISTS (
                SELECT 1 FROM background_jobs
                WHERE user_id = %s
                  AND job_type = %s
                  AND status = 'pending'
            )
            RETURNING id
            """,
            (
                owner_id,
                RECALCULATE_JOB_TYPE,
                Json({"owner_id": owner_id}),
                max_retries,
                owner_id,
                RECALCULATE_JOB_TYPE,
            ),
        )
        row = await cur.fetchone()

    if row is None:
        logger.debug("Renumbering already pending for owner=%s", owner_id)
        return False

    await conn.execute("SELECT pg_notify(%s, %s)", (JOBS_CHANNEL, owner_id))
    logger.info(
        "Enqueued renumbering job %s for owner=%s",
        row["id"],
        owner_id,
        extra={"runlog_owner_id": owner_id, "runlog_job_id": row["id"]},
    )
    return True


@dataclass(frozen=True)
class PositionPreview:
    owner_id: str
    entry_date: date
    sequence_number: int
    training_week: int


async def preview_owner_position(
    conn: psycopg.AsyncConnection[Any],
    owner_id: str,
    entry_date: date,
) -> PositionPreview:
    """Numbers a new completed entry on ``entry_date`` would receive. Read-only."""
    entries = await fetch_owner_entries(conn, owner_id)
    sequence_number, training_week = preview_position(entries, entry_date)
    return PositionPreview(
        owner_id=owner_id,
        entry_date=entry_date,
        sequence_number=sequence_number,
        training_week=training_week,
    )


# A missing owner or inconsistent links fail the same way on every attempt
@register(
    RECALCULATE_JOB_TYPE,
    permanent_errors=(NumberingInvariantError, ValueError),
)
async def handle_numbering_recalculate(
    conn: psycopg.AsyncConnection[Any], payload: dict[str, Any]
) -> None:
    owner_id = payload.get("owner_id")
    if not owner_id:
        raise ValueError(f"Missing owner_id in {RECALCULATE_JOB_TYPE} payload")
    await renumber_owner(conn, str(owner_id))
