"""Load report queries: fetch one owner's entries and aggregate them."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

import psycopg

from .aggregation import LoadReport, aggregate, weekly_stats
from .dates import (
    Granularity,
    RangeType,
    filter_items_by_range,
    includes_open_bucket,
    is_custom_range_too_short,
    resolve_date_range,
)
from .entries import TrainingEntry, split_by_status
from .repository import fetch_owner_entries, fetch_unlinked_planned

logger = logging.getLogger(__name__)


async def _fetch_report_inputs(
    conn: psycopg.AsyncConnection[Any], owner_id: str
) -> tuple[list[TrainingEntry], list[TrainingEntry]]:
    # A plan that a completed entry links to is already counted as completed
    # volume, so only unlinked plans feed the planned side.
    completed, _ = split_by_status(await fetch_owner_entries(conn, owner_id))
    planned = await fetch_unlinked_planned(conn, owner_id)
    return completed, planned


async def build_load_report(
    conn: psycopg.AsyncConnection[Any],
    owner_id: str,
    *,
    granularity: Granularity = "week",
    range_type: RangeType = "12weeks",
    custom_start: date | str | None = None,
    custom_end: date | str | None = None,
    reference_date: date | None = None,
) -> LoadReport:
    completed, planned = await _fetch_report_inputs(conn, owner_id)

    if range_type == "custom" and is_custom_range_too_short(custom_start, custom_end):
        logger.info(
            "Custom range too short for owner=%s (%s..%s)",
            owner_id, custom_start, custom_end,
            extra={"runlog_owner_id": owner_id},
        )
        return aggregate([], [], None, None, granularity)

    date_range = resolve_date_range(
        range_type,
        custom_start=custom_start,
        custom_end=custom_end,
        entry_dates=[e.effective_date for e in (*completed, *planned)],
        reference_date=reference_date,
    )
    return aggregate(
        completed,
        planned,
        date_range.start,
        date_range.end,
        granularity,
        include_open_bucket=includes_open_bucket(range_type, custom_end),
    )


async def build_weekly_history(
    conn: psycopg.AsyncConnection[Any],
    owner_id: str,
    *,
    start: date | None = None,
    end: date | None = None,
) -> LoadReport:
    """Week buckets from the owner's first to last dated entry.

    ``start`` and ``end`` drop entries outside them before the span is
    derived; either may be omitted.
    """
    completed, planned = await _fetch_report_inputs(conn, owner_id)
    return weekly_stats(
        filter_items_by_range(completed, lambda e: e.effective_date, start, end),
        filter_items_by_range(planned, lambda e: e.effective_date, start, end),
    )
