"""Operator CLI: numbering and load tools for one owner."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from datetime import date
from typing import Sequence

import psycopg

from .dates import GRANULARITIES, RANGE_TYPES, parse_date_input, parse_week_key, week_end
from .logging import setup_logging
from .renumbering import preview_owner_position, renumber_owner
from .reporting import build_load_report, build_weekly_history


def _calendar_date(value: str) -> date:
    parsed = parse_date_input(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"invalid date: {value!r} (expected YYYY-MM-DD)")
    return parsed


def _week_monday(value: str) -> date:
    try:
        return parse_week_key(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _week_sunday(value: str) -> date:
    return week_end(_week_monday(value))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="runlog-numbering",
        description="Session numbering and training load tools.",
    )
    parser.add_argument(
        "--log-format",
        default=os.environ.get("RUNLOG_LOG_FORMAT", "text"),
        choices=("json", "text"),
        help="Log output format (stderr).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    renumber = sub.add_parser("renumber", help="Recompute session numbers for an owner.")
    renumber.add_argument("owner_id", help="Owner whose entries are renumbered.")
    renumber.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the updates without writing them.",
    )

    report = sub.add_parser("report", help="Print bucketed load statistics for an owner.")
    report.add_argument("owner_id", help="Owner whose entries are aggregated.")
    report.add_argument("--granularity", default="week", choices=GRANULARITIES)
    report.add_argument("--range", dest="range_type", default="12weeks", choices=RANGE_TYPES)
    report.add_argument("--start", default=None, help="Custom range start (YYYY-MM-DD).")
    report.add_argument("--end", default=None, help="Custom range end (YYYY-MM-DD).")
    report.add_argument(
        "--today",
        default=None,
        help="Reference date for range presets (defaults to today).",
    )

    history = sub.add_parser("history", help="Print every week from the first to the last entry.")
    history.add_argument("owner_id", help="Owner whose entries are aggregated.")
    history.add_argument(
        "--from-week", type=_week_monday, default=None, help="First ISO week, e.g. 2026-W02."
    )
    history.add_argument(
        "--to-week", type=_week_sunday, default=None, help="Last ISO week, e.g. 2026-W10."
    )

    position = sub.add_parser(
        "position", help="Show the numbers a new completed entry on DATE would get."
    )
    position.add_argument("owner_id", help="Owner whose numbering is consulted.")
    position.add_argument("entry_date", type=_calendar_date, help="Entry date (YYYY-MM-DD).")
    return parser


async def _run(args: argparse.Namespace) -> int:
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if not database_url:
        raise RuntimeError("DATABASE_URL must be set")

    async with await psycopg.AsyncConnection.connect(database_url) as conn:
        if args.command == "renumber":
            result = await renumber_owner(conn, args.owner_id, dry_run=args.dry_run)
            await conn.commit()
            output = {
                "owner_id": result.owner_id,
                "entries_total": result.entries_total,
                "dry_run": result.dry_run,
                "applied": result.applied,
                "updates": [u.model_dump() for u in result.updates],
            }
        elif args.command == "history":
            history = await build_weekly_history(
                conn, args.owner_id, start=args.from_week, end=args.to_week
            )
            output = history.to_dict()
        elif args.command == "position":
            preview = await preview_owner_position(conn, args.owner_id, args.entry_date)
            output = {
                "owner_id": preview.owner_id,
                "entry_date": preview.entry_date.isoformat(),
                "sequence_number": preview.sequence_number,
                "training_week": preview.training_week,
            }
        else:
            report = await build_load_report(
                conn,
                args.owner_id,
                granularity=args.granularity,
                range_type=args.range_type,
                custom_start=args.start,
                custom_end=args.end,
                reference_date=parse_date_input(args.today),
            )
            output = report.to_dict()

    print(json.dumps(output, indent=2, sort_keys=True, default=str))
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_format, level=logging.WARNING)
    raise SystemExit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
