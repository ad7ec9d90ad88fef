"""Calendar helpers shared by numbering and load aggregation.

Everything here works on timezone-naive ``datetime.date`` values. Weeks are
ISO weeks (Monday start); week keys look like ``2026-W02``.
"""

from __future__ import annotations

import calendar
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Literal, TypeVar

Granularity = Literal["day", "week", "month"]
RangeType = Literal["4weeks", "8weeks", "12weeks", "all", "custom"]

GRANULARITIES: tuple[str, ...] = ("day", "week", "month")
RANGE_TYPES: tuple[str, ...] = ("4weeks", "8weeks", "12weeks", "all", "custom")

MIN_CUSTOM_RANGE_DAYS = 14

_PRESET_WEEKS: dict[str, int] = {"4weeks": 4, "8weeks": 8, "12weeks": 12}

T = TypeVar("T")


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar range. Both bounds are None when there is no data."""

    start: date | None
    end: date | None

    @property
    def is_valid(self) -> bool:
        return self.start is not None and self.end is not None and self.start <= self.end


def check_granularity(granularity: str) -> None:
    if granularity not in GRANULARITIES:
        allowed = ", ".join(GRANULARITIES)
        raise ValueError(f"granularity must be one of: {allowed} (got {granularity!r})")


# ---------------------------------------------------------------------------
# ISO weeks
# ---------------------------------------------------------------------------


def iso_week_tuple(d: date) -> tuple[int, int]:
    iso = d.isocalendar()
    return (iso.year, iso.week)


def iso_week_key(d: date) -> str:
    """Return ISO week string like '2026-W02'."""
    year, week = iso_week_tuple(d)
    return f"{year}-W{week:02d}"


def parse_week_key(key: str) -> date:
    """Return the Monday of an ISO week key ('2026-W02' -> 2026-01-05)."""
    try:
        year_part, week_part = key.strip().split("-W")
        return date.fromisocalendar(int(year_part), int(week_part), 1)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO week key: {key!r}") from exc


def week_start(d: date) -> date:
    return d - timedelta(days=d.weekday())


def week_end(d: date) -> date:
    return week_start(d) + timedelta(days=6)


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


# ---------------------------------------------------------------------------
# Buckets
# ---------------------------------------------------------------------------


def bucket_start(d: date, granularity: Granularity) -> date:
    """Return the start of the bucket that contains ``d``."""
    check_granularity(granularity)
    if granularity == "week":
        return week_start(d)
    if granularity == "month":
        return month_start(d)
    return d


def bucket_end(start: date, granularity: Granularity) -> date:
    """Return the last calendar day (inclusive) of the bucket starting at ``start``."""
    check_granularity(granularity)
    if granularity == "week":
        return week_end(start)
    if granularity == "month":
        return month_end(start)
    return start


def next_bucket_start(start: date, granularity: Granularity) -> date:
    return bucket_end(start, granularity) + timedelta(days=1)


def bucket_key(start: date, granularity: Granularity) -> str:
    check_granularity(granularity)
    if granularity == "week":
        return iso_week_key(start)
    if granularity == "month":
        return f"{start.year}-{start.month:02d}"
    return start.isoformat()


def iter_bucket_starts(
    range_start: date,
    range_end: date,
    granularity: Granularity,
) -> Iterator[date]:
    """Yield bucket starts covering ``[range_start, range_end]`` in order."""
    current = bucket_start(range_start, granularity)
    while current <= range_end:
        yield current
        current = next_bucket_start(current, granularity)


def days_inclusive(start: date, end: date) -> int:
    if end < start:
        return 0
    return (end - start).days + 1


# ---------------------------------------------------------------------------
# Input parsing and range resolution
# ---------------------------------------------------------------------------


def parse_date_input(value: date | datetime | str | None) -> date | None:
    """Coerce a date-ish value to a calendar date. Returns None for junk."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    if "T" in raw:
        try:
            return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def is_date_in_range(d: date, start: date | None, end: date | None) -> bool:
    if start is not None and d < start:
        return False
    if end is not None and d > end:
        return False
    return True


def filter_items_by_range(
    items: Iterable[T],
    get_date: Callable[[T], date | datetime | str | None],
    start: date | None,
    end: date | None,
) -> list[T]:
    """Keep items whose date parses and falls inside the (open-ended) range."""
    result: list[T] = []
    for item in items:
        parsed = parse_date_input(get_date(item))
        if parsed is None:
            continue
        if is_date_in_range(parsed, start, end):
            result.append(item)
    return result


def _earliest(dates: Iterable[date | datetime | str | None]) -> date | None:
    parsed = [d for d in (parse_date_input(v) for v in dates) if d is not None]
    return min(parsed) if parsed else None


def resolve_date_range(
    range_type: RangeType,
    *,
    custom_start: date | datetime | str | None = None,
    custom_end: date | datetime | str | None = None,
    entry_dates: Iterable[date | datetime | str | None] = (),
    reference_date: date | None = None,
) -> DateRange:
    """Turn a range preset into concrete inclusive bounds.

    Week presets cover the N full weeks before the current ISO week.
    ``all`` runs from the earliest entry to ``reference_date``. A custom range
    may omit either bound: a missing start falls back to the earliest entry
    (or the end itself), a missing end falls back to ``reference_date``.
    """
    if range_type not in RANGE_TYPES:
        allowed = ", ".join(RANGE_TYPES)
        raise ValueError(f"range_type must be one of: {allowed} (got {range_type!r})")

    today = reference_date or date.today()
    earliest = _earliest(entry_dates)

    if range_type in _PRESET_WEEKS:
        current_monday = week_start(today)
        return DateRange(
            start=current_monday - timedelta(weeks=_PRESET_WEEKS[range_type]),
            end=current_monday - timedelta(days=1),
        )

    if range_type == "all":
        if earliest is None:
            return DateRange(None, None)
        return DateRange(start=earliest, end=today)

    start = parse_date_input(custom_start)
    end = parse_date_input(custom_end)
    if start is not None and end is not None:
        return DateRange(start=start, end=end)
    if start is not None:
        return DateRange(start=start, end=today)
    if end is not None:
        return DateRange(start=earliest or end, end=end)
    if earliest is None:
        return DateRange(None, None)
    return DateRange(start=earliest, end=today)


def is_custom_range_too_short(
    start: date | datetime | str | None,
    end: date | datetime | str | None,
) -> bool:
    start_date = parse_date_input(start)
    end_date = parse_date_input(end)
    if start_date is None or end_date is None:
        return False
    return days_inclusive(start_date, end_date) < MIN_CUSTOM_RANGE_DAYS


def includes_open_bucket(
    range_type: RangeType,
    custom_end: date | datetime | str | None = None,
) -> bool:
    """True when the final bucket is still "open" (range runs up to today)."""
    if range_type == "all":
        return True
    return range_type == "custom" and parse_date_input(custom_end) is None
