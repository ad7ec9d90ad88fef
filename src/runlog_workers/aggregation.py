"""Bucketed training-load statistics (day / week / month).

Pure and read-only: takes already-loaded entries, returns an immutable
LoadReport. Rounding happens only when a bucket or the totals are emitted;
totals are summed from the raw accumulators, never from rounded buckets.

An invalid range (missing bound or end before start) is "no data", not an
error: the report is empty and zeroed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any

from .dates import (
    Granularity,
    bucket_end,
    bucket_key,
    bucket_start,
    check_granularity,
    days_inclusive,
    iter_bucket_starts,
    week_end,
    week_start,
)
from .entries import TrainingEntry


@dataclass
class _Accumulator:
    km: float = 0.0
    duration_seconds: float = 0.0
    count: int = 0
    hr_sum: float = 0.0
    hr_count: int = 0
    # km covered by entries that also report a duration (pace denominator)
    paced_km: float = 0.0
    paced_duration_seconds: float = 0.0

    def add(self, entry: TrainingEntry) -> None:
        km = float(entry.distance_km or 0.0)
        self.km += km
        self.count += 1
        if entry.duration_seconds is not None:
            self.duration_seconds += entry.duration_seconds
            self.paced_km += km
            self.paced_duration_seconds += entry.duration_seconds
        if entry.avg_heart_rate is not None:
            self.hr_sum += entry.avg_heart_rate
            self.hr_count += 1


@dataclass(frozen=True)
class LoadBucket:
    key: str
    start: date
    end: date
    km: float
    duration_seconds: int
    completed_count: int
    avg_heart_rate: int | None
    avg_pace_seconds: int | None
    planned_km: float
    planned_duration_seconds: int
    planned_count: int
    total_with_planned: float
    total_duration_with_planned: int
    is_active: bool
    training_week: int | None
    coverage_days: int
    total_days: int
    coverage_ratio: float
    is_partial: bool
    gap_buckets: int
    change_percent: float | None = None
    change_km: float | None = None
    change_percent_with_planned: float | None = None
    change_km_with_planned: float | None = None
    duration_change_percent: float | None = None
    duration_change_seconds: int | None = None


@dataclass(frozen=True)
class LoadTotals:
    total_km: float = 0.0
    total_sessions: int = 0
    total_duration_seconds: int = 0
    planned_km: float = 0.0
    planned_sessions: int = 0
    active_buckets_count: int = 0
    total_buckets: int = 0
    average_km_per_bucket: float = 0.0
    average_km_per_active_bucket: float = 0.0
    average_duration_per_bucket: int = 0
    average_sessions_per_bucket: float = 0.0


@dataclass(frozen=True)
class LoadReport:
    granularity: Granularity
    range_start: date | None
    range_end: date | None
    buckets: tuple[LoadBucket, ...] = ()
    totals: LoadTotals = field(default_factory=LoadTotals)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["buckets"] = list(data["buckets"])
        return data


def _round_km(value: float) -> float:
    return round(value, 1)


def _round_seconds(value: float) -> int:
    return int(round(value))


def _safe_div(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def _change(current: float, previous: float | None) -> tuple[float | None, float | None]:
    """Percent change and absolute diff vs. a previous value.

    Percent is None when there is nothing to compare against or the previous
    value is zero; the diff only needs a previous value.
    """
    if previous is None:
        return None, None
    diff = current - previous
    if previous == 0:
        return None, diff
    return round(diff / previous * 100, 1), diff


def _empty_report(
    granularity: Granularity,
    range_start: date | None,
    range_end: date | None,
) -> LoadReport:
    return LoadReport(granularity=granularity, range_start=range_start, range_end=range_end)


def aggregate(
    completed: Iterable[TrainingEntry],
    planned: Iterable[TrainingEntry],
    range_start: date | None,
    range_end: date | None,
    granularity: Granularity,
    include_open_bucket: bool = False,
) -> LoadReport:
    """Aggregate entries into calendar buckets covering the inclusive range.

    With ``include_open_bucket`` entries dated anywhere inside the final
    bucket's calendar span also count, even past ``range_end``: the current
    week/month is shown whole while it is still open.
    """
    check_granularity(granularity)
    if range_start is None or range_end is None or range_end < range_start:
        return _empty_report(granularity, range_start, range_end)

    starts = list(iter_bucket_starts(range_start, range_end, granularity))
    index_by_start = {start: i for i, start in enumerate(starts)}
    done = [_Accumulator() for _ in starts]
    plan = [_Accumulator() for _ in starts]

    open_start = starts[-1]
    open_end = bucket_end(open_start, granularity)

    def _bucket_index(entry: TrainingEntry) -> int | None:
        d = entry.effective_date
        if d is None:
            return None
        in_range = range_start <= d <= range_end
        in_open_bucket = include_open_bucket and open_start <= d <= open_end
        if not (in_range or in_open_bucket):
            return None
        return index_by_start.get(bucket_start(d, granularity))

    for entry in completed:
        idx = _bucket_index(entry)
        if idx is not None:
            done[idx].add(entry)
    for entry in planned:
        idx = _bucket_index(entry)
        if idx is not None:
            plan[idx].add(entry)

    buckets: list[LoadBucket] = []
    training_week = 0
    last_active: int | None = None
    prev_km: float | None = None
    prev_duration: float | None = None
    prev_combined: float | None = None

    for index, (start, acc, planned_acc) in enumerate(zip(starts, done, plan)):
        end = bucket_end(start, granularity)
        total_days = days_inclusive(start, end)
        coverage_days = days_inclusive(max(start, range_start), min(end, range_end))
        combined_km = acc.km + planned_acc.km
        is_active = acc.km > 0 or planned_acc.km > 0

        week_ordinal: int | None = None
        change_percent = change_km = None
        change_percent_planned = change_km_planned = None
        duration_percent = duration_diff = None
        gap_buckets = index - last_active - 1 if last_active is not None else 0

        if is_active:
            if granularity == "week":
                training_week += 1
                week_ordinal = training_week
            # Buckets without completed distance neither receive nor provide
            # a completed-volume comparison.
            if acc.km > 0:
                change_percent, change_km = _change(acc.km, prev_km)
                duration_percent, duration_diff = _change(acc.duration_seconds, prev_duration)
                prev_km = acc.km
                prev_duration = acc.duration_seconds
            change_percent_planned, change_km_planned = _change(combined_km, prev_combined)
            prev_combined = combined_km
            last_active = index

        buckets.append(
            LoadBucket(
                key=bucket_key(start, granularity),
                start=start,
                end=end,
                km=_round_km(acc.km),
                duration_seconds=_round_seconds(acc.duration_seconds),
                completed_count=acc.count,
                avg_heart_rate=(
                    _round_seconds(acc.hr_sum / acc.hr_count) if acc.hr_count else None
                ),
                avg_pace_seconds=(
                    _round_seconds(acc.paced_duration_seconds / acc.paced_km)
                    if acc.paced_km > 0
                    else None
                ),
                planned_km=_round_km(planned_acc.km),
                planned_duration_seconds=_round_seconds(planned_acc.duration_seconds),
                planned_count=planned_acc.count,
                total_with_planned=_round_km(combined_km),
                total_duration_with_planned=_round_seconds(
                    acc.duration_seconds + planned_acc.duration_seconds
                ),
                is_active=is_active,
                training_week=week_ordinal,
                coverage_days=coverage_days,
                total_days=total_days,
                coverage_ratio=round(_safe_div(coverage_days, total_days), 3),
                is_partial=coverage_days < total_days,
                gap_buckets=gap_buckets,
                change_percent=change_percent,
                change_km=_round_km(change_km) if change_km is not None else None,
                change_percent_with_planned=change_percent_planned,
                change_km_with_planned=(
                    _round_km(change_km_planned) if change_km_planned is not None else None
                ),
                duration_change_percent=duration_percent,
                duration_change_seconds=(
                    _round_seconds(duration_diff) if duration_diff is not None else None
                ),
            )
        )

    total_km = sum(a.km for a in done)
    total_sessions = sum(a.count for a in done)
    total_duration = sum(a.duration_seconds for a in done)
    active_count = sum(1 for b in buckets if b.is_active)
    bucket_count = len(buckets)

    totals = LoadTotals(
        total_km=_round_km(total_km),
        total_sessions=total_sessions,
        total_duration_seconds=_round_seconds(total_duration),
        planned_km=_round_km(sum(a.km for a in plan)),
        planned_sessions=sum(a.count for a in plan),
        active_buckets_count=active_count,
        total_buckets=bucket_count,
        average_km_per_bucket=_round_km(_safe_div(total_km, bucket_count)),
        average_km_per_active_bucket=_round_km(_safe_div(total_km, active_count)),
        average_duration_per_bucket=_round_seconds(_safe_div(total_duration, bucket_count)),
        average_sessions_per_bucket=_round_km(_safe_div(total_sessions, bucket_count)),
    )
    return LoadReport(
        granularity=granularity,
        range_start=range_start,
        range_end=range_end,
        buckets=tuple(buckets),
        totals=totals,
    )


def weekly_stats(
    completed: Iterable[TrainingEntry],
    planned: Iterable[TrainingEntry],
) -> LoadReport:
    """Week buckets spanning the first to the last week with any dated entry."""
    completed = list(completed)
    planned = list(planned)
    dates = [e.effective_date for e in (*completed, *planned) if e.effective_date is not None]
    if not dates:
        return _empty_report("week", None, None)
    return aggregate(
        completed,
        planned,
        week_start(min(dates)),
        week_end(max(dates)),
        "week",
    )
