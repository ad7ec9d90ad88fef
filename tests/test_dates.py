"""Tests for calendar bucket and range helpers."""

from datetime import date, datetime

import pytest

from runlog_workers.dates import (
    DateRange,
    bucket_end,
    bucket_key,
    bucket_start,
    check_granularity,
    days_inclusive,
    filter_items_by_range,
    includes_open_bucket,
    is_custom_range_too_short,
    is_date_in_range,
    iso_week_key,
    iso_week_tuple,
    iter_bucket_starts,
    month_end,
    month_start,
    next_bucket_start,
    parse_date_input,
    parse_week_key,
    resolve_date_range,
    week_end,
    week_start,
)


class TestIsoWeek:
    def test_normal_week(self):
        assert iso_week_key(date(2026, 1, 6)) == "2026-W02"

    def test_first_week(self):
        # 2026-01-01 is a Thursday → ISO week 1
        assert iso_week_key(date(2026, 1, 1)) == "2026-W01"

    def test_year_boundary(self):
        assert iso_week_key(date(2025, 12, 31)) == "2026-W01"
        assert iso_week_tuple(date(2025, 12, 29)) == (2026, 1)

    def test_parse_week_key_returns_monday(self):
        assert parse_week_key("2026-W02") == date(2026, 1, 5)
        assert parse_week_key("2026-W01") == date(2025, 12, 29)

    @pytest.mark.parametrize("key", ["garbage", "2026-W60", "2026-02", ""])
    def test_parse_week_key_rejects_malformed(self, key):
        with pytest.raises(ValueError, match="Invalid ISO week key"):
            parse_week_key(key)


class TestCalendarBounds:
    def test_week_bounds_monday_start(self):
        assert week_start(date(2026, 1, 7)) == date(2026, 1, 5)
        assert week_end(date(2026, 1, 7)) == date(2026, 1, 11)
        # Sunday belongs to the week that started the previous Monday
        assert week_start(date(2026, 1, 11)) == date(2026, 1, 5)

    def test_month_bounds(self):
        assert month_start(date(2024, 2, 10)) == date(2024, 2, 1)
        assert month_end(date(2024, 2, 10)) == date(2024, 2, 29)
        assert month_end(date(2026, 12, 3)) == date(2026, 12, 31)

    def test_days_inclusive(self):
        assert days_inclusive(date(2026, 1, 5), date(2026, 1, 11)) == 7
        assert days_inclusive(date(2026, 1, 5), date(2026, 1, 5)) == 1
        assert days_inclusive(date(2026, 1, 6), date(2026, 1, 5)) == 0


class TestBuckets:
    def test_bucket_start_per_granularity(self):
        d = date(2026, 1, 7)
        assert bucket_start(d, "day") == d
        assert bucket_start(d, "week") == date(2026, 1, 5)
        assert bucket_start(d, "month") == date(2026, 1, 1)

    def test_bucket_end_and_next(self):
        assert bucket_end(date(2026, 1, 5), "week") == date(2026, 1, 11)
        assert next_bucket_start(date(2026, 1, 5), "week") == date(2026, 1, 12)
        assert next_bucket_start(date(2026, 1, 1), "month") == date(2026, 2, 1)
        assert next_bucket_start(date(2026, 12, 1), "month") == date(2027, 1, 1)

    def test_bucket_keys(self):
        assert bucket_key(date(2026, 1, 5), "week") == "2026-W02"
        assert bucket_key(date(2026, 1, 1), "month") == "2026-01"
        assert bucket_key(date(2026, 1, 7), "day") == "2026-01-07"

    def test_week_starts_cover_partial_edges(self):
        starts = list(iter_bucket_starts(date(2026, 1, 2), date(2026, 1, 10), "week"))
        assert starts == [date(2025, 12, 29), date(2026, 1, 5)]

    def test_month_starts(self):
        starts = list(iter_bucket_starts(date(2026, 1, 15), date(2026, 3, 1), "month"))
        assert starts == [date(2026, 1, 1), date(2026, 2, 1), date(2026, 3, 1)]

    def test_day_starts(self):
        starts = list(iter_bucket_starts(date(2026, 1, 30), date(2026, 2, 1), "day"))
        assert starts == [date(2026, 1, 30), date(2026, 1, 31), date(2026, 2, 1)]

    def test_unknown_granularity(self):
        with pytest.raises(ValueError, match="granularity must be one of"):
            check_granularity("year")
        with pytest.raises(ValueError):
            bucket_start(date(2026, 1, 1), "quarter")


class TestParseDateInput:
    def test_plain_date_string(self):
        assert parse_date_input("2026-01-06") == date(2026, 1, 6)

    def test_timestamp_string(self):
        assert parse_date_input("2026-01-06T10:00:00Z") == date(2026, 1, 6)
        assert parse_date_input("2026-01-06T23:30:00+02:00") == date(2026, 1, 6)

    def test_date_and_datetime_objects(self):
        assert parse_date_input(date(2026, 1, 6)) == date(2026, 1, 6)
        assert parse_date_input(datetime(2026, 1, 6, 18, 0)) == date(2026, 1, 6)

    @pytest.mark.parametrize("value", [None, "", "   ", "nope", "2026-13-01", 42])
    def test_junk_returns_none(self, value):
        assert parse_date_input(value) is None


class TestRangeFiltering:
    def test_open_ended_bounds(self):
        d = date(2026, 1, 6)
        assert is_date_in_range(d, None, None)
        assert is_date_in_range(d, date(2026, 1, 6), None)
        assert not is_date_in_range(d, date(2026, 1, 7), None)
        assert is_date_in_range(d, None, date(2026, 1, 6))
        assert not is_date_in_range(d, date(2026, 1, 1), date(2026, 1, 5))

    def test_filter_items_skips_unparseable(self):
        items = [
            {"date": "2026-01-06"},
            {"date": None},
            {"date": "2026-02-01"},
            {"date": "junk"},
        ]
        kept = filter_items_by_range(
            items, lambda i: i["date"], date(2026, 1, 1), date(2026, 1, 31)
        )
        assert kept == [{"date": "2026-01-06"}]


class TestResolveDateRange:
    REF = date(2026, 2, 11)  # Wednesday; its week starts 2026-02-09

    def test_week_presets_end_before_current_week(self):
        r = resolve_date_range("4weeks", reference_date=self.REF)
        assert r == DateRange(date(2026, 1, 12), date(2026, 2, 8))
        r12 = resolve_date_range("12weeks", reference_date=self.REF)
        assert r12.start == date(2025, 11, 17)
        assert r12.end == date(2026, 2, 8)

    def test_all_uses_earliest_entry(self):
        r = resolve_date_range(
            "all",
            entry_dates=["2026-01-20", None, date(2026, 1, 6), "junk"],
            reference_date=self.REF,
        )
        assert r == DateRange(date(2026, 1, 6), self.REF)

    def test_all_without_entries_has_no_bounds(self):
        r = resolve_date_range("all", reference_date=self.REF)
        assert r == DateRange(None, None)
        assert not r.is_valid

    def test_custom_both_bounds(self):
        r = resolve_date_range(
            "custom", custom_start="2026-01-01", custom_end="2026-01-31",
            reference_date=self.REF,
        )
        assert r == DateRange(date(2026, 1, 1), date(2026, 1, 31))
        assert r.is_valid

    def test_custom_start_only_runs_to_reference(self):
        r = resolve_date_range("custom", custom_start="2026-01-01", reference_date=self.REF)
        assert r == DateRange(date(2026, 1, 1), self.REF)

    def test_custom_end_only_falls_back_to_earliest(self):
        r = resolve_date_range(
            "custom", custom_end="2026-01-31", entry_dates=["2026-01-10"],
            reference_date=self.REF,
        )
        assert r == DateRange(date(2026, 1, 10), date(2026, 1, 31))
        r_no_data = resolve_date_range("custom", custom_end="2026-01-31", reference_date=self.REF)
        assert r_no_data == DateRange(date(2026, 1, 31), date(2026, 1, 31))

    def test_custom_without_bounds(self):
        assert resolve_date_range("custom", reference_date=self.REF) == DateRange(None, None)
        r = resolve_date_range("custom", entry_dates=["2026-01-10"], reference_date=self.REF)
        assert r == DateRange(date(2026, 1, 10), self.REF)

    def test_unknown_range_type(self):
        with pytest.raises(ValueError, match="range_type must be one of"):
            resolve_date_range("6weeks", reference_date=self.REF)


class TestCustomRangeRules:
    def test_too_short(self):
        assert is_custom_range_too_short("2026-01-01", "2026-01-13")
        assert not is_custom_range_too_short("2026-01-01", "2026-01-14")

    def test_missing_bound_is_not_too_short(self):
        assert not is_custom_range_too_short(None, "2026-01-13")
        assert not is_custom_range_too_short("2026-01-01", "")

    def test_open_bucket(self):
        assert includes_open_bucket("all")
        assert includes_open_bucket("custom", None)
        assert not includes_open_bucket("custom", "2026-01-31")
        assert not includes_open_bucket("4weeks")
