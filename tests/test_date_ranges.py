"""
时间范围换算测试
"""
import os
import time
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from profit_dashboard import date_ranges
from profit_dashboard.date_ranges import (
    expense_window,
    month_ago_midnight,
    resolve_date_range,
    to_shopify_ts,
)

TZ = timezone(timedelta(hours=5, minutes=45))
# 2026-10-17 是周六
NOW = datetime(2026, 10, 17, 14, 30, 15, tzinfo=TZ)

# 2026-11-01 凌晨纽约结束夏令时：之前 UTC-4，之后 UTC-5
EDT = timedelta(hours=-4)
EST = timedelta(hours=-5)


def new_york():
    try:
        return ZoneInfo("America/New_York")
    except ZoneInfoNotFoundError:
        pytest.skip("tz database unavailable")


def _restore_tz(previous):
    if previous is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = previous
    time.tzset()


@pytest.fixture
def system_tz_new_york(monkeypatch):
    """把进程时区切到纽约，并把「现在」固定在 2026-11-05 12:00（本地，不带时区）"""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset unavailable")
    previous = os.environ.get("TZ")
    os.environ["TZ"] = "America/New_York"
    time.tzset()
    if datetime(2026, 11, 5, 12, 0).astimezone().utcoffset() != EST:
        _restore_tz(previous)
        pytest.skip("tz database unavailable")
    monkeypatch.setattr(date_ranges, "_local_now", lambda: datetime(2026, 11, 5, 12, 0))
    yield
    _restore_tz(previous)


class TestResolveDateRange:

    def test_today_starts_at_local_midnight_and_ends_now(self):
        start, end = resolve_date_range("today", now=NOW)
        assert start == datetime(2026, 10, 17, tzinfo=TZ)
        assert end == NOW

    def test_yesterday_is_closed_day(self):
        start, end = resolve_date_range("yesterday", now=NOW)
        assert start == datetime(2026, 10, 16, tzinfo=TZ)
        assert end == datetime(2026, 10, 16, 23, 59, 59, 999000, tzinfo=TZ)

    def test_rolling_windows_end_now(self):
        start7, end7 = resolve_date_range("last7days", now=NOW)
        start30, end30 = resolve_date_range("last30days", now=NOW)
        assert start7 == datetime(2026, 10, 10, tzinfo=TZ)
        assert start30 == datetime(2026, 9, 17, tzinfo=TZ)
        assert end7 == end30 == NOW

    def test_thisweek_starts_on_sunday_by_default(self):
        start, _ = resolve_date_range("thisweek", now=NOW)
        assert start == datetime(2026, 10, 11, tzinfo=TZ)
        assert start.weekday() == 6

    def test_thisweek_monday_start(self):
        start, _ = resolve_date_range("thisweek", now=NOW, week_start="monday")
        assert start == datetime(2026, 10, 12, tzinfo=TZ)

    def test_thisweek_on_a_sunday_is_the_same_day(self):
        sunday = datetime(2026, 10, 18, 8, 0, tzinfo=TZ)
        start, _ = resolve_date_range("thisweek", now=sunday)
        assert start == datetime(2026, 10, 18, tzinfo=TZ)

    def test_thismonth_and_thisyear(self):
        month_start, _ = resolve_date_range("thismonth", now=NOW)
        year_start, _ = resolve_date_range("thisyear", now=NOW)
        assert month_start == datetime(2026, 10, 1, tzinfo=TZ)
        assert year_start == datetime(2026, 1, 1, tzinfo=TZ)

    def test_unknown_or_missing_name_falls_back_to_today(self):
        assert resolve_date_range("lastcentury", now=NOW) == resolve_date_range("today", now=NOW)
        assert resolve_date_range(None, now=NOW) == resolve_date_range("today", now=NOW)

    def test_name_is_case_insensitive(self):
        assert resolve_date_range(" Yesterday ", now=NOW) == resolve_date_range("yesterday", now=NOW)


class TestHelpers:

    def test_month_ago_clamps_to_month_end(self):
        march_31 = datetime(2026, 3, 31, 10, 0, tzinfo=TZ)
        assert month_ago_midnight(march_31) == datetime(2026, 2, 28, tzinfo=TZ)

    def test_month_ago_crosses_year(self):
        jan_15 = datetime(2026, 1, 15, 10, 0, tzinfo=TZ)
        assert month_ago_midnight(jan_15) == datetime(2025, 12, 15, tzinfo=TZ)

    def test_expense_window_uses_calendar_dates(self):
        start, end = resolve_date_range("last7days", now=NOW)
        assert expense_window(start, end) == (date(2026, 10, 10), date(2026, 10, 17))

    def test_shopify_timestamp_keeps_offset_and_milliseconds(self):
        assert to_shopify_ts(NOW) == "2026-10-17T14:30:15.000+05:45"

    def test_yesterday_end_is_sent_to_the_millisecond(self):
        _, end = resolve_date_range("yesterday", now=NOW)
        assert to_shopify_ts(end) == "2026-10-16T23:59:59.999+05:45"


class TestDaylightSaving:

    def test_rolling_window_across_dst_starts_at_local_midnight(self):
        now = datetime(2026, 11, 5, 12, 0, tzinfo=new_york())
        start, end = resolve_date_range("last7days", now=now)
        assert (start.date(), start.hour, start.minute) == (date(2026, 10, 29), 0, 0)
        assert start.utcoffset() == EDT
        assert end.utcoffset() == EST

    def test_thisweek_and_thismonth_across_dst(self):
        now = datetime(2026, 11, 5, 12, 0, tzinfo=new_york())
        week_start, _ = resolve_date_range("thisweek", now=now)
        month_start, _ = resolve_date_range("thismonth", now=now)
        # 11-01 零点仍在夏令时内
        assert (week_start.date(), week_start.hour) == (date(2026, 11, 1), 0)
        assert week_start.utcoffset() == EDT
        assert (month_start.day, month_start.hour) == (1, 0)

    def test_month_ago_across_dst(self):
        now = datetime(2026, 11, 5, 12, 0, tzinfo=new_york())
        start = month_ago_midnight(now)
        assert (start.date(), start.hour) == (date(2026, 10, 5), 0)
        assert start.utcoffset() == EDT

    def test_default_clock_uses_offset_of_each_day(self, system_tz_new_york):
        start, end = resolve_date_range("last7days")
        assert (start.date(), start.hour, start.minute) == (date(2026, 10, 29), 0, 0)
        assert start.utcoffset() == EDT
        assert end.utcoffset() == EST
        assert end.hour == 12

    def test_default_clock_yesterday_is_closed_day(self, system_tz_new_york):
        start, end = resolve_date_range("yesterday")
        assert start.hour == 0 and start.date() == date(2026, 11, 4)
        assert (end.hour, end.minute, end.second, end.microsecond) == (23, 59, 59, 999000)
