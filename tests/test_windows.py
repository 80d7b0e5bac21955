from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from vice_bank.errors import InvalidInputError
from vice_bank.schema import Frequency
from vice_bank.windows import ensure_aware, window_for

CHICAGO = ZoneInfo("America/Chicago")


def test_daily_window_covers_whole_day():
    window = window_for(datetime(2024, 1, 1, 8, 0, tzinfo=CHICAGO), Frequency.DAILY)
    assert window.start == datetime(2024, 1, 1, tzinfo=CHICAGO)
    assert window.end == datetime(2024, 1, 1, 23, 59, 59, 999999, tzinfo=CHICAGO)


def test_weekly_window_starts_on_monday():
    # 2024-01-04 is a Thursday
    window = window_for(datetime(2024, 1, 4, 12, 0, tzinfo=CHICAGO), "weekly")
    assert window.start == datetime(2024, 1, 1, tzinfo=CHICAGO)
    assert window.end == datetime(2024, 1, 7, 23, 59, 59, 999999, tzinfo=CHICAGO)


def test_weekly_window_spans_year_boundary():
    window = window_for(datetime(2025, 1, 1, 9, 0, tzinfo=CHICAGO), Frequency.WEEKLY)
    assert window.start == datetime(2024, 12, 30, tzinfo=CHICAGO)
    assert window.end.date() == datetime(2025, 1, 5).date()


def test_monthly_window_handles_leap_february_and_december():
    feb = window_for(datetime(2024, 2, 10, tzinfo=CHICAGO), Frequency.MONTHLY)
    assert feb.start == datetime(2024, 2, 1, tzinfo=CHICAGO)
    assert feb.end == datetime(2024, 2, 29, 23, 59, 59, 999999, tzinfo=CHICAGO)

    dec = window_for(datetime(2023, 12, 31, 23, 0, tzinfo=CHICAGO), Frequency.MONTHLY)
    assert dec.start == datetime(2023, 12, 1, tzinfo=CHICAGO)
    assert dec.end == datetime(2023, 12, 31, 23, 59, 59, 999999, tzinfo=CHICAGO)


def test_same_day_timestamps_share_a_window():
    morning = window_for(datetime(2024, 1, 1, 0, 0, tzinfo=CHICAGO), Frequency.DAILY)
    night = window_for(datetime(2024, 1, 1, 23, 59, 59, tzinfo=CHICAGO), Frequency.DAILY)
    assert morning == night
    assert morning.contains(datetime(2024, 1, 1, 12, 0, tzinfo=CHICAGO))
    assert not morning.contains(datetime(2024, 1, 2, 0, 0, tzinfo=CHICAGO))


def test_window_keeps_fixed_offset_of_timestamp():
    offset = timezone(timedelta(hours=-6))
    window = window_for(datetime(2024, 1, 1, 1, 2, 3, tzinfo=offset), Frequency.DAILY)
    assert window.start.utcoffset() == timedelta(hours=-6)
    assert window.start == datetime(2024, 1, 1, tzinfo=offset)


def test_window_across_dst_change_keeps_wall_clock_bounds():
    window = window_for(datetime(2024, 3, 10, 12, 0, tzinfo=CHICAGO), Frequency.DAILY)
    assert window.start.hour == 0
    assert (window.end.hour, window.end.minute) == (23, 59)


def test_naive_and_invalid_timestamps_are_rejected():
    with pytest.raises(InvalidInputError):
        window_for(datetime(2024, 1, 1), Frequency.DAILY)
    with pytest.raises(InvalidInputError):
        ensure_aware("2024-01-01")
    with pytest.raises(InvalidInputError):
        window_for(datetime(2024, 1, 1, tzinfo=CHICAGO), "fortnightly")


def test_ensure_aware_converts_to_zone():
    converted = ensure_aware(datetime(2024, 1, 2, 3, tzinfo=timezone.utc), CHICAGO)
    assert converted.tzinfo == CHICAGO
    assert (converted.day, converted.hour) == (1, 21)
    assert window_for(converted, Frequency.DAILY).start == datetime(2024, 1, 1, tzinfo=CHICAGO)
