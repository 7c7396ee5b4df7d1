from datetime import datetime, timedelta, timezone

from pipeline.clock import start_of_day, start_of_month, start_of_week, utc

from conftest import NOW


def test_windows():
    assert start_of_day(NOW) == datetime(2026, 3, 4, tzinfo=timezone.utc)
    assert start_of_week(NOW) == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert start_of_month(NOW) == datetime(2026, 3, 1, tzinfo=timezone.utc)


def test_sunday_is_its_own_week_start():
    sunday = datetime(2026, 3, 8, 23, 59, tzinfo=timezone.utc)
    assert start_of_week(sunday) == datetime(2026, 3, 8, tzinfo=timezone.utc)


def test_naive_and_offset_times_are_normalised():
    assert utc(datetime(2026, 3, 4, 15, 0)) == NOW
    eastern = timezone(timedelta(hours=-5))
    late = datetime(2026, 3, 4, 22, 0, tzinfo=eastern)
    assert start_of_day(late) == datetime(2026, 3, 5, tzinfo=timezone.utc)
