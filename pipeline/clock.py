"""Calendar windows used for rate limits and capacity counts. All UTC."""
from datetime import datetime, time, timezone

from dateutil.relativedelta import SU, relativedelta


def utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def start_of_day(now: datetime) -> datetime:
    return datetime.combine(utc(now).date(), time.min, tzinfo=timezone.utc)


def start_of_week(now: datetime) -> datetime:
    """Midnight on the most recent Sunday (today if today is Sunday)."""
    return start_of_day(now) + relativedelta(weekday=SU(-1))


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now) + relativedelta(day=1)
