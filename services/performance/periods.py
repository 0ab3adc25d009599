# Period bucket keys and bounds for performance records
from datetime import datetime, timedelta, tzinfo
from typing import Dict, Optional, Tuple
from zoneinfo import ZoneInfo

from core.trading.models import PERIOD_ORDER, PerformancePeriod

OVERALL_KEY = "overall"


def localize(moment: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Express ``moment`` in the zone whose calendar defines the buckets.

    Without an explicit zone the host's local calendar applies: aware
    timestamps are converted to local time, naive ones are already local
    wall time.
    """
    if tz is None:
        if moment.tzinfo is None:
            return moment
        return moment.astimezone()
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    return ZoneInfo(name) if name else None


def period_key(moment: datetime, period: PerformancePeriod) -> str:
    period = PerformancePeriod(period)
    if period is PerformancePeriod.DAILY:
        return f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
    if period is PerformancePeriod.WEEKLY:
        # ISO-8601: weeks start Monday, week 1 holds the year's first Thursday
        iso_year, iso_week, _ = moment.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    if period is PerformancePeriod.MONTHLY:
        return f"{moment.year:04d}-{moment.month:02d}"
    if period is PerformancePeriod.YEARLY:
        return f"{moment.year:04d}"
    return OVERALL_KEY


def period_keys(moment: datetime) -> Dict[PerformancePeriod, str]:
    return {period: period_key(moment, period) for period in PERIOD_ORDER}


def period_bounds(moment: datetime, period: PerformancePeriod) -> Tuple[Optional[datetime], Optional[datetime]]:
    """First and last instant (millisecond precision) of the bucket holding ``moment``.

    The overall bucket is unbounded and yields ``(None, None)``.
    """
    period = PerformancePeriod(period)
    day_start = moment.replace(hour=0, minute=0, second=0, microsecond=0)

    if period is PerformancePeriod.DAILY:
        start = day_start
        end = day_start + timedelta(days=1)
    elif period is PerformancePeriod.WEEKLY:
        start = day_start - timedelta(days=day_start.weekday())
        end = start + timedelta(days=7)
    elif period is PerformancePeriod.MONTHLY:
        start = day_start.replace(day=1)
        end = (start + timedelta(days=32)).replace(day=1)
    elif period is PerformancePeriod.YEARLY:
        start = day_start.replace(month=1, day=1)
        end = start.replace(year=start.year + 1)
    else:
        return None, None

    return start, end - timedelta(milliseconds=1)
