from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil import tz
from dateutil.rrule import DAILY, MO, TU, WE, TH, FR, rrule


def utcnow() -> datetime:
    """Naive UTC timestamp; all bookkeeping timestamps are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_zone(name: str):
    zone = tz.gettz(name)
    if zone is None:
        raise ValueError(f"Unknown timezone: {name}")
    return zone


def to_local(value: datetime, zone_name: str) -> datetime:
    """
    Convert a timestamp to naive wall-clock time in ``zone_name``. Naive
    input is taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(get_zone(zone_name)).replace(tzinfo=None)


def whole_days_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 86400)


def business_days_between(start: datetime, end: datetime) -> int:
    """
    Number of full Mon-Fri days lying strictly between start's date and
    end's date.
    """
    first = (start + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    last = (end - timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    if last < first:
        return 0
    return rrule(DAILY, dtstart=first, until=last, byweekday=(MO, TU, WE, TH, FR)).count()


def is_past_due(planned: Optional[datetime], now: datetime, policy) -> bool:
    """
    Decide whether a planned date lies in the past under a DelayPolicy.

    ``planned`` is naive and expressed in ``policy.timezone``; ``now`` is
    naive UTC.
    """
    if planned is None:
        return False

    zone = get_zone(policy.timezone)
    planned_utc = planned.replace(tzinfo=zone).astimezone(timezone.utc).replace(tzinfo=None)
    if planned_utc + timedelta(hours=policy.grace_hours) >= now:
        return False

    if policy.business_days_only:
        return business_days_between(planned, to_local(now, policy.timezone)) >= 1
    return True
