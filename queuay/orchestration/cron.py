"""
Next-run calculation for scheduled jobs.

This is a deliberately small stepper over five-field cron expressions
(minute hour day-of-month month day-of-week). Only single concrete minute
and hour values are honored. Lists, ranges, steps and combined
day-of-month/day-of-week constraints are not interpreted.
"""

import calendar
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

WILDCARD = "*"
FALLBACK_DELAY = timedelta(hours=1)


def _resolve_timezone(name: Optional[str]) -> tzinfo:
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', using UTC")
        return timezone.utc


def _concrete(field: str, low: int, high: int) -> Optional[int]:
    """Return the field's value when it is a single in-range integer."""
    if not field.isdigit():
        return None
    value = int(field)
    if value < low or value > high:
        return None
    return value


def _add_month(moment: datetime) -> datetime:
    """Same day next month, clamped to the month's last day."""
    year = moment.year + (1 if moment.month == 12 else 0)
    month = 1 if moment.month == 12 else moment.month + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def calculate_next_run(
    cron_expression: str,
    timezone_name: Optional[str] = "UTC",
    now: Optional[datetime] = None,
) -> datetime:
    """
    Compute the next due time of a cron expression.

    The minute and hour fields, when concrete, are set on the current
    instant (seconds zeroed). If the result is not strictly after `now` it is
    advanced hourly when hour is `*`, else weekly when day-of-week is
    constrained, else monthly when day-of-month is constrained, else daily.

    Args:
        cron_expression: Five-field cron expression
        timezone_name: IANA zone the expression is written in
        now: Reference instant (defaults to the current time)

    Returns:
        Next run time as an aware UTC datetime. Expressions without exactly
        five fields, or with unsupported minute/hour values, yield one hour
        from now.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    parts = (cron_expression or "").split()
    if len(parts) != 5:
        logger.warning(f"Malformed cron expression '{cron_expression}', retrying in 1 hour")
        return (now + FALLBACK_DELAY).astimezone(timezone.utc)

    minute, hour, day_of_month, _month, day_of_week = parts

    minute_value = _concrete(minute, 0, 59)
    hour_value = _concrete(hour, 0, 23)
    if (minute != WILDCARD and minute_value is None) or (
        hour != WILDCARD and hour_value is None
    ):
        logger.warning(f"Unsupported cron fields in '{cron_expression}', retrying in 1 hour")
        return (now + FALLBACK_DELAY).astimezone(timezone.utc)

    local_now = now.astimezone(_resolve_timezone(timezone_name))
    candidate = local_now.replace(second=0, microsecond=0)
    if minute_value is not None:
        candidate = candidate.replace(minute=minute_value)
    if hour_value is not None:
        candidate = candidate.replace(hour=hour_value)

    if candidate <= local_now:
        if hour == WILDCARD:
            candidate += timedelta(hours=1)
        elif day_of_week != WILDCARD:
            candidate += timedelta(weeks=1)
        elif day_of_month != WILDCARD:
            candidate = _add_month(candidate)
        else:
            candidate += timedelta(days=1)

    return candidate.astimezone(timezone.utc)
