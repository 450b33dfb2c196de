"""Occurrence dates for recurring appointment series.

Expansion is always bounded twice: by an occurrence count (the pattern's own
``end_after_occurrences`` capped by ``recurrence_max_occurrences``) and by a
last date (the pattern's ``end_date`` capped by ``recurrence_horizon_days``
after the first date).
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.schemas.appointment import RecurrencePattern
from pharmacy_scheduling.services.intervals import weekday_number


def occurrence_limit(pattern: RecurrencePattern, max_occurrences: Optional[int] = None) -> int:
    ceiling = max_occurrences or settings.recurrence_max_occurrences
    if pattern.end_after_occurrences:
        return min(pattern.end_after_occurrences, ceiling)
    return ceiling


def last_allowed_date(start: date, pattern: RecurrencePattern, horizon_days: Optional[int] = None) -> date:
    horizon_end = start + timedelta(days=horizon_days or settings.recurrence_horizon_days)
    if pattern.end_date and pattern.end_date < horizon_end:
        return pattern.end_date
    return horizon_end


def _step(start: date, pattern: RecurrencePattern, index: int) -> date:
    # Offsets are taken from the first date so monthly series keep their day
    # of month after passing through a shorter month.
    interval = pattern.interval
    if pattern.frequency == "daily":
        return start + timedelta(days=interval * index)
    if pattern.frequency == "weekly":
        return start + timedelta(weeks=interval * index)
    if pattern.frequency == "biweekly":
        return start + timedelta(weeks=2 * interval * index)
    if pattern.frequency == "monthly":
        return start + relativedelta(months=interval * index)
    if pattern.frequency == "quarterly":
        return start + relativedelta(months=3 * interval * index)
    raise ValueError(f"Unsupported frequency '{pattern.frequency}'")


def _weekday_dates(start: date, pattern: RecurrencePattern, limit: int, last_date: date) -> List[date]:
    step_weeks = pattern.interval * (2 if pattern.frequency == "biweekly" else 1)
    week_start = start - timedelta(days=weekday_number(start))
    dates: List[date] = []
    while week_start <= last_date:
        for weekday in pattern.days_of_week or []:
            candidate = week_start + timedelta(days=weekday)
            if candidate < start:
                continue
            if candidate > last_date or len(dates) >= limit:
                return dates
            dates.append(candidate)
        week_start += timedelta(weeks=step_weeks)
    return dates


def occurrence_dates(
    start: date,
    pattern: RecurrencePattern,
    *,
    max_occurrences: Optional[int] = None,
    horizon_days: Optional[int] = None,
) -> List[date]:
    """Ordered occurrence dates, starting at ``start`` unless a weekday set excludes it."""
    limit = occurrence_limit(pattern, max_occurrences)
    last_date = last_allowed_date(start, pattern, horizon_days)

    if pattern.days_of_week and pattern.frequency in ("weekly", "biweekly"):
        return _weekday_dates(start, pattern, limit, last_date)

    dates: List[date] = []
    index = 0
    while len(dates) < limit:
        candidate = _step(start, pattern, index)
        if candidate > last_date:
            break
        dates.append(candidate)
        index += 1
    return dates
