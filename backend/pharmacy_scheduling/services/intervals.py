"""Minute-of-day intervals shared by slot generation and booking validation.

Every availability decision in the service ends in :func:`overlaps`. Intervals
are half-open, so an appointment ending at 10:30 does not collide with one
starting at 10:30.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class Interval:
    start: int
    end: int

    @classmethod
    def from_clock(cls, clock: str, duration_minutes: int) -> "Interval":
        start = parse_clock(clock)
        return cls(start=start, end=start + duration_minutes)

    @classmethod
    def between(cls, start_clock: str, end_clock: str) -> "Interval":
        return cls(start=parse_clock(start_clock), end=parse_clock(end_clock))

    @property
    def duration(self) -> int:
        return self.end - self.start

    def start_on(self, day: date) -> datetime:
        return datetime.combine(day, time.min) + timedelta(minutes=self.start)


def parse_clock(value: str) -> int:
    try:
        hours_text, minutes_text = value.split(":")
        hours, minutes = int(hours_text), int(minutes_text)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid time '{value}', expected HH:MM") from exc
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return hours * 60 + minutes


def format_clock(minutes: int) -> str:
    # end times past midnight wrap, matching how a wall clock reads them
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(existing: Interval, candidate: Interval) -> bool:
    return existing.start < candidate.end and candidate.start < existing.end


def contains(outer: Interval, inner: Interval) -> bool:
    return outer.start <= inner.start and inner.end <= outer.end


def weekday_number(day: date) -> int:
    """Weekday with Sunday as 0, the numbering used by schedules and recurrence."""
    return (day.weekday() + 1) % 7
