from __future__ import annotations

from datetime import date, datetime

import pytest

from pharmacy_scheduling.services.intervals import (
    Interval,
    contains,
    format_clock,
    overlaps,
    parse_clock,
    weekday_number,
)


def test_parse_and_format_clock() -> None:
    assert parse_clock("00:00") == 0
    assert parse_clock("10:15") == 615
    assert parse_clock("23:59") == 1439
    assert format_clock(615) == "10:15"
    assert format_clock(24 * 60 + 30) == "00:30"


@pytest.mark.parametrize("value", ["24:00", "9:60", "1015", "", "ab:cd"])
def test_parse_clock_rejects_malformed_values(value: str) -> None:
    with pytest.raises(ValueError):
        parse_clock(value)


def test_overlaps_is_half_open() -> None:
    existing = Interval.from_clock("10:00", 30)

    assert overlaps(existing, Interval.from_clock("10:15", 15))
    assert overlaps(existing, Interval.from_clock("09:45", 30))
    assert overlaps(existing, Interval.from_clock("09:00", 120))
    assert not overlaps(existing, Interval.from_clock("10:30", 30))
    assert not overlaps(existing, Interval.from_clock("09:30", 30))


def test_overlaps_is_symmetric() -> None:
    first = Interval.from_clock("08:00", 45)
    second = Interval.from_clock("08:30", 60)
    assert overlaps(first, second) == overlaps(second, first)


def test_contains_requires_both_edges_inside() -> None:
    window = Interval.between("08:00", "18:00")

    assert contains(window, Interval.from_clock("08:00", 30))
    assert contains(window, Interval.from_clock("17:30", 30))
    assert not contains(window, Interval.from_clock("17:45", 30))
    assert not contains(window, Interval.from_clock("07:45", 30))


def test_interval_start_on_and_duration() -> None:
    interval = Interval.from_clock("10:15", 45)
    assert interval.duration == 45
    assert interval.start_on(date(2025, 11, 3)) == datetime(2025, 11, 3, 10, 15)


def test_weekday_number_counts_from_sunday() -> None:
    assert weekday_number(date(2025, 11, 2)) == 0  # Sunday
    assert weekday_number(date(2025, 11, 3)) == 1  # Monday
    assert weekday_number(date(2025, 11, 8)) == 6  # Saturday
