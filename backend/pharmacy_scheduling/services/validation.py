from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.services.calendar import CalendarStore, DayCalendar
from pharmacy_scheduling.services.intervals import Interval, contains, overlaps

logger = logging.getLogger(__name__)


class RejectionCode(str, Enum):
    IN_PAST = "in_past"
    ALREADY_BOOKED = "already_booked"
    STAFF_TIME_OFF = "staff_time_off"
    OUTSIDE_WORKING_HOURS = "outside_working_hours"


REJECTION_MESSAGES = {
    RejectionCode.IN_PAST: "appointment time is in the past",
    RejectionCode.ALREADY_BOOKED: "overlaps existing appointment",
    RejectionCode.STAFF_TIME_OFF: "staff member is on approved time off",
    RejectionCode.OUTSIDE_WORKING_HOURS: "outside working hours",
}


@dataclass(frozen=True)
class IntervalCheck:
    available: bool
    code: Optional[RejectionCode] = None
    conflicting_appointment_id: Optional[int] = None

    @property
    def message(self) -> Optional[str]:
        return REJECTION_MESSAGES[self.code] if self.code else None


ACCEPTED = IntervalCheck(available=True)


def local_now(timezone_name: Optional[str] = None, now: Optional[datetime] = None) -> datetime:
    """Wall-clock "now" in the booking timezone, without tzinfo.

    ``now`` lets callers pin the reference time; naive values are taken to be
    local to the booking timezone already.
    """
    zone = ZoneInfo(timezone_name or settings.default_timezone)
    if now is None:
        return datetime.now(zone).replace(tzinfo=None)
    if now.tzinfo is not None:
        return now.astimezone(zone).replace(tzinfo=None)
    return now


def check_interval(
    calendar: DayCalendar,
    candidate: Interval,
    *,
    now: datetime,
    enforce_working_hours: Optional[bool] = None,
) -> IntervalCheck:
    """Apply the booking rules, in order, to one candidate interval.

    Slot generation and booking validation both go through here, so the two
    can never disagree about a given staff/date/time/duration.
    """
    if candidate.start_on(calendar.day) < now:
        return IntervalCheck(available=False, code=RejectionCode.IN_PAST)

    for appointment in calendar.appointments:
        existing = Interval.from_clock(appointment.scheduled_time, appointment.duration_minutes)
        if overlaps(existing, candidate):
            return IntervalCheck(
                available=False,
                code=RejectionCode.ALREADY_BOOKED,
                conflicting_appointment_id=appointment.id,
            )

    if calendar.time_off is not None:
        return IntervalCheck(available=False, code=RejectionCode.STAFF_TIME_OFF)

    if enforce_working_hours is None:
        enforce_working_hours = settings.enforce_working_hours
    if enforce_working_hours:
        outside = (
            not calendar.is_working_day
            or not contains(calendar.working_hours, candidate)
            or (calendar.break_time is not None and overlaps(calendar.break_time, candidate))
        )
        if outside:
            return IntervalCheck(available=False, code=RejectionCode.OUTSIDE_WORKING_HOURS)

    return ACCEPTED


def validate_booking(
    store: CalendarStore,
    *,
    staff_id: int,
    day: date,
    clock: str,
    duration_minutes: int,
    timezone_name: Optional[str] = None,
    now: Optional[datetime] = None,
    exclude_appointment_id: Optional[int] = None,
) -> IntervalCheck:
    """Decide whether a booking may be placed. Rejections are returned, not raised.

    Unknown staff raises :class:`StaffNotFoundError` from the store.
    """
    calendar = store.day_calendar(staff_id, day, exclude_id=exclude_appointment_id)
    result = check_interval(
        calendar,
        Interval.from_clock(clock, duration_minutes),
        now=local_now(timezone_name, now),
    )
    if not result.available:
        logger.debug(
            "Booking for staff %s on %s %s rejected: %s", staff_id, day, clock, result.code.value
        )
    return result
