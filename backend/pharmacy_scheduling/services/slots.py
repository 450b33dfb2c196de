from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlmodel import Session

from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.models.appointment import AppointmentType, default_duration_for
from pharmacy_scheduling.schemas.slots import (
    AvailableSlotsRead,
    NextAvailableRead,
    SlotRead,
    SlotSummary,
    StaffSlotSummary,
)
from pharmacy_scheduling.services.calendar import CalendarStore, DayCalendar
from pharmacy_scheduling.services.intervals import Interval, format_clock
from pharmacy_scheduling.services.validation import check_interval, local_now

logger = logging.getLogger(__name__)


def resolve_duration(
    duration_minutes: Optional[int] = None,
    appointment_type: Optional[AppointmentType | str] = None,
) -> int:
    if duration_minutes is not None:
        return duration_minutes
    if appointment_type is not None:
        return default_duration_for(appointment_type)
    return settings.slot_granularity_minutes


def _utilization(total: int, available: int) -> float:
    if total == 0:
        return 0.0
    return round(1 - available / total, 4)


def candidate_intervals(calendar: DayCalendar, duration_minutes: int) -> List[Interval]:
    if not calendar.is_working_day:
        return []
    step = settings.slot_granularity_minutes
    window = calendar.working_hours
    candidates: List[Interval] = []
    start = window.start
    while start + duration_minutes <= window.end:
        candidates.append(Interval(start=start, end=start + duration_minutes))
        start += step
    return candidates


def _slots_for_day(
    calendar: DayCalendar,
    duration_minutes: int,
    now: datetime,
) -> List[SlotRead]:
    slots: List[SlotRead] = []
    for candidate in candidate_intervals(calendar, duration_minutes):
        check = check_interval(calendar, candidate, now=now)
        slots.append(
            SlotRead(
                date=calendar.day,
                time=format_clock(candidate.start),
                end_time=format_clock(candidate.end),
                staff_id=calendar.staff_id,
                staff_name=calendar.staff_name,
                available=check.available,
                reason=check.code.value if check.code else None,
                message=check.message,
                conflicting_appointment_id=check.conflicting_appointment_id,
            )
        )
    return slots


def generate_slots(
    session: Session,
    *,
    workplace_id: int,
    day: date,
    staff_id: Optional[int] = None,
    duration_minutes: Optional[int] = None,
    appointment_type: Optional[AppointmentType | str] = None,
    include_unavailable: bool = False,
    timezone_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AvailableSlotsRead:
    duration = resolve_duration(duration_minutes, appointment_type)
    store = CalendarStore(session, workplace_id)
    reference = local_now(timezone_name, now)

    all_slots: List[SlotRead] = []
    per_staff: List[StaffSlotSummary] = []
    for schedule in store.staff_schedules(staff_id):
        calendar = store.day_calendar(schedule.staff_id, day, schedule=schedule)
        staff_slots = _slots_for_day(calendar, duration, reference)
        available_count = sum(1 for slot in staff_slots if slot.available)
        per_staff.append(
            StaffSlotSummary(
                staff_id=schedule.staff_id,
                staff_name=schedule.display_name,
                total_slots=len(staff_slots),
                available_slots=available_count,
                utilization_rate=_utilization(len(staff_slots), available_count),
            )
        )
        all_slots.extend(staff_slots)

    total = len(all_slots)
    available_total = sum(1 for slot in all_slots if slot.available)
    if not include_unavailable:
        all_slots = [slot for slot in all_slots if slot.available]
    all_slots.sort(key=lambda slot: (slot.time, slot.staff_id))

    return AvailableSlotsRead(
        slots=all_slots,
        summary=SlotSummary(
            date=day,
            duration_minutes=duration,
            staff_count=len(per_staff),
            total_slots=total,
            available_slots=available_total,
            unavailable_slots=total - available_total,
            utilization_rate=_utilization(total, available_total),
        ),
        per_staff=per_staff,
    )


def find_next_available(
    session: Session,
    *,
    workplace_id: int,
    staff_id: Optional[int] = None,
    duration_minutes: Optional[int] = None,
    appointment_type: Optional[AppointmentType | str] = None,
    days_ahead: Optional[int] = None,
    timezone_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> NextAvailableRead:
    horizon = days_ahead or settings.next_available_default_days
    horizon = max(1, min(horizon, settings.next_available_max_days))
    if staff_id is not None:
        # unknown staff is a not-found, not an empty horizon
        CalendarStore(session, workplace_id).schedule_for(staff_id)

    today = local_now(timezone_name, now).date()
    for offset in range(horizon):
        day = today + timedelta(days=offset)
        result = generate_slots(
            session,
            workplace_id=workplace_id,
            day=day,
            staff_id=staff_id,
            duration_minutes=duration_minutes,
            appointment_type=appointment_type,
            include_unavailable=False,
            timezone_name=timezone_name,
            now=now,
        )
        if result.slots:
            first = result.slots[0]
            return NextAvailableRead(
                found=True,
                date=first.date,
                time=first.time,
                staff_id=first.staff_id,
                staff_name=first.staff_name,
                days_searched=offset + 1,
            )

    logger.info("No free slot for staff %s within %s days", staff_id, horizon)
    return NextAvailableRead(found=False, days_searched=horizon)
