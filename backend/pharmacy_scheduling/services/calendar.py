from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.models import Appointment, StaffCalendar, StaffSchedule, TimeOffRequest
from pharmacy_scheduling.models.appointment import OCCUPYING_STATUSES
from pharmacy_scheduling.models.time_off import TimeOffStatus
from pharmacy_scheduling.services.intervals import Interval, weekday_number

logger = logging.getLogger(__name__)

OCCUPYING_STATUS_VALUES = sorted(status.value for status in OCCUPYING_STATUSES)


class StaffNotFoundError(Exception):
    def __init__(self, staff_id: int) -> None:
        super().__init__(f"Staff member {staff_id} has no schedule in this workplace")
        self.staff_id = staff_id


class CalendarConcurrencyError(Exception):
    def __init__(self, staff_id: int, expected_version: int) -> None:
        super().__init__(f"Calendar of staff {staff_id} changed after version {expected_version}")
        self.staff_id = staff_id
        self.expected_version = expected_version


@dataclass
class DayCalendar:
    """Everything the interval check needs to know about one staff member's day."""

    staff_id: int
    staff_name: str
    day: date
    is_working_day: bool
    working_hours: Interval
    break_time: Optional[Interval] = None
    appointments: List[Appointment] = field(default_factory=list)
    time_off: Optional[TimeOffRequest] = None


def working_hours_for(schedule: StaffSchedule) -> Interval:
    return Interval.between(
        schedule.work_start or settings.working_day_start,
        schedule.work_end or settings.working_day_end,
    )


def break_time_for(schedule: StaffSchedule) -> Optional[Interval]:
    if schedule.break_start and schedule.break_end:
        return Interval.between(schedule.break_start, schedule.break_end)
    return None


class CalendarStore:
    """Reads and guarded writes against the calendars of one workplace."""

    def __init__(self, session: Session, workplace_id: int) -> None:
        self.session = session
        self.workplace_id = workplace_id

    def schedule_for(self, staff_id: int) -> StaffSchedule:
        schedule = self.session.exec(
            select(StaffSchedule).where(
                StaffSchedule.staff_id == staff_id,
                StaffSchedule.workplace_id == self.workplace_id,
            )
        ).first()
        if schedule is None:
            raise StaffNotFoundError(staff_id)
        return schedule

    def staff_schedules(self, staff_id: Optional[int] = None, *, active_only: bool = True) -> List[StaffSchedule]:
        statement = select(StaffSchedule).where(StaffSchedule.workplace_id == self.workplace_id)
        if staff_id is not None:
            statement = statement.where(StaffSchedule.staff_id == staff_id)
        if active_only:
            statement = statement.where(StaffSchedule.is_active == True)  # noqa: E712
        return list(self.session.exec(statement.order_by(StaffSchedule.staff_id)).all())

    def appointments_for(
        self,
        staff_id: int,
        day: date,
        *,
        exclude_id: Optional[int] = None,
    ) -> List[Appointment]:
        statement = select(Appointment).where(
            Appointment.staff_id == staff_id,
            Appointment.scheduled_date == day,
            Appointment.is_deleted == False,  # noqa: E712
            Appointment.status.in_(OCCUPYING_STATUS_VALUES),
        )
        if exclude_id is not None:
            statement = statement.where(Appointment.id != exclude_id)
        statement = statement.order_by(Appointment.scheduled_time, Appointment.id)
        return list(self.session.exec(statement).all())

    def time_off_for(self, staff_id: int, day: date) -> Optional[TimeOffRequest]:
        return self.session.exec(
            select(TimeOffRequest)
            .where(
                TimeOffRequest.staff_id == staff_id,
                TimeOffRequest.status == TimeOffStatus.APPROVED.value,
                TimeOffRequest.start_date <= day,
                TimeOffRequest.end_date >= day,
            )
            .order_by(TimeOffRequest.start_date, TimeOffRequest.id)
        ).first()

    def day_calendar(
        self,
        staff_id: int,
        day: date,
        *,
        exclude_id: Optional[int] = None,
        schedule: Optional[StaffSchedule] = None,
    ) -> DayCalendar:
        schedule = schedule or self.schedule_for(staff_id)
        return DayCalendar(
            staff_id=staff_id,
            staff_name=schedule.display_name,
            day=day,
            is_working_day=schedule.is_active and weekday_number(day) in (schedule.working_days or []),
            working_hours=working_hours_for(schedule),
            break_time=break_time_for(schedule),
            appointments=self.appointments_for(staff_id, day, exclude_id=exclude_id),
            time_off=self.time_off_for(staff_id, day),
        )

    def appointments_overlapping(self, staff_id: int, start_date: date, end_date: date) -> List[Appointment]:
        statement = (
            select(Appointment)
            .where(
                Appointment.staff_id == staff_id,
                Appointment.scheduled_date >= start_date,
                Appointment.scheduled_date <= end_date,
                Appointment.is_deleted == False,  # noqa: E712
                Appointment.status.in_(OCCUPYING_STATUS_VALUES),
            )
            .order_by(Appointment.scheduled_date, Appointment.scheduled_time, Appointment.id)
        )
        return list(self.session.exec(statement).all())

    def calendar_version(self, staff_id: int) -> int:
        version = self.session.exec(
            select(StaffCalendar.version).where(StaffCalendar.staff_id == staff_id)
        ).first()
        if version is not None:
            return version
        self.session.add(StaffCalendar(staff_id=staff_id, version=0))
        try:
            self.session.commit()
        except IntegrityError:
            # another request created the row first
            self.session.rollback()
        return self.session.exec(
            select(StaffCalendar.version).where(StaffCalendar.staff_id == staff_id)
        ).one()

    def advance_version(self, staff_id: int, expected_version: int) -> int:
        """Compare-and-swap the calendar version inside the caller's transaction.

        Raises :class:`CalendarConcurrencyError` after rolling back when another
        writer moved the version since ``expected_version`` was read.
        """
        result = self.session.exec(
            update(StaffCalendar)
            .where(
                StaffCalendar.staff_id == staff_id,
                StaffCalendar.version == expected_version,
            )
            .values(version=StaffCalendar.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.rollback()
            logger.info(
                "Calendar write for staff %s lost the race at version %s", staff_id, expected_version
            )
            raise CalendarConcurrencyError(staff_id, expected_version)
        return expected_version + 1

    def insert_appointment(self, appointment: Appointment, *, expected_version: int) -> Appointment:
        self.session.add(appointment)
        self.session.flush()
        self.advance_version(appointment.staff_id, expected_version)
        return appointment
