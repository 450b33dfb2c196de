from __future__ import annotations

import logging
from typing import List, Optional

from sqlmodel import Session, select

from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.models import StaffCalendar, StaffSchedule
from pharmacy_scheduling.schemas.staff import StaffScheduleRead, StaffScheduleUpdate
from pharmacy_scheduling.services import audit
from pharmacy_scheduling.services.calendar import CalendarStore, StaffNotFoundError

logger = logging.getLogger(__name__)


def _build_schedule_read(session: Session, schedule: StaffSchedule) -> StaffScheduleRead:
    calendar = session.get(StaffCalendar, schedule.staff_id)
    return StaffScheduleRead(
        staff_id=schedule.staff_id,
        workplace_id=schedule.workplace_id,
        display_name=schedule.display_name,
        is_active=schedule.is_active,
        working_days=list(schedule.working_days or []),
        work_start=schedule.work_start or settings.working_day_start,
        work_end=schedule.work_end or settings.working_day_end,
        break_start=schedule.break_start,
        break_end=schedule.break_end,
        calendar_version=calendar.version if calendar else 0,
    )


def upsert_schedule(
    session: Session,
    *,
    workplace_id: int,
    staff_id: int,
    data: StaffScheduleUpdate,
    actor_id: Optional[int],
    context: Optional[dict] = None,
) -> StaffScheduleRead:
    schedule = session.exec(select(StaffSchedule).where(StaffSchedule.staff_id == staff_id)).first()
    if schedule is not None and schedule.workplace_id != workplace_id:
        # a staff id belongs to exactly one workplace
        raise StaffNotFoundError(staff_id)
    if schedule is None:
        schedule = StaffSchedule(staff_id=staff_id, workplace_id=workplace_id, display_name=data.display_name)
        session.add(schedule)

    for field_name, value in data.model_dump().items():
        setattr(schedule, field_name, value)

    calendar = session.get(StaffCalendar, staff_id)
    if calendar is None:
        session.add(StaffCalendar(staff_id=staff_id, version=0))
    else:
        # working hours shape what bookings accept
        calendar.version += 1

    session.flush()
    audit.record_event(
        session,
        actor_id=actor_id,
        action="staff_schedule.update",
        resource_type="staff_schedule",
        resource_id=str(staff_id),
        workplace_id=workplace_id,
        metadata={
            "staff_id": staff_id,
            "working_days": list(schedule.working_days),
            "is_active": schedule.is_active,
        },
        context=context or {},
    )
    session.commit()
    session.refresh(schedule)
    logger.info("Schedule of staff %s updated", staff_id)
    return _build_schedule_read(session, schedule)


def get_schedule(session: Session, *, workplace_id: int, staff_id: int) -> StaffScheduleRead:
    schedule = CalendarStore(session, workplace_id).schedule_for(staff_id)
    return _build_schedule_read(session, schedule)


def list_schedules(session: Session, *, workplace_id: int, include_inactive: bool = False) -> List[StaffScheduleRead]:
    schedules = CalendarStore(session, workplace_id).staff_schedules(active_only=not include_inactive)
    return [_build_schedule_read(session, schedule) for schedule in schedules]
