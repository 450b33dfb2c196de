from __future__ import annotations

import logging
from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, func
from sqlmodel import Session, select

from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.models import Appointment, TimeOffRequest
from pharmacy_scheduling.models.time_off import TimeOffStatus
from pharmacy_scheduling.schemas.time_off import (
    ImpactRecord,
    TimeOffCreate,
    TimeOffDecisionRead,
    TimeOffRead,
)
from pharmacy_scheduling.services import audit
from pharmacy_scheduling.services.calendar import CalendarConcurrencyError, CalendarStore
from pharmacy_scheduling.services.notifications import NotificationChannel, notify_time_off_impact

logger = logging.getLogger(__name__)

OPEN_STATUSES = [TimeOffStatus.PENDING.value, TimeOffStatus.APPROVED.value]


class TimeOffNotFoundError(Exception):
    pass


class TimeOffRejectedError(Exception):
    def __init__(self, code: str, reason: str) -> None:
        super().__init__(reason)
        self.code = code
        self.reason = reason


def _build_time_off_read(time_off: TimeOffRequest) -> TimeOffRead:
    return TimeOffRead(
        id=time_off.id,
        workplace_id=time_off.workplace_id,
        staff_id=time_off.staff_id,
        start_date=time_off.start_date,
        end_date=time_off.end_date,
        reason=time_off.reason,
        type=time_off.type,
        status=time_off.status,
        affected_appointment_ids=list(time_off.affected_appointment_ids or []),
        requested_by=time_off.requested_by,
        decided_by=time_off.decided_by,
        decided_at=time_off.decided_at,
        created_at=time_off.created_at,
    )


def _impact_record(appointment: Appointment) -> ImpactRecord:
    return ImpactRecord(
        appointment_id=appointment.id,
        date=appointment.scheduled_date,
        time=appointment.scheduled_time,
        duration_minutes=appointment.duration_minutes,
        patient_id=appointment.patient_id,
        status=appointment.status,
    )


def _load_time_off(session: Session, workplace_id: int, time_off_id: int) -> TimeOffRequest:
    time_off = session.get(TimeOffRequest, time_off_id)
    if not time_off or time_off.workplace_id != workplace_id:
        raise TimeOffNotFoundError
    return time_off


def _affected_appointments(session: Session, time_off: TimeOffRequest) -> List[Appointment]:
    store = CalendarStore(session, time_off.workplace_id)
    return store.appointments_overlapping(time_off.staff_id, time_off.start_date, time_off.end_date)


def resolve_impact(session: Session, time_off: TimeOffRequest) -> List[ImpactRecord]:
    """Occupying appointments of the staff member inside the request's date range.

    Read-only: calling it twice without appointment changes in between yields
    the same list.
    """
    return [_impact_record(appointment) for appointment in _affected_appointments(session, time_off)]


def _refresh_impact(session: Session, time_off: TimeOffRequest) -> Tuple[List[Appointment], List[ImpactRecord]]:
    affected = _affected_appointments(session, time_off)
    time_off.affected_appointment_ids = [appointment.id for appointment in affected]
    time_off.impact_resolved_at = datetime.utcnow()
    return affected, [_impact_record(appointment) for appointment in affected]


def _ensure_no_overlap(session: Session, *, staff_id: int, start_date: date, end_date: date) -> None:
    clash = session.exec(
        select(TimeOffRequest).where(
            TimeOffRequest.staff_id == staff_id,
            TimeOffRequest.status.in_(OPEN_STATUSES),
            TimeOffRequest.start_date <= end_date,
            TimeOffRequest.end_date >= start_date,
        )
    ).first()
    if clash:
        raise TimeOffRejectedError(
            "OVERLAPPING_TIME_OFF",
            f"overlaps time-off request {clash.id} ({clash.start_date} to {clash.end_date})",
        )


def request_time_off(
    session: Session,
    *,
    workplace_id: int,
    data: TimeOffCreate,
    actor_id: Optional[int],
    context: Optional[dict] = None,
    channel: Optional[NotificationChannel] = None,
) -> TimeOffDecisionRead:
    CalendarStore(session, workplace_id).schedule_for(data.staff_id)
    if data.end_date < data.start_date:
        raise TimeOffRejectedError("INVALID_DATE_RANGE", "end date is before start date")
    _ensure_no_overlap(session, staff_id=data.staff_id, start_date=data.start_date, end_date=data.end_date)

    time_off = TimeOffRequest(
        workplace_id=workplace_id,
        staff_id=data.staff_id,
        start_date=data.start_date,
        end_date=data.end_date,
        reason=data.reason,
        type=data.type.value,
        status=TimeOffStatus.PENDING.value,
        requested_by=actor_id,
    )
    session.add(time_off)
    affected, impact = _refresh_impact(session, time_off)
    session.flush()

    audit.record_event(
        session,
        actor_id=actor_id,
        action="time_off.request",
        resource_type="time_off",
        resource_id=str(time_off.id),
        workplace_id=workplace_id,
        metadata={
            "staff_id": time_off.staff_id,
            "start_date": time_off.start_date.isoformat(),
            "end_date": time_off.end_date.isoformat(),
            "type": time_off.type,
            "affected_count": len(impact),
        },
        context=context or {},
    )
    session.commit()
    session.refresh(time_off)
    logger.info(
        "Time off %s requested for staff %s (%s appointments affected)",
        time_off.id,
        time_off.staff_id,
        len(impact),
    )
    notify_time_off_impact(channel, time_off, affected)
    return TimeOffDecisionRead(time_off=_build_time_off_read(time_off), affected_appointments=impact)


def _decide(
    session: Session,
    *,
    workplace_id: int,
    time_off_id: int,
    status: TimeOffStatus,
    actor_id: Optional[int],
    context: Optional[dict],
    channel: Optional[NotificationChannel],
) -> TimeOffDecisionRead:
    store = CalendarStore(session, workplace_id)
    staff_id = _load_time_off(session, workplace_id, time_off_id).staff_id
    attempts = 1 + max(settings.booking_retry_attempts, 0)
    attempt = 0
    while True:
        attempt += 1
        version = store.calendar_version(staff_id)
        time_off = _load_time_off(session, workplace_id, time_off_id)
        if time_off.status != TimeOffStatus.PENDING.value:
            raise TimeOffRejectedError(
                "ALREADY_DECIDED", f"time-off request is already {time_off.status}"
            )
        time_off.status = status.value
        time_off.decided_by = actor_id
        time_off.decided_at = datetime.utcnow()
        affected, impact = _refresh_impact(session, time_off)
        if status is not TimeOffStatus.APPROVED:
            break
        # approval changes what the calendar accepts, so it takes part in the
        # same version swap as bookings
        try:
            store.advance_version(time_off.staff_id, version)
            break
        except CalendarConcurrencyError:
            if attempt == attempts:
                raise
            logger.info("Retrying approval of time off %s", time_off_id)

    audit.record_event(
        session,
        actor_id=actor_id,
        action=f"time_off.{'approve' if status is TimeOffStatus.APPROVED else 'reject'}",
        resource_type="time_off",
        resource_id=str(time_off.id),
        workplace_id=workplace_id,
        metadata={
            "staff_id": time_off.staff_id,
            "status": time_off.status,
            "affected_count": len(impact),
        },
        context=context or {},
    )
    session.commit()
    session.refresh(time_off)
    logger.info("Time off %s %s by %s", time_off.id, time_off.status, actor_id)
    if status is TimeOffStatus.APPROVED:
        notify_time_off_impact(channel, time_off, affected)
    return TimeOffDecisionRead(time_off=_build_time_off_read(time_off), affected_appointments=impact)


def approve_time_off(
    session: Session,
    *,
    workplace_id: int,
    time_off_id: int,
    actor_id: Optional[int],
    context: Optional[dict] = None,
    channel: Optional[NotificationChannel] = None,
) -> TimeOffDecisionRead:
    """Approve a pending request and resolve its impact against the current calendar."""
    return _decide(
        session,
        workplace_id=workplace_id,
        time_off_id=time_off_id,
        status=TimeOffStatus.APPROVED,
        actor_id=actor_id,
        context=context,
        channel=channel,
    )


def reject_time_off(
    session: Session,
    *,
    workplace_id: int,
    time_off_id: int,
    actor_id: Optional[int],
    context: Optional[dict] = None,
) -> TimeOffDecisionRead:
    return _decide(
        session,
        workplace_id=workplace_id,
        time_off_id=time_off_id,
        status=TimeOffStatus.REJECTED,
        actor_id=actor_id,
        context=context,
        channel=None,
    )


def get_time_off_impact(session: Session, *, workplace_id: int, time_off_id: int) -> TimeOffDecisionRead:
    """Recompute the derived impact list; the request itself is left as decided."""
    time_off = _load_time_off(session, workplace_id, time_off_id)
    _, impact = _refresh_impact(session, time_off)
    session.commit()
    session.refresh(time_off)
    return TimeOffDecisionRead(time_off=_build_time_off_read(time_off), affected_appointments=impact)


def list_time_off(
    session: Session,
    *,
    workplace_id: int,
    page: int = 1,
    page_size: int = 25,
    staff_id: Optional[int] = None,
    status: Optional[str] = None,
) -> Tuple[List[TimeOffRead], int]:
    filters = [TimeOffRequest.workplace_id == workplace_id]
    if staff_id:
        filters.append(TimeOffRequest.staff_id == staff_id)
    if status:
        filters.append(TimeOffRequest.status == status)

    statement = (
        select(TimeOffRequest)
        .where(and_(*filters))
        .order_by(TimeOffRequest.start_date.desc(), TimeOffRequest.id.desc())
    )
    count_stmt = select(func.count()).select_from(TimeOffRequest).where(and_(*filters))
    total = session.exec(count_stmt).one()
    items = session.exec(statement.offset((page - 1) * page_size).limit(page_size)).all()
    return [_build_time_off_read(item) for item in items], total
