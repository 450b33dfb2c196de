from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, List, Optional, Set, Tuple
from uuid import uuid4

from sqlalchemy import and_, func
from sqlmodel import Session, select

from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.models import Appointment, AppointmentStatusHistory
from pharmacy_scheduling.models.appointment import (
    OCCUPYING_STATUSES,
    TYPE_LABELS,
    AppointmentStatus,
    AppointmentType,
    default_duration_for,
)
from pharmacy_scheduling.schemas.appointment import (
    AppointmentCreate,
    AppointmentRead,
    AppointmentRescheduleRequest,
    AppointmentStatusRead,
    AppointmentSummary,
    CancelStatusChange,
    RecurrencePattern,
    RescheduleStatusChange,
    SeriesCancelRequest,
    SeriesCancelResult,
)
from pharmacy_scheduling.schemas.series import OccurrenceResult, RecurringSeriesRead, SeriesRead
from pharmacy_scheduling.schemas.slots import SlotRead
from pharmacy_scheduling.services import audit
from pharmacy_scheduling.services.audit_policy import ensure_appointment_metadata, redact_contact_details
from pharmacy_scheduling.services.calendar import CalendarConcurrencyError, CalendarStore
from pharmacy_scheduling.services.intervals import Interval, format_clock
from pharmacy_scheduling.services.lifecycle import apply_transition, ensure_transition
from pharmacy_scheduling.services.notifications import (
    NotificationChannel,
    notify_appointment_booked,
    notify_appointment_cancelled,
    notify_appointment_rescheduled,
)
from pharmacy_scheduling.services.recurrence import occurrence_dates
from pharmacy_scheduling.services.slots import generate_slots
from pharmacy_scheduling.services.validation import IntervalCheck, local_now, validate_booking

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 5


class AppointmentNotFoundError(Exception):
    pass


class SeriesNotFoundError(Exception):
    pass


class AppointmentRejectedError(Exception):
    def __init__(
        self,
        code: str,
        reason: str,
        *,
        conflicting_appointment_id: Optional[int] = None,
        alternatives: Optional[List[SlotRead]] = None,
    ) -> None:
        super().__init__(reason)
        self.code = code
        self.reason = reason
        self.conflicting_appointment_id = conflicting_appointment_id
        self.alternatives = alternatives or []

    @classmethod
    def from_check(cls, check: IntervalCheck) -> "AppointmentRejectedError":
        return cls(
            check.code.value,
            check.message,
            conflicting_appointment_id=check.conflicting_appointment_id,
        )


def _end_time(appointment: Appointment) -> str:
    return format_clock(Interval.from_clock(appointment.scheduled_time, appointment.duration_minutes).end)


def _starts_at(appointment: Appointment) -> datetime:
    return Interval.from_clock(appointment.scheduled_time, appointment.duration_minutes).start_on(
        appointment.scheduled_date
    )


def _build_appointment_read(session: Session, appointment: Appointment) -> AppointmentRead:
    history_entries = session.exec(
        select(AppointmentStatusHistory)
        .where(AppointmentStatusHistory.appointment_id == appointment.id)
        .order_by(AppointmentStatusHistory.changed_at.desc(), AppointmentStatusHistory.id.desc())
    ).all()
    return AppointmentRead(
        id=appointment.id,
        workplace_id=appointment.workplace_id,
        patient_id=appointment.patient_id,
        staff_id=appointment.staff_id,
        appointment_type=appointment.appointment_type,
        title=appointment.title,
        description=appointment.description,
        scheduled_date=appointment.scheduled_date,
        scheduled_time=appointment.scheduled_time,
        end_time=_end_time(appointment),
        duration_minutes=appointment.duration_minutes,
        timezone=appointment.timezone,
        status=appointment.status,
        is_recurring=appointment.is_recurring,
        recurring_series_id=appointment.recurring_series_id,
        recurrence_pattern=appointment.recurrence_pattern,
        is_recurring_exception=appointment.is_recurring_exception,
        outcome=appointment.outcome,
        rescheduled_from_id=appointment.rescheduled_from_id,
        rescheduled_to_id=appointment.rescheduled_to_id,
        cancelled_reason=appointment.cancelled_reason,
        cancelled_at=appointment.cancelled_at,
        confirmed_at=appointment.confirmed_at,
        completed_at=appointment.completed_at,
        created_by=appointment.created_by,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
        status_history=[
            AppointmentStatusRead(
                status=entry.status,
                changed_at=entry.changed_at,
                changed_by=entry.changed_by,
                note=entry.note,
            )
            for entry in history_entries
        ],
    )


def _build_summary(appointment: Appointment) -> AppointmentSummary:
    return AppointmentSummary(
        id=appointment.id,
        patient_id=appointment.patient_id,
        staff_id=appointment.staff_id,
        appointment_type=appointment.appointment_type,
        scheduled_date=appointment.scheduled_date,
        scheduled_time=appointment.scheduled_time,
        duration_minutes=appointment.duration_minutes,
        status=appointment.status,
        recurring_series_id=appointment.recurring_series_id,
        is_recurring_exception=appointment.is_recurring_exception,
    )


def _add_status_history(
    session: Session,
    appointment_id: int,
    status: str,
    actor_id: Optional[int],
    note: Optional[str] = None,
) -> None:
    entry = AppointmentStatusHistory(
        appointment_id=appointment_id,
        status=status,
        changed_by=actor_id,
        note=note,
        changed_at=datetime.utcnow(),
    )
    session.add(entry)


def _load_appointment(session: Session, workplace_id: int, appointment_id: int) -> Appointment:
    appointment = session.get(Appointment, appointment_id)
    if not appointment or appointment.is_deleted or appointment.workplace_id != workplace_id:
        raise AppointmentNotFoundError
    return appointment


def _suggest_alternatives(
    session: Session,
    *,
    workplace_id: int,
    staff_id: int,
    day: date,
    duration_minutes: int,
    timezone_name: Optional[str],
    now: Optional[datetime],
) -> List[SlotRead]:
    result = generate_slots(
        session,
        workplace_id=workplace_id,
        day=day,
        staff_id=staff_id,
        duration_minutes=duration_minutes,
        timezone_name=timezone_name,
        now=now,
    )
    return list(result.slots[:MAX_ALTERNATIVES])


def _book(
    session: Session,
    *,
    workplace_id: int,
    staff_id: int,
    day: date,
    clock: str,
    duration_minutes: int,
    timezone_name: str,
    build: Callable[[], Appointment],
    finalize: Callable[[Appointment, int], None],
    now: Optional[datetime] = None,
    exclude_appointment_id: Optional[int] = None,
) -> Appointment:
    """Validate and persist one appointment as a single guarded write.

    The calendar version is read before validation and swapped after the
    insert, so a concurrent writer between the two makes this attempt roll
    back. A lost race is retried ``booking_retry_attempts`` times against the
    then-current calendar before :class:`CalendarConcurrencyError` escapes.
    """
    store = CalendarStore(session, workplace_id)
    attempts = 1 + max(settings.booking_retry_attempts, 0)
    attempt = 0
    while True:
        attempt += 1
        version = store.calendar_version(staff_id)
        check = validate_booking(
            store,
            staff_id=staff_id,
            day=day,
            clock=clock,
            duration_minutes=duration_minutes,
            timezone_name=timezone_name,
            now=now,
            exclude_appointment_id=exclude_appointment_id,
        )
        if not check.available:
            raise AppointmentRejectedError.from_check(check)

        appointment = build()
        try:
            store.insert_appointment(appointment, expected_version=version)
        except CalendarConcurrencyError:
            if attempt == attempts:
                logger.warning(
                    "Giving up on booking for staff %s on %s %s after %s attempts",
                    staff_id,
                    day,
                    clock,
                    attempts,
                )
                raise
            logger.info("Retrying booking for staff %s on %s %s", staff_id, day, clock)
            continue

        finalize(appointment, attempt)
        session.commit()
        session.refresh(appointment)
        return appointment


def _new_appointment(
    *,
    workplace_id: int,
    data: AppointmentCreate,
    day: date,
    duration_minutes: int,
    timezone_name: str,
    actor_id: Optional[int],
    series_id: Optional[str] = None,
    pattern: Optional[RecurrencePattern] = None,
) -> Appointment:
    appointment_type = AppointmentType(data.appointment_type)
    return Appointment(
        workplace_id=workplace_id,
        patient_id=data.patient_id,
        staff_id=data.staff_id,
        appointment_type=appointment_type.value,
        title=data.title or f"{TYPE_LABELS[appointment_type]} appointment",
        description=data.description,
        scheduled_date=day,
        scheduled_time=data.scheduled_time,
        duration_minutes=duration_minutes,
        timezone=timezone_name,
        status=AppointmentStatus.SCHEDULED.value,
        is_recurring=series_id is not None,
        recurring_series_id=series_id,
        recurrence_pattern=pattern.model_dump(mode="json") if pattern else None,
        created_by=actor_id,
        updated_by=actor_id,
    )


def _creation_finalizer(
    session: Session,
    *,
    actor_id: Optional[int],
    context: Optional[dict],
) -> Callable[[Appointment, int], None]:
    def finalize(appointment: Appointment, attempt: int) -> None:
        _add_status_history(session, appointment.id, appointment.status, actor_id)
        audit.record_event(
            session,
            actor_id=actor_id,
            action="appointment.create",
            resource_type="appointment",
            resource_id=str(appointment.id),
            workplace_id=appointment.workplace_id,
            metadata=ensure_appointment_metadata(
                patient_id=appointment.patient_id,
                extra={
                    "staff_id": appointment.staff_id,
                    "scheduled_date": appointment.scheduled_date.isoformat(),
                    "scheduled_time": appointment.scheduled_time,
                    "duration_minutes": appointment.duration_minutes,
                    "appointment_type": appointment.appointment_type,
                    "series_id": appointment.recurring_series_id,
                    "attempts": attempt,
                },
            ),
            context=context or {},
        )

    return finalize


def create_appointment(
    session: Session,
    *,
    workplace_id: int,
    data: AppointmentCreate,
    actor_id: Optional[int],
    context: Optional[dict] = None,
    now: Optional[datetime] = None,
    channel: Optional[NotificationChannel] = None,
) -> AppointmentRead | RecurringSeriesRead:
    if data.recurrence_pattern is not None:
        return create_recurring_series(
            session,
            workplace_id=workplace_id,
            data=data,
            actor_id=actor_id,
            context=context,
            now=now,
            channel=channel,
        )

    duration = data.duration_minutes or default_duration_for(data.appointment_type)
    timezone_name = data.timezone or settings.default_timezone
    try:
        appointment = _book(
            session,
            workplace_id=workplace_id,
            staff_id=data.staff_id,
            day=data.scheduled_date,
            clock=data.scheduled_time,
            duration_minutes=duration,
            timezone_name=timezone_name,
            build=lambda: _new_appointment(
                workplace_id=workplace_id,
                data=data,
                day=data.scheduled_date,
                duration_minutes=duration,
                timezone_name=timezone_name,
                actor_id=actor_id,
            ),
            finalize=_creation_finalizer(session, actor_id=actor_id, context=context),
            now=now,
        )
    except AppointmentRejectedError as exc:
        logger.info(
            "Booking for staff %s on %s %s rejected: %s",
            data.staff_id,
            data.scheduled_date,
            data.scheduled_time,
            exc.code,
        )
        if exc.code == "already_booked":
            exc.alternatives = _suggest_alternatives(
                session,
                workplace_id=workplace_id,
                staff_id=data.staff_id,
                day=data.scheduled_date,
                duration_minutes=duration,
                timezone_name=timezone_name,
                now=now,
            )
        raise

    logger.info(
        "Booked appointment %s for staff %s on %s %s",
        appointment.id,
        appointment.staff_id,
        appointment.scheduled_date,
        appointment.scheduled_time,
    )
    notify_appointment_booked(channel, appointment)
    return _build_appointment_read(session, appointment)


def _expand_occurrences(
    session: Session,
    *,
    workplace_id: int,
    data: AppointmentCreate,
    dates: List[date],
    series_id: str,
    pattern: RecurrencePattern,
    actor_id: Optional[int],
    context: Optional[dict],
    now: Optional[datetime],
    channel: Optional[NotificationChannel],
    kept_dates: Optional[Set[date]] = None,
) -> List[OccurrenceResult]:
    duration = data.duration_minutes or default_duration_for(data.appointment_type)
    timezone_name = data.timezone or settings.default_timezone
    finalize = _creation_finalizer(session, actor_id=actor_id, context=context)
    results: List[OccurrenceResult] = []
    for day in dates:
        if kept_dates and day in kept_dates:
            results.append(
                OccurrenceResult(
                    date=day,
                    status="skipped",
                    code="existing_occurrence",
                    reason="an occurrence on this date is kept",
                )
            )
            continue
        try:
            appointment = _book(
                session,
                workplace_id=workplace_id,
                staff_id=data.staff_id,
                day=day,
                clock=data.scheduled_time,
                duration_minutes=duration,
                timezone_name=timezone_name,
                build=lambda day=day: _new_appointment(
                    workplace_id=workplace_id,
                    data=data,
                    day=day,
                    duration_minutes=duration,
                    timezone_name=timezone_name,
                    actor_id=actor_id,
                    series_id=series_id,
                    pattern=pattern,
                ),
                finalize=finalize,
                now=now,
            )
        except AppointmentRejectedError as exc:
            results.append(OccurrenceResult(date=day, status="skipped", code=exc.code, reason=exc.reason))
            continue
        except CalendarConcurrencyError:
            results.append(
                OccurrenceResult(
                    date=day,
                    status="skipped",
                    code="CONCURRENT_MODIFICATION",
                    reason="calendar changed concurrently",
                )
            )
            continue
        notify_appointment_booked(channel, appointment)
        results.append(OccurrenceResult(date=day, status="created", appointment_id=appointment.id))
    return results


def _series_result(
    series_id: str,
    pattern: RecurrencePattern,
    occurrences: List[OccurrenceResult],
    removed_ids: Optional[List[int]] = None,
) -> RecurringSeriesRead:
    created = sum(1 for item in occurrences if item.status == "created")
    return RecurringSeriesRead(
        series_id=series_id,
        pattern=pattern,
        occurrences=occurrences,
        created_count=created,
        skipped_count=len(occurrences) - created,
        removed_ids=removed_ids or [],
    )


def create_recurring_series(
    session: Session,
    *,
    workplace_id: int,
    data: AppointmentCreate,
    actor_id: Optional[int],
    context: Optional[dict] = None,
    now: Optional[datetime] = None,
    channel: Optional[NotificationChannel] = None,
) -> RecurringSeriesRead:
    pattern = data.recurrence_pattern
    if pattern is None:
        raise ValueError("A recurrence pattern is required for a series")
    CalendarStore(session, workplace_id).schedule_for(data.staff_id)

    series_id = str(uuid4())
    occurrences = _expand_occurrences(
        session,
        workplace_id=workplace_id,
        data=data,
        dates=occurrence_dates(data.scheduled_date, pattern),
        series_id=series_id,
        pattern=pattern,
        actor_id=actor_id,
        context=context,
        now=now,
        channel=channel,
    )
    result = _series_result(series_id, pattern, occurrences)

    audit.record_event(
        session,
        actor_id=actor_id,
        action="appointment_series.create",
        resource_type="appointment_series",
        resource_id=series_id,
        workplace_id=workplace_id,
        metadata={
            "staff_id": data.staff_id,
            "frequency": pattern.frequency,
            "created": result.created_count,
            "skipped": result.skipped_count,
        },
        context=context or {},
    )
    session.commit()
    logger.info(
        "Expanded series %s for staff %s: %s created, %s skipped",
        series_id,
        data.staff_id,
        result.created_count,
        result.skipped_count,
    )
    return result


def list_appointments(
    session: Session,
    *,
    workplace_id: int,
    page: int = 1,
    page_size: int = 25,
    patient_id: Optional[int] = None,
    staff_id: Optional[int] = None,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> Tuple[List[AppointmentSummary], int]:
    filters = [Appointment.workplace_id == workplace_id, Appointment.is_deleted == False]  # noqa: E712
    if patient_id:
        filters.append(Appointment.patient_id == patient_id)
    if staff_id:
        filters.append(Appointment.staff_id == staff_id)
    if status:
        filters.append(Appointment.status == status)
    if date_from:
        filters.append(Appointment.scheduled_date >= date_from)
    if date_to:
        filters.append(Appointment.scheduled_date <= date_to)

    statement = (
        select(Appointment)
        .where(and_(*filters))
        .order_by(Appointment.scheduled_date, Appointment.scheduled_time, Appointment.id)
    )
    count_stmt = select(func.count()).select_from(Appointment).where(and_(*filters))

    total = session.exec(count_stmt).one()
    items = session.exec(statement.offset((page - 1) * page_size).limit(page_size)).all()
    return [_build_summary(item) for item in items], total


def get_appointment(session: Session, *, workplace_id: int, appointment_id: int) -> AppointmentRead:
    appointment = _load_appointment(session, workplace_id, appointment_id)
    return _build_appointment_read(session, appointment)


def update_appointment_status(
    session: Session,
    *,
    workplace_id: int,
    appointment_id: int,
    change,
    actor_id: Optional[int],
    context: Optional[dict] = None,
    now: Optional[datetime] = None,
    channel: Optional[NotificationChannel] = None,
) -> AppointmentRead:
    appointment = _load_appointment(session, workplace_id, appointment_id)

    if isinstance(change, RescheduleStatusChange):
        return reschedule_appointment(
            session,
            workplace_id=workplace_id,
            appointment_id=appointment_id,
            data=change,
            actor_id=actor_id,
            context=context,
            now=now,
            channel=channel,
        )

    previous = apply_transition(appointment, change, actor_id=actor_id, at=datetime.utcnow())
    note = getattr(change, "reason", None) or getattr(change, "note", None)
    _add_status_history(session, appointment.id, appointment.status, actor_id, note)

    cancelled = isinstance(change, CancelStatusChange)
    extra = {"previous_status": previous, "status": appointment.status}
    if cancelled:
        extra["notify"] = change.notify_patient
    audit.record_event(
        session,
        actor_id=actor_id,
        action="appointment.cancel" if cancelled else "appointment.status",
        resource_type="appointment",
        resource_id=str(appointment.id),
        workplace_id=workplace_id,
        metadata=ensure_appointment_metadata(
            patient_id=appointment.patient_id,
            reason=change.reason if cancelled else None,
            extra=extra,
        ),
        context=context or {},
    )

    session.commit()
    session.refresh(appointment)
    logger.info("Appointment %s moved from %s to %s", appointment.id, previous, appointment.status)
    if cancelled and change.notify_patient:
        notify_appointment_cancelled(channel, appointment, reason=change.reason)
    return _build_appointment_read(session, appointment)


def reschedule_appointment(
    session: Session,
    *,
    workplace_id: int,
    appointment_id: int,
    data: AppointmentRescheduleRequest,
    actor_id: Optional[int],
    context: Optional[dict] = None,
    now: Optional[datetime] = None,
    channel: Optional[NotificationChannel] = None,
) -> AppointmentRead:
    """Replace an appointment with a new one at another time; returns the replacement."""
    original = _load_appointment(session, workplace_id, appointment_id)
    ensure_transition(original.status, AppointmentStatus.RESCHEDULED)

    change = (
        data
        if isinstance(data, RescheduleStatusChange)
        else RescheduleStatusChange(status="rescheduled", **data.model_dump())
    )
    original_id = original.id
    staff_id = change.staff_id or original.staff_id
    duration = change.duration_minutes or original.duration_minutes
    timezone_name = original.timezone
    previous_date = original.scheduled_date.isoformat()
    previous_time = original.scheduled_time

    def build() -> Appointment:
        source = session.get(Appointment, original_id)
        return Appointment(
            workplace_id=source.workplace_id,
            patient_id=source.patient_id,
            staff_id=staff_id,
            appointment_type=source.appointment_type,
            title=source.title,
            description=source.description,
            scheduled_date=change.new_date,
            scheduled_time=change.new_time,
            duration_minutes=duration,
            timezone=source.timezone,
            status=AppointmentStatus.SCHEDULED.value,
            is_recurring=source.is_recurring,
            recurring_series_id=source.recurring_series_id,
            recurrence_pattern=source.recurrence_pattern,
            is_recurring_exception=source.recurring_series_id is not None,
            rescheduled_from_id=source.id,
            created_by=actor_id,
            updated_by=actor_id,
        )

    def finalize(replacement: Appointment, attempt: int) -> None:
        source = session.get(Appointment, original_id)
        apply_transition(source, change, actor_id=actor_id, at=datetime.utcnow())
        source.rescheduled_to_id = replacement.id
        _add_status_history(session, source.id, source.status, actor_id, change.reason)
        _add_status_history(session, replacement.id, replacement.status, actor_id, f"rescheduled from {source.id}")
        audit.record_event(
            session,
            actor_id=actor_id,
            action="appointment.reschedule",
            resource_type="appointment",
            resource_id=str(source.id),
            workplace_id=workplace_id,
            metadata=ensure_appointment_metadata(
                patient_id=source.patient_id,
                reason=change.reason,
                extra={
                    "replacement_id": replacement.id,
                    "previous_date": previous_date,
                    "previous_time": previous_time,
                    "staff_id": staff_id,
                    "attempts": attempt,
                },
            ),
            context=context or {},
        )

    try:
        replacement = _book(
            session,
            workplace_id=workplace_id,
            staff_id=staff_id,
            day=change.new_date,
            clock=change.new_time,
            duration_minutes=duration,
            timezone_name=timezone_name,
            build=build,
            finalize=finalize,
            now=now,
            exclude_appointment_id=original_id,
        )
    except AppointmentRejectedError as exc:
        if exc.code == "already_booked":
            exc.alternatives = _suggest_alternatives(
                session,
                workplace_id=workplace_id,
                staff_id=staff_id,
                day=change.new_date,
                duration_minutes=duration,
                timezone_name=timezone_name,
                now=now,
            )
        raise

    original = session.get(Appointment, original_id)
    logger.info("Appointment %s rescheduled as %s", original_id, replacement.id)
    notify_appointment_rescheduled(channel, original, replacement, reason=change.reason)
    return _build_appointment_read(session, replacement)


def delete_appointment(
    session: Session,
    *,
    workplace_id: int,
    appointment_id: int,
    actor_id: Optional[int],
    context: Optional[dict] = None,
) -> None:
    appointment = _load_appointment(session, workplace_id, appointment_id)
    appointment.is_deleted = True
    appointment.deleted_at = datetime.utcnow()
    appointment.updated_by = actor_id
    if appointment.recurring_series_id:
        # keeps a later re-expansion of the series from recreating it
        appointment.is_recurring_exception = True

    audit.record_event(
        session,
        actor_id=actor_id,
        action="appointment.delete",
        resource_type="appointment",
        resource_id=str(appointment.id),
        workplace_id=workplace_id,
        metadata=ensure_appointment_metadata(
            patient_id=appointment.patient_id,
            extra={"status": appointment.status, "series_id": appointment.recurring_series_id},
        ),
        context=context or {},
    )
    session.commit()
    logger.info("Appointment %s soft-deleted", appointment_id)


def _series_rows(session: Session, workplace_id: int, series_id: str, *, include_deleted: bool) -> List[Appointment]:
    statement = select(Appointment).where(
        Appointment.workplace_id == workplace_id,
        Appointment.recurring_series_id == series_id,
    )
    if not include_deleted:
        statement = statement.where(Appointment.is_deleted == False)  # noqa: E712
    statement = statement.order_by(Appointment.scheduled_date, Appointment.scheduled_time, Appointment.id)
    return list(session.exec(statement).all())


def get_series(session: Session, *, workplace_id: int, series_id: str) -> SeriesRead:
    rows = _series_rows(session, workplace_id, series_id, include_deleted=False)
    if not rows:
        raise SeriesNotFoundError
    return SeriesRead(
        series_id=series_id,
        pattern=rows[-1].recurrence_pattern,
        appointments=[_build_summary(row) for row in rows],
    )


def update_series_pattern(
    session: Session,
    *,
    workplace_id: int,
    series_id: str,
    pattern: RecurrencePattern,
    actor_id: Optional[int],
    context: Optional[dict] = None,
    now: Optional[datetime] = None,
    channel: Optional[NotificationChannel] = None,
) -> RecurringSeriesRead:
    """Re-expand a series under a new pattern.

    Future ``scheduled``/``confirmed`` occurrences that were never modified on
    their own are soft-deleted and regenerated. Exceptions and anything that
    already moved on in its lifecycle are kept, and their dates are skipped.
    """
    rows = _series_rows(session, workplace_id, series_id, include_deleted=True)
    if not rows:
        raise SeriesNotFoundError
    template = next((row for row in rows if not row.is_recurring_exception), rows[0])
    reference = local_now(template.timezone, now)
    replaceable = {AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value}
    serialized_pattern = pattern.model_dump(mode="json")

    removed_ids: List[int] = []
    deleted_at = datetime.utcnow()
    for row in rows:
        if row.is_deleted:
            continue
        if (
            not row.is_recurring_exception
            and row.status in replaceable
            and _starts_at(row) >= reference
        ):
            row.is_deleted = True
            row.deleted_at = deleted_at
            row.updated_by = actor_id
            removed_ids.append(row.id)
        else:
            row.recurrence_pattern = serialized_pattern

    kept_dates = {
        row.scheduled_date
        for row in rows
        if row.id not in removed_ids and (not row.is_deleted or row.is_recurring_exception)
    }
    template_data = AppointmentCreate(
        patient_id=template.patient_id,
        staff_id=template.staff_id,
        appointment_type=template.appointment_type,
        scheduled_date=template.scheduled_date,
        scheduled_time=template.scheduled_time,
        duration_minutes=template.duration_minutes,
        timezone=template.timezone,
        title=template.title,
        description=template.description,
    )
    session.commit()

    future_dates = [
        day
        for day in occurrence_dates(template_data.scheduled_date, pattern)
        if Interval.from_clock(template_data.scheduled_time, template_data.duration_minutes).start_on(day) >= reference
    ]
    occurrences = _expand_occurrences(
        session,
        workplace_id=workplace_id,
        data=template_data,
        dates=future_dates,
        series_id=series_id,
        pattern=pattern,
        actor_id=actor_id,
        context=context,
        now=now,
        channel=channel,
        kept_dates=kept_dates,
    )
    result = _series_result(series_id, pattern, occurrences, removed_ids)

    audit.record_event(
        session,
        actor_id=actor_id,
        action="appointment_series.update",
        resource_type="appointment_series",
        resource_id=series_id,
        workplace_id=workplace_id,
        metadata={
            "staff_id": template_data.staff_id,
            "frequency": pattern.frequency,
            "created": result.created_count,
            "skipped": result.skipped_count,
            "removed": len(removed_ids),
        },
        context=context or {},
    )
    session.commit()
    logger.info(
        "Re-expanded series %s: %s removed, %s created, %s skipped",
        series_id,
        len(removed_ids),
        result.created_count,
        result.skipped_count,
    )
    return result


def cancel_series(
    session: Session,
    *,
    workplace_id: int,
    series_id: str,
    data: SeriesCancelRequest,
    actor_id: Optional[int],
    context: Optional[dict] = None,
    now: Optional[datetime] = None,
    channel: Optional[NotificationChannel] = None,
) -> SeriesCancelResult:
    """Cancel every occupying occurrence from ``data.from_date`` (or now) onwards."""
    rows = _series_rows(session, workplace_id, series_id, include_deleted=False)
    if not rows:
        raise SeriesNotFoundError

    reference = local_now(rows[0].timezone, now)
    change = CancelStatusChange(status="cancelled", reason=data.reason, notify_patient=data.notify_patient)
    occupying = {status.value for status in OCCUPYING_STATUSES}
    cancelled: List[Appointment] = []
    at = datetime.utcnow()
    for row in rows:
        if row.status not in occupying:
            continue
        if data.from_date is not None:
            if row.scheduled_date < data.from_date:
                continue
        elif _starts_at(row) < reference:
            continue
        apply_transition(row, change, actor_id=actor_id, at=at)
        _add_status_history(session, row.id, row.status, actor_id, data.reason)
        cancelled.append(row)

    audit.record_event(
        session,
        actor_id=actor_id,
        action="appointment_series.cancel",
        resource_type="appointment_series",
        resource_id=series_id,
        workplace_id=workplace_id,
        metadata={"reason": redact_contact_details(data.reason), "cancelled": [row.id for row in cancelled]},
        context=context or {},
    )
    session.commit()
    logger.info("Cancelled %s occurrence(s) of series %s", len(cancelled), series_id)

    if data.notify_patient:
        for row in cancelled:
            notify_appointment_cancelled(channel, row, reason=data.reason)
    return SeriesCancelResult(series_id=series_id, cancelled_ids=[row.id for row in cancelled])
