from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query, Response, status
from sqlmodel import Session

from pharmacy_scheduling.api.deps import (
    STAFF_ROLES,
    Actor,
    get_audit_context,
    get_db,
    get_notification_channel,
    get_reference_time,
    get_timezone,
    require_roles,
)
from pharmacy_scheduling.api.errors import (
    APPOINTMENT_NOT_FOUND,
    SERIES_NOT_FOUND,
    STAFF_NOT_FOUND,
    concurrency_error,
    not_found,
    rejection_error,
    transition_error,
)
from pharmacy_scheduling.models.appointment import AppointmentType
from pharmacy_scheduling.schemas import (
    AppointmentCreate,
    AppointmentRead,
    AppointmentRescheduleRequest,
    AppointmentSummary,
    AvailableSlotsRead,
    CancelStatusChange,
    CompleteStatusChange,
    NextAvailableRead,
    Pagination,
    RecurringSeriesRead,
    RescheduleStatusChange,
    SeriesCancelRequest,
    SeriesCancelResult,
    SeriesPatternUpdate,
    SeriesRead,
    SimpleStatusChange,
    SlotValidationRead,
    SlotValidationRequest,
)
from pharmacy_scheduling.services import (
    AppointmentNotFoundError,
    AppointmentRejectedError,
    CalendarConcurrencyError,
    CalendarStore,
    InvalidTransitionError,
    NotificationChannel,
    SeriesNotFoundError,
    StaffNotFoundError,
    cancel_series,
    create_appointment,
    delete_appointment,
    find_next_available,
    generate_slots,
    get_appointment,
    get_series,
    list_appointments,
    reschedule_appointment,
    resolve_duration,
    update_appointment_status,
    update_series_pattern,
    validate_booking,
)

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.get("/slots", response_model=AvailableSlotsRead)
def list_available_slots(
    day: date = Query(..., alias="date"),
    staff_id: Optional[int] = None,
    duration: Optional[int] = Query(default=None, ge=5, le=120),
    appointment_type: Optional[AppointmentType] = Query(default=None, alias="type"),
    include_unavailable: bool = False,
    timezone: Optional[str] = Depends(get_timezone),
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
    now: Optional[datetime] = Depends(get_reference_time),
) -> AvailableSlotsRead:
    return generate_slots(
        session,
        workplace_id=current.workplace_id,
        day=day,
        staff_id=staff_id,
        duration_minutes=duration,
        appointment_type=appointment_type,
        include_unavailable=include_unavailable,
        timezone_name=timezone,
        now=now,
    )


@router.get("/slots/next", response_model=NextAvailableRead)
def next_available_slot(
    staff_id: Optional[int] = None,
    duration: Optional[int] = Query(default=None, ge=5, le=120),
    appointment_type: Optional[AppointmentType] = Query(default=None, alias="type"),
    days_ahead: Optional[int] = Query(default=None, ge=1),
    timezone: Optional[str] = Depends(get_timezone),
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
    now: Optional[datetime] = Depends(get_reference_time),
) -> NextAvailableRead:
    try:
        return find_next_available(
            session,
            workplace_id=current.workplace_id,
            staff_id=staff_id,
            duration_minutes=duration,
            appointment_type=appointment_type,
            days_ahead=days_ahead,
            timezone_name=timezone,
            now=now,
        )
    except StaffNotFoundError as exc:
        raise not_found(*STAFF_NOT_FOUND) from exc


@router.post("/slots/validate", response_model=SlotValidationRead)
def validate_slot(
    payload: SlotValidationRequest,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
    now: Optional[datetime] = Depends(get_reference_time),
) -> SlotValidationRead:
    try:
        check = validate_booking(
            CalendarStore(session, current.workplace_id),
            staff_id=payload.staff_id,
            day=payload.date,
            clock=payload.time,
            duration_minutes=resolve_duration(payload.duration_minutes, payload.appointment_type),
            timezone_name=payload.timezone,
            now=now,
            exclude_appointment_id=payload.exclude_appointment_id,
        )
    except StaffNotFoundError as exc:
        raise not_found(*STAFF_NOT_FOUND) from exc
    return SlotValidationRead(
        available=check.available,
        code=check.code.value if check.code else None,
        reason=check.message,
        conflicting_appointment_id=check.conflicting_appointment_id,
    )


@router.get("/series/{series_id}", response_model=SeriesRead)
def get_series_record(
    series_id: str,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
) -> SeriesRead:
    try:
        return get_series(session, workplace_id=current.workplace_id, series_id=series_id)
    except SeriesNotFoundError as exc:
        raise not_found(*SERIES_NOT_FOUND) from exc


@router.put("/series/{series_id}/pattern", response_model=RecurringSeriesRead)
def update_series_pattern_record(
    series_id: str,
    payload: SeriesPatternUpdate,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
    context: dict = Depends(get_audit_context),
    now: Optional[datetime] = Depends(get_reference_time),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> RecurringSeriesRead:
    try:
        return update_series_pattern(
            session,
            workplace_id=current.workplace_id,
            series_id=series_id,
            pattern=payload.pattern,
            actor_id=current.user_id,
            context=context,
            now=now,
            channel=channel,
        )
    except SeriesNotFoundError as exc:
        raise not_found(*SERIES_NOT_FOUND) from exc
    except StaffNotFoundError as exc:
        raise not_found(*STAFF_NOT_FOUND) from exc


@router.post("/series/{series_id}/cancel", response_model=SeriesCancelResult)
def cancel_series_record(
    series_id: str,
    payload: SeriesCancelRequest,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
    context: dict = Depends(get_audit_context),
    now: Optional[datetime] = Depends(get_reference_time),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> SeriesCancelResult:
    try:
        return cancel_series(
            session,
            workplace_id=current.workplace_id,
            series_id=series_id,
            data=payload,
            actor_id=current.user_id,
            context=context,
            now=now,
            channel=channel,
        )
    except SeriesNotFoundError as exc:
        raise not_found(*SERIES_NOT_FOUND) from exc


@router.get("/", response_model=Pagination[AppointmentSummary])
def list_appointment_records(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=25, ge=1),
    patient_id: Optional[int] = None,
    staff_id: Optional[int] = None,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
) -> Pagination[AppointmentSummary]:
    page_size = min(page_size, 100)
    items, total = list_appointments(
        session,
        workplace_id=current.workplace_id,
        page=page,
        page_size=page_size,
        patient_id=patient_id,
        staff_id=staff_id,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
    )
    return Pagination[AppointmentSummary](items=items, page=page, page_size=page_size, total=total)


@router.post(
    "/",
    response_model=Union[AppointmentRead, RecurringSeriesRead],
    status_code=status.HTTP_201_CREATED,
)
def create_appointment_record(
    payload: AppointmentCreate,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
    context: dict = Depends(get_audit_context),
    now: Optional[datetime] = Depends(get_reference_time),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> Union[AppointmentRead, RecurringSeriesRead]:
    try:
        return create_appointment(
            session,
            workplace_id=current.workplace_id,
            data=payload,
            actor_id=current.user_id,
            context=context,
            now=now,
            channel=channel,
        )
    except StaffNotFoundError as exc:
        raise not_found(*STAFF_NOT_FOUND) from exc
    except AppointmentRejectedError as exc:
        raise rejection_error(exc) from exc
    except CalendarConcurrencyError as exc:
        raise concurrency_error(exc) from exc


@router.get("/{appointment_id}", response_model=AppointmentRead)
def get_appointment_record(
    appointment_id: int,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
) -> AppointmentRead:
    try:
        return get_appointment(session, workplace_id=current.workplace_id, appointment_id=appointment_id)
    except AppointmentNotFoundError as exc:
        raise not_found(*APPOINTMENT_NOT_FOUND) from exc


@router.patch("/{appointment_id}/status", response_model=AppointmentRead)
def update_appointment_status_record(
    appointment_id: int,
    payload: Union[CompleteStatusChange, CancelStatusChange, RescheduleStatusChange, SimpleStatusChange],
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
    context: dict = Depends(get_audit_context),
    now: Optional[datetime] = Depends(get_reference_time),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> AppointmentRead:
    try:
        return update_appointment_status(
            session,
            workplace_id=current.workplace_id,
            appointment_id=appointment_id,
            change=payload,
            actor_id=current.user_id,
            context=context,
            now=now,
            channel=channel,
        )
    except AppointmentNotFoundError as exc:
        raise not_found(*APPOINTMENT_NOT_FOUND) from exc
    except StaffNotFoundError as exc:
        raise not_found(*STAFF_NOT_FOUND) from exc
    except InvalidTransitionError as exc:
        raise transition_error(exc) from exc
    except AppointmentRejectedError as exc:
        raise rejection_error(exc) from exc
    except CalendarConcurrencyError as exc:
        raise concurrency_error(exc) from exc


@router.post("/{appointment_id}/reschedule", response_model=AppointmentRead, status_code=status.HTTP_201_CREATED)
def reschedule_appointment_record(
    appointment_id: int,
    payload: AppointmentRescheduleRequest,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
    context: dict = Depends(get_audit_context),
    now: Optional[datetime] = Depends(get_reference_time),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> AppointmentRead:
    try:
        return reschedule_appointment(
            session,
            workplace_id=current.workplace_id,
            appointment_id=appointment_id,
            data=payload,
            actor_id=current.user_id,
            context=context,
            now=now,
            channel=channel,
        )
    except AppointmentNotFoundError as exc:
        raise not_found(*APPOINTMENT_NOT_FOUND) from exc
    except StaffNotFoundError as exc:
        raise not_found(*STAFF_NOT_FOUND) from exc
    except InvalidTransitionError as exc:
        raise transition_error(exc) from exc
    except AppointmentRejectedError as exc:
        raise rejection_error(exc) from exc
    except CalendarConcurrencyError as exc:
        raise concurrency_error(exc) from exc


@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment_record(
    appointment_id: int,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
    context: dict = Depends(get_audit_context),
) -> Response:
    try:
        delete_appointment(
            session,
            workplace_id=current.workplace_id,
            appointment_id=appointment_id,
            actor_id=current.user_id,
            context=context,
        )
    except AppointmentNotFoundError as exc:
        raise not_found(*APPOINTMENT_NOT_FOUND) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
