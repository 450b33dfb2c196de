from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from pharmacy_scheduling.api.deps import (
    MANAGER_ROLES,
    STAFF_ROLES,
    Actor,
    get_audit_context,
    get_db,
    get_notification_channel,
    require_roles,
)
from pharmacy_scheduling.api.errors import (
    STAFF_NOT_FOUND,
    TIME_OFF_NOT_FOUND,
    concurrency_error,
    not_found,
    time_off_rejection_error,
)
from pharmacy_scheduling.schemas import (
    Pagination,
    TimeOffCreate,
    TimeOffDecisionRead,
    TimeOffRead,
    TimeOffRejectRequest,
)
from pharmacy_scheduling.services import (
    CalendarConcurrencyError,
    NotificationChannel,
    StaffNotFoundError,
    TimeOffNotFoundError,
    TimeOffRejectedError,
    approve_time_off,
    get_time_off_impact,
    list_time_off,
    reject_time_off,
    request_time_off,
)

router = APIRouter(prefix="/time-off", tags=["time-off"])


@router.post("/", response_model=TimeOffDecisionRead, status_code=status.HTTP_201_CREATED)
def request_time_off_record(
    payload: TimeOffCreate,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
    context: dict = Depends(get_audit_context),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> TimeOffDecisionRead:
    try:
        return request_time_off(
            session,
            workplace_id=current.workplace_id,
            data=payload,
            actor_id=current.user_id,
            context=context,
            channel=channel,
        )
    except StaffNotFoundError as exc:
        raise not_found(*STAFF_NOT_FOUND) from exc
    except TimeOffRejectedError as exc:
        raise time_off_rejection_error(exc) from exc


@router.get("/", response_model=Pagination[TimeOffRead])
def list_time_off_records(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=25, ge=1),
    staff_id: Optional[int] = None,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
) -> Pagination[TimeOffRead]:
    page_size = min(page_size, 100)
    items, total = list_time_off(
        session,
        workplace_id=current.workplace_id,
        page=page,
        page_size=page_size,
        staff_id=staff_id,
        status=status_filter,
    )
    return Pagination[TimeOffRead](items=items, page=page, page_size=page_size, total=total)


@router.post("/{time_off_id}/approve", response_model=TimeOffDecisionRead)
def approve_time_off_record(
    time_off_id: int,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*MANAGER_ROLES)),
    context: dict = Depends(get_audit_context),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> TimeOffDecisionRead:
    try:
        return approve_time_off(
            session,
            workplace_id=current.workplace_id,
            time_off_id=time_off_id,
            actor_id=current.user_id,
            context=context,
            channel=channel,
        )
    except TimeOffNotFoundError as exc:
        raise not_found(*TIME_OFF_NOT_FOUND) from exc
    except TimeOffRejectedError as exc:
        raise time_off_rejection_error(exc) from exc
    except CalendarConcurrencyError as exc:
        raise concurrency_error(exc) from exc


@router.post("/{time_off_id}/reject", response_model=TimeOffDecisionRead)
def reject_time_off_record(
    time_off_id: int,
    payload: Optional[TimeOffRejectRequest] = None,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*MANAGER_ROLES)),
    context: dict = Depends(get_audit_context),
) -> TimeOffDecisionRead:
    if payload is not None and payload.note:
        context = {**context, "note": payload.note}
    try:
        return reject_time_off(
            session,
            workplace_id=current.workplace_id,
            time_off_id=time_off_id,
            actor_id=current.user_id,
            context=context,
        )
    except TimeOffNotFoundError as exc:
        raise not_found(*TIME_OFF_NOT_FOUND) from exc
    except TimeOffRejectedError as exc:
        raise time_off_rejection_error(exc) from exc


@router.get("/{time_off_id}/impact", response_model=TimeOffDecisionRead)
def time_off_impact(
    time_off_id: int,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
) -> TimeOffDecisionRead:
    try:
        return get_time_off_impact(session, workplace_id=current.workplace_id, time_off_id=time_off_id)
    except TimeOffNotFoundError as exc:
        raise not_found(*TIME_OFF_NOT_FOUND) from exc
