from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlmodel import Session

from pharmacy_scheduling.api.deps import MANAGER_ROLES, STAFF_ROLES, Actor, get_audit_context, get_db, require_roles
from pharmacy_scheduling.api.errors import STAFF_NOT_FOUND, not_found
from pharmacy_scheduling.schemas import StaffScheduleRead, StaffScheduleUpdate
from pharmacy_scheduling.services import StaffNotFoundError, get_schedule, list_schedules, upsert_schedule

router = APIRouter(prefix="/staff", tags=["staff"])


@router.get("/", response_model=List[StaffScheduleRead])
def list_staff_schedules(
    include_inactive: bool = False,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
) -> List[StaffScheduleRead]:
    return list_schedules(session, workplace_id=current.workplace_id, include_inactive=include_inactive)


@router.get("/{staff_id}/schedule", response_model=StaffScheduleRead)
def get_staff_schedule(
    staff_id: int,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*STAFF_ROLES)),
) -> StaffScheduleRead:
    try:
        return get_schedule(session, workplace_id=current.workplace_id, staff_id=staff_id)
    except StaffNotFoundError as exc:
        raise not_found(*STAFF_NOT_FOUND) from exc


@router.put("/{staff_id}/schedule", response_model=StaffScheduleRead)
def update_staff_schedule(
    staff_id: int,
    payload: StaffScheduleUpdate,
    session: Session = Depends(get_db),
    current: Actor = Depends(require_roles(*MANAGER_ROLES)),
    context: dict = Depends(get_audit_context),
) -> StaffScheduleRead:
    try:
        return upsert_schedule(
            session,
            workplace_id=current.workplace_id,
            staff_id=staff_id,
            data=payload,
            actor_id=current.user_id,
            context=context,
        )
    except StaffNotFoundError as exc:
        raise not_found(*STAFF_NOT_FOUND) from exc
