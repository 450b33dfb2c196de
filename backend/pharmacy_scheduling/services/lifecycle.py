"""Appointment lifecycle transitions.

Each allowed source/target pair has exactly one handler; a pair without a
handler is an illegal transition.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, FrozenSet, Tuple

from pharmacy_scheduling.models import Appointment
from pharmacy_scheduling.models.appointment import AppointmentStatus
from pharmacy_scheduling.schemas.appointment import (
    CancelStatusChange,
    CompleteStatusChange,
    RescheduleStatusChange,
    SimpleStatusChange,
)

Handler = Callable[[Appointment, object, datetime], None]


class InvalidTransitionError(Exception):
    code = "INVALID_TRANSITION"

    def __init__(self, source: str, target: str) -> None:
        super().__init__(f"no handler accepts this source/target pair ({source} -> {target})")
        self.source = source
        self.target = target


def _confirm(appointment: Appointment, change: object, at: datetime) -> None:
    appointment.confirmed_at = at


def _status_only(appointment: Appointment, change: object, at: datetime) -> None:
    pass


def _cancel(appointment: Appointment, change: object, at: datetime) -> None:
    if not isinstance(change, CancelStatusChange):
        raise TypeError("cancellation requires a CancelStatusChange")
    appointment.cancelled_reason = change.reason
    appointment.cancelled_at = at


def _complete(appointment: Appointment, change: object, at: datetime) -> None:
    if not isinstance(change, CompleteStatusChange):
        raise TypeError("completion requires a CompleteStatusChange")
    appointment.outcome = change.outcome.model_dump(mode="json")
    appointment.completed_at = at


def _reschedule(appointment: Appointment, change: object, at: datetime) -> None:
    # the replacement appointment is created by the caller in the same transaction
    if not isinstance(change, RescheduleStatusChange):
        raise TypeError("rescheduling requires a RescheduleStatusChange")


S = AppointmentStatus

HANDLERS: Dict[Tuple[AppointmentStatus, AppointmentStatus], Handler] = {
    (S.SCHEDULED, S.CONFIRMED): _confirm,
    (S.SCHEDULED, S.CANCELLED): _cancel,
    (S.SCHEDULED, S.NO_SHOW): _status_only,
    (S.SCHEDULED, S.RESCHEDULED): _reschedule,
    (S.CONFIRMED, S.IN_PROGRESS): _status_only,
    (S.CONFIRMED, S.CANCELLED): _cancel,
    (S.CONFIRMED, S.NO_SHOW): _status_only,
    (S.CONFIRMED, S.RESCHEDULED): _reschedule,
    (S.IN_PROGRESS, S.COMPLETED): _complete,
    (S.IN_PROGRESS, S.CANCELLED): _cancel,
    (S.IN_PROGRESS, S.NO_SHOW): _status_only,
}


def allowed_targets(source: AppointmentStatus | str) -> FrozenSet[AppointmentStatus]:
    source = AppointmentStatus(source)
    return frozenset(target for (origin, target) in HANDLERS if origin == source)


def ensure_transition(source: AppointmentStatus | str, target: AppointmentStatus | str) -> Handler:
    source_status, target_status = AppointmentStatus(source), AppointmentStatus(target)
    handler = HANDLERS.get((source_status, target_status))
    if handler is None:
        raise InvalidTransitionError(source_status.value, target_status.value)
    return handler


def apply_transition(
    appointment: Appointment,
    change: SimpleStatusChange | CancelStatusChange | CompleteStatusChange | RescheduleStatusChange,
    *,
    actor_id: int | None,
    at: datetime,
) -> str:
    """Move ``appointment`` to ``change.status`` in place and return the previous status."""
    previous = appointment.status
    handler = ensure_transition(previous, change.status)
    handler(appointment, change, at)
    appointment.status = AppointmentStatus(change.status).value
    appointment.updated_by = actor_id
    appointment.updated_at = at
    return previous
