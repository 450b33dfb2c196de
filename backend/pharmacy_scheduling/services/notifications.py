"""Scheduling notices handed to the delivery collaborator.

There is no process-wide backend: callers pass a :class:`NotificationChannel`
into the service functions that produce notices, and whoever owns the channel
decides how (and whether) to deliver them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence

from pharmacy_scheduling.models import Appointment, TimeOffRequest

logger = logging.getLogger(__name__)


@dataclass
class SchedulingNotice:
    kind: str
    recipient: str
    subject: str
    body: str
    appointment_ids: List[int] = field(default_factory=list)
    payload: Dict[str, object] = field(default_factory=dict)


class NotificationChannel:
    """Collects notices in order of emission."""

    def __init__(self) -> None:
        self.notices: List[SchedulingNotice] = []

    def send(self, notice: SchedulingNotice) -> SchedulingNotice:
        self.notices.append(notice)
        logger.debug("Queued %s notice for %s", notice.kind, notice.recipient)
        return notice

    def drain(self) -> List[SchedulingNotice]:
        notices, self.notices = self.notices, []
        return notices


def _patient(appointment: Appointment) -> str:
    return f"patient:{appointment.patient_id}"


def _staff(staff_id: int) -> str:
    return f"staff:{staff_id}"


def _when(appointment: Appointment) -> str:
    return f"{appointment.scheduled_date.isoformat()} {appointment.scheduled_time}"


def notify_appointment_booked(channel: Optional[NotificationChannel], appointment: Appointment) -> None:
    if channel is None:
        return
    channel.send(
        SchedulingNotice(
            kind="appointment.booked",
            recipient=_patient(appointment),
            subject="Appointment confirmed",
            body=f"Your {appointment.title or 'appointment'} is booked for {_when(appointment)}.",
            appointment_ids=[appointment.id],
        )
    )


def notify_appointment_cancelled(
    channel: Optional[NotificationChannel],
    appointment: Appointment,
    *,
    reason: Optional[str],
) -> None:
    if channel is None:
        return
    body = f"Your appointment on {_when(appointment)} has been cancelled."
    if reason:
        body += f" Reason: {reason}"
    channel.send(
        SchedulingNotice(
            kind="appointment.cancelled",
            recipient=_patient(appointment),
            subject="Appointment cancelled",
            body=body,
            appointment_ids=[appointment.id],
        )
    )


def notify_appointment_rescheduled(
    channel: Optional[NotificationChannel],
    original: Appointment,
    replacement: Appointment,
    *,
    reason: Optional[str] = None,
) -> None:
    if channel is None:
        return
    body = f"Your appointment on {_when(original)} has moved to {_when(replacement)}."
    if reason:
        body += f" Reason: {reason}"
    channel.send(
        SchedulingNotice(
            kind="appointment.rescheduled",
            recipient=_patient(replacement),
            subject="Appointment rescheduled",
            body=body,
            appointment_ids=[original.id, replacement.id],
        )
    )


def notify_time_off_impact(
    channel: Optional[NotificationChannel],
    time_off: TimeOffRequest,
    affected: Sequence[Appointment],
) -> None:
    if channel is None or not affected:
        return
    first: date = time_off.start_date
    channel.send(
        SchedulingNotice(
            kind="time_off.impact",
            recipient=_staff(time_off.staff_id),
            subject="Appointments affected by time off",
            body=(
                f"{len(affected)} appointment(s) between {first.isoformat()} and "
                f"{time_off.end_date.isoformat()} need to be rescheduled."
            ),
            appointment_ids=[appointment.id for appointment in affected],
            payload={"time_off_id": time_off.id, "status": time_off.status},
        )
    )
