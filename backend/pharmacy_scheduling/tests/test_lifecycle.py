from __future__ import annotations

from datetime import date, datetime
from itertools import product

import pytest
from pydantic import ValidationError
from sqlmodel import Session

from pharmacy_scheduling.models.appointment import TERMINAL_STATUSES, AppointmentStatus, AppointmentType
from pharmacy_scheduling.schemas import (
    AppointmentCreate,
    CancelStatusChange,
    CompleteStatusChange,
    SimpleStatusChange,
)
from pharmacy_scheduling.services import (
    CalendarStore,
    InvalidTransitionError,
    NotificationChannel,
    create_appointment,
    get_appointment,
    update_appointment_status,
    validate_booking,
)
from pharmacy_scheduling.services.audit import events_for
from pharmacy_scheduling.services.lifecycle import HANDLERS, allowed_targets, ensure_transition

WORKPLACE_ID = 1
NOW = datetime(2025, 11, 1, 8, 0)
MONDAY = date(2025, 11, 3)

S = AppointmentStatus

EXPECTED_TRANSITIONS = {
    S.SCHEDULED: {S.CONFIRMED, S.CANCELLED, S.NO_SHOW, S.RESCHEDULED},
    S.CONFIRMED: {S.IN_PROGRESS, S.CANCELLED, S.NO_SHOW, S.RESCHEDULED},
    S.IN_PROGRESS: {S.COMPLETED, S.CANCELLED, S.NO_SHOW},
    S.COMPLETED: set(),
    S.CANCELLED: set(),
    S.NO_SHOW: set(),
    S.RESCHEDULED: set(),
}

OUTCOME = {"status": "successful", "notes": "Reviewed all medications with the patient", "next_actions": ["refill"]}


def test_transition_table_is_closed() -> None:
    for source, target in product(AppointmentStatus, AppointmentStatus):
        if target in EXPECTED_TRANSITIONS[source]:
            assert ensure_transition(source, target) is HANDLERS[(source, target)]
        else:
            with pytest.raises(InvalidTransitionError) as excinfo:
                ensure_transition(source, target)
            assert excinfo.value.code == "INVALID_TRANSITION"
            assert excinfo.value.source == source.value
            assert excinfo.value.target == target.value


def test_terminal_statuses_have_no_way_out() -> None:
    for status in TERMINAL_STATUSES | {S.RESCHEDULED}:
        assert allowed_targets(status) == frozenset()
    for source, targets in EXPECTED_TRANSITIONS.items():
        assert allowed_targets(source) == frozenset(targets)


def test_completion_requires_a_structured_outcome() -> None:
    with pytest.raises(ValidationError):
        CompleteStatusChange(status="completed")
    with pytest.raises(ValidationError):
        CompleteStatusChange(status="completed", outcome={"status": "successful", "notes": "ok"})
    with pytest.raises(ValidationError):
        CompleteStatusChange(status="completed", outcome={"status": "maybe", "notes": "Long enough notes here"})

    change = CompleteStatusChange(status="completed", outcome=OUTCOME)
    assert change.outcome.status == "successful"


def _book(session: Session, staff_id: int, clock: str = "10:00") -> int:
    appointment = create_appointment(
        session,
        workplace_id=WORKPLACE_ID,
        data=AppointmentCreate(
            patient_id=501,
            staff_id=staff_id,
            appointment_type=AppointmentType.MTM_SESSION,
            scheduled_date=MONDAY,
            scheduled_time=clock,
        ),
        actor_id=7,
        now=NOW,
    )
    return appointment.id


def _move(session: Session, appointment_id: int, change, channel=None):
    return update_appointment_status(
        session,
        workplace_id=WORKPLACE_ID,
        appointment_id=appointment_id,
        change=change,
        actor_id=7,
        now=NOW,
        channel=channel,
    )


def test_full_lifecycle_records_history_and_outcome(session: Session, add_staff) -> None:
    staff_id = add_staff(11)
    appointment_id = _book(session, staff_id)

    confirmed = _move(session, appointment_id, SimpleStatusChange(status="confirmed"))
    assert confirmed.confirmed_at is not None
    _move(session, appointment_id, SimpleStatusChange(status="in_progress", note="Patient arrived"))
    completed = _move(session, appointment_id, CompleteStatusChange(status="completed", outcome=OUTCOME))

    assert completed.status == "completed"
    assert completed.completed_at is not None
    assert completed.outcome.status == "successful"
    assert completed.outcome.next_actions == ["refill"]
    assert [entry.status for entry in completed.status_history] == [
        "completed",
        "in_progress",
        "confirmed",
        "scheduled",
    ]
    assert completed.status_history[1].note == "Patient arrived"

    actions = [event.action for event in events_for(session, resource_type="appointment", resource_id=str(appointment_id))]
    assert actions == ["appointment.create", "appointment.status", "appointment.status", "appointment.status"]


def test_illegal_transition_leaves_appointment_unchanged(session: Session, add_staff) -> None:
    staff_id = add_staff(11)
    appointment_id = _book(session, staff_id)

    with pytest.raises(InvalidTransitionError):
        _move(session, appointment_id, CompleteStatusChange(status="completed", outcome=OUTCOME))
    with pytest.raises(InvalidTransitionError):
        _move(session, appointment_id, SimpleStatusChange(status="in_progress"))
    session.rollback()

    assert get_appointment(session, workplace_id=WORKPLACE_ID, appointment_id=appointment_id).status == "scheduled"


def test_cancelled_appointment_cannot_be_revived(session: Session, add_staff) -> None:
    staff_id = add_staff(11)
    appointment_id = _book(session, staff_id)
    _move(session, appointment_id, CancelStatusChange(status="cancelled", reason="Patient request"))

    with pytest.raises(InvalidTransitionError):
        _move(session, appointment_id, SimpleStatusChange(status="scheduled"))
    with pytest.raises(InvalidTransitionError):
        _move(session, appointment_id, SimpleStatusChange(status="confirmed"))


def test_cancellation_frees_the_slot_and_notifies(session: Session, add_staff) -> None:
    staff_id = add_staff(11)
    appointment_id = _book(session, staff_id)
    channel = NotificationChannel()
    store = CalendarStore(session, WORKPLACE_ID)

    assert not validate_booking(store, staff_id=staff_id, day=MONDAY, clock="10:00", duration_minutes=30, now=NOW).available

    cancelled = _move(
        session,
        appointment_id,
        CancelStatusChange(status="cancelled", reason="Patient travelling"),
        channel=channel,
    )

    assert cancelled.cancelled_reason == "Patient travelling"
    assert cancelled.cancelled_at is not None
    assert validate_booking(store, staff_id=staff_id, day=MONDAY, clock="10:00", duration_minutes=30, now=NOW).available
    notices = channel.drain()
    assert [notice.kind for notice in notices] == ["appointment.cancelled"]
    assert "Patient travelling" in notices[0].body


def test_cancellation_without_notice(session: Session, add_staff) -> None:
    staff_id = add_staff(11)
    appointment_id = _book(session, staff_id)
    channel = NotificationChannel()

    _move(
        session,
        appointment_id,
        CancelStatusChange(status="cancelled", reason="Duplicate booking", notify_patient=False),
        channel=channel,
    )

    assert channel.notices == []
    event = events_for(session, resource_type="appointment", resource_id=str(appointment_id), action="appointment.cancel")[0]
    assert event.metadata_json["notify"] is False
    assert event.metadata_json["patient_ref"] == "patient:501"


def test_no_show_is_terminal_and_frees_the_slot(session: Session, add_staff) -> None:
    staff_id = add_staff(11)
    appointment_id = _book(session, staff_id)

    no_show = _move(session, appointment_id, SimpleStatusChange(status="no_show"))

    assert no_show.status == "no_show"
    assert validate_booking(
        CalendarStore(session, WORKPLACE_ID),
        staff_id=staff_id,
        day=MONDAY,
        clock="10:00",
        duration_minutes=60,
        now=NOW,
    ).available
