from __future__ import annotations

import random
from datetime import date, datetime

import pytest
from sqlmodel import Session

from pharmacy_scheduling.models.appointment import AppointmentType
from pharmacy_scheduling.schemas import AppointmentCreate, TimeOffCreate
from pharmacy_scheduling.services import (
    AppointmentRejectedError,
    CalendarStore,
    StaffNotFoundError,
    approve_time_off,
    create_appointment,
    find_next_available,
    generate_slots,
    request_time_off,
    validate_booking,
)

WORKPLACE_ID = 1
NOW = datetime(2025, 11, 1, 8, 0)
MONDAY = date(2025, 11, 3)


def _book(session: Session, staff_id: int, clock: str, duration: int = 30, day: date = MONDAY) -> int:
    appointment = create_appointment(
        session,
        workplace_id=WORKPLACE_ID,
        data=AppointmentCreate(
            patient_id=501,
            staff_id=staff_id,
            appointment_type=AppointmentType.HEALTH_CHECK,
            scheduled_date=day,
            scheduled_time=clock,
            duration_minutes=duration,
        ),
        actor_id=7,
        now=NOW,
    )
    return appointment.id


def _slots(session: Session, **kwargs):
    params = {"workplace_id": WORKPLACE_ID, "day": MONDAY, "now": NOW}
    params.update(kwargs)
    return generate_slots(session, **params)


def test_booked_slot_is_marked_unavailable(session: Session, add_staff) -> None:
    staff_id = add_staff(11)
    booked_id = _book(session, staff_id, "10:00")

    result = _slots(session, staff_id=staff_id, duration_minutes=30, include_unavailable=True)
    by_time = {slot.time: slot for slot in result.slots}

    assert by_time["10:00"].available is False
    assert by_time["10:00"].reason == "already_booked"
    assert by_time["10:00"].message == "overlaps existing appointment"
    assert by_time["10:00"].conflicting_appointment_id == booked_id
    assert by_time["10:30"].available is True
    assert by_time["09:30"].available is True


def test_unavailable_slots_are_omitted_by_default(session: Session, add_staff) -> None:
    staff_id = add_staff(11)
    _book(session, staff_id, "10:00")

    result = _slots(session, staff_id=staff_id, duration_minutes=30)
    times = [slot.time for slot in result.slots]

    assert "10:00" not in times
    assert all(slot.available for slot in result.slots)
    assert result.summary.total_slots == 20
    assert result.summary.available_slots == 19
    assert result.summary.unavailable_slots == 1
    assert result.summary.utilization_rate == pytest.approx(0.05)


def test_slot_grid_fits_inside_working_hours(session: Session, add_staff) -> None:
    staff_id = add_staff(11)

    result = _slots(session, staff_id=staff_id, duration_minutes=60)
    times = [slot.time for slot in result.slots]

    assert times[0] == "08:00"
    assert times[-1] == "17:00"
    assert len(times) == 19
    assert result.slots[-1].end_time == "18:00"


def test_duration_defaults_to_appointment_type(session: Session, add_staff) -> None:
    staff_id = add_staff(11)

    result = _slots(session, staff_id=staff_id, appointment_type=AppointmentType.MTM_SESSION)

    assert result.summary.duration_minutes == 60


def test_slots_for_all_staff_are_sorted_by_time_then_staff(session: Session, add_staff) -> None:
    add_staff(12, display_name="Second")
    add_staff(11, display_name="First")
    add_staff(13, display_name="Inactive", is_active=False)

    result = _slots(session, duration_minutes=30)

    keys = [(slot.time, slot.staff_id) for slot in result.slots]
    assert keys == sorted(keys)
    assert {slot.staff_id for slot in result.slots} == {11, 12}
    assert [entry.staff_id for entry in result.per_staff] == [11, 12]
    assert result.summary.staff_count == 2


def test_unknown_staff_yields_empty_result(session: Session, add_staff) -> None:
    add_staff(11)

    result = _slots(session, staff_id=99, duration_minutes=30)

    assert result.slots == []
    assert result.summary.total_slots == 0
    assert result.summary.utilization_rate == 0.0


def test_non_working_day_has_no_slots(session: Session, add_staff) -> None:
    staff_id = add_staff(11)

    result = _slots(session, staff_id=staff_id, day=date(2025, 11, 9), include_unavailable=True)

    assert result.slots == []


def test_time_off_and_past_slots_carry_reasons(session: Session, add_staff) -> None:
    staff_id = add_staff(11)
    decision = request_time_off(
        session,
        workplace_id=WORKPLACE_ID,
        data=TimeOffCreate(
            staff_id=staff_id,
            start_date=date(2025, 11, 4),
            end_date=date(2025, 11, 4),
            reason="Dentist appointment in the morning",
        ),
        actor_id=11,
    )
    approve_time_off(session, workplace_id=WORKPLACE_ID, time_off_id=decision.time_off.id, actor_id=2)

    off_day = _slots(session, staff_id=staff_id, day=date(2025, 11, 4), include_unavailable=True)
    assert off_day.slots
    assert {slot.reason for slot in off_day.slots} == {"staff_time_off"}

    half_past = _slots(
        session,
        staff_id=staff_id,
        include_unavailable=True,
        now=datetime(2025, 11, 3, 12, 10),
    )
    past = [slot for slot in half_past.slots if slot.reason == "in_past"]
    assert [slot.time for slot in past][-1] == "12:00"
    assert all(slot.available for slot in half_past.slots if slot.time >= "12:30")


def test_slots_and_validator_agree(session: Session, add_staff) -> None:
    rng = random.Random(1103)
    staff_ids = [add_staff(11, break_start="12:00", break_end="12:45"), add_staff(12)]

    for _ in range(40):
        hour = rng.randint(7, 17)
        minute = rng.choice([0, 10, 15, 20, 30, 45])
        try:
            _book(
                session,
                rng.choice(staff_ids),
                f"{hour:02d}:{minute:02d}",
                duration=rng.choice([15, 20, 30, 45, 60]),
            )
        except AppointmentRejectedError:
            pass

    store = CalendarStore(session, WORKPLACE_ID)
    now = datetime(2025, 11, 3, 9, 5)
    for duration in (15, 30, 45, 60):
        result = _slots(session, duration_minutes=duration, include_unavailable=True, now=now)
        assert result.slots
        for slot in result.slots:
            check = validate_booking(
                store,
                staff_id=slot.staff_id,
                day=slot.date,
                clock=slot.time,
                duration_minutes=duration,
                now=now,
            )
            assert check.available == slot.available
            assert (check.code.value if check.code else None) == slot.reason


def test_next_available_skips_the_weekend(session: Session, add_staff) -> None:
    staff_id = add_staff(11)

    result = find_next_available(session, workplace_id=WORKPLACE_ID, staff_id=staff_id, duration_minutes=30, now=NOW)

    assert result.found is True
    assert result.date == MONDAY
    assert result.time == "08:00"
    assert result.staff_id == staff_id
    assert result.days_searched == 3


def test_next_available_skips_booked_slots(session: Session, add_staff) -> None:
    staff_id = add_staff(11)
    _book(session, staff_id, "08:00", duration=60)

    result = find_next_available(session, workplace_id=WORKPLACE_ID, staff_id=staff_id, duration_minutes=30, now=NOW)

    assert (result.date, result.time) == (MONDAY, "09:00")


def test_next_available_reports_exhausted_horizon(session: Session, add_staff) -> None:
    staff_id = add_staff(11)
    decision = request_time_off(
        session,
        workplace_id=WORKPLACE_ID,
        data=TimeOffCreate(
            staff_id=staff_id,
            start_date=date(2025, 11, 1),
            end_date=date(2025, 11, 30),
            reason="Long leave for the whole month",
        ),
        actor_id=11,
    )
    approve_time_off(session, workplace_id=WORKPLACE_ID, time_off_id=decision.time_off.id, actor_id=2)

    result = find_next_available(
        session,
        workplace_id=WORKPLACE_ID,
        staff_id=staff_id,
        duration_minutes=30,
        days_ahead=10,
        now=NOW,
    )

    assert result.found is False
    assert result.date is None
    assert result.days_searched == 10


def test_next_available_unknown_staff(session: Session, add_staff) -> None:
    add_staff(11)
    with pytest.raises(StaffNotFoundError):
        find_next_available(session, workplace_id=WORKPLACE_ID, staff_id=99, now=NOW)
