from __future__ import annotations

import pytest
from pydantic import ValidationError
from sqlmodel import Session

from pharmacy_scheduling.schemas import StaffScheduleUpdate
from pharmacy_scheduling.services import StaffNotFoundError, get_schedule, list_schedules, upsert_schedule
from pharmacy_scheduling.services.audit import events_for

WORKPLACE_ID = 1


def test_schedule_defaults_to_configured_working_day(session: Session, add_staff) -> None:
    staff_id = add_staff(11, display_name="Ada Pharmacist")

    schedule = get_schedule(session, workplace_id=WORKPLACE_ID, staff_id=staff_id)

    assert schedule.display_name == "Ada Pharmacist"
    assert schedule.working_days == [1, 2, 3, 4, 5]
    assert (schedule.work_start, schedule.work_end) == ("08:00", "18:00")
    assert schedule.break_start is None
    assert schedule.calendar_version == 0


def test_schedule_update_bumps_calendar_version(session: Session, add_staff) -> None:
    staff_id = add_staff(11)

    updated = upsert_schedule(
        session,
        workplace_id=WORKPLACE_ID,
        staff_id=staff_id,
        data=StaffScheduleUpdate(
            display_name="Ada Pharmacist",
            working_days=[6, 1, 1, 2],
            work_start="09:00",
            work_end="15:00",
            break_start="12:00",
            break_end="12:30",
        ),
        actor_id=2,
        context={"role": "pharmacy_manager"},
    )

    assert updated.working_days == [1, 2, 6]
    assert (updated.work_start, updated.work_end) == ("09:00", "15:00")
    assert updated.calendar_version == 1

    events = events_for(session, resource_type="staff_schedule", resource_id=str(staff_id))
    assert [event.action for event in events] == ["staff_schedule.update", "staff_schedule.update"]
    assert events[-1].metadata_json["working_days"] == [1, 2, 6]


def test_staff_belongs_to_one_workplace(session: Session, add_staff) -> None:
    staff_id = add_staff(11)

    with pytest.raises(StaffNotFoundError):
        upsert_schedule(
            session,
            workplace_id=2,
            staff_id=staff_id,
            data=StaffScheduleUpdate(display_name="Elsewhere"),
            actor_id=2,
        )
    with pytest.raises(StaffNotFoundError):
        get_schedule(session, workplace_id=2, staff_id=staff_id)


def test_list_schedules_hides_inactive_staff(session: Session, add_staff) -> None:
    add_staff(11)
    add_staff(12, is_active=False)

    active = list_schedules(session, workplace_id=WORKPLACE_ID)
    everyone = list_schedules(session, workplace_id=WORKPLACE_ID, include_inactive=True)

    assert [item.staff_id for item in active] == [11]
    assert [item.staff_id for item in everyone] == [11, 12]


def test_schedule_validation() -> None:
    with pytest.raises(ValidationError):
        StaffScheduleUpdate(display_name="x", work_start="18:00", work_end="08:00")
    with pytest.raises(ValidationError):
        StaffScheduleUpdate(display_name="x", break_start="12:00")
    with pytest.raises(ValidationError):
        StaffScheduleUpdate(display_name="x", working_days=[7])
    with pytest.raises(ValidationError):
        StaffScheduleUpdate(display_name="x", work_start="8am")
