from __future__ import annotations

from datetime import datetime

import pytest
from sqlmodel import Session

from pharmacy_scheduling.services import audit
from pharmacy_scheduling.services.audit_policy import (
    ensure_appointment_metadata,
    make_patient_reference,
    redact_contact_details,
    sanitize_metadata,
)


def test_allowed_keys_pass_through() -> None:
    metadata = sanitize_metadata(
        "appointment",
        "appointment.reschedule",
        {"patient_ref": "patient:5", "replacement_id": 9, "previous_date": "2025-11-03", "previous_time": "10:00"},
    )
    assert metadata["replacement_id"] == 9


def test_action_keys_do_not_leak_to_other_actions() -> None:
    with pytest.raises(ValueError):
        sanitize_metadata("appointment", "appointment.create", {"replacement_id": 9})


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ValueError) as excinfo:
        sanitize_metadata("time_off", "time_off.request", {"patient_name": "Jane"})
    assert "patient_name" in str(excinfo.value)


@pytest.mark.parametrize(
    "reason",
    ["call me on +234 803 123 4567", "mail jane.doe@example.com", "reach 0803-123-4567"],
)
def test_contact_details_are_rejected(reason: str) -> None:
    with pytest.raises(ValueError):
        sanitize_metadata("appointment", "appointment.cancel", {"reason": reason})


def test_dates_and_series_ids_are_not_mistaken_for_phone_numbers() -> None:
    metadata = sanitize_metadata(
        "appointment",
        "appointment.create",
        {
            "scheduled_date": "2025-11-03",
            "series_id": "0b8f4a52-1c2d-4e5f-8a9b-1234567890ab",
            "reason": "follow up on 2025-11-10",
        },
    )
    assert metadata["scheduled_date"] == "2025-11-03"


def test_nested_values_are_checked() -> None:
    with pytest.raises(ValueError):
        sanitize_metadata("appointment_series", "appointment_series.cancel", {"cancelled": ["a@b.io"]})


def test_appointment_metadata_uses_patient_reference() -> None:
    metadata = ensure_appointment_metadata(patient_id=501, reason="Patient request", extra={"series_id": None, "staff_id": 11})

    assert metadata == {"patient_ref": make_patient_reference(501), "reason": "Patient request", "staff_id": 11}


def test_free_text_contact_details_are_redacted() -> None:
    assert redact_contact_details("call 0803-123-4567 or mail a.b@example.com") == "call [redacted] or mail [redacted]"
    assert redact_contact_details("follow up on 2025-11-10") == "follow up on 2025-11-10"

    metadata = ensure_appointment_metadata(patient_id=501, reason="Patient rang from +234 803 123 4567")
    assert sanitize_metadata("appointment", "appointment.cancel", metadata)["reason"] == "Patient rang from [redacted]"


def test_recorded_events_are_persisted_with_timestamps(session: Session) -> None:
    audit.record_event(
        session,
        actor_id=7,
        action="appointment.cancel",
        resource_type="appointment",
        resource_id="42",
        workplace_id=1,
        metadata=ensure_appointment_metadata(patient_id=501, reason="Patient unwell"),
    )
    session.commit()

    (event,) = audit.events_for(session, resource_type="appointment", resource_id="42")
    assert isinstance(event.timestamp, datetime)
    assert event.created_at is not None
    assert event.metadata_json == {"patient_ref": "patient:501", "reason": "Patient unwell"}
