from __future__ import annotations

from datetime import datetime
from typing import Dict

import pytest

pytest.importorskip("httpx")

from fastapi.testclient import TestClient

from pharmacy_scheduling.api.deps import get_notification_channel, get_reference_time
from pharmacy_scheduling.main import app
from pharmacy_scheduling.services import NotificationChannel, security

NOW = datetime(2025, 11, 1, 8, 0)


def _headers(role: str = "pharmacist", user_id: int = 11, workplace_id: int = 1) -> Dict[str, str]:
    token = security.create_access_token(str(user_id), {"role": role, "workplace_id": workplace_id})
    return {"Authorization": f"Bearer {token}"}


MANAGER = {"role": "pharmacy_manager", "user_id": 2}


@pytest.fixture
def client(clean_database) -> TestClient:
    channel = NotificationChannel()
    app.dependency_overrides[get_reference_time] = lambda: NOW
    app.dependency_overrides[get_notification_channel] = lambda: channel
    with TestClient(app) as test_client:
        test_client.channel = channel
        yield test_client
    app.dependency_overrides.clear()


def _add_staff(client: TestClient, staff_id: int = 11, **schedule) -> None:
    body = {"display_name": f"Pharmacist {staff_id}"}
    body.update(schedule)
    response = client.put(f"/api/v1/staff/{staff_id}/schedule", json=body, headers=_headers(**MANAGER))
    assert response.status_code == 200


def _request(client: TestClient, start: str, end: str, staff_id: int = 11):
    return client.post(
        "/api/v1/time-off/",
        json={"staff_id": staff_id, "start_date": start, "end_date": end, "reason": "Visiting family abroad"},
        headers=_headers(),
    )


def test_schedule_management_requires_manager(client: TestClient) -> None:
    denied = client.put("/api/v1/staff/11/schedule", json={"display_name": "Self service"}, headers=_headers())
    assert denied.status_code == 403

    _add_staff(client, working_days=[1, 2, 3], work_start="09:00", work_end="17:00")
    _add_staff(client, 12, is_active=False)

    schedule = client.get("/api/v1/staff/11/schedule", headers=_headers())
    assert schedule.status_code == 200
    assert schedule.json()["working_days"] == [1, 2, 3]
    assert schedule.json()["work_start"] == "09:00"

    listing = client.get("/api/v1/staff/", headers=_headers())
    assert [item["staff_id"] for item in listing.json()] == [11]
    everyone = client.get("/api/v1/staff/", params={"include_inactive": True}, headers=_headers())
    assert [item["staff_id"] for item in everyone.json()] == [11, 12]

    missing = client.get("/api/v1/staff/99/schedule", headers=_headers())
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "STAFF_NOT_FOUND"

    invalid = client.put(
        "/api/v1/staff/11/schedule",
        json={"display_name": "Backwards", "work_start": "17:00", "work_end": "09:00"},
        headers=_headers(**MANAGER),
    )
    assert invalid.status_code == 422


def test_time_off_approval_flow(client: TestClient) -> None:
    _add_staff(client)
    booked = client.post(
        "/api/v1/appointments/",
        json={
            "patient_id": 501,
            "staff_id": 11,
            "appointment_type": "smoking_cessation",
            "scheduled_date": "2025-11-03",
            "scheduled_time": "10:00",
        },
        headers=_headers(),
    )
    assert booked.status_code == 201
    appointment_id = booked.json()["id"]

    requested = _request(client, "2025-11-03", "2025-11-05")
    assert requested.status_code == 201
    time_off_id = requested.json()["time_off"]["id"]
    assert requested.json()["time_off"]["status"] == "pending"

    forbidden = client.post(f"/api/v1/time-off/{time_off_id}/approve", headers=_headers())
    assert forbidden.status_code == 403

    client.channel.drain()
    approved = client.post(f"/api/v1/time-off/{time_off_id}/approve", headers=_headers(**MANAGER))
    assert approved.status_code == 200
    body = approved.json()
    assert body["time_off"]["status"] == "approved"
    assert [record["appointment_id"] for record in body["affected_appointments"]] == [appointment_id]
    assert [notice.kind for notice in client.channel.drain()] == ["time_off.impact"]

    impact = client.get(f"/api/v1/time-off/{time_off_id}/impact", headers=_headers())
    assert impact.json()["affected_appointments"] == body["affected_appointments"]

    again = client.post(f"/api/v1/time-off/{time_off_id}/approve", headers=_headers(**MANAGER))
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "ALREADY_DECIDED"

    blocked = client.post(
        "/api/v1/appointments/slots/validate",
        json={"staff_id": 11, "date": "2025-11-04", "time": "10:00"},
        headers=_headers(),
    )
    assert blocked.json()["code"] == "staff_time_off"


def test_time_off_rejection_and_listing(client: TestClient) -> None:
    _add_staff(client)
    first = _request(client, "2025-11-03", "2025-11-03").json()["time_off"]["id"]
    _request(client, "2025-11-10", "2025-11-12")

    rejected = client.post(
        f"/api/v1/time-off/{first}/reject",
        json={"note": "Short staffed that day"},
        headers=_headers(**MANAGER),
    )
    assert rejected.status_code == 200
    assert rejected.json()["time_off"]["status"] == "rejected"

    pending = client.get("/api/v1/time-off/", params={"status": "pending"}, headers=_headers()).json()
    assert pending["total"] == 1
    assert pending["items"][0]["start_date"] == "2025-11-10"

    everything = client.get("/api/v1/time-off/", params={"staff_id": 11}, headers=_headers()).json()
    assert everything["total"] == 2


def test_time_off_request_errors(client: TestClient) -> None:
    _add_staff(client)

    backwards = _request(client, "2025-11-05", "2025-11-03")
    assert backwards.status_code == 409
    assert backwards.json()["detail"]["code"] == "INVALID_DATE_RANGE"

    assert _request(client, "2025-11-03", "2025-11-05").status_code == 201
    overlapping = _request(client, "2025-11-04", "2025-11-06")
    assert overlapping.status_code == 409
    assert overlapping.json()["detail"]["code"] == "OVERLAPPING_TIME_OFF"

    assert _request(client, "2025-11-03", "2025-11-05", staff_id=99).status_code == 404

    short_reason = client.post(
        "/api/v1/time-off/",
        json={"staff_id": 11, "start_date": "2025-12-01", "end_date": "2025-12-01", "reason": "tired"},
        headers=_headers(),
    )
    assert short_reason.status_code == 422

    missing = client.post("/api/v1/time-off/4242/approve", headers=_headers(**MANAGER))
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "TIME_OFF_NOT_FOUND"
