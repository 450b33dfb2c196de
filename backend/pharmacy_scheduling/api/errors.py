from __future__ import annotations

from fastapi import HTTPException, status

from pharmacy_scheduling.services import (
    AppointmentRejectedError,
    CalendarConcurrencyError,
    InvalidTransitionError,
    TimeOffRejectedError,
)


def not_found(message: str, code: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"message": message, "code": code})


def rejection_error(exc: AppointmentRejectedError) -> HTTPException:
    payload = {"message": exc.reason, "code": exc.code}
    if exc.conflicting_appointment_id is not None:
        payload["conflicting_appointment_id"] = exc.conflicting_appointment_id
    if exc.alternatives:
        payload["alternatives"] = [slot.model_dump(mode="json") for slot in exc.alternatives]
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=payload)


def time_off_rejection_error(exc: TimeOffRejectedError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"message": exc.reason, "code": exc.code},
    )


def transition_error(exc: InvalidTransitionError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "message": str(exc),
            "code": exc.code,
            "source": exc.source,
            "target": exc.target,
        },
    )


def concurrency_error(exc: CalendarConcurrencyError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "message": "The calendar changed while the request was processed, please retry",
            "code": "CONCURRENT_MODIFICATION",
        },
    )


STAFF_NOT_FOUND = ("Staff member not found", "STAFF_NOT_FOUND")
APPOINTMENT_NOT_FOUND = ("Appointment not found", "APPOINTMENT_NOT_FOUND")
SERIES_NOT_FOUND = ("Appointment series not found", "SERIES_NOT_FOUND")
TIME_OFF_NOT_FOUND = ("Time-off request not found", "TIME_OFF_NOT_FOUND")
