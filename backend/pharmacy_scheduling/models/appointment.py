from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, JSON
from sqlmodel import Field

from pharmacy_scheduling.models.base import SoftDeleteMixin, TimestampMixin


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


# Only these statuses hold a place on the staff calendar.
OCCUPYING_STATUSES = frozenset(
    {AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED, AppointmentStatus.IN_PROGRESS}
)
TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)


class AppointmentType(str, Enum):
    MTM_SESSION = "mtm_session"
    CHRONIC_DISEASE_REVIEW = "chronic_disease_review"
    NEW_MEDICATION_CONSULTATION = "new_medication_consultation"
    VACCINATION = "vaccination"
    HEALTH_CHECK = "health_check"
    SMOKING_CESSATION = "smoking_cessation"
    GENERAL_FOLLOWUP = "general_followup"


DEFAULT_DURATIONS = {
    AppointmentType.MTM_SESSION: 60,
    AppointmentType.CHRONIC_DISEASE_REVIEW: 45,
    AppointmentType.NEW_MEDICATION_CONSULTATION: 30,
    AppointmentType.VACCINATION: 15,
    AppointmentType.HEALTH_CHECK: 30,
    AppointmentType.SMOKING_CESSATION: 45,
    AppointmentType.GENERAL_FOLLOWUP: 30,
}

TYPE_LABELS = {
    AppointmentType.MTM_SESSION: "MTM Session",
    AppointmentType.CHRONIC_DISEASE_REVIEW: "Chronic Disease Review",
    AppointmentType.NEW_MEDICATION_CONSULTATION: "New Medication Consultation",
    AppointmentType.VACCINATION: "Vaccination",
    AppointmentType.HEALTH_CHECK: "Health Check",
    AppointmentType.SMOKING_CESSATION: "Smoking Cessation",
    AppointmentType.GENERAL_FOLLOWUP: "General Follow-up",
}


def default_duration_for(appointment_type: AppointmentType | str) -> int:
    return DEFAULT_DURATIONS[AppointmentType(appointment_type)]


class Appointment(TimestampMixin, SoftDeleteMixin, table=True):
    __tablename__ = "appointments"

    id: Optional[int] = Field(default=None, primary_key=True)
    workplace_id: int = Field(index=True)
    patient_id: int = Field(index=True)
    staff_id: int = Field(index=True)
    appointment_type: str = Field(max_length=64)
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    scheduled_date: date = Field(index=True)
    scheduled_time: str = Field(max_length=5)
    duration_minutes: int
    timezone: str = Field(default="Africa/Lagos", max_length=64)
    status: str = Field(default=AppointmentStatus.SCHEDULED.value, max_length=32, index=True)
    is_recurring: bool = Field(default=False)
    recurring_series_id: Optional[str] = Field(default=None, max_length=36, index=True)
    recurrence_pattern: Optional[dict] = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )
    is_recurring_exception: bool = Field(default=False)
    outcome: Optional[dict] = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )
    rescheduled_from_id: Optional[int] = Field(default=None)
    rescheduled_to_id: Optional[int] = Field(default=None)
    cancelled_reason: Optional[str] = Field(default=None, max_length=255)
    cancelled_at: Optional[datetime] = Field(default=None)
    confirmed_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    created_by: Optional[int] = Field(default=None)
    updated_by: Optional[int] = Field(default=None)


class AppointmentStatusHistory(TimestampMixin, table=True):
    __tablename__ = "appointment_status_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    status: str = Field(max_length=32)
    changed_by: Optional[int] = Field(default=None)
    changed_at: datetime = Field(default_factory=datetime.utcnow)
    note: Optional[str] = Field(default=None, max_length=255)
