from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.models.appointment import AppointmentType
from pharmacy_scheduling.schemas.common import TIME_PATTERN, check_timezone


class RecurrencePattern(BaseModel):
    frequency: Literal["daily", "weekly", "biweekly", "monthly", "quarterly"]
    interval: int = Field(default=1, ge=1, le=12)
    end_date: Optional[date] = None
    days_of_week: Optional[List[int]] = None
    end_after_occurrences: Optional[int] = Field(default=None, ge=1, le=52)

    @field_validator("days_of_week")
    @classmethod
    def _normalize_days(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is None:
            return None
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("days_of_week entries must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value)) or None

    @model_validator(mode="after")
    def _drop_weekdays_for_other_frequencies(self) -> "RecurrencePattern":
        if self.frequency not in ("weekly", "biweekly"):
            self.days_of_week = None
        return self


class _OutcomeBase(BaseModel):
    notes: str = Field(max_length=2000)
    next_actions: List[str] = Field(default_factory=list)
    visit_created: bool = False

    @field_validator("notes")
    @classmethod
    def _notes_long_enough(cls, value: str) -> str:
        stripped = value.strip()
        if len(stripped) < settings.min_outcome_notes_length:
            raise ValueError(
                f"Outcome notes must be at least {settings.min_outcome_notes_length} characters"
            )
        return stripped


class SuccessfulOutcome(_OutcomeBase):
    status: Literal["successful"]


class PartiallySuccessfulOutcome(_OutcomeBase):
    status: Literal["partially_successful"]


class UnsuccessfulOutcome(_OutcomeBase):
    status: Literal["unsuccessful"]


AppointmentOutcome = Annotated[
    Union[SuccessfulOutcome, PartiallySuccessfulOutcome, UnsuccessfulOutcome],
    Field(discriminator="status"),
]


class AppointmentStatusRead(BaseModel):
    status: str
    changed_at: datetime
    changed_by: Optional[int]
    note: Optional[str] = None


class AppointmentCreate(BaseModel):
    patient_id: int
    staff_id: int
    appointment_type: AppointmentType
    scheduled_date: date
    scheduled_time: str = Field(pattern=TIME_PATTERN)
    duration_minutes: Optional[int] = Field(default=None, ge=5, le=120)
    timezone: Optional[str] = None
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    recurrence_pattern: Optional[RecurrencePattern] = None

    timezone_known = field_validator("timezone")(check_timezone)

    @model_validator(mode="after")
    def _series_ends_after_first_occurrence(self) -> "AppointmentCreate":
        pattern = self.recurrence_pattern
        if pattern is not None and pattern.end_date is not None and pattern.end_date < self.scheduled_date:
            raise ValueError("recurrence end_date must not be before scheduled_date")
        return self


class AppointmentRead(BaseModel):
    id: int
    workplace_id: int
    patient_id: int
    staff_id: int
    appointment_type: str
    title: Optional[str] = None
    description: Optional[str] = None
    scheduled_date: date
    scheduled_time: str
    end_time: str
    duration_minutes: int
    timezone: str
    status: str
    is_recurring: bool = False
    recurring_series_id: Optional[str] = None
    recurrence_pattern: Optional[RecurrencePattern] = None
    is_recurring_exception: bool = False
    outcome: Optional[AppointmentOutcome] = None
    rescheduled_from_id: Optional[int] = None
    rescheduled_to_id: Optional[int] = None
    cancelled_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    status_history: List[AppointmentStatusRead] = Field(default_factory=list)


class AppointmentSummary(BaseModel):
    id: int
    patient_id: int
    staff_id: int
    appointment_type: str
    scheduled_date: date
    scheduled_time: str
    duration_minutes: int
    status: str
    recurring_series_id: Optional[str] = None
    is_recurring_exception: bool = False


class AppointmentRescheduleRequest(BaseModel):
    new_date: date
    new_time: str = Field(pattern=TIME_PATTERN)
    staff_id: Optional[int] = None
    duration_minutes: Optional[int] = Field(default=None, ge=5, le=120)
    reason: Optional[str] = Field(default=None, max_length=255)


class SimpleStatusChange(BaseModel):
    # "scheduled" is accepted here so that the state machine, not the parser,
    # answers attempts to move an appointment back to scheduled.
    status: Literal["scheduled", "confirmed", "in_progress", "no_show"]
    note: Optional[str] = Field(default=None, max_length=255)


class CancelStatusChange(BaseModel):
    status: Literal["cancelled"]
    reason: str = Field(min_length=3, max_length=255)
    notify_patient: bool = True


class CompleteStatusChange(BaseModel):
    status: Literal["completed"]
    outcome: AppointmentOutcome
    note: Optional[str] = Field(default=None, max_length=255)


class RescheduleStatusChange(AppointmentRescheduleRequest):
    status: Literal["rescheduled"]


AppointmentStatusChange = Annotated[
    Union[SimpleStatusChange, CancelStatusChange, CompleteStatusChange, RescheduleStatusChange],
    Field(discriminator="status"),
]


class SeriesPatternUpdate(BaseModel):
    pattern: RecurrencePattern


class SeriesCancelRequest(BaseModel):
    reason: str = Field(min_length=3, max_length=255)
    from_date: Optional[date] = None
    notify_patient: bool = True


class SeriesCancelResult(BaseModel):
    series_id: str
    cancelled_ids: List[int] = Field(default_factory=list)
