from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.models.time_off import TimeOffType


class TimeOffCreate(BaseModel):
    staff_id: int
    start_date: dt.date
    end_date: dt.date
    reason: str = Field(max_length=500)
    type: TimeOffType = TimeOffType.VACATION

    @field_validator("reason")
    @classmethod
    def _reason_long_enough(cls, value: str) -> str:
        stripped = value.strip()
        if len(stripped) < settings.min_time_off_reason_length:
            raise ValueError(
                f"Reason must be at least {settings.min_time_off_reason_length} characters"
            )
        return stripped


class TimeOffRead(BaseModel):
    id: int
    workplace_id: int
    staff_id: int
    start_date: dt.date
    end_date: dt.date
    reason: str
    type: str
    status: str
    affected_appointment_ids: List[int] = Field(default_factory=list)
    requested_by: Optional[int] = None
    decided_by: Optional[int] = None
    decided_at: Optional[dt.datetime] = None
    created_at: dt.datetime


class ImpactRecord(BaseModel):
    appointment_id: int
    date: dt.date
    time: str
    duration_minutes: int
    patient_id: int
    status: str


class TimeOffDecisionRead(BaseModel):
    time_off: TimeOffRead
    affected_appointments: List[ImpactRecord] = Field(default_factory=list)


class TimeOffRejectRequest(BaseModel):
    note: Optional[str] = Field(default=None, max_length=255)
