from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from pharmacy_scheduling.models.appointment import AppointmentType
from pharmacy_scheduling.schemas.common import TIME_PATTERN, check_timezone


class SlotRead(BaseModel):
    date: dt.date
    time: str
    end_time: str
    staff_id: int
    staff_name: str
    available: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    conflicting_appointment_id: Optional[int] = None


class StaffSlotSummary(BaseModel):
    staff_id: int
    staff_name: str
    total_slots: int
    available_slots: int
    utilization_rate: float


class SlotSummary(BaseModel):
    date: dt.date
    duration_minutes: int
    staff_count: int
    total_slots: int
    available_slots: int
    unavailable_slots: int
    utilization_rate: float


class AvailableSlotsRead(BaseModel):
    slots: List[SlotRead] = Field(default_factory=list)
    summary: SlotSummary
    per_staff: List[StaffSlotSummary] = Field(default_factory=list)


class NextAvailableRead(BaseModel):
    found: bool
    date: Optional[dt.date] = None
    time: Optional[str] = None
    staff_id: Optional[int] = None
    staff_name: Optional[str] = None
    days_searched: int


class SlotValidationRequest(BaseModel):
    staff_id: int
    date: dt.date
    time: str = Field(pattern=TIME_PATTERN)
    duration_minutes: Optional[int] = Field(default=None, ge=5, le=120)
    appointment_type: Optional[AppointmentType] = None
    timezone: Optional[str] = None
    exclude_appointment_id: Optional[int] = None

    timezone_known = field_validator("timezone")(check_timezone)


class SlotValidationRead(BaseModel):
    available: bool
    code: Optional[str] = None
    reason: Optional[str] = None
    conflicting_appointment_id: Optional[int] = None
