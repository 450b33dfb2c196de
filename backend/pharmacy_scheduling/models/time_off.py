from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, JSON
from sqlmodel import Field

from pharmacy_scheduling.models.base import TimestampMixin


class TimeOffStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TimeOffType(str, Enum):
    VACATION = "vacation"
    SICK_LEAVE = "sick_leave"
    PERSONAL = "personal"
    TRAINING = "training"
    OTHER = "other"


class TimeOffRequest(TimestampMixin, table=True):
    __tablename__ = "time_off_requests"

    id: Optional[int] = Field(default=None, primary_key=True)
    workplace_id: int = Field(index=True)
    staff_id: int = Field(index=True)
    start_date: date
    end_date: date
    reason: str = Field(max_length=500)
    type: str = Field(default=TimeOffType.VACATION.value, max_length=32)
    status: str = Field(default=TimeOffStatus.PENDING.value, max_length=16, index=True)
    affected_appointment_ids: list[int] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False, default=list),
    )
    impact_resolved_at: Optional[datetime] = Field(default=None)
    requested_by: Optional[int] = Field(default=None)
    decided_by: Optional[int] = Field(default=None)
    decided_at: Optional[datetime] = Field(default=None)
