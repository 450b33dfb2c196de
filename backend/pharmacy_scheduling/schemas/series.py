from __future__ import annotations

import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from pharmacy_scheduling.schemas.appointment import AppointmentSummary, RecurrencePattern


class OccurrenceResult(BaseModel):
    date: dt.date
    status: Literal["created", "skipped"]
    code: Optional[str] = None
    reason: Optional[str] = None
    appointment_id: Optional[int] = None


class RecurringSeriesRead(BaseModel):
    series_id: str
    pattern: RecurrencePattern
    occurrences: List[OccurrenceResult] = Field(default_factory=list)
    created_count: int = 0
    skipped_count: int = 0
    removed_ids: List[int] = Field(default_factory=list)


class SeriesRead(BaseModel):
    series_id: str
    pattern: Optional[RecurrencePattern] = None
    appointments: List[AppointmentSummary] = Field(default_factory=list)
