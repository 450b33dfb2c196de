from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from pharmacy_scheduling.schemas.common import TIME_PATTERN


class StaffScheduleUpdate(BaseModel):
    display_name: str = Field(min_length=1, max_length=255)
    is_active: bool = True
    working_days: List[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    work_start: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    work_end: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    break_start: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    break_end: Optional[str] = Field(default=None, pattern=TIME_PATTERN)

    @field_validator("working_days")
    @classmethod
    def _valid_weekdays(cls, value: List[int]) -> List[int]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("working_days entries must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value))

    @model_validator(mode="after")
    def _ordered_hours(self) -> "StaffScheduleUpdate":
        # HH:MM strings compare correctly as text
        if self.work_start and self.work_end and self.work_start >= self.work_end:
            raise ValueError("work_start must be before work_end")
        if (self.break_start is None) != (self.break_end is None):
            raise ValueError("break_start and break_end must be given together")
        if self.break_start and self.break_end and self.break_start >= self.break_end:
            raise ValueError("break_start must be before break_end")
        return self


class StaffScheduleRead(BaseModel):
    staff_id: int
    workplace_id: int
    display_name: str
    is_active: bool
    working_days: List[int]
    work_start: str
    work_end: str
    break_start: Optional[str] = None
    break_end: Optional[str] = None
    calendar_version: int = 0
