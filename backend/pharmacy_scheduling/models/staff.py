from __future__ import annotations

from typing import Optional

from sqlalchemy import Column, JSON
from sqlmodel import Field, SQLModel

from pharmacy_scheduling.models.base import TimestampMixin


class StaffSchedule(TimestampMixin, table=True):
    __tablename__ = "staff_schedules"

    id: Optional[int] = Field(default=None, primary_key=True)
    staff_id: int = Field(index=True, unique=True)
    workplace_id: int = Field(index=True)
    display_name: str = Field(max_length=255)
    is_active: bool = Field(default=True)
    # 0 = Sunday .. 6 = Saturday
    working_days: list[int] = Field(
        default_factory=lambda: [1, 2, 3, 4, 5],
        sa_column=Column(JSON, nullable=False, default=list),
    )
    work_start: Optional[str] = Field(default=None, max_length=5)
    work_end: Optional[str] = Field(default=None, max_length=5)
    break_start: Optional[str] = Field(default=None, max_length=5)
    break_end: Optional[str] = Field(default=None, max_length=5)


class StaffCalendar(SQLModel, table=True):
    """Version counter guarding writes to one staff member's calendar."""

    __tablename__ = "staff_calendars"

    staff_id: int = Field(primary_key=True, sa_column_kwargs={"autoincrement": False})
    version: int = Field(default=0)
