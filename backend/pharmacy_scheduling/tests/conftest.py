from __future__ import annotations

import os
import sys
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable, List

PROJECT_ROOT = Path(__file__).resolve().parents[3]
BACKEND_ROOT = PROJECT_ROOT / "backend"

if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# settings are read once at import time, so the test database has to be chosen first
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite:///{Path(tempfile.mkdtemp(prefix='pharmacy-scheduling-')) / 'test.db'}",
)

import pytest  # noqa: E402
from sqlalchemy import text  # noqa: E402
from sqlmodel import Session  # noqa: E402

from pharmacy_scheduling.db.session import engine, init_db  # noqa: E402
from pharmacy_scheduling.schemas import StaffScheduleUpdate  # noqa: E402
from pharmacy_scheduling.services import upsert_schedule  # noqa: E402

WORKPLACE_ID = 1
# Saturday morning; 2025-11-03 is the following Monday
REFERENCE_TIME = datetime(2025, 11, 1, 8, 0)

TABLES: List[str] = [
    "audit_events",
    "appointment_status_history",
    "appointments",
    "time_off_requests",
    "staff_calendars",
    "staff_schedules",
]


@pytest.fixture
def clean_database() -> None:
    init_db()
    with Session(engine) as db_session:
        for table in TABLES:
            db_session.exec(text(f"DELETE FROM {table}"))
        db_session.commit()
    yield


@pytest.fixture
def session(clean_database) -> Session:
    with Session(engine) as db_session:
        yield db_session
        db_session.rollback()


@pytest.fixture
def add_staff(session: Session) -> Callable[..., int]:
    def _add(staff_id: int, display_name: str = "", workplace_id: int = WORKPLACE_ID, **schedule) -> int:
        upsert_schedule(
            session,
            workplace_id=workplace_id,
            staff_id=staff_id,
            data=StaffScheduleUpdate(display_name=display_name or f"Pharmacist {staff_id}", **schedule),
            actor_id=None,
        )
        return staff_id

    return _add
