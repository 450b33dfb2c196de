from __future__ import annotations

import builtins

import pytest

from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect

from pharmacy_scheduling.db.session import engine, get_alembic_config, init_db


def test_alembic_head_is_applied() -> None:
    init_db()
    config = get_alembic_config()
    script = ScriptDirectory.from_config(config)
    head_revision = script.get_current_head()

    with engine.connect() as connection:
        context = MigrationContext.configure(connection)
        current_revision = context.get_current_revision()

    assert current_revision == head_revision


def test_init_db_requires_alembic(monkeypatch: pytest.MonkeyPatch) -> None:
    import pharmacy_scheduling.db.session as session

    real_import = builtins.__import__

    def fake_import(name: str, *args: object, **kwargs: object):
        if name.startswith("alembic"):
            raise ImportError("mocked alembic missing")
        return real_import(name, *args, **kwargs)

    monkeypatch.setattr(builtins, "__import__", fake_import)

    with pytest.raises(RuntimeError) as excinfo:
        session.init_db()

    message = str(excinfo.value)
    assert "Alembic is required" in message
    assert "pip install -e ." in message


def test_migration_creates_scheduling_tables() -> None:
    init_db()
    inspector = inspect(engine)

    tables = set(inspector.get_table_names())
    assert {
        "appointments",
        "appointment_status_history",
        "staff_schedules",
        "staff_calendars",
        "time_off_requests",
        "audit_events",
    } <= tables

    appointment_indexes = {index["name"] for index in inspector.get_indexes("appointments")}
    assert {"ix_appointments_staff_id", "ix_appointments_scheduled_date", "ix_appointments_recurring_series_id"} <= appointment_indexes
    calendar_columns = {column["name"] for column in inspector.get_columns("staff_calendars")}
    assert calendar_columns == {"staff_id", "version"}
