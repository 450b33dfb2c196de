from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from pharmacy_scheduling.models import AuditEvent
from pharmacy_scheduling.services.audit_policy import sanitize_metadata


def record_event(
    session: Session,
    *,
    actor_id: Optional[int],
    action: str,
    resource_type: str,
    resource_id: Optional[str],
    workplace_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
) -> AuditEvent:
    """Stage an audit row in the caller's transaction; the caller commits."""
    event = AuditEvent(
        workplace_id=workplace_id,
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        metadata_json=sanitize_metadata(resource_type, action, metadata),
        context=context or {},
        timestamp=datetime.utcnow(),
    )
    session.add(event)
    return event


def events_for(
    session: Session,
    *,
    resource_type: str,
    resource_id: Optional[str] = None,
    action: Optional[str] = None,
) -> List[AuditEvent]:
    statement = select(AuditEvent).where(AuditEvent.resource_type == resource_type)
    if resource_id is not None:
        statement = statement.where(AuditEvent.resource_id == resource_id)
    if action:
        statement = statement.where(AuditEvent.action == action)
    return list(session.exec(statement.order_by(AuditEvent.timestamp, AuditEvent.id)).all())
