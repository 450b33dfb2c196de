from __future__ import annotations


from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pharmacy_scheduling.db.session import get_session
from pharmacy_scheduling.schemas.common import check_timezone
from pharmacy_scheduling.services import security
from pharmacy_scheduling.services.notifications import NotificationChannel

bearer_scheme = HTTPBearer(auto_error=False)

STAFF_ROLES = ("pharmacist", "pharmacy_manager", "admin")
MANAGER_ROLES = ("pharmacy_manager", "admin")


@dataclass
class Actor:
    user_id: int
    role: str
    workplace_id: int


def get_db():
    with get_session() as session:
        yield session


def get_notification_channel() -> NotificationChannel:
    return NotificationChannel()


def get_reference_time() -> Optional[datetime]:
    """Pinned "now" for availability decisions; ``None`` means the wall clock."""
    return None


def get_timezone(timezone: Optional[str] = Query(default=None)) -> Optional[str]:
    try:
        return check_timezone(timezone)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "code": "INVALID_TIMEZONE"},
        ) from exc


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        payload = security.decode_token(credentials.credentials)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    try:
        user_id = int(payload["sub"])
        workplace_id = int(payload["workplace_id"])
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload") from exc

    role = payload.get("role")
    if not isinstance(role, str):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    return Actor(user_id=user_id, role=role, workplace_id=workplace_id)


def require_roles(*allowed_roles: str) -> Callable[[Actor], Actor]:
    async def checker(current: Actor = Depends(get_current_actor)) -> Actor:
        if allowed_roles and current.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return current

    return checker


async def get_audit_context(request: Request, current: Actor = Depends(get_current_actor)) -> dict:
    return {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
        "role": current.role,
        "request_path": request.url.path,
    }
