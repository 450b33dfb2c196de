from __future__ import annotations

from typing import Generic, Optional, Sequence, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel

T = TypeVar('T')

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


def check_timezone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone '{value}'") from exc
    return value


class Pagination(BaseModel, Generic[T]):
    items: Sequence[T]
    page: int = 1
    page_size: int = 25
    total: int


class RejectionDetail(BaseModel):
    message: str
    code: Optional[str] = None
