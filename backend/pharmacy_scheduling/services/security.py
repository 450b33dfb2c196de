from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from pharmacy_scheduling.core.config import settings

# Tokens are issued by the identity service; this side only reads them.
# create_access_token exists for tooling and tests that need a signed token.


def create_access_token(
    subject: str,
    claims: Dict[str, Any],
    expires_delta: timedelta = timedelta(minutes=30),
) -> str:
    to_encode = {'sub': subject, **claims}
    to_encode['exp'] = datetime.now(timezone.utc) + expires_delta
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
