"""
Access token handling.

Tokens are issued by the platform's auth service; this service verifies
them with the shared SECRET_KEY. ``create_access_token`` exists for local
tooling and tests.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

from core.config import settings
from core.exceptions import TokenExpiredException, TokenInvalidException
from core.logging_config import get_logger


logger = get_logger(__name__)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None, **claims: Any) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    to_encode = {"sub": str(user_id), "exp": expire, **claims}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_user_id(token: str) -> int:
    """Validate a token and return the user id it names.

    Accepts the id under ``sub`` or, for tokens from the legacy issuer,
    ``userId``.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.PyJWTError as e:
        logger.warning("invalid_access_token", error=str(e))
        raise TokenInvalidException()

    subject = payload.get("sub") or payload.get("userId")
    try:
        return int(subject)
    except (TypeError, ValueError):
        raise TokenInvalidException("Token does not identify a user")
