"""Bearer token verification.

Tokens are issued by the upstream identity service; this module only
verifies them and extracts the subject.
"""

from typing import Optional
from uuid import UUID

from jose import JWTError, jwt

from modulegate.core.config import get_settings


def decode_token(token: str) -> Optional[UUID]:
    """Decode and validate a JWT access token. Returns the user id if valid."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    user_id = payload.get("sub")
    if user_id is None or payload.get("type", "access") != "access":
        return None

    try:
        return UUID(str(user_id))
    except ValueError:
        return None
