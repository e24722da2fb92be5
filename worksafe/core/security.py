"""JWT bearer tokens identifying the acting user.

Credentials are issued elsewhere; this module only encodes and decodes the
access tokens the API accepts.
"""

from datetime import timedelta
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt

from worksafe.core.config import get_settings
from worksafe.core.timeutil import utcnow


def create_access_token(user_id: UUID, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed access token for a user."""
    settings = get_settings()
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode = {
        "sub": str(user_id),
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str) -> Optional[UUID]:
    """Decode and validate a token. Returns the user ID if valid."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        user_id = payload.get("sub")
        if user_id is None or payload.get("type") != "access":
            return None
        return UUID(user_id)
    except (JWTError, ValueError):
        return None
