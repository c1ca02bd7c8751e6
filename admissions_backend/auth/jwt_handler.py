from datetime import datetime, timedelta, timezone

import jwt
from jwt import InvalidTokenError

from admissions_backend.core import config

__all__ = ["InvalidTokenError", "create_access_token", "decode_access_token"]


def create_access_token(subject: str, expires_minutes: int | None = None, **claims) -> str:
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    now = datetime.now(timezone.utc)
    payload = {**claims, "sub": subject, "exp": now + timedelta(minutes=expire_minutes), "iat": now}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
