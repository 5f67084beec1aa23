from datetime import datetime, timedelta, timezone

import jwt

from booking_engine.core import config


class InvalidTokenError(Exception):
    pass


def create_access_token(subject: str, user_id: int | None = None, expires_minutes: int | None = None) -> str:
    issued_at = datetime.now(timezone.utc)
    expire = issued_at + timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    payload = {"sub": subject, "exp": expire, "iat": issued_at}
    if user_id is not None:
        payload["uid"] = user_id
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])


def read_claims(token: str) -> tuple[str, int | None]:
    """Return the (email, user id) pair carried by a valid token."""
    try:
        payload = decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise InvalidTokenError("Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise InvalidTokenError("Invalid token subject")

    user_id = payload.get("uid")
    return subject, int(user_id) if user_id is not None else None
