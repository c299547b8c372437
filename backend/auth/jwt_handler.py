from datetime import datetime, timedelta, timezone

import jwt

from backend.core import config

def create_access_token(subject: str, expires_minutes: int | None = None, email: str | None = None) -> str:
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=expire_minutes)
    payload = {"sub": subject, "exp": expire, "iat": datetime.now(timezone.utc)}
    if email:
        payload["email"] = email
    if config.JWT_AUDIENCE:
        payload["aud"] = config.JWT_AUDIENCE
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    if config.JWT_AUDIENCE:
        return jwt.decode(
            token,
            config.JWT_SECRET_KEY,
            algorithms=[config.JWT_ALGORITHM],
            audience=config.JWT_AUDIENCE,
        )
    return jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"verify_aud": False},
    )
