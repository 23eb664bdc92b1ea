from datetime import datetime, timedelta, timezone

import jwt

from dental_backend.core import config

def create_access_token(
    subject: str,
    organization_id: str | None = None,
    expires_minutes: int | None = None,
) -> str:
    """Mint the bearer token that ``get_current_user`` accepts.

    Tokens are issued by the clinic login service; this is the signing half of
    that contract, used by that service and by the test suite.
    """
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=expire_minutes)
    payload = {"sub": subject, "exp": expire, "iat": datetime.now(timezone.utc)}
    if organization_id:
        payload["org"] = organization_id
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
