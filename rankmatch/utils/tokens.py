"""JWT access token helpers.

Tokens are issued by the identity layer; this service only needs to verify
them. ``create_access_token`` mirrors the issuer's payload for tooling and tests.
"""
from datetime import datetime, timedelta, UTC
from uuid import UUID

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError

from rankmatch.config import get_settings


class TokenError(RuntimeError):
    """Raised when an access token cannot be used."""


def create_access_token(player_id: UUID, username: str | None = None, expires_minutes: int | None = None) -> str:
    settings = get_settings()
    expire = datetime.now(UTC) + timedelta(minutes=expires_minutes or settings.access_token_exp_minutes)
    payload = {"sub": str(player_id), "exp": int(expire.timestamp())}
    if username:
        payload["username"] = username
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise TokenError("token_expired") from exc
    except InvalidTokenError as exc:
        raise TokenError("invalid_token") from exc
