"""
Session authentication helpers.

Clients log in with email + password (routes/auth.py) and receive a signed
HS256 JWT. Every protected request sends it back as:

    Authorization: Bearer <jwt>

The token is verified per request and the user row is re-read, so
deactivated accounts and password changes take effect immediately.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import User
from domain.errors import UnauthorizedError

logger = logging.getLogger(__name__)

TOKEN_EXPIRED_MESSAGE = "Your token has expired! Please log in again."
TOKEN_INVALID_MESSAGE = "Invalid token. Please log in again!"
NOT_LOGGED_IN_MESSAGE = "You are not logged in! Please log in to get access."


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def _require_secret() -> str:
    if not settings.jwt_secret:
        # validate_production_settings() fills this in at startup
        raise RuntimeError("Server auth misconfigured (JWT secret missing).")
    return settings.jwt_secret


def decode_access_token(token: str) -> dict:
    secret = _require_secret()
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError(TOKEN_EXPIRED_MESSAGE)
    except jwt.InvalidTokenError:
        raise UnauthorizedError(TOKEN_INVALID_MESSAGE)


def issue_access_token(*, user_id: int, email: str, role: str) -> str:
    secret = _require_secret()
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_access_ttl_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": str(user_id),
        "email": email,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


async def resolve_user_from_token(db: AsyncSession, token: str) -> User:
    """
    Decode a token and load the account it belongs to.

    Raises UnauthorizedError when the token is bad, the account is gone or
    deactivated, or the password changed after the token was issued.
    """
    payload = decode_access_token(token)
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise UnauthorizedError(TOKEN_INVALID_MESSAGE)

    user = await db.get(User, user_id)
    if user is None or not user.active:
        logger.warning(f"Token presented for missing/inactive user id={user_id}")
        raise UnauthorizedError("The user belonging to this token no longer exists.")

    if user.changed_password_after(int(payload["iat"])):
        raise UnauthorizedError("User recently changed password! Please log in again.")

    return user
