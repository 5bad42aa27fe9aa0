"""
Password hashing, credentials sign-in and signed session tokens.

Sessions are stateless HS256 JWTs carrying ``sub`` (user id), ``email``
and ``exp``; they live for SESSION_MAX_AGE_SECONDS (30 days).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from contract_ai.config import settings
from contract_ai.models.database_models import User

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes and newer releases reject longer input
_BCRYPT_MAX_BYTES = 72


class InvalidTokenError(Exception):
    """Session token is missing, malformed, tampered with or expired."""


@dataclass
class SessionToken:
    access_token: str
    expires_at: datetime


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed_password.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        logger.warning("verify_password: stored hash is malformed")
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(
        select(User).where(func.lower(User.email) == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def authenticate_user(
    db: AsyncSession,
    email: Optional[str],
    password: Optional[str],
) -> Optional[User]:
    """
    Check credentials.

    Returns None when a field is missing, the email is unknown, the user has
    no password (OAuth-only account) or the password does not match.
    """
    if not email or not password:
        return None

    user = await get_user_by_email(db, email)
    if user is None or not user.hashed_password:
        return None

    if not verify_password(password, user.hashed_password):
        return None

    return user


def create_session_token(user: User, now: Optional[datetime] = None) -> SessionToken:
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(seconds=settings.SESSION_MAX_AGE_SECONDS)
    payload = {
        "sub": user.id,
        "email": user.email,
        "iat": issued_at,
        "exp": expires_at,
    }
    token = jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return SessionToken(access_token=token, expires_at=expires_at)


def decode_session_token(token: str) -> Dict[str, Any]:
    """
    Verify signature and expiry and return the claims.

    Raises:
        InvalidTokenError: for any verification failure.
    """
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise InvalidTokenError("Session expired") from exc
    except jwt.PyJWTError as exc:
        raise InvalidTokenError(f"Invalid session token: {exc}") from exc
    return claims
