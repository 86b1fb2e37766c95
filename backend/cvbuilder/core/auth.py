"""Email/password authentication for FastAPI.

Passwords are hashed with bcrypt. Access tokens are HS256 JWTs carrying the
user id (``sub``) and role. Password-reset and email-verification links use
the same signing key with a ``purpose`` claim so one kind of token can never
be replayed as another.
"""

import asyncio
import hashlib
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import bcrypt
import jwt as pyjwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from cvbuilder.core.config import get_settings
from cvbuilder.domain.documents import UserRole

_bearer_scheme = HTTPBearer(auto_error=False)

PURPOSE_ACCESS = "access"
PURPOSE_RESET = "password_reset"
PURPOSE_VERIFY = "email_verify"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


async def hash_password_async(password: str) -> str:
    """``hash_password`` on a worker thread, off the event loop."""
    return await asyncio.to_thread(hash_password, password)


async def verify_password_async(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(verify_password, password, password_hash)


def password_fingerprint(password_hash: str) -> str:
    """Short digest of the stored hash. Changes whenever the password does."""
    return hashlib.sha256(password_hash.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user extracted from an access token."""

    user_id: uuid.UUID
    role: str
    claims: dict

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def create_token(
    user_id: uuid.UUID,
    purpose: str = PURPOSE_ACCESS,
    role: str | None = None,
    **claims,
) -> str:
    """Sign a JWT for ``user_id`` with a lifetime chosen by ``purpose``.

    Extra ``claims`` are copied into the payload (reset links carry ``pwd``).
    """
    settings = get_settings()
    lifetimes = {
        PURPOSE_ACCESS: settings.access_token_expire_minutes,
        PURPOSE_RESET: settings.reset_token_expire_minutes,
        PURPOSE_VERIFY: settings.verify_token_expire_minutes,
    }
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "purpose": purpose,
        "iat": now,
        "exp": now + timedelta(minutes=lifetimes[purpose]),
    }
    if role is not None:
        payload["role"] = role
    payload.update(claims)
    return pyjwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, purpose: str = PURPOSE_ACCESS) -> dict:
    """Verify and decode a JWT issued by ``create_token``.

    Raises ``HTTPException(401)`` on any validation failure, including a
    purpose mismatch.
    """
    settings = get_settings()
    try:
        payload = pyjwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "purpose"]},
        )
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")

    if payload.get("purpose") != purpose:
        raise HTTPException(status_code=401, detail="Invalid token purpose")

    try:
        uuid.UUID(payload["sub"])
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    return payload


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthUser:
    """FastAPI dependency that validates the bearer token and loads the user.

    The role is re-read from the database so a demotion takes effect
    immediately rather than at token expiry.

    Usage::

        @router.get("/protected")
        async def protected(user: AuthUser = Depends(require_auth)):
            ...
    """
    from cvbuilder.db.base import get_session_factory
    from cvbuilder.db.models.user import User

    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    payload = decode_token(credentials.credentials)
    user_id = uuid.UUID(payload["sub"])

    factory = get_session_factory()
    async with factory() as session:
        db_user = await session.get(User, user_id)
    if db_user is None:
        raise HTTPException(status_code=401, detail="User not found")

    # Set user_id on request state for downstream use (error handlers, rate limits)
    request.state.user_id = str(user_id)

    return AuthUser(user_id=user_id, role=db_user.role, claims=payload)


async def require_admin(user: AuthUser = Depends(require_auth)) -> AuthUser:
    """FastAPI dependency that requires the ADMIN role."""
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
