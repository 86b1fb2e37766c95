"""Auth routes: registration, login, email verification and password management."""

import uuid
from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from cvbuilder.api.schemas.auth import (
    ChangePasswordRequest,
    CreditsBrief,
    ForgotPasswordRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserResponse,
    VerifyEmailRequest,
)
from cvbuilder.core.auth import (
    PURPOSE_RESET,
    PURPOSE_VERIFY,
    AuthUser,
    create_token,
    decode_token,
    hash_password_async,
    password_fingerprint,
    require_auth,
    verify_password_async,
)
from cvbuilder.core.rate_limit import rate_limit_auth
from cvbuilder.db.base import get_session_factory
from cvbuilder.db.models.profile import Profile
from cvbuilder.db.models.user import User
from cvbuilder.domain.credits import to_credits
from cvbuilder.services import credit_service
from cvbuilder.services.email_service import get_email_service

logger = structlog.get_logger(__name__)

router = APIRouter()

# Same reply whether or not the address exists
FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a reset link has been sent"


async def _user_by_email(session, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_token(user.id, role=user.role),
        user=UserResponse.model_validate(user),
    )


@router.post("/register", response_model=TokenResponse, status_code=201, dependencies=[Depends(rate_limit_auth)])
async def register(body: RegisterRequest):
    """Create an account with an empty profile and the starting credits, then sign it in."""
    factory = get_session_factory()
    async with factory() as session:
        if await _user_by_email(session, body.email) is not None:
            raise HTTPException(status_code=409, detail="User already exists with this email")

        user = User(email=body.email, password_hash=await hash_password_async(body.password), name=body.name.strip())
        session.add(user)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            raise HTTPException(status_code=409, detail="User already exists with this email")

        session.add(Profile(user_id=user.id))
        credits = await credit_service.ensure_credits_row(session, user.id)
        free_credits = str(to_credits(credits.balance))
        await session.commit()

    logger.info("user_registered", user_id=str(user.id))

    email = get_email_service()
    await email.send_welcome(user.email, user.name, free_credits)
    await email.send_verification(user.email, user.name, create_token(user.id, purpose=PURPOSE_VERIFY))

    return _token_response(user)


@router.post("/login", response_model=TokenResponse, dependencies=[Depends(rate_limit_auth)])
async def login(body: LoginRequest):
    factory = get_session_factory()
    async with factory() as session:
        user = await _user_by_email(session, body.email)

    if user is None or not await verify_password_async(body.password, user.password_hash):
        logger.info("login_failed", email_domain=body.email.rsplit("@", 1)[-1])
        raise HTTPException(status_code=401, detail="Invalid email or password")

    logger.info("user_logged_in", user_id=str(user.id))
    return _token_response(user)


@router.get("/me", response_model=MeResponse)
async def me(user: AuthUser = Depends(require_auth)):
    """Current user with their credit balance."""
    credits = await credit_service.get_or_create_credits(user.user_id)
    factory = get_session_factory()
    async with factory() as session:
        db_user = await session.get(User, user.user_id)

    return MeResponse(
        **UserResponse.model_validate(db_user).model_dump(),
        credits=CreditsBrief(
            balance=to_credits(credits.balance),
            total_purchased=to_credits(credits.total_purchased),
            total_used=to_credits(credits.total_used),
        ),
    )


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(body: VerifyEmailRequest):
    payload = decode_token(body.token, purpose=PURPOSE_VERIFY)

    factory = get_session_factory()
    async with factory() as session:
        user = await session.get(User, uuid.UUID(payload["sub"]))
        if user is None:
            raise HTTPException(status_code=400, detail="Invalid verification link")
        if user.email_verified_at is None:
            user.email_verified_at = datetime.now(UTC)
            await session.commit()
            logger.info("email_verified", user_id=str(user.id))

    return MessageResponse(message="Email verified")


@router.post("/resend-verification", response_model=MessageResponse, dependencies=[Depends(rate_limit_auth)])
async def resend_verification(user: AuthUser = Depends(require_auth)):
    factory = get_session_factory()
    async with factory() as session:
        db_user = await session.get(User, user.user_id)

    if db_user.email_verified_at is not None:
        return MessageResponse(message="Email already verified")

    await get_email_service().send_verification(
        db_user.email, db_user.name, create_token(db_user.id, purpose=PURPOSE_VERIFY)
    )
    return MessageResponse(message="Verification email sent")


@router.post("/forgot-password", response_model=MessageResponse, dependencies=[Depends(rate_limit_auth)])
async def forgot_password(body: ForgotPasswordRequest):
    factory = get_session_factory()
    async with factory() as session:
        user = await _user_by_email(session, body.email)

    if user is not None:
        token = create_token(user.id, purpose=PURPOSE_RESET, pwd=password_fingerprint(user.password_hash))
        await get_email_service().send_password_reset(user.email, user.name, token)
        logger.info("password_reset_requested", user_id=str(user.id))

    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse, dependencies=[Depends(rate_limit_auth)])
async def reset_password(body: ResetPasswordRequest):
    payload = decode_token(body.token, purpose=PURPOSE_RESET)

    factory = get_session_factory()
    async with factory() as session:
        user = await session.get(User, uuid.UUID(payload["sub"]))
        if user is None:
            raise HTTPException(status_code=400, detail="Invalid or expired reset link")

        # The link is bound to the password it was issued for, so it works once
        if payload.get("pwd") != password_fingerprint(user.password_hash):
            raise HTTPException(status_code=400, detail="Invalid or expired reset link")

        user.password_hash = await hash_password_async(body.password)
        await session.commit()

    logger.info("password_reset", user_id=payload["sub"])
    return MessageResponse(message="Password has been reset")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(body: ChangePasswordRequest, user: AuthUser = Depends(require_auth)):
    factory = get_session_factory()
    async with factory() as session:
        db_user = await session.get(User, user.user_id)
        if not await verify_password_async(body.current_password, db_user.password_hash):
            raise HTTPException(status_code=400, detail="Current password is incorrect")
        db_user.password_hash = await hash_password_async(body.new_password)
        await session.commit()

    logger.info("password_changed", user_id=str(user.user_id))
    return MessageResponse(message="Password changed")
