"""Authentication router: passwordless email login."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from gatoryde.auth.dependencies import get_current_user
from gatoryde.auth.schemas import (
    StartLoginRequest,
    StartLoginResponse,
    TokenResponse,
    UserResponse,
    VerifyLoginRequest,
)
from gatoryde.auth.service import start_login, university_for, verify_login
from gatoryde.config import get_settings
from gatoryde.database import get_session
from gatoryde.db.models import User
from gatoryde.dependencies import get_redis_dep, get_transport
from gatoryde.notifications.providers import NotificationTransport

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        phone=user.phone,
        university=user.university,
        is_admin=user.is_admin,
        created_at=user.created_at,
    )


@router.post("/start-otp", response_model=StartLoginResponse)
async def start_otp(
    body: StartLoginRequest,
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_redis_dep),
    transport: NotificationTransport = Depends(get_transport),
) -> StartLoginResponse:
    """Email a one-time login code."""
    expires_at = await start_login(db, body.email, transport, redis)
    await db.commit()
    university = university_for(body.email)
    status = (
        f"Verification code sent to your {university} email" if university else "Verification code sent to your email"
    )
    return StartLoginResponse(status=status, expires_at=expires_at)


@router.post("/verify-otp", response_model=TokenResponse)
async def verify_otp(
    body: VerifyLoginRequest,
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_redis_dep),
) -> TokenResponse:
    """Exchange a login code for an access token. Creates the account on first login."""
    user, token, created = await verify_login(db, body.email, body.code, redis)
    await db.commit()
    return TokenResponse(
        access_token=token,
        expires_in=get_settings().jwt_access_token_expire_minutes * 60,
        user=_user_response(user),
        new_user=created,
    )


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    return _user_response(user)
