"""
Passwordless email login.

A login code is emailed straight through the transport (it never goes
through the notification queue) and only its SHA-256 digest is stored.
Issuing a new code retires any earlier ones for the same address. Sends and
failed verifications are counted in Redis when it is configured.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select, update

from gatoryde.auth.jwt import create_access_token
from gatoryde.auth.otp import OTPIssuer, hash_code
from gatoryde.clock import utcnow
from gatoryde.config import get_settings
from gatoryde.db.models import LoginCode, User
from gatoryde.exceptions import CodeExpired, InvalidCode, RateLimited, ValidationFailed
from gatoryde.notifications.templates import login_code_email, redact_pii

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

    from gatoryde.notifications.providers import NotificationTransport

logger = structlog.get_logger()

RATE_LIMIT_WINDOW = 3600

UNIVERSITIES: dict[str, str] = {
    "ufl.edu": "University of Florida",
    "fsu.edu": "Florida State University",
    "ucf.edu": "University of Central Florida",
    "miami.edu": "University of Miami",
    "fiu.edu": "Florida International University",
    "usf.edu": "University of South Florida",
    "fau.edu": "Florida Atlantic University",
    "fit.edu": "Florida Institute of Technology",
    "nova.edu": "Nova Southeastern University",
    "fgcu.edu": "Florida Gulf Coast University",
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_edu_email(email: str) -> bool:
    return normalize_email(email).endswith(".edu")


def university_for(email: str) -> str | None:
    """University name for a known campus domain (subdomains included)."""
    domain = normalize_email(email).rsplit("@", 1)[-1]
    for campus, name in UNIVERSITIES.items():
        if domain == campus or domain.endswith(f".{campus}"):
            return name
    return None


def _email_digest(email: str) -> str:
    return hashlib.sha256(email.encode()).hexdigest()


# ---------------------------------------------------------------------------
# Rate limits
# ---------------------------------------------------------------------------


async def _over_limit(redis: Redis | None, key: str, limit: int) -> bool:
    """Whether ``key`` has already reached ``limit`` in the current window."""
    if redis is None:
        return False
    count_str = await redis.get(key)
    return count_str is not None and int(count_str) >= limit


async def _increment(redis: Redis | None, key: str) -> None:
    if redis is None:
        return
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, RATE_LIMIT_WINDOW)


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: str) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == normalize_email(email)))
    return result.scalar_one_or_none()


async def get_or_create_user(db: AsyncSession, email: str, now: datetime) -> tuple[User, bool]:
    """Get an existing user or create a new one. Returns (user, created)."""
    user = await get_user_by_email(db, email)
    if user is not None:
        return user, False

    user = User(email=normalize_email(email), university=university_for(email), created_at=now)
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, university=user.university)
    return user, True


# ---------------------------------------------------------------------------
# Login flow
# ---------------------------------------------------------------------------


async def start_login(
    db: AsyncSession,
    email: str,
    transport: NotificationTransport,
    redis: Redis | None = None,
    now: datetime | None = None,
) -> datetime:
    """
    Issue a login code and email it.

    The caller commits the session once this returns.

    Returns:
        When the code expires.

    Raises:
        ValidationFailed: The address is not a .edu address (when required).
        RateLimited: Too many codes were requested for this address.
        DeliveryError: The email could not be sent.
    """
    settings = get_settings()
    email = normalize_email(email)
    if settings.require_edu_email and not is_edu_email(email):
        raise ValidationFailed("Only .edu email addresses are accepted")

    rate_key = f"login_otp:{_email_digest(email)}"
    if await _over_limit(redis, rate_key, settings.login_otp_rate_limit_per_hour):
        logger.warning("login_code_rate_limited", email=redact_pii(email))
        raise RateLimited("Too many verification codes requested. Try again later.")

    now = now or utcnow()
    issuer = OTPIssuer(settings.login_otp_digits, clock=lambda: now)
    issued = issuer.issue_login(timedelta(minutes=settings.login_otp_ttl_minutes))

    await db.execute(
        update(LoginCode)
        .where(LoginCode.email == email, LoginCode.consumed_at.is_(None))
        .values(consumed_at=now)
    )
    db.add(LoginCode(email=email, code_hash=hash_code(issued.code), expires_at=issued.expires_at, created_at=now))
    await db.flush()

    message = login_code_email(issued.code, settings.login_otp_ttl_minutes, university_for(email))
    await transport.send("email", email, message.subject, message.body)
    await _increment(redis, rate_key)

    logger.info("login_code_sent", email=redact_pii(email))
    return issued.expires_at


async def verify_login(
    db: AsyncSession,
    email: str,
    code: str,
    redis: Redis | None = None,
    now: datetime | None = None,
) -> tuple[User, str, bool]:
    """
    Check a login code and sign the user in.

    The caller commits the session once this returns.

    Returns:
        (user, access token, whether the user was created by this login)

    Raises:
        RateLimited: Too many failed attempts for this address.
        InvalidCode: No outstanding code, or the code does not match.
        CodeExpired: The outstanding code has expired.
    """
    settings = get_settings()
    email = normalize_email(email)
    attempts_key = f"login_verify:{_email_digest(email)}"
    if await _over_limit(redis, attempts_key, settings.login_verify_attempts_per_hour):
        raise RateLimited("Too many failed attempts. Try again later.")

    now = now or utcnow()
    result = await db.execute(
        select(LoginCode)
        .where(LoginCode.email == email, LoginCode.consumed_at.is_(None))
        .order_by(LoginCode.created_at.desc())
        .limit(1)
    )
    record = result.scalar_one_or_none()

    issuer = OTPIssuer(settings.login_otp_digits, clock=lambda: now)
    try:
        issuer.validate(
            record.code_hash if record else None,
            hash_code(code.strip()),
            record.expires_at if record else None,
        )
    except (InvalidCode, CodeExpired):
        await _increment(redis, attempts_key)
        logger.info("login_code_rejected", email=redact_pii(email))
        raise

    record.consumed_at = now
    user, created = await get_or_create_user(db, email, now)
    user.last_login = now
    await db.flush()

    if redis is not None:
        await redis.delete(attempts_key, f"login_otp:{_email_digest(email)}")

    token = create_access_token(user.id, user.email, now=now)
    logger.info("login_verified", user_id=user.id, created=created)
    return user, token, created
