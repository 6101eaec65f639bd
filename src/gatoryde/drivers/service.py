"""Driver registration and verification.

A student becomes a driver by registering a profile (vehicle, seats and
payout handles). Profiles start unverified; an operator flips ``verified``
once the licence has been checked out of band. Updating a profile keeps its
verification state.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gatoryde.clock import utcnow
from gatoryde.db.models import DriverProfile
from gatoryde.drivers.schemas import DriverProfileRequest
from gatoryde.exceptions import DriverNotFound

logger = logging.getLogger(__name__)


async def get_driver_profile(db: AsyncSession, user_id: str) -> DriverProfile | None:
    result = await db.execute(select(DriverProfile).where(DriverProfile.user_id == user_id))
    return result.scalar_one_or_none()


async def upsert_driver_profile(
    db: AsyncSession,
    user_id: str,
    data: DriverProfileRequest,
    now: datetime | None = None,
) -> tuple[DriverProfile, bool]:
    """Create or update the caller's driver profile. Returns (profile, created)."""
    profile = await get_driver_profile(db, user_id)
    created = profile is None
    if profile is None:
        profile = DriverProfile(user_id=user_id, verified=False, created_at=now or utcnow())
        db.add(profile)

    profile.vehicle_make = data.vehicle_make
    profile.vehicle_model = data.vehicle_model
    profile.vehicle_seats = data.vehicle_seats
    profile.offered_seats = data.offered_seats
    profile.zelle_handle = data.zelle_handle
    profile.cash_app_handle = data.cash_app_handle
    await db.flush()

    logger.info(
        "Driver profile %s for user %s (vehicle_seats=%s, offered=%d)",
        "created" if created else "updated", user_id, data.vehicle_seats, data.offered_seats,
    )
    return profile, created


async def set_driver_verified(db: AsyncSession, user_id: str, verified: bool, actor_id: str) -> DriverProfile:
    """Operator decision on a driver's verification."""
    profile = await get_driver_profile(db, user_id)
    if profile is None:
        raise DriverNotFound()
    profile.verified = verified
    await db.flush()
    logger.info("Driver %s verification set to %s by %s", user_id, verified, actor_id)
    return profile


async def list_unverified_drivers(db: AsyncSession, limit: int = 50) -> list[DriverProfile]:
    """Profiles waiting for verification, oldest first."""
    result = await db.execute(
        select(DriverProfile)
        .where(DriverProfile.verified.is_(False))
        .order_by(DriverProfile.created_at.asc())
        .limit(limit)
    )
    return list(result.scalars().all())
