"""Driver endpoints: register a vehicle and payout handles, operator verification."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from gatoryde.auth.dependencies import get_current_user, require_admin
from gatoryde.database import get_session
from gatoryde.db.models import User
from gatoryde.drivers.schemas import (
    DriverListResponse,
    DriverProfileRequest,
    DriverProfileResponse,
    DriverStatusResponse,
    VerifyDriverRequest,
)
from gatoryde.drivers.service import (
    get_driver_profile,
    list_unverified_drivers,
    set_driver_verified,
    upsert_driver_profile,
)

router = APIRouter(prefix="/api/v1/drivers", tags=["Drivers"])


@router.get("/me", response_model=DriverStatusResponse)
async def driver_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> DriverStatusResponse:
    profile = await get_driver_profile(db, user.id)
    return DriverStatusResponse(
        is_driver=profile is not None,
        profile=DriverProfileResponse.from_profile(profile) if profile else None,
    )


@router.put("/me", response_model=DriverProfileResponse)
async def save_driver_profile(
    body: DriverProfileRequest,
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> DriverProfileResponse:
    """Register as a driver or update vehicle and payout details. New profiles start unverified."""
    profile, created = await upsert_driver_profile(db, user.id, body)
    await db.commit()
    if created:
        response.status_code = 201
    return DriverProfileResponse.from_profile(profile)


@router.get("/unverified", response_model=DriverListResponse)
async def unverified_drivers(
    limit: int = Query(50, ge=1, le=200),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> DriverListResponse:
    profiles = await list_unverified_drivers(db, limit=limit)
    return DriverListResponse(
        drivers=[DriverProfileResponse.from_profile(p) for p in profiles],
        total=len(profiles),
    )


@router.post("/{user_id}/verification", response_model=DriverProfileResponse)
async def verify_driver(
    user_id: str,
    body: VerifyDriverRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> DriverProfileResponse:
    """Mark a driver verified (or revoke it)."""
    profile = await set_driver_verified(db, user_id, body.verified, admin.id)
    await db.commit()
    return DriverProfileResponse.from_profile(profile)
