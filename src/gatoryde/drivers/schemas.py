"""Request/response schemas for driver endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from gatoryde.db.models import DriverProfile


class DriverProfileRequest(BaseModel):
    """Vehicle, seat and payout details a driver registers or updates."""

    vehicle_make: str | None = Field(None, max_length=64)
    vehicle_model: str | None = Field(None, max_length=64)
    vehicle_seats: int | None = Field(None, ge=2, le=15)
    offered_seats: int = Field(3, ge=1, le=8)
    zelle_handle: EmailStr | None = None
    cash_app_handle: str | None = Field(None, pattern=r"^\$?[A-Za-z0-9_]{1,20}$")

    @field_validator("cash_app_handle")
    @classmethod
    def strip_cashtag(cls, v: str | None) -> str | None:
        """Store the handle without its leading ``$``."""
        return v.lstrip("$") if v else v

    @field_validator("zelle_handle")
    @classmethod
    def normalize_zelle(cls, v: str | None) -> str | None:
        return v.lower().strip() if v else v


class VerifyDriverRequest(BaseModel):
    verified: bool = True


class DriverProfileResponse(BaseModel):
    user_id: str
    verified: bool
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    vehicle_seats: int | None = None
    offered_seats: int
    max_ride_seats: int
    zelle_handle: str | None = None
    cash_app_handle: str | None = None
    created_at: datetime

    @classmethod
    def from_profile(cls, profile: DriverProfile) -> DriverProfileResponse:
        return cls(
            user_id=profile.user_id,
            verified=profile.verified,
            vehicle_make=profile.vehicle_make,
            vehicle_model=profile.vehicle_model,
            vehicle_seats=profile.vehicle_seats,
            offered_seats=profile.offered_seats,
            max_ride_seats=profile.max_ride_seats,
            zelle_handle=profile.zelle_handle,
            cash_app_handle=profile.cash_app_handle,
            created_at=profile.created_at,
        )


class DriverStatusResponse(BaseModel):
    is_driver: bool
    profile: DriverProfileResponse | None = None


class DriverListResponse(BaseModel):
    drivers: list[DriverProfileResponse]
    total: int
