"""Request/response schemas for booking endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from gatoryde.db.models import Booking


class BookRideRequest(BaseModel):
    ride_id: str = Field(..., min_length=1, max_length=32)
    seats: int = Field(1, ge=1, le=8)


class StartTripRequest(BaseModel):
    otp: str = Field(..., pattern=r"^\d{4,8}$")


class CancelBookingRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class DisputeRequest(BaseModel):
    reason: str = Field(..., min_length=10, max_length=2000)


class BookingResponse(BaseModel):
    """A booking as its rider or driver sees it. The trip-start code is never included."""

    id: str
    ride_id: str
    rider_id: str
    seats: int
    status: str
    auth_estimate_cents: int
    final_share_cents: int | None = None
    otp_expires_at: datetime | None = None
    trip_started_at: datetime | None = None
    trip_completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    late_cancel: bool = False
    etiquette_payment_due: bool = False
    created_at: datetime

    @classmethod
    def from_booking(cls, booking: Booking) -> BookingResponse:
        return cls(
            id=booking.id,
            ride_id=booking.ride_id,
            rider_id=booking.rider_id,
            seats=booking.seats,
            status=booking.status,
            auth_estimate_cents=booking.auth_estimate_cents,
            final_share_cents=booking.final_share_cents,
            otp_expires_at=booking.otp_expires_at,
            trip_started_at=booking.trip_started_at,
            trip_completed_at=booking.trip_completed_at,
            cancelled_at=booking.cancelled_at,
            late_cancel=booking.late_cancel,
            etiquette_payment_due=booking.etiquette_payment_due,
            created_at=booking.created_at,
        )


class CompleteTripResponse(BaseModel):
    ride_id: str
    completed_bookings: int
    bookings: list[BookingResponse]
