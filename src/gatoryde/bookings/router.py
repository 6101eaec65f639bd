"""Booking endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gatoryde.auth.dependencies import get_current_user
from gatoryde.bookings.schemas import (
    BookingResponse,
    BookRideRequest,
    CancelBookingRequest,
    DisputeRequest,
    StartTripRequest,
)
from gatoryde.bookings.service import BookingLifecycleManager
from gatoryde.database import get_session
from gatoryde.db.models import User
from gatoryde.dependencies import get_bookings
from gatoryde.exceptions import Unauthorized
from gatoryde.rides.service import get_ride

router = APIRouter(prefix="/api/v1/bookings", tags=["Bookings"])


@router.post("", response_model=BookingResponse, status_code=201)
async def book_ride(
    body: BookRideRequest,
    user: User = Depends(get_current_user),
    bookings: BookingLifecycleManager = Depends(get_bookings),
) -> BookingResponse:
    """Book seats on an open ride. The trip start code is emailed to the rider."""
    booking = await bookings.book(body.ride_id, user.id, body.seats)
    return BookingResponse.from_booking(booking)


@router.get("/{booking_id}", response_model=BookingResponse)
async def booking_detail(
    booking_id: str,
    user: User = Depends(get_current_user),
    bookings: BookingLifecycleManager = Depends(get_bookings),
    db: AsyncSession = Depends(get_session),
) -> BookingResponse:
    booking = await bookings.get_booking(booking_id)
    ride = await get_ride(db, booking.ride_id)
    driver_id = ride.driver_id if ride else None
    if user.id not in (booking.rider_id, driver_id) and not user.is_admin:
        raise Unauthorized("You can only view your own bookings")
    return BookingResponse.from_booking(booking)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: str,
    user: User = Depends(get_current_user),
    bookings: BookingLifecycleManager = Depends(get_bookings),
) -> BookingResponse:
    booking = await bookings.confirm_booking(booking_id, user.id)
    return BookingResponse.from_booking(booking)


@router.post("/{booking_id}/start", response_model=BookingResponse)
async def start_trip(
    booking_id: str,
    body: StartTripRequest,
    user: User = Depends(get_current_user),
    bookings: BookingLifecycleManager = Depends(get_bookings),
) -> BookingResponse:
    """Start the trip with the rider's code. Either party may submit it."""
    booking = await bookings.start_trip(booking_id, user.id, body.otp)
    return BookingResponse.from_booking(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    body: CancelBookingRequest,
    user: User = Depends(get_current_user),
    bookings: BookingLifecycleManager = Depends(get_bookings),
) -> BookingResponse:
    booking = await bookings.cancel_booking(booking_id, user.id, body.reason)
    return BookingResponse.from_booking(booking)


@router.post("/{booking_id}/dispute", response_model=BookingResponse)
async def open_dispute(
    booking_id: str,
    body: DisputeRequest,
    user: User = Depends(get_current_user),
    bookings: BookingLifecycleManager = Depends(get_bookings),
) -> BookingResponse:
    booking = await bookings.open_dispute(booking_id, user.id, body.reason)
    return BookingResponse.from_booking(booking)
