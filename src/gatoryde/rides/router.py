"""Ride endpoints: offer, browse, complete and cancel rides."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from gatoryde.auth.dependencies import get_current_user
from gatoryde.bookings.schemas import BookingResponse, CancelBookingRequest, CompleteTripResponse
from gatoryde.bookings.service import BookingLifecycleManager
from gatoryde.database import get_session
from gatoryde.db.models import Ride, User
from gatoryde.dependencies import get_bookings
from gatoryde.exceptions import RideNotFound
from gatoryde.rides.schemas import CreateRideRequest, RideListResponse, RideResponse
from gatoryde.rides.service import create_ride, get_ride, list_open_rides

router = APIRouter(prefix="/api/v1/rides", tags=["Rides"])


def ride_response(ride: Ride) -> RideResponse:
    return RideResponse(
        id=ride.id,
        driver_id=ride.driver_id,
        origin_text=ride.origin_text,
        dest_text=ride.dest_text,
        depart_at=ride.depart_at,
        seats_total=ride.seats_total,
        seats_available=ride.seats_available,
        total_cost_cents=ride.total_cost_cents,
        status=ride.status,
        notes=ride.notes,
    )


@router.post("", response_model=RideResponse, status_code=201)
async def offer_ride(
    body: CreateRideRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> RideResponse:
    """Offer a new ride. Requires a verified driver profile."""
    ride = await create_ride(db, user.id, body)
    await db.commit()
    return ride_response(ride)


@router.get("", response_model=RideListResponse)
async def browse_rides(
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> RideListResponse:
    """Open rides that have not departed yet, soonest first."""
    rides = await list_open_rides(db, limit=limit)
    return RideListResponse(rides=[ride_response(r) for r in rides], total=len(rides))


@router.get("/{ride_id}", response_model=RideResponse)
async def ride_detail(ride_id: str, db: AsyncSession = Depends(get_session)) -> RideResponse:
    ride = await get_ride(db, ride_id)
    if ride is None:
        raise RideNotFound()
    return ride_response(ride)


@router.post("/{ride_id}/complete", response_model=CompleteTripResponse)
async def complete_ride(
    ride_id: str,
    user: User = Depends(get_current_user),
    bookings: BookingLifecycleManager = Depends(get_bookings),
) -> CompleteTripResponse:
    """Driver completes the trip; every in-progress booking is settled."""
    completed = await bookings.complete_trip(ride_id, user.id)
    return CompleteTripResponse(
        ride_id=ride_id,
        completed_bookings=len(completed),
        bookings=[BookingResponse.from_booking(b) for b in completed],
    )


@router.post("/{ride_id}/cancel", response_model=list[BookingResponse])
async def cancel_ride(
    ride_id: str,
    body: CancelBookingRequest | None = None,
    user: User = Depends(get_current_user),
    bookings: BookingLifecycleManager = Depends(get_bookings),
) -> list[BookingResponse]:
    """Driver calls off a ride that has not started."""
    cancelled = await bookings.cancel_ride(ride_id, user.id, body.reason if body else None)
    return [BookingResponse.from_booking(b) for b in cancelled]
