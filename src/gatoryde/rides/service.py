"""Ride creation and the seat ledger.

Rules:
- Only verified drivers with a registered vehicle may offer rides
- seats_total <= min(vehicle seats - 1, seats the driver usually offers)
- 0 <= seats_available <= seats_total, always
- status is "full" exactly when seats_available == 0, unless the ride has
  moved to in_progress, completed or cancelled (those stick)
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gatoryde.clock import as_utc, utcnow
from gatoryde.config import get_settings
from gatoryde.db.models import DriverProfile, Ride
from gatoryde.exceptions import (
    DriverNotVerified,
    NotDriver,
    NoVehicle,
    SeatLimitExceeded,
    ValidationFailed,
)
from gatoryde.rides.schemas import CreateRideRequest

logger = logging.getLogger(__name__)

RIDE_STATUSES = ("open", "full", "in_progress", "completed", "cancelled")
STICKY_STATUSES = frozenset({"in_progress", "completed", "cancelled"})


def derive_ride_status(seats_available: int, current_status: str) -> str:
    """Status implied by seat availability, respecting sticky states."""
    if current_status in STICKY_STATUSES:
        return current_status
    return "full" if seats_available == 0 else "open"


async def get_ride(db: AsyncSession, ride_id: str) -> Ride | None:
    """Get a ride by ID."""
    result = await db.execute(select(Ride).where(Ride.id == ride_id))
    return result.scalar_one_or_none()


async def list_open_rides(db: AsyncSession, now: datetime | None = None, limit: int = 50) -> list[Ride]:
    """Open rides departing in the future, soonest first."""
    now = now or utcnow()
    result = await db.execute(
        select(Ride)
        .where(Ride.status == "open", Ride.depart_at > now)
        .order_by(Ride.depart_at.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def create_ride(
    db: AsyncSession,
    driver_id: str,
    data: CreateRideRequest,
    now: datetime | None = None,
) -> Ride:
    """Create a ride offered by a verified driver."""
    settings = get_settings()
    now = now or utcnow()

    result = await db.execute(select(DriverProfile).where(DriverProfile.user_id == driver_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotDriver()
    if not profile.verified:
        raise DriverNotVerified()
    if not profile.vehicle_seats:
        raise NoVehicle()

    max_seats = profile.max_ride_seats
    if data.seats_total > max_seats:
        raise SeatLimitExceeded(
            f"Cannot offer more than {max_seats} seats "
            f"(vehicle: {profile.vehicle_seats}, you typically offer: {profile.offered_seats})"
        )

    depart_at = as_utc(data.depart_at)
    if depart_at <= now:
        raise ValidationFailed("Departure time must be in the future")

    cost = data.total_trip_cost_cents
    if not settings.min_trip_cost_cents <= cost <= settings.max_trip_cost_cents:
        raise ValidationFailed(
            f"Trip cost must be between {settings.min_trip_cost_cents} "
            f"and {settings.max_trip_cost_cents} cents"
        )

    ride = Ride(
        driver_id=driver_id,
        origin_text=data.origin.place_name,
        origin_lat=data.origin.lat,
        origin_lng=data.origin.lng,
        dest_text=data.destination.place_name,
        dest_lat=data.destination.lat,
        dest_lng=data.destination.lng,
        depart_at=depart_at,
        seats_total=data.seats_total,
        seats_available=data.seats_total,
        total_cost_cents=cost,
        status="open",
        notes=data.notes,
        polyline=data.polyline,
        created_at=now,
        updated_at=now,
    )
    db.add(ride)
    await db.flush()

    logger.info("Ride created: %s (driver=%s, seats=%d)", ride.id, driver_id, ride.seats_total)
    return ride


async def reserve_seats(db: AsyncSession, ride_id: str, seats: int, now: datetime | None = None) -> bool:
    """Atomically take ``seats`` from an open ride.

    A single conditional UPDATE: it only matches while the ride is open and
    still has enough seats, and flips the status to "full" when the last seat
    goes. Returns False when nothing matched.
    """
    remaining = Ride.seats_available - seats
    result = await db.execute(
        update(Ride)
        .where(Ride.id == ride_id, Ride.status == "open", Ride.seats_available >= seats)
        .values(
            seats_available=remaining,
            status=case((remaining == 0, "full"), else_="open"),
            updated_at=now or utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release_seats(db: AsyncSession, ride_id: str, seats: int, now: datetime | None = None) -> bool:
    """Return ``seats`` to a ride, reopening it if it was full.

    Availability never exceeds seats_total, and sticky statuses are left alone.
    """
    restored = Ride.seats_available + seats
    result = await db.execute(
        update(Ride)
        .where(Ride.id == ride_id)
        .values(
            seats_available=case((restored > Ride.seats_total, Ride.seats_total), else_=restored),
            status=case((Ride.status == "full", "open"), else_=Ride.status),
            updated_at=now or utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
