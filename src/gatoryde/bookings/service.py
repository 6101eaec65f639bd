"""Booking lifecycle: book, confirm, start, complete, cancel, dispute.

State progression: authorized -> confirmed -> in_progress -> completed
A booking can also be cancelled before its trip starts, and disputed once
it is completed or cancelled. Transitions are validated against
VALID_TRANSITIONS.

Each operation runs in a single transaction and raises a GatoRydeError
before writing anything, so a failed call leaves no trace. Every status
change holds the ride's lock for its whole transaction, and seats are taken
with the seat ledger's conditional update.

Notifications are queued after the transaction commits.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gatoryde.auth.otp import OTPIssuer
from gatoryde.clock import Clock, IdFactory, as_utc, new_id, utcnow
from gatoryde.config import Settings, get_settings
from gatoryde.database import new_session
from gatoryde.db.models import Booking, DriverProfile, Ride, User
from gatoryde.exceptions import (
    BookingNotFound,
    DuplicateBooking,
    DuplicateDispute,
    InsufficientSeats,
    InvalidBookingState,
    NoActiveBookings,
    RideNotFound,
    RideNotOpen,
    SelfBookingForbidden,
    Unauthorized,
    ValidationFailed,
)
from gatoryde.notifications.notifier import BookingParties, Notifier
from gatoryde.rides.pricing import compute_auth_estimate, compute_final_share, get_current_riders
from gatoryde.rides.service import release_seats, reserve_seats

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[str, list[str]] = {
    "authorized": ["confirmed", "in_progress", "cancelled"],
    "confirmed": ["in_progress", "cancelled"],
    "in_progress": ["completed"],
    "completed": ["disputed"],
    "cancelled": ["disputed"],
    "disputed": [],
}

ACTIVE_STATUSES = ("authorized", "confirmed", "in_progress")
MIN_DISPUTE_REASON_LENGTH = 10


def validate_transition(current_status: str, target_status: str) -> None:
    """Validate a booking state transition. Raises InvalidBookingState if invalid."""
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        raise InvalidBookingState(
            f"Cannot move booking from {current_status} to {target_status}"
        )


class BookingLifecycleManager:
    """Owns every booking state change and the seat accounting that goes with it."""

    def __init__(
        self,
        notifier: Notifier | None = None,
        *,
        session_factory: Callable[[], AsyncSession] = new_session,
        clock: Clock = utcnow,
        id_factory: IdFactory = new_id,
        otp_issuer: OTPIssuer | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.notifier = notifier
        self._session_factory = session_factory
        self._clock = clock
        self._id_factory = id_factory
        self.otp = otp_issuer or OTPIssuer(self.settings.trip_start_otp_digits, clock=clock)
        self._ride_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _ride_lock(self, ride_id: str) -> asyncio.Lock:
        lock = self._ride_locks.get(ride_id)
        if lock is None:
            lock = asyncio.Lock()
            self._ride_locks[ride_id] = lock
        return lock

    # ------------------------------------------------------------------
    # book
    # ------------------------------------------------------------------

    async def book(self, ride_id: str, rider_id: str, seats: int = 1) -> Booking:
        """Reserve ``seats`` on a ride and issue the trip-start code.

        The booking row and the seat decrement commit together or not at all.

        Raises:
            RideNotFound, SelfBookingForbidden, RideNotOpen, InsufficientSeats,
            DuplicateBooking, ValidationFailed
        """
        if seats < 1:
            raise ValidationFailed("Seats must be at least 1")

        async with self._ride_lock(ride_id):
            async with self._session_factory() as db, db.begin():
                ride = await db.get(Ride, ride_id)
                if ride is None:
                    raise RideNotFound()
                if ride.driver_id == rider_id:
                    raise SelfBookingForbidden()
                if ride.status != "open":
                    raise RideNotOpen()
                if seats > ride.seats_available:
                    raise InsufficientSeats(
                        f"Only {ride.seats_available} seats available, but you requested {seats}"
                    )

                if await self._has_active_booking(db, ride_id, rider_id):
                    raise DuplicateBooking()

                now = self._clock()
                current_riders = get_current_riders(ride.seats_total, ride.seats_available)
                estimate = compute_auth_estimate(ride.total_cost_cents, current_riders, seats)
                issued = self.otp.issue_trip_start(
                    ride.depart_at, timedelta(hours=self.settings.trip_start_otp_max_ttl_hours)
                )

                if not await reserve_seats(db, ride_id, seats, now):
                    raise InsufficientSeats()

                booking = Booking(
                    id=self._id_factory(),
                    ride_id=ride_id,
                    rider_id=rider_id,
                    seats=seats,
                    auth_estimate_cents=estimate,
                    status="authorized",
                    trip_start_otp=issued.code,
                    otp_expires_at=issued.expires_at,
                    created_at=now,
                    updated_at=now,
                )
                db.add(booking)
                try:
                    await db.flush()
                except IntegrityError:
                    # Concurrent booking from another process hit uq_bookings_active_rider.
                    raise DuplicateBooking() from None
                await db.refresh(ride)
                parties = await self._load_parties(db, booking, ride)

        logger.info(
            "Booking %s created: ride=%s rider=%s seats=%d estimate=%d (ride now %s, %d left)",
            booking.id, ride_id, rider_id, seats, estimate, ride.status, ride.seats_available,
        )
        await self._notify(parties, lambda n, p: n.booking_authorized(p, issued.code))
        return booking

    # ------------------------------------------------------------------
    # confirm
    # ------------------------------------------------------------------

    async def confirm_booking(self, booking_id: str, actor_id: str) -> Booking:
        """The ride's driver accepts an authorized booking."""
        ride_id = await self._ride_id_for(booking_id)
        async with self._ride_lock(ride_id):
            async with self._session_factory() as db, db.begin():
                booking, ride = await self._get_booking_and_ride(db, booking_id)
                if actor_id != ride.driver_id:
                    raise Unauthorized("Only the driver can confirm this booking")
                validate_transition(booking.status, "confirmed")

                now = self._clock()
                booking.status = "confirmed"
                booking.confirmed_at = now
                booking.updated_at = now
                parties = await self._load_parties(db, booking, ride)

        logger.info("Booking %s confirmed by driver %s", booking_id, actor_id)
        await self._notify(parties, lambda n, p: n.booking_confirmed(p))
        return booking

    # ------------------------------------------------------------------
    # start trip
    # ------------------------------------------------------------------

    async def start_trip(self, booking_id: str, actor_id: str, otp: str) -> Booking:
        """Start a booking's trip once the rider's code checks out.

        The code is single use: it is cleared as soon as the trip starts.

        Raises:
            BookingNotFound, Unauthorized, InvalidBookingState, InvalidCode, CodeExpired
        """
        ride_id = await self._ride_id_for(booking_id)
        async with self._ride_lock(ride_id):
            async with self._session_factory() as db, db.begin():
                booking, ride = await self._get_booking_and_ride(db, booking_id)
                if actor_id not in (booking.rider_id, ride.driver_id):
                    raise Unauthorized("You are not authorized to start this trip")
                validate_transition(booking.status, "in_progress")
                self.otp.validate(booking.trip_start_otp, otp, booking.otp_expires_at)

                now = self._clock()
                booking.status = "in_progress"
                booking.trip_started_at = now
                booking.trip_start_otp = None
                booking.otp_expires_at = None
                booking.updated_at = now
                if ride.status in ("open", "full"):
                    ride.status = "in_progress"
                    ride.updated_at = now
                parties = await self._load_parties(db, booking, ride)

        logger.info("Trip started for booking %s (by %s)", booking_id, actor_id)
        await self._notify(parties, lambda n, p: n.trip_started(p))
        return booking

    # ------------------------------------------------------------------
    # complete trip
    # ------------------------------------------------------------------

    async def complete_trip(self, ride_id: str, actor_id: str) -> list[Booking]:
        """Settle every in-progress booking on the ride and complete the ride.

        The fare is split over the seats held by in-progress bookings; each
        booking pays the per-seat share times its seats. All bookings and the
        ride change together or not at all.

        Raises:
            RideNotFound, Unauthorized, NoActiveBookings
        """
        async with self._ride_lock(ride_id):
            async with self._session_factory() as db, db.begin():
                ride = await db.get(Ride, ride_id)
                if ride is None:
                    raise RideNotFound()
                if actor_id != ride.driver_id:
                    raise Unauthorized("Only the driver can complete this trip")

                result = await db.execute(
                    select(Booking)
                    .where(Booking.ride_id == ride_id, Booking.status == "in_progress")
                    .order_by(Booking.created_at.asc())
                )
                bookings = list(result.scalars().all())
                if not bookings:
                    raise NoActiveBookings()

                now = self._clock()
                final_riders = sum(b.seats for b in bookings)
                share = compute_final_share(ride.total_cost_cents, final_riders)
                for booking in bookings:
                    validate_transition(booking.status, "completed")
                    booking.final_share_cents = share * booking.seats
                    booking.status = "completed"
                    booking.trip_completed_at = now
                    booking.updated_at = now

                ride.status = "completed"
                ride.updated_at = now
                all_parties = [await self._load_parties(db, b, ride) for b in bookings]

        logger.info(
            "Trip completed for ride %s: %d bookings, %d riders, share %d per seat",
            ride_id, len(bookings), final_riders, share,
        )
        for parties in all_parties:
            await self._notify(parties, lambda n, p: n.trip_completed(p))
        return bookings

    # ------------------------------------------------------------------
    # cancel
    # ------------------------------------------------------------------

    async def cancel_booking(self, booking_id: str, actor_id: str, reason: str | None = None) -> Booking:
        """Cancel an authorized or confirmed booking and give its seats back.

        A rider cancelling inside the late-cancel window owes the driver an
        etiquette payment.
        """
        ride_id = await self._ride_id_for(booking_id)
        async with self._ride_lock(ride_id):
            async with self._session_factory() as db, db.begin():
                booking, ride = await self._get_booking_and_ride(db, booking_id)
                by_driver = actor_id == ride.driver_id
                if not by_driver and actor_id != booking.rider_id:
                    raise Unauthorized("You are not authorized to cancel this booking")
                validate_transition(booking.status, "cancelled")

                now = self._clock()
                window = timedelta(hours=self.settings.late_cancel_window_hours)
                late = not by_driver and as_utc(ride.depart_at) - now < window

                booking.status = "cancelled"
                booking.cancelled_at = now
                booking.cancelled_by = actor_id
                booking.late_cancel = late
                booking.etiquette_payment_due = late
                booking.trip_start_otp = None
                booking.otp_expires_at = None
                booking.updated_at = now
                await db.flush()
                await release_seats(db, ride.id, booking.seats, now)
                await db.refresh(ride)
                parties = await self._load_parties(db, booking, ride)

        logger.info(
            "Booking %s cancelled by %s (%s, late=%s)",
            booking_id, actor_id, "driver" if by_driver else "rider", late,
        )
        await self._notify(parties, lambda n, p: n.booking_cancelled(p, by_driver=by_driver, reason=reason))
        return booking

    async def cancel_ride(self, ride_id: str, actor_id: str, reason: str | None = None) -> list[Booking]:
        """The driver calls off a ride that has not started; every upcoming booking is cancelled."""
        async with self._ride_lock(ride_id):
            async with self._session_factory() as db, db.begin():
                ride = await db.get(Ride, ride_id)
                if ride is None:
                    raise RideNotFound()
                if actor_id != ride.driver_id:
                    raise Unauthorized("Only the driver can cancel this ride")
                if ride.status not in ("open", "full"):
                    raise RideNotOpen("Only rides that have not started can be cancelled")

                result = await db.execute(
                    select(Booking).where(
                        Booking.ride_id == ride_id,
                        Booking.status.in_(("authorized", "confirmed")),
                    )
                )
                bookings = list(result.scalars().all())

                now = self._clock()
                for booking in bookings:
                    booking.status = "cancelled"
                    booking.cancelled_at = now
                    booking.cancelled_by = actor_id
                    booking.trip_start_otp = None
                    booking.otp_expires_at = None
                    booking.updated_at = now
                ride.status = "cancelled"
                ride.seats_available = ride.seats_total
                ride.updated_at = now
                all_parties = [await self._load_parties(db, b, ride) for b in bookings]

        logger.info("Ride %s cancelled by driver: %d bookings cancelled", ride_id, len(bookings))
        for parties in all_parties:
            await self._notify(parties, lambda n, p: n.booking_cancelled(p, by_driver=True, reason=reason))
        return bookings

    # ------------------------------------------------------------------
    # dispute
    # ------------------------------------------------------------------

    async def open_dispute(self, booking_id: str, actor_id: str, reason: str) -> Booking:
        """Flag a finished booking for support review."""
        reason = reason.strip()
        if len(reason) < MIN_DISPUTE_REASON_LENGTH:
            raise ValidationFailed(
                f"Please provide a detailed reason (at least {MIN_DISPUTE_REASON_LENGTH} characters)"
            )

        ride_id = await self._ride_id_for(booking_id)
        async with self._ride_lock(ride_id):
            async with self._session_factory() as db, db.begin():
                booking, ride = await self._get_booking_and_ride(db, booking_id)
                by_driver = actor_id == ride.driver_id
                if not by_driver and actor_id != booking.rider_id:
                    raise Unauthorized("You are not authorized to dispute this booking")
                if booking.status == "disputed":
                    raise DuplicateDispute()
                validate_transition(booking.status, "disputed")

                now = self._clock()
                booking.status = "disputed"
                booking.dispute_reason = reason
                booking.disputed_by = actor_id
                booking.disputed_at = now
                booking.updated_at = now
                parties = await self._load_parties(db, booking, ride)

        logger.info("Dispute opened on booking %s by %s", booking_id, actor_id)
        await self._notify(parties, lambda n, p: n.booking_disputed(p, opened_by_driver=by_driver))
        return booking

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def get_booking(self, booking_id: str) -> Booking:
        async with self._session_factory() as db:
            booking = await db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFound()
        return booking

    async def _has_active_booking(self, db: AsyncSession, ride_id: str, rider_id: str) -> bool:
        existing = await db.scalar(
            select(Booking.id)
            .where(
                Booking.ride_id == ride_id,
                Booking.rider_id == rider_id,
                Booking.status.in_(ACTIVE_STATUSES),
            )
            .limit(1)
        )
        return existing is not None

    async def _ride_id_for(self, booking_id: str) -> str:
        async with self._session_factory() as db:
            ride_id = await db.scalar(select(Booking.ride_id).where(Booking.id == booking_id))
        if ride_id is None:
            raise BookingNotFound()
        return ride_id

    async def _get_booking_and_ride(self, db: AsyncSession, booking_id: str) -> tuple[Booking, Ride]:
        booking = await db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFound()
        ride = await db.get(Ride, booking.ride_id)
        if ride is None:
            raise RideNotFound()
        return booking, ride

    async def _load_parties(self, db: AsyncSession, booking: Booking, ride: Ride) -> BookingParties | None:
        rider = await db.get(User, booking.rider_id)
        driver = await db.get(User, ride.driver_id)
        if rider is None or driver is None:
            logger.warning("Booking %s has no rider or driver record; notifications skipped", booking.id)
            return None
        profile = await db.get(DriverProfile, ride.driver_id)
        return BookingParties(booking=booking, ride=ride, rider=rider, driver=driver, driver_profile=profile)

    async def _notify(
        self,
        parties: BookingParties | None,
        send: Callable[[Notifier, BookingParties], Awaitable[Any]],
    ) -> None:
        if self.notifier is None or parties is None:
            return
        try:
            await send(self.notifier, parties)
        except Exception:
            logger.exception("Failed to queue notifications for booking %s", parties.booking.id)
