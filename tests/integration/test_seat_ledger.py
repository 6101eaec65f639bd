"""Integration tests for ride creation and the seat ledger."""

from datetime import timedelta

import pytest

from gatoryde.database import new_session
from gatoryde.db.models import Ride
from gatoryde.exceptions import (
    DriverNotVerified,
    NotDriver,
    NoVehicle,
    SeatLimitExceeded,
    ValidationFailed,
)
from gatoryde.rides.schemas import CreateRideRequest, Location
from gatoryde.rides.service import (
    create_ride,
    derive_ride_status,
    list_open_rides,
    release_seats,
    reserve_seats,
)


def _ride_request(clock, **overrides) -> CreateRideRequest:
    fields = {
        "origin": Location(place_name="Gainesville, FL", lat=29.6516, lng=-82.3248),
        "destination": Location(place_name="Tampa, FL", lat=27.9506, lng=-82.4572),
        "depart_at": clock() + timedelta(days=2),
        "seats_total": 3,
        "total_trip_cost_cents": 3000,
    }
    fields.update(overrides)
    return CreateRideRequest(**fields)


class TestDeriveStatus:
    def test_open_and_full(self):
        assert derive_ride_status(2, "open") == "open"
        assert derive_ride_status(0, "open") == "full"
        assert derive_ride_status(1, "full") == "open"

    @pytest.mark.parametrize("status", ["in_progress", "completed", "cancelled"])
    def test_sticky_statuses(self, status):
        assert derive_ride_status(0, status) == status
        assert derive_ride_status(3, status) == status


class TestReserveRelease:
    @pytest.mark.asyncio
    async def test_reserve_until_full(self, make_driver, make_ride, load):
        driver = await make_driver()
        ride = await make_ride(driver, seats_total=3)

        async with new_session() as db, db.begin():
            assert await reserve_seats(db, ride.id, 2)
        stored = await load(Ride, ride.id)
        assert (stored.seats_available, stored.status) == (1, "open")

        async with new_session() as db, db.begin():
            assert await reserve_seats(db, ride.id, 1)
        stored = await load(Ride, ride.id)
        assert (stored.seats_available, stored.status) == (0, "full")

    @pytest.mark.asyncio
    async def test_reserve_refuses_overbooking(self, make_driver, make_ride, load):
        driver = await make_driver()
        ride = await make_ride(driver, seats_total=2)

        async with new_session() as db, db.begin():
            assert not await reserve_seats(db, ride.id, 3)
        stored = await load(Ride, ride.id)
        assert stored.seats_available == 2

    @pytest.mark.asyncio
    async def test_reserve_refuses_closed_ride(self, make_driver, make_ride):
        driver = await make_driver()
        ride = await make_ride(driver, status="cancelled")

        async with new_session() as db, db.begin():
            assert not await reserve_seats(db, ride.id, 1)

    @pytest.mark.asyncio
    async def test_release_reopens_full_ride(self, make_driver, make_ride, load):
        driver = await make_driver()
        ride = await make_ride(driver, seats_total=1)
        async with new_session() as db, db.begin():
            await reserve_seats(db, ride.id, 1)

        async with new_session() as db, db.begin():
            assert await release_seats(db, ride.id, 1)
        stored = await load(Ride, ride.id)
        assert (stored.seats_available, stored.status) == (1, "open")

    @pytest.mark.asyncio
    async def test_release_never_exceeds_total(self, make_driver, make_ride, load):
        driver = await make_driver()
        ride = await make_ride(driver, seats_total=2)

        async with new_session() as db, db.begin():
            await release_seats(db, ride.id, 5)
        stored = await load(Ride, ride.id)
        assert stored.seats_available == 2

    @pytest.mark.asyncio
    async def test_release_keeps_sticky_status(self, make_driver, make_ride, load):
        driver = await make_driver()
        ride = await make_ride(driver, status="in_progress")

        async with new_session() as db, db.begin():
            await release_seats(db, ride.id, 1)
        stored = await load(Ride, ride.id)
        assert stored.status == "in_progress"


class TestCreateRide:
    @pytest.mark.asyncio
    async def test_verified_driver_creates_open_ride(self, make_driver, clock):
        driver = await make_driver()
        async with new_session() as db, db.begin():
            ride = await create_ride(db, driver.id, _ride_request(clock), now=clock())

        assert ride.status == "open"
        assert ride.seats_available == ride.seats_total == 3
        assert ride.dest_text == "Tampa, FL"

    @pytest.mark.asyncio
    async def test_rider_without_profile_rejected(self, make_user, clock):
        user = await make_user()
        async with new_session() as db, db.begin():
            with pytest.raises(NotDriver):
                await create_ride(db, user.id, _ride_request(clock), now=clock())

    @pytest.mark.asyncio
    async def test_unverified_driver_rejected(self, make_driver, clock):
        driver = await make_driver(verified=False)
        async with new_session() as db, db.begin():
            with pytest.raises(DriverNotVerified):
                await create_ride(db, driver.id, _ride_request(clock), now=clock())

    @pytest.mark.asyncio
    async def test_driver_without_vehicle_rejected(self, make_driver, clock):
        driver = await make_driver(vehicle_seats=None)
        async with new_session() as db, db.begin():
            with pytest.raises(NoVehicle):
                await create_ride(db, driver.id, _ride_request(clock), now=clock())

    @pytest.mark.asyncio
    async def test_seats_limited_by_vehicle(self, make_driver, clock):
        driver = await make_driver(vehicle_seats=3, offered_seats=4)
        async with new_session() as db, db.begin():
            with pytest.raises(SeatLimitExceeded, match="Cannot offer more than 2 seats"):
                await create_ride(db, driver.id, _ride_request(clock, seats_total=3), now=clock())

    @pytest.mark.asyncio
    async def test_seats_limited_by_usual_offer(self, make_driver, clock):
        driver = await make_driver(vehicle_seats=7, offered_seats=2)
        async with new_session() as db, db.begin():
            with pytest.raises(SeatLimitExceeded):
                await create_ride(db, driver.id, _ride_request(clock, seats_total=3), now=clock())

    @pytest.mark.asyncio
    async def test_departure_must_be_future(self, make_driver, clock):
        driver = await make_driver()
        async with new_session() as db, db.begin():
            with pytest.raises(ValidationFailed):
                await create_ride(db, driver.id, _ride_request(clock, depart_at=clock()), now=clock())

    @pytest.mark.asyncio
    async def test_cost_bounds(self, make_driver, clock):
        driver = await make_driver()
        async with new_session() as db, db.begin():
            with pytest.raises(ValidationFailed):
                await create_ride(db, driver.id, _ride_request(clock, total_trip_cost_cents=50), now=clock())


class TestListOpenRides:
    @pytest.mark.asyncio
    async def test_only_future_open_rides_soonest_first(self, make_driver, make_ride, clock):
        driver = await make_driver()
        later = await make_ride(driver, depart_in=timedelta(days=3))
        sooner = await make_ride(driver, depart_in=timedelta(hours=5))
        await make_ride(driver, status="full")
        await make_ride(driver, status="cancelled")
        await make_ride(driver, depart_in=timedelta(hours=-1))

        async with new_session() as db:
            rides = await list_open_rides(db, now=clock())

        assert [r.id for r in rides] == [sooner.id, later.id]
