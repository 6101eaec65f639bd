"""Tests for turning booking events into queued notifications."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from gatoryde.db.models import Booking, DriverProfile, Ride, User
from gatoryde.notifications.notifier import BookingParties, Notifier, display_name


@pytest.fixture
def parties() -> BookingParties:
    rider = User(id="rider1", email="riley@ufl.edu", name="Riley", phone=None)
    driver = User(id="driver1", email="dana@ufl.edu", name=None, phone="352-555-0199")
    ride = Ride(
        id="ride1",
        driver_id=driver.id,
        origin_text="Gainesville, FL",
        dest_text="Jacksonville, FL",
        depart_at=datetime(2026, 10, 20, 14, 0, tzinfo=timezone.utc),
    )
    booking = Booking(id="bk1", ride_id=ride.id, rider_id=rider.id, seats=1, auth_estimate_cents=2500)
    profile = DriverProfile(user_id=driver.id, cash_app_handle="danadrives")
    return BookingParties(booking=booking, ride=ride, rider=rider, driver=driver, driver_profile=profile)


def test_display_name_falls_back_to_mailbox():
    assert display_name(User(email="dana@ufl.edu", name=None)) == "dana"
    assert display_name(User(email="dana@ufl.edu", name="Dana D")) == "Dana D"


@pytest.mark.asyncio
async def test_recipient_without_phone_is_skipped(queue, parties):
    items = await Notifier(queue).trip_started(parties)

    assert [item.recipient_id for item in items] == ["driver1"]
    assert "Riley (1 seat)" in items[0].body


@pytest.mark.asyncio
async def test_authorization_code_only_in_rider_copy(queue, parties):
    rider_copy, driver_copy = await Notifier(queue).booking_authorized(parties, "271828")

    assert "271828" in rider_copy.body
    assert "271828" not in driver_copy.body
    assert "otp_code" not in rider_copy.template_data
    assert rider_copy.booking_id == "bk1"
    assert rider_copy.ride_id == "ride1"


@pytest.mark.asyncio
async def test_dispute_goes_to_other_party(queue, parties):
    parties.booking.dispute_reason = "Never showed up at pickup"
    (item,) = await Notifier(queue).booking_disputed(parties, opened_by_driver=False)

    assert item.recipient_id == "driver1"
    assert "Riley has opened a dispute" in item.body


@pytest.mark.asyncio
async def test_enqueue_failure_is_swallowed(parties):
    queue = AsyncMock()
    queue.enqueue.side_effect = RuntimeError("queue full")

    assert await Notifier(queue).booking_confirmed(parties) == []
