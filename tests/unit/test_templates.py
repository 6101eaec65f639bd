"""Tests for notification templates and PII redaction."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from gatoryde.exceptions import TemplateNotFound
from gatoryde.notifications.templates import (
    FOOTER,
    TEMPLATES,
    format_datetime,
    has_template,
    login_code_email,
    redact_pii,
    render,
)
from gatoryde.notifications.types import NOTIFICATION_CHANNELS, NOTIFICATION_TYPES, BookingCancelledData

DEPART = datetime(2026, 10, 16, 19, 5, tzinfo=timezone.utc)

TRIP = {
    "rider_name": "Riley",
    "driver_name": "Dana",
    "origin_text": "Gainesville, FL",
    "dest_text": "Orlando, FL",
    "depart_at": DEPART,
    "seats": 2,
}


class TestRegistry:
    def test_every_entry_renders(self):
        payloads = {
            "booking_authorized": {**TRIP, "estimated_cost_cents": 2000, "otp_code": "123456"},
            "booking_confirmed": {**TRIP, "estimated_cost_cents": 2000},
            "trip_started": TRIP,
            "trip_completed": {**TRIP, "final_share_cents": 1000},
            "booking_cancelled": TRIP,
            "booking_disputed": {**TRIP, "dispute_opener_name": "Riley", "dispute_reason": "Driver never arrived"},
        }
        for (type_, channel, role), _ in TEMPLATES.items():
            message = render(type_, channel, role == "driver", payloads[type_])
            assert message.body
            if channel == "email":
                assert message.subject.startswith("GatoRyde: ")
                assert FOOTER in message.body
            else:
                assert message.subject is None

    def test_every_type_has_a_template(self):
        registered = {type_ for type_, _, _ in TEMPLATES}
        assert registered == set(NOTIFICATION_TYPES)

    def test_registry_uses_known_channels(self):
        assert {channel for _, channel, _ in TEMPLATES} <= set(NOTIFICATION_CHANNELS)

    def test_booking_authorized_sms_not_supported(self):
        assert not has_template("booking_authorized", "sms", False)
        with pytest.raises(TemplateNotFound, match="booking_authorized"):
            render("booking_authorized", "sms", False, {**TRIP, "estimated_cost_cents": 1})

    def test_booking_confirmed_has_no_driver_copy(self):
        assert has_template("booking_confirmed", "email", False)
        assert not has_template("booking_confirmed", "email", True)

    def test_trip_started_is_sms_only(self):
        assert has_template("trip_started", "sms", True)
        assert not has_template("trip_started", "email", False)

    def test_missing_payload_field_rejected(self):
        with pytest.raises(ValidationError):
            render("trip_completed", "email", False, TRIP)


class TestBookingAuthorized:
    def test_rider_copy_carries_code(self):
        message = render(
            "booking_authorized", "email", False, {**TRIP, "estimated_cost_cents": 2000, "otp_code": "042917"}
        )
        assert "042917" in message.body
        assert "$20.00" in message.body
        assert "Gainesville, FL to Orlando, FL" in message.subject

    def test_driver_copy_never_carries_code(self):
        message = render("booking_authorized", "email", True, {**TRIP, "estimated_cost_cents": 2000})
        assert "042917" not in message.body
        assert "Riley (2 seats)" in message.subject
        assert "Rider's share: $20.00" in message.body


class TestTripCompleted:
    def test_rider_gets_payment_options(self):
        message = render(
            "trip_completed",
            "email",
            False,
            {
                **TRIP,
                "final_share_cents": 1334,
                "driver_email": "dana@ufl.edu",
                "cash_app_handle": "danadrives",
                "zelle_handle": "dana@ufl.edu",
            },
        )
        assert "$13.34" in message.subject
        assert "https://cash.app/$danadrives/13.34" in message.body
        assert "Zelle: dana@ufl.edu" in message.body
        assert "does not process payments" in message.body

    def test_no_handles_falls_back_to_asking(self):
        message = render("trip_completed", "email", False, {**TRIP, "final_share_cents": 500})
        assert "Ask your driver" in message.body

    def test_driver_copy_shows_amount_due(self):
        message = render("trip_completed", "email", True, {**TRIP, "final_share_cents": 500})
        assert "Amount due: $5.00" in message.body


class TestBookingCancelled:
    def test_driver_cancellation_to_rider(self):
        data = BookingCancelledData(
            **TRIP,
            is_driver_cancellation=True,
            apology_message="So sorry.",
            research_url="https://gatoryde.app/rides/search?from=a&to=b",
        )
        message = render("booking_cancelled", "email", False, data)
        assert "Driver Cancelled" in message.subject
        assert "So sorry." in message.body
        assert "https://gatoryde.app/rides/search?from=a&to=b" in message.body

    def test_rider_cancellation_to_driver_with_note(self):
        data = BookingCancelledData(
            **TRIP,
            is_rider_cancellation=True,
            reason="Exam moved",
            additional_message="Please notify driver ASAP - this is a late cancellation.",
        )
        message = render("booking_cancelled", "email", True, data)
        assert "Rider Cancelled" in message.subject
        assert "Reason: Exam moved" in message.body
        assert "Note: Please notify driver ASAP" in message.body

    def test_generic_cancellation(self):
        message = render("booking_cancelled", "email", True, TRIP)
        assert "Booking Cancelled" in message.subject
        assert "Rider: Riley" in message.body


def test_disputed_names_opener_and_reason():
    message = render(
        "booking_disputed",
        "email",
        True,
        {**TRIP, "dispute_opener_name": "Riley", "dispute_reason": "Driver never arrived"},
    )
    assert "Dispute Opened" in message.subject
    assert "Riley has opened a dispute" in message.body
    assert "Dispute reason: Driver never arrived" in message.body


def test_login_code_email():
    message = login_code_email("314159", 10, "University of Florida")
    assert "314159" in message.subject
    assert "University of Florida" in message.body
    assert "expires in 10 minutes" in message.body


class TestFormatting:
    def test_format_datetime_in_eastern_time(self):
        assert format_datetime(DEPART) == "Friday, October 16, 2026 at 3:05 PM EDT"

    def test_format_datetime_other_zone(self):
        assert format_datetime(DEPART, "UTC") == "Friday, October 16, 2026 at 7:05 PM UTC"

    def test_rendered_body_uses_local_time(self):
        message = render("trip_started", "sms", False, TRIP)
        assert "Dana" in message.body
        message = render("booking_confirmed", "email", False, {**TRIP, "estimated_cost_cents": 100})
        assert "3:05 PM EDT" in message.body


class TestRedaction:
    def test_email_redacted(self):
        assert redact_pii("send to riley@ufl.edu failed") == "send to [EMAIL_REDACTED] failed"

    @pytest.mark.parametrize("phone", ["352-555-0100", "(352) 555-0100", "+1 352 555 0100", "3525550100"])
    def test_phone_redacted(self, phone):
        assert "[PHONE_REDACTED]" in redact_pii(f"sms to {phone} bounced")
        assert "555" not in redact_pii(f"sms to {phone} bounced")

    def test_cashtag_redacted(self):
        assert redact_pii("pay $danadrives now") == "pay [CASHAPP_REDACTED] now"

    def test_amounts_survive(self):
        assert redact_pii("charged $12.50") == "charged $12.50"
