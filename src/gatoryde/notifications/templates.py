"""
Notification templates for GatoRyde.

Every supported message is registered in ``TEMPLATES`` under
``(type, channel, recipient role)``. Anything not in the table is rejected
with ``TemplateNotFound``, which is how SMS gets refused for email-only
events.

Each template function returns ``RenderedMessage(subject, body)``; SMS
templates have no subject.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, Literal, NamedTuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from gatoryde.clock import as_utc
from gatoryde.config import get_settings
from gatoryde.exceptions import TemplateNotFound
from gatoryde.notifications.types import (
    PAYLOAD_MODELS,
    BookingAuthorizedData,
    BookingCancelledData,
    BookingConfirmedData,
    BookingDisputedData,
    TripCompletedData,
    TripStartedData,
)
from gatoryde.rides.pricing import format_currency

APP_NAME = "GatoRyde"
FOOTER = (
    f"The {APP_NAME} Team\n"
    "---\n"
    f"This is an automated message from {APP_NAME}. Please do not reply to this email."
)

Role = Literal["rider", "driver"]


class RenderedMessage(NamedTuple):
    subject: str | None
    body: str


# ---------------------------------------------------------------------------
# Formatting and redaction
# ---------------------------------------------------------------------------

_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_PHONE_RE = re.compile(r"(?:\+?1[-.\s]?)?(?:\(\d{3}\)\s?|\b\d{3}[-.\s]?)\d{3}[-.\s]?\d{4}\b")
_CASHTAG_RE = re.compile(r"\$[A-Za-z][A-Za-z0-9_-]*")


def redact_pii(text: str) -> str:
    """Mask emails, phone numbers and Cash App tags. For log output only."""
    text = _EMAIL_RE.sub("[EMAIL_REDACTED]", text)
    text = _PHONE_RE.sub("[PHONE_REDACTED]", text)
    return _CASHTAG_RE.sub("[CASHAPP_REDACTED]", text)


def format_datetime(value: datetime, tz_name: str | None = None) -> str:
    """US long form, e.g. ``Friday, October 16, 2026 at 3:05 PM EDT``."""
    local = as_utc(value).astimezone(ZoneInfo(tz_name or get_settings().display_timezone))
    hour = local.hour % 12 or 12
    return (
        f"{local:%A}, {local:%B} {local.day}, {local.year} "
        f"at {hour}:{local:%M} {local:%p} {local:%Z}"
    )


def _plural_seats(seats: int) -> str:
    return f"{seats} seat{'s' if seats != 1 else ''}"


def _trip_lines(data: Any, date_label: str = "Departure") -> str:
    return (
        f"Route: {data.origin_text} -> {data.dest_text}\n"
        f"{date_label}: {format_datetime(data.depart_at)}\n"
        f"Seats: {data.seats}"
    )


# ---------------------------------------------------------------------------
# booking_authorized (email)
# ---------------------------------------------------------------------------


def booking_authorized_rider_email(data: BookingAuthorizedData) -> RenderedMessage:
    subject = f"{APP_NAME}: Booking Confirmed - {data.origin_text} to {data.dest_text}"
    body = (
        f"Hi {data.rider_name},\n\n"
        f"Great news! Your booking has been confirmed for:\n\n"
        f"{_trip_lines(data)}\n"
        f"Estimated cost: {format_currency(data.estimated_cost_cents)}\n"
        f"Your trip start code: {data.otp_code or 'Will be provided before trip'}\n\n"
        f"Driver: {data.driver_name}\n\n"
        f"Please save your trip start code. The driver will ask for it to verify "
        f"your booking when the trip starts.\n\n"
        f"Safe travels!\n\n{FOOTER}"
    )
    return RenderedMessage(subject, body)


def booking_authorized_driver_email(data: BookingAuthorizedData) -> RenderedMessage:
    subject = f"{APP_NAME}: New Booking - {data.rider_name} ({_plural_seats(data.seats)})"
    body = (
        f"Hi {data.driver_name},\n\n"
        f"You have a new booking for your ride:\n\n"
        f"Rider: {data.rider_name}\n"
        f"{_trip_lines(data)}\n"
        f"Rider's share: {format_currency(data.estimated_cost_cents)}\n\n"
        f"The rider has been given a trip start code. Ask the rider for it "
        f"to verify the booking before beginning the journey.\n\n"
        f"You can manage your bookings in the {APP_NAME} driver dashboard.\n\n"
        f"Safe travels!\n\n{FOOTER}"
    )
    return RenderedMessage(subject, body)


# ---------------------------------------------------------------------------
# booking_confirmed (email, rider only)
# ---------------------------------------------------------------------------


def booking_confirmed_rider_email(data: BookingConfirmedData) -> RenderedMessage:
    subject = f"{APP_NAME}: Driver Confirmed - {data.origin_text} to {data.dest_text}"
    body = (
        f"Hi {data.rider_name},\n\n"
        f"{data.driver_name} has confirmed your seat:\n\n"
        f"{_trip_lines(data)}\n"
        f"Estimated cost: {format_currency(data.estimated_cost_cents)}\n\n"
        f"Remember to bring your trip start code.\n\n{FOOTER}"
    )
    return RenderedMessage(subject, body)


# ---------------------------------------------------------------------------
# trip_started (sms)
# ---------------------------------------------------------------------------


def trip_started_rider_sms(data: TripStartedData) -> RenderedMessage:
    body = (
        f"{APP_NAME}: Your trip from {data.origin_text} to {data.dest_text} with "
        f"{data.driver_name} has started! Have a safe journey."
    )
    return RenderedMessage(None, body)


def trip_started_driver_sms(data: TripStartedData) -> RenderedMessage:
    body = (
        f"{APP_NAME}: Trip started with {data.rider_name} ({_plural_seats(data.seats)}). "
        f"Route: {data.origin_text} -> {data.dest_text}. Drive safely!"
    )
    return RenderedMessage(None, body)


# ---------------------------------------------------------------------------
# trip_completed (email)
# ---------------------------------------------------------------------------


def _payment_section(data: TripCompletedData) -> str:
    lines = ["PAYMENT INFORMATION:", f"Driver: {data.driver_name}"]
    if data.driver_email:
        lines.append(f"Email: {data.driver_email}")
    if data.driver_phone:
        lines.append(f"Phone: {data.driver_phone}")
    lines.append("")
    lines.append("Payment Options:")
    if data.cash_app_handle:
        amount = f"{data.final_share_cents // 100}.{data.final_share_cents % 100:02d}"
        lines.append(f"- Cash App: ${data.cash_app_handle}")
        lines.append(f"  Quick pay: https://cash.app/${data.cash_app_handle}/{amount}")
    if data.zelle_handle:
        lines.append(f"- Zelle: {data.zelle_handle}")
    if not (data.cash_app_handle or data.zelle_handle):
        lines.append("- Ask your driver how they would like to be paid.")
    lines.append("")
    lines.append(
        f"IMPORTANT: {APP_NAME} does not process payments. All transactions are between "
        f"you and the driver. Report any payment issues through the dispute system."
    )
    return "\n".join(lines)


def trip_completed_rider_email(data: TripCompletedData) -> RenderedMessage:
    subject = f"{APP_NAME}: Trip Completed - Payment Due {format_currency(data.final_share_cents)}"
    body = (
        f"Hi {data.rider_name},\n\n"
        f"Your trip has been completed! Here are the details:\n\n"
        f"{_trip_lines(data, date_label='Date')}\n"
        f"Your share: {format_currency(data.final_share_cents)}\n\n"
        f"{_payment_section(data)}\n\n"
        f"Thank you for using {APP_NAME}! Please rate your experience in the app.\n\n{FOOTER}"
    )
    return RenderedMessage(subject, body)


def trip_completed_driver_email(data: TripCompletedData) -> RenderedMessage:
    subject = f"{APP_NAME}: Trip Completed - Payment Expected {format_currency(data.final_share_cents)}"
    body = (
        f"Hi {data.driver_name},\n\n"
        f"Your trip has been completed! Here are the payment details:\n\n"
        f"Rider: {data.rider_name}\n"
        f"{_trip_lines(data, date_label='Date')}\n"
        f"Amount due: {format_currency(data.final_share_cents)}\n\n"
        f"The rider has been sent your payment information. You can track payment "
        f"status in your driver dashboard.\n\n"
        f"Thank you for driving with {APP_NAME}!\n\n{FOOTER}"
    )
    return RenderedMessage(subject, body)


# ---------------------------------------------------------------------------
# booking_cancelled (email)
# ---------------------------------------------------------------------------


def _cancelled_email(data: BookingCancelledData, recipient: Role) -> RenderedMessage:
    route = f"{data.origin_text} to {data.dest_text}"

    if data.is_driver_cancellation and recipient == "rider":
        apology = data.apology_message or "We sincerely apologize for the inconvenience."
        search = (
            f"Search for similar rides: {data.research_url}"
            if data.research_url
            else f"Please visit {APP_NAME} to search for alternative rides."
        )
        body = (
            f"Hi {data.rider_name},\n\n"
            f"We're sorry to inform you that your driver has cancelled the ride:\n\n"
            f"{_trip_lines(data)}\n"
            f"Driver: {data.driver_name}\n\n"
            f"{apology}\n\n"
            f"FIND ALTERNATIVE RIDES:\n{search}\n\n"
            f"If you need help finding another ride, please contact our support team.\n\n{FOOTER}"
        )
        return RenderedMessage(f"{APP_NAME}: Driver Cancelled - {route}", body)

    if data.is_rider_cancellation and recipient == "driver":
        extra = f"\nNote: {data.additional_message}\n" if data.additional_message else ""
        reason = f"\nReason: {data.reason}" if data.reason else ""
        body = (
            f"Hi {data.driver_name},\n\n"
            f"A rider has cancelled their booking for:\n\n"
            f"{_trip_lines(data)}\n"
            f"Rider: {data.rider_name}{reason}\n"
            f"{extra}\n"
            f"The seat is now available for other riders to book. You can view your "
            f"updated ride in the driver dashboard.\n\n{FOOTER}"
        )
        return RenderedMessage(f"{APP_NAME}: Rider Cancelled - {route}", body)

    is_driver = recipient == "driver"
    name = data.driver_name if is_driver else data.rider_name
    other = f"Rider: {data.rider_name}" if is_driver else f"Driver: {data.driver_name}"
    reason = f"\nReason: {data.reason}" if data.reason else ""
    follow_up = (
        "This seat is now available for other riders to book."
        if is_driver
        else f"You can search for alternative rides on {APP_NAME}."
    )
    body = (
        f"Hi {name},\n\n"
        f"A booking has been cancelled for:\n\n"
        f"{_trip_lines(data)}\n"
        f"{other}{reason}\n\n"
        f"{follow_up}\n\n"
        f"If you have any questions, please contact our support team.\n\n{FOOTER}"
    )
    return RenderedMessage(f"{APP_NAME}: Booking Cancelled - {route}", body)


def booking_cancelled_rider_email(data: BookingCancelledData) -> RenderedMessage:
    return _cancelled_email(data, "rider")


def booking_cancelled_driver_email(data: BookingCancelledData) -> RenderedMessage:
    return _cancelled_email(data, "driver")


# ---------------------------------------------------------------------------
# booking_disputed (email)
# ---------------------------------------------------------------------------


def _disputed_email(data: BookingDisputedData, recipient: Role) -> RenderedMessage:
    is_driver = recipient == "driver"
    name = data.driver_name if is_driver else data.rider_name
    other = f"Rider: {data.rider_name}" if is_driver else f"Driver: {data.driver_name}"
    body = (
        f"Hi {name},\n\n"
        f"{data.dispute_opener_name} has opened a dispute for your recent trip:\n\n"
        f"{_trip_lines(data, date_label='Date')}\n"
        f"{other}\n"
        f"Dispute reason: {data.dispute_reason}\n\n"
        f"Our support team will review this dispute and contact you within 24-48 hours. "
        f"Please do not attempt to resolve this directly with the other party.\n\n"
        f"You can view the dispute status in your {APP_NAME} dashboard.\n\n{FOOTER}"
    )
    return RenderedMessage(f"{APP_NAME}: Dispute Opened - {data.origin_text} to {data.dest_text}", body)


def booking_disputed_rider_email(data: BookingDisputedData) -> RenderedMessage:
    return _disputed_email(data, "rider")


def booking_disputed_driver_email(data: BookingDisputedData) -> RenderedMessage:
    return _disputed_email(data, "driver")


# ---------------------------------------------------------------------------
# Login code (sent directly, never queued)
# ---------------------------------------------------------------------------


def login_code_email(code: str, minutes_valid: int = 10, university_name: str | None = None) -> RenderedMessage:
    where = f" with your {university_name} email" if university_name else ""
    subject = f"{APP_NAME}: Your verification code is {code}"
    body = (
        f"Hi,\n\n"
        f"Use this code to sign in to {APP_NAME}{where}:\n\n"
        f"    {code}\n\n"
        f"The code expires in {minutes_valid} minutes and can only be used once.\n\n"
        f"If you didn't request this code, you can safely ignore this email.\n\n{FOOTER}"
    )
    return RenderedMessage(subject, body)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

TEMPLATES: dict[tuple[str, str, Role], Callable[[Any], RenderedMessage]] = {
    ("booking_authorized", "email", "rider"): booking_authorized_rider_email,
    ("booking_authorized", "email", "driver"): booking_authorized_driver_email,
    ("booking_confirmed", "email", "rider"): booking_confirmed_rider_email,
    ("trip_started", "sms", "rider"): trip_started_rider_sms,
    ("trip_started", "sms", "driver"): trip_started_driver_sms,
    ("trip_completed", "email", "rider"): trip_completed_rider_email,
    ("trip_completed", "email", "driver"): trip_completed_driver_email,
    ("booking_cancelled", "email", "rider"): booking_cancelled_rider_email,
    ("booking_cancelled", "email", "driver"): booking_cancelled_driver_email,
    ("booking_disputed", "email", "rider"): booking_disputed_rider_email,
    ("booking_disputed", "email", "driver"): booking_disputed_driver_email,
}


def has_template(type_: str, channel: str, is_recipient_driver: bool) -> bool:
    role: Role = "driver" if is_recipient_driver else "rider"
    return (type_, channel, role) in TEMPLATES


def render(
    type_: str,
    channel: str,
    is_recipient_driver: bool,
    payload: BaseModel | Mapping[str, Any],
) -> RenderedMessage:
    """Render the message for one recipient.

    Raises:
        TemplateNotFound: No template is registered for the combination.
        pydantic.ValidationError: The payload is missing required fields.
    """
    role: Role = "driver" if is_recipient_driver else "rider"
    template = TEMPLATES.get((type_, channel, role))
    if template is None:
        raise TemplateNotFound(f"No template found for type: {type_}, channel: {channel}, recipient: {role}")

    model = PAYLOAD_MODELS[type_]
    data = payload if isinstance(payload, model) else model.model_validate(
        payload.model_dump() if isinstance(payload, BaseModel) else dict(payload)
    )
    return template(data)
