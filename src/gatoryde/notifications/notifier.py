"""
Booking events to queued notifications.

Every message is rendered when the event happens and queued with its final
subject and body; the dispatcher only delivers. Recipients with no address
for the channel are skipped. Nothing in here raises: a booking change that
has been committed stays committed even if its notifications cannot be
queued.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlencode

import structlog
from pydantic import BaseModel

from gatoryde.config import get_settings
from gatoryde.db.models import Booking, DriverProfile, Ride, User
from gatoryde.notifications.queue import NotificationQueue
from gatoryde.notifications.templates import redact_pii, render
from gatoryde.notifications.types import (
    BookingAuthorizedData,
    BookingCancelledData,
    BookingConfirmedData,
    BookingDisputedData,
    NotificationChannel,
    NotificationRequest,
    NotificationType,
    QueuedNotification,
    TripCompletedData,
    TripStartedData,
)

logger = structlog.get_logger()

LATE_CANCEL_NOTE = "Please notify driver ASAP - this is a late cancellation."
DRIVER_CANCEL_APOLOGY = (
    "We sincerely apologize for the inconvenience. Your seat has been released "
    "and you will not be charged for this trip."
)


def display_name(user: User) -> str:
    return user.name or user.email.split("@")[0]


@dataclass
class BookingParties:
    """Everything a booking notification needs to know about who is involved."""

    booking: Booking
    ride: Ride
    rider: User
    driver: User
    driver_profile: DriverProfile | None = None

    def trip_fields(self) -> dict:
        return {
            "rider_name": display_name(self.rider),
            "driver_name": display_name(self.driver),
            "origin_text": self.ride.origin_text,
            "dest_text": self.ride.dest_text,
            "depart_at": self.ride.depart_at,
            "seats": self.booking.seats,
        }


class Notifier:
    """Render and enqueue notifications for booking lifecycle events."""

    def __init__(self, queue: NotificationQueue) -> None:
        self.queue = queue

    async def booking_authorized(self, parties: BookingParties, otp_code: str) -> list[QueuedNotification]:
        fields = parties.trip_fields()
        estimate = parties.booking.auth_estimate_cents
        rider_data = BookingAuthorizedData(**fields, estimated_cost_cents=estimate, otp_code=otp_code)
        # The driver's copy never carries the code
        driver_data = BookingAuthorizedData(**fields, estimated_cost_cents=estimate)
        return [
            *await self._emit("booking_authorized", "email", parties, parties.rider, False, rider_data),
            *await self._emit("booking_authorized", "email", parties, parties.driver, True, driver_data),
        ]

    async def booking_confirmed(self, parties: BookingParties) -> list[QueuedNotification]:
        data = BookingConfirmedData(
            **parties.trip_fields(),
            estimated_cost_cents=parties.booking.auth_estimate_cents,
        )
        return await self._emit("booking_confirmed", "email", parties, parties.rider, False, data)

    async def trip_started(self, parties: BookingParties) -> list[QueuedNotification]:
        data = TripStartedData(**parties.trip_fields())
        return [
            *await self._emit("trip_started", "sms", parties, parties.rider, False, data),
            *await self._emit("trip_started", "sms", parties, parties.driver, True, data),
        ]

    async def trip_completed(self, parties: BookingParties) -> list[QueuedNotification]:
        profile = parties.driver_profile
        data = TripCompletedData(
            **parties.trip_fields(),
            final_share_cents=parties.booking.final_share_cents or 0,
            driver_email=parties.driver.email,
            driver_phone=parties.driver.phone,
            zelle_handle=profile.zelle_handle if profile else None,
            cash_app_handle=profile.cash_app_handle if profile else None,
        )
        return [
            *await self._emit("trip_completed", "email", parties, parties.rider, False, data),
            *await self._emit("trip_completed", "email", parties, parties.driver, True, data),
        ]

    async def booking_cancelled(
        self,
        parties: BookingParties,
        *,
        by_driver: bool,
        reason: str | None = None,
    ) -> list[QueuedNotification]:
        """Tell the party that did not cancel."""
        fields = parties.trip_fields()
        if by_driver:
            data = BookingCancelledData(
                **fields,
                reason=reason,
                is_driver_cancellation=True,
                apology_message=DRIVER_CANCEL_APOLOGY,
                research_url=self._research_url(parties.ride),
            )
            return await self._emit("booking_cancelled", "email", parties, parties.rider, False, data)

        data = BookingCancelledData(
            **fields,
            reason=reason,
            is_rider_cancellation=True,
            additional_message=LATE_CANCEL_NOTE if parties.booking.late_cancel else None,
        )
        return await self._emit("booking_cancelled", "email", parties, parties.driver, True, data)

    async def booking_disputed(self, parties: BookingParties, *, opened_by_driver: bool) -> list[QueuedNotification]:
        """Tell the other party a dispute has been opened."""
        opener = parties.driver if opened_by_driver else parties.rider
        data = BookingDisputedData(
            **parties.trip_fields(),
            dispute_opener_name=display_name(opener),
            dispute_reason=parties.booking.dispute_reason or "",
        )
        if opened_by_driver:
            return await self._emit("booking_disputed", "email", parties, parties.rider, False, data)
        return await self._emit("booking_disputed", "email", parties, parties.driver, True, data)

    def _research_url(self, ride: Ride) -> str:
        query = urlencode({"from": ride.origin_text, "to": ride.dest_text})
        return f"{get_settings().frontend_base_url.rstrip('/')}/rides/search?{query}"

    async def _emit(
        self,
        type_: NotificationType,
        channel: NotificationChannel,
        parties: BookingParties,
        recipient: User,
        is_driver: bool,
        data: BaseModel,
    ) -> list[QueuedNotification]:
        address = recipient.email if channel == "email" else recipient.phone
        if not address:
            logger.info(
                "notification_skipped_no_address",
                type=type_,
                channel=channel,
                recipient_id=recipient.id,
            )
            return []

        try:
            message = render(type_, channel, is_driver, data)
            item = await self.queue.enqueue(
                NotificationRequest(
                    type=type_,
                    channel=channel,
                    recipient_id=recipient.id,
                    recipient_email=recipient.email,
                    recipient_phone=recipient.phone,
                    subject=message.subject,
                    body=message.body,
                    template_data=data.model_dump(mode="json", exclude={"otp_code"}),
                    booking_id=parties.booking.id,
                    ride_id=parties.ride.id,
                )
            )
        except Exception as exc:
            logger.error(
                "notification_enqueue_failed",
                type=type_,
                channel=channel,
                booking_id=parties.booking.id,
                error=redact_pii(str(exc)),
            )
            return []
        return [item]
