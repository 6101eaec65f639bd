"""Notification records and typed template payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, get_args

from pydantic import BaseModel, Field

NotificationType = Literal[
    "booking_authorized",
    "booking_confirmed",
    "trip_started",
    "trip_completed",
    "booking_cancelled",
    "booking_disputed",
]
NotificationChannel = Literal["email", "sms"]
NotificationStatus = Literal["pending", "processing", "sent", "failed", "retrying"]

NOTIFICATION_TYPES: tuple[str, ...] = get_args(NotificationType)
NOTIFICATION_CHANNELS: tuple[str, ...] = get_args(NotificationChannel)


class NotificationRequest(BaseModel):
    """What a domain event hands to the queue."""

    type: NotificationType
    channel: NotificationChannel
    recipient_id: str
    recipient_email: str | None = None
    recipient_phone: str | None = None
    subject: str | None = None
    body: str
    template_data: dict[str, Any] = Field(default_factory=dict)
    booking_id: str | None = None
    ride_id: str | None = None
    scheduled_at: datetime | None = None


class QueuedNotification(BaseModel):
    """A notification as tracked by the queue."""

    id: str
    type: NotificationType
    channel: NotificationChannel
    recipient_id: str
    recipient_email: str | None = None
    recipient_phone: str | None = None
    subject: str | None = None
    body: str
    template_data: dict[str, Any] = Field(default_factory=dict)
    booking_id: str | None = None
    ride_id: str | None = None
    status: NotificationStatus = "pending"
    attempts: int = 0
    max_attempts: int = 3
    scheduled_at: datetime
    created_at: datetime
    updated_at: datetime
    failed_at: datetime | None = None
    error_message: str | None = None

    @property
    def recipient_address(self) -> str | None:
        """The address for this notification's channel."""
        return self.recipient_email if self.channel == "email" else self.recipient_phone


class QueueStats(BaseModel):
    pending: int
    processing: int
    dead_letter: int


# ---------------------------------------------------------------------------
# Template payloads
# ---------------------------------------------------------------------------


class TripDetails(BaseModel):
    """Fields every booking notification carries."""

    rider_name: str
    driver_name: str
    origin_text: str
    dest_text: str
    depart_at: datetime
    seats: int


class BookingAuthorizedData(TripDetails):
    estimated_cost_cents: int
    otp_code: str | None = None


class BookingConfirmedData(TripDetails):
    estimated_cost_cents: int


class TripStartedData(TripDetails):
    pass


class TripCompletedData(TripDetails):
    final_share_cents: int
    driver_email: str | None = None
    driver_phone: str | None = None
    zelle_handle: str | None = None
    cash_app_handle: str | None = None


class BookingCancelledData(TripDetails):
    reason: str | None = None
    is_driver_cancellation: bool = False
    is_rider_cancellation: bool = False
    apology_message: str | None = None
    research_url: str | None = None
    additional_message: str | None = None


class BookingDisputedData(TripDetails):
    dispute_opener_name: str
    dispute_reason: str


PAYLOAD_MODELS: dict[str, type[TripDetails]] = {
    "booking_authorized": BookingAuthorizedData,
    "booking_confirmed": BookingConfirmedData,
    "trip_started": TripStartedData,
    "trip_completed": TripCompletedData,
    "booking_cancelled": BookingCancelledData,
    "booking_disputed": BookingDisputedData,
}
