"""Response schemas for the notification operator endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from gatoryde.notifications.types import QueueStats


class DispatchSummaryResponse(BaseModel):
    picked: int
    sent: int
    failed: int
    skipped: int
    expired_leases: int


class ProcessResponse(BaseModel):
    """Result of a manual processing pass."""

    ran: bool
    summary: DispatchSummaryResponse | None = None
    queue: QueueStats


class ProcessorStatusResponse(BaseModel):
    running: bool
    processing: bool
    interval_seconds: float
    batch_size: int
    last_run_at: datetime | None = None
    last_summary: DispatchSummaryResponse | None = None
    queue: QueueStats


class DeadLetterItem(BaseModel):
    id: str
    type: str
    channel: str
    recipient_id: str
    booking_id: str | None = None
    ride_id: str | None = None
    attempts: int
    error_message: str | None = None
    created_at: datetime
    failed_at: datetime | None = None


class DeadLetterResponse(BaseModel):
    items: list[DeadLetterItem]
    total: int


class MaintenanceResponse(BaseModel):
    expired_leases: int
    purged_dead_letters: int
    pending: int
    processing: int
    dead_letter: int
