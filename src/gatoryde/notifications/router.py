"""Notification operator endpoints (admin only)."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from gatoryde.auth.dependencies import require_admin
from gatoryde.db.models import User
from gatoryde.dependencies import get_dispatcher
from gatoryde.notifications.dispatcher import NotificationDispatcher
from gatoryde.notifications.schemas import (
    DeadLetterItem,
    DeadLetterResponse,
    DispatchSummaryResponse,
    MaintenanceResponse,
    ProcessorStatusResponse,
    ProcessResponse,
)

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.post("/process", response_model=ProcessResponse)
async def process_now(
    _admin: User = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ProcessResponse:
    """Run one processing pass now. Does nothing if a pass is already running."""
    summary = await dispatcher.process_now()
    return ProcessResponse(
        ran=summary is not None,
        summary=DispatchSummaryResponse(**asdict(summary)) if summary else None,
        queue=await dispatcher.queue.stats(),
    )


@router.get("/status", response_model=ProcessorStatusResponse)
async def processor_status(
    _admin: User = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ProcessorStatusResponse:
    return ProcessorStatusResponse(**await dispatcher.status())


@router.get("/dead-letter", response_model=DeadLetterResponse)
async def dead_letters(
    limit: int = Query(50, ge=1, le=200),
    _admin: User = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> DeadLetterResponse:
    """Most recent permanently failed notifications. Bodies are not returned."""
    items = await dispatcher.queue.get_dead_letters(limit)
    return DeadLetterResponse(
        items=[
            DeadLetterItem(
                id=item.id,
                type=item.type,
                channel=item.channel,
                recipient_id=item.recipient_id,
                booking_id=item.booking_id,
                ride_id=item.ride_id,
                attempts=item.attempts,
                error_message=item.error_message,
                created_at=item.created_at,
                failed_at=item.failed_at,
            )
            for item in items
        ],
        total=len(items),
    )


@router.post("/maintenance", response_model=MaintenanceResponse)
async def maintenance(
    _admin: User = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> MaintenanceResponse:
    """Expire stale leases and purge old dead letters."""
    summary = await dispatcher.run_maintenance()
    return MaintenanceResponse(**asdict(summary))
