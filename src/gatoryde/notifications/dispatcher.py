"""
Notification dispatcher.

Every tick (30 s by default) the dispatcher releases expired processing
leases, pulls up to a batch of ready items and delivers them concurrently.
One item failing never stops the others: each delivery resolves into either
``mark_sent`` or ``handle_failure`` and the batch waits for all of them.

At most one pass runs at a time. The timer and a manual trigger share the
same lock; a pass that finds it held returns immediately.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog

from gatoryde.clock import Clock, utcnow
from gatoryde.notifications.providers import NotificationTransport
from gatoryde.notifications.queue import DEFAULT_DEAD_LETTER_RETENTION, NotificationQueue
from gatoryde.notifications.templates import redact_pii
from gatoryde.notifications.types import QueuedNotification

logger = structlog.get_logger()


@dataclass
class DispatchSummary:
    picked: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    expired_leases: int = 0


@dataclass
class MaintenanceSummary:
    expired_leases: int
    purged_dead_letters: int
    pending: int
    processing: int
    dead_letter: int


class NotificationDispatcher:
    """Drains a ``NotificationQueue`` through a ``NotificationTransport``."""

    def __init__(
        self,
        queue: NotificationQueue,
        transport: NotificationTransport,
        *,
        interval_seconds: float = 30.0,
        batch_size: int = 10,
        processing_lease: timedelta = timedelta(seconds=300),
        dead_letter_retention: timedelta = DEFAULT_DEAD_LETTER_RETENTION,
        maintenance_interval_seconds: float = 3600.0,
        clock: Clock = utcnow,
    ) -> None:
        self.queue = queue
        self.transport = transport
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self.processing_lease = processing_lease
        self.dead_letter_retention = dead_letter_retention
        self.maintenance_interval_seconds = maintenance_interval_seconds
        self._clock = clock
        self._guard = asyncio.Lock()
        self._tasks: list[asyncio.Task[None]] = []
        self.last_run_at: datetime | None = None
        self.last_summary: DispatchSummary | None = None

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    @property
    def is_processing(self) -> bool:
        return self._guard.locked()

    async def process_now(self) -> DispatchSummary | None:
        """Run one pass. Returns None if another pass is already in progress."""
        if self._guard.locked():
            logger.debug("notification_pass_skipped", reason="already_processing")
            return None

        async with self._guard:
            summary = DispatchSummary()
            summary.expired_leases = await self.queue.cleanup_expired_processing(self.processing_lease)

            ready = await self.queue.get_ready(self.batch_size)
            summary.picked = len(ready)
            if ready:
                outcomes = await asyncio.gather(
                    *(self._deliver(item) for item in ready),
                    return_exceptions=True,
                )
                for item, outcome in zip(ready, outcomes):
                    if isinstance(outcome, BaseException):
                        logger.error(
                            "notification_delivery_crashed",
                            notification_id=item.id,
                            error=redact_pii(str(outcome)),
                        )
                        summary.failed += 1
                    elif outcome is None:
                        summary.skipped += 1
                    elif outcome:
                        summary.sent += 1
                    else:
                        summary.failed += 1

            self.last_run_at = self._clock()
            self.last_summary = summary

        if summary.picked:
            logger.info("notification_pass_complete", **asdict(summary))
        return summary

    async def _deliver(self, item: QueuedNotification) -> bool | None:
        """Deliver one item. True if sent, False if failed, None if someone else claimed it."""
        if not await self.queue.start_processing(item.id):
            return None

        address = item.recipient_address
        if not address:
            await self.queue.handle_failure(item.id, f"No {item.channel} address for recipient {item.recipient_id}")
            return False

        try:
            await self.transport.send(item.channel, address, item.subject, item.body)
        except Exception as exc:
            await self.queue.handle_failure(item.id, str(exc) or exc.__class__.__name__)
            return False

        await self.queue.mark_sent(item.id)
        return True

    async def run_maintenance(self) -> MaintenanceSummary:
        """Expire stale leases, purge old dead letters and log queue stats."""
        expired = await self.queue.cleanup_expired_processing(self.processing_lease)
        purged = await self.queue.purge_dead_letters(self.dead_letter_retention)
        stats = await self.queue.stats()
        summary = MaintenanceSummary(
            expired_leases=expired,
            purged_dead_letters=purged,
            pending=stats.pending,
            processing=stats.processing,
            dead_letter=stats.dead_letter,
        )
        logger.info("notification_maintenance", **asdict(summary))
        return summary

    def start(self) -> None:
        """Start the tick and maintenance loops on the running event loop."""
        if self.is_running:
            return
        self._tasks = [
            asyncio.create_task(self._every(self.interval_seconds, self.process_now)),
            asyncio.create_task(self._every(self.maintenance_interval_seconds, self.run_maintenance)),
        ]
        logger.info(
            "notification_dispatcher_started",
            interval_seconds=self.interval_seconds,
            batch_size=self.batch_size,
        )

    async def stop(self) -> None:
        """Cancel the loops and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if tasks:
            logger.info("notification_dispatcher_stopped")

    async def _every(self, interval: float, job: Callable[[], Awaitable[Any]]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await job()
            except Exception:
                logger.exception("notification_job_failed", job=getattr(job, "__name__", repr(job)))

    async def status(self) -> dict[str, Any]:
        stats = await self.queue.stats()
        return {
            "running": self.is_running,
            "processing": self.is_processing,
            "interval_seconds": self.interval_seconds,
            "batch_size": self.batch_size,
            "last_run_at": self.last_run_at,
            "last_summary": asdict(self.last_summary) if self.last_summary else None,
            "queue": stats.model_dump(),
        }
