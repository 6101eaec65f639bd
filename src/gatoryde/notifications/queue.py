"""
In-memory notification queue.

Three stores:
- pending: new and retrying items, keyed by id
- processing: items a dispatcher pass has claimed, keyed by id
- dead letter: items that exhausted their attempts, kept until purged

An item lives in exactly one store at a time. Every state change happens
under the queue's lock, so a claim is a compare-and-move.

Retry delays come from a fixed table indexed by ``attempts - 1``, clamped to
the last entry.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime, timedelta

import structlog

from gatoryde.clock import Clock, IdFactory, new_id, utcnow
from gatoryde.notifications.templates import redact_pii
from gatoryde.notifications.types import NotificationRequest, QueuedNotification, QueueStats

logger = structlog.get_logger()

DEFAULT_RETRY_DELAYS: tuple[int, ...] = (60, 300, 900)
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_DEAD_LETTER_RETENTION = timedelta(days=7)


def backoff_delay(attempts: int, delays: Sequence[int] = DEFAULT_RETRY_DELAYS) -> timedelta:
    """Delay before the next try after ``attempts`` failures."""
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    index = min(attempts - 1, len(delays) - 1)
    return timedelta(seconds=delays[index])


class NotificationQueue:
    """Instance-owned queue. Build one per process (or per test)."""

    def __init__(
        self,
        clock: Clock = utcnow,
        id_factory: IdFactory = new_id,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delays: Sequence[int] = DEFAULT_RETRY_DELAYS,
    ) -> None:
        if not retry_delays:
            raise ValueError("retry_delays must not be empty")
        if list(retry_delays) != sorted(retry_delays):
            raise ValueError("retry_delays must be non-decreasing")
        self._clock = clock
        self._id_factory = id_factory
        self.max_attempts = max_attempts
        self.retry_delays = tuple(retry_delays)
        self._pending: dict[str, QueuedNotification] = {}
        self._processing: dict[str, QueuedNotification] = {}
        self._claimed_at: dict[str, datetime] = {}
        self._dead_letters: list[QueuedNotification] = []
        self._lock = asyncio.Lock()

    async def enqueue(self, request: NotificationRequest) -> QueuedNotification:
        """Add a notification. No transport call happens here."""
        now = self._clock()
        item = QueuedNotification(
            **request.model_dump(exclude={"scheduled_at"}),
            id=self._id_factory(),
            status="pending",
            attempts=0,
            max_attempts=self.max_attempts,
            scheduled_at=request.scheduled_at or now,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._pending[item.id] = item

        logger.info(
            "notification_queued",
            notification_id=item.id,
            type=item.type,
            channel=item.channel,
            scheduled_at=item.scheduled_at.isoformat(),
        )
        return item.model_copy()

    async def get_ready(self, limit: int = 10) -> list[QueuedNotification]:
        """Pending or retrying items whose time has come, oldest schedule first."""
        if limit <= 0:
            return []
        now = self._clock()
        async with self._lock:
            ready = [item for item in self._pending.values() if item.scheduled_at <= now]
        ready.sort(key=lambda item: (item.scheduled_at, item.created_at))
        return [item.model_copy() for item in ready[:limit]]

    async def start_processing(self, notification_id: str) -> bool:
        """Claim an item. False if it is no longer pending (already claimed or gone)."""
        async with self._lock:
            item = self._pending.pop(notification_id, None)
            if item is None:
                return False
            now = self._clock()
            item.status = "processing"
            item.updated_at = now
            self._processing[item.id] = item
            self._claimed_at[item.id] = now
        return True

    async def mark_sent(self, notification_id: str) -> None:
        async with self._lock:
            item = self._processing.pop(notification_id, None)
            self._claimed_at.pop(notification_id, None)
        if item is None:
            logger.warning("notification_not_processing", notification_id=notification_id)
            return
        logger.info(
            "notification_sent",
            notification_id=notification_id,
            type=item.type,
            channel=item.channel,
            attempts=item.attempts + 1,
        )

    async def handle_failure(self, notification_id: str, error: str) -> QueuedNotification | None:
        """Record a failed delivery: reschedule it, or dead-letter it on the last attempt.

        Returns the updated item, or None if it was not being processed.
        """
        redacted = redact_pii(error)
        async with self._lock:
            item = self._processing.pop(notification_id, None)
            self._claimed_at.pop(notification_id, None)
            if item is None:
                logger.warning("notification_not_processing", notification_id=notification_id)
                return None

            now = self._clock()
            item.attempts += 1
            item.updated_at = now
            item.error_message = redacted

            if item.attempts < item.max_attempts:
                delay = backoff_delay(item.attempts, self.retry_delays)
                item.status = "retrying"
                item.scheduled_at = now + delay
                self._pending[item.id] = item
                dead = False
            else:
                item.status = "failed"
                item.failed_at = now
                self._dead_letters.append(item)
                dead = True

        if dead:
            logger.error(
                "notification_dead_lettered",
                notification_id=item.id,
                type=item.type,
                channel=item.channel,
                attempts=item.attempts,
                error=redacted,
            )
        else:
            logger.warning(
                "notification_retry_scheduled",
                notification_id=item.id,
                attempts=item.attempts,
                max_attempts=item.max_attempts,
                retry_in_seconds=int(delay.total_seconds()),
                error=redacted,
            )
        return item.model_copy()

    async def cleanup_expired_processing(self, lease: timedelta) -> int:
        """Fail items held in processing longer than ``lease``.

        A pass that died mid-flight would otherwise leave its items stuck.
        Returns how many items were released.
        """
        now = self._clock()
        async with self._lock:
            expired = [nid for nid, claimed in self._claimed_at.items() if now - claimed > lease]
        for nid in expired:
            await self.handle_failure(nid, "processing lease expired")
        if expired:
            logger.warning("notification_leases_expired", count=len(expired))
        return len(expired)

    async def purge_dead_letters(self, max_age: timedelta = DEFAULT_DEAD_LETTER_RETENTION) -> int:
        """Drop dead letters created more than ``max_age`` ago. Returns how many went."""
        cutoff = self._clock() - max_age
        async with self._lock:
            before = len(self._dead_letters)
            self._dead_letters = [item for item in self._dead_letters if item.created_at >= cutoff]
            purged = before - len(self._dead_letters)
        if purged:
            logger.info("dead_letters_purged", count=purged)
        return purged

    async def get_dead_letters(self, limit: int = 50) -> list[QueuedNotification]:
        """Most recent dead letters first."""
        async with self._lock:
            items = self._dead_letters[-limit:] if limit > 0 else []
        return [item.model_copy() for item in reversed(items)]

    async def stats(self) -> QueueStats:
        async with self._lock:
            return QueueStats(
                pending=len(self._pending),
                processing=len(self._processing),
                dead_letter=len(self._dead_letters),
            )
