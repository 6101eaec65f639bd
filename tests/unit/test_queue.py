"""Tests for the in-memory notification queue."""

from datetime import timedelta

import pytest

from gatoryde.notifications.queue import NotificationQueue, backoff_delay
from gatoryde.notifications.types import NotificationRequest


def _request(**overrides) -> NotificationRequest:
    fields = {
        "type": "booking_confirmed",
        "channel": "email",
        "recipient_id": "user-1",
        "recipient_email": "riley@ufl.edu",
        "subject": "GatoRyde: Driver Confirmed",
        "body": "Hi Riley",
    }
    fields.update(overrides)
    return NotificationRequest(**fields)


async def _fail(queue: NotificationQueue, notification_id: str, error: str = "smtp down"):
    assert await queue.start_processing(notification_id)
    return await queue.handle_failure(notification_id, error)


class TestBackoff:
    def test_table_lookup(self):
        assert backoff_delay(1) == timedelta(seconds=60)
        assert backoff_delay(2) == timedelta(seconds=300)
        assert backoff_delay(3) == timedelta(seconds=900)

    def test_clamped_to_last_entry(self):
        assert backoff_delay(10) == timedelta(seconds=900)

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            backoff_delay(0)

    def test_delays_must_be_non_decreasing(self, clock):
        with pytest.raises(ValueError):
            NotificationQueue(clock=clock, retry_delays=(300, 60))

    def test_delays_must_not_be_empty(self, clock):
        with pytest.raises(ValueError):
            NotificationQueue(clock=clock, retry_delays=())


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_new_item_is_pending_and_ready(self, queue, clock):
        item = await queue.enqueue(_request())
        assert item.status == "pending"
        assert item.attempts == 0
        assert item.max_attempts == 3
        assert item.scheduled_at == clock()
        assert item.id == "n0001"

        ready = await queue.get_ready()
        assert [r.id for r in ready] == [item.id]

    @pytest.mark.asyncio
    async def test_future_item_not_ready_until_due(self, queue, clock):
        await queue.enqueue(_request(scheduled_at=clock() + timedelta(minutes=5)))
        assert await queue.get_ready() == []
        clock.advance(minutes=5)
        assert len(await queue.get_ready()) == 1

    @pytest.mark.asyncio
    async def test_ready_ordered_by_schedule_then_creation(self, queue, clock):
        late = await queue.enqueue(_request(scheduled_at=clock() + timedelta(seconds=30)))
        first = await queue.enqueue(_request())
        clock.advance(seconds=1)
        second = await queue.enqueue(_request())
        clock.advance(minutes=1)

        ready = await queue.get_ready()
        assert [r.id for r in ready] == [first.id, second.id, late.id]

    @pytest.mark.asyncio
    async def test_limit(self, queue):
        for _ in range(5):
            await queue.enqueue(_request())
        assert len(await queue.get_ready(limit=2)) == 2
        assert await queue.get_ready(limit=0) == []

    @pytest.mark.asyncio
    async def test_returned_items_are_copies(self, queue):
        item = await queue.enqueue(_request())
        item.status = "failed"
        (ready,) = await queue.get_ready()
        assert ready.status == "pending"


class TestProcessing:
    @pytest.mark.asyncio
    async def test_claim_only_once(self, queue):
        item = await queue.enqueue(_request())
        assert await queue.start_processing(item.id) is True
        assert await queue.start_processing(item.id) is False
        assert await queue.get_ready() == []

    @pytest.mark.asyncio
    async def test_claim_unknown_id(self, queue):
        assert await queue.start_processing("missing") is False

    @pytest.mark.asyncio
    async def test_mark_sent_removes_item(self, queue):
        item = await queue.enqueue(_request())
        await queue.start_processing(item.id)
        await queue.mark_sent(item.id)
        stats = await queue.stats()
        assert (stats.pending, stats.processing, stats.dead_letter) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_failure_of_unclaimed_item_is_ignored(self, queue):
        item = await queue.enqueue(_request())
        assert await queue.handle_failure(item.id, "boom") is None
        assert (await queue.stats()).pending == 1


class TestRetries:
    @pytest.mark.asyncio
    async def test_backoff_schedule(self, queue, clock):
        item = await queue.enqueue(_request())

        retried = await _fail(queue, item.id)
        assert retried.status == "retrying"
        assert retried.attempts == 1
        assert retried.scheduled_at == clock() + timedelta(seconds=60)
        assert await queue.get_ready() == []

        clock.advance(seconds=60)
        retried = await _fail(queue, item.id)
        assert retried.attempts == 2
        assert retried.scheduled_at == clock() + timedelta(seconds=300)

    @pytest.mark.asyncio
    async def test_third_failure_dead_letters(self, queue, clock):
        item = await queue.enqueue(_request())
        await _fail(queue, item.id, "first")
        clock.advance(seconds=60)
        await _fail(queue, item.id, "second")
        clock.advance(seconds=300)
        dead = await _fail(queue, item.id, "mailbox riley@ufl.edu full")

        assert dead.status == "failed"
        assert dead.attempts == 3
        assert dead.failed_at == clock()
        assert dead.error_message == "mailbox [EMAIL_REDACTED] full"

        clock.advance(days=1)
        assert await queue.get_ready() == []
        (letter,) = await queue.get_dead_letters()
        assert letter.id == item.id
        assert letter.error_message == "mailbox [EMAIL_REDACTED] full"

    @pytest.mark.asyncio
    async def test_retry_error_is_redacted(self, queue):
        item = await queue.enqueue(_request())
        retried = await _fail(queue, item.id, "twilio rejected 352-555-0100")
        assert retried.error_message == "twilio rejected [PHONE_REDACTED]"

    @pytest.mark.asyncio
    async def test_single_attempt_queue(self, clock):
        queue = NotificationQueue(clock=clock, max_attempts=1)
        item = await queue.enqueue(_request())
        dead = await _fail(queue, item.id)
        assert dead.status == "failed"


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_expired_lease_counts_as_failure(self, queue, clock):
        item = await queue.enqueue(_request())
        await queue.start_processing(item.id)

        clock.advance(seconds=299)
        assert await queue.cleanup_expired_processing(timedelta(seconds=300)) == 0

        clock.advance(seconds=2)
        assert await queue.cleanup_expired_processing(timedelta(seconds=300)) == 1
        stats = await queue.stats()
        assert stats.processing == 0
        assert stats.pending == 1

        clock.advance(seconds=60)
        (ready,) = await queue.get_ready()
        assert ready.attempts == 1
        assert ready.error_message == "processing lease expired"

    @pytest.mark.asyncio
    async def test_purge_dead_letters_after_retention(self, clock):
        queue = NotificationQueue(clock=clock, max_attempts=1)
        old = await queue.enqueue(_request())
        await _fail(queue, old.id)
        clock.advance(days=3)
        recent = await queue.enqueue(_request())
        await _fail(queue, recent.id)

        clock.advance(days=4, seconds=1)
        assert await queue.purge_dead_letters(timedelta(days=7)) == 1
        assert [d.id for d in await queue.get_dead_letters()] == [recent.id]

    @pytest.mark.asyncio
    async def test_dead_letters_newest_first(self, clock):
        queue = NotificationQueue(clock=clock, max_attempts=1)
        ids = []
        for _ in range(3):
            item = await queue.enqueue(_request())
            await _fail(queue, item.id)
            ids.append(item.id)

        assert [d.id for d in await queue.get_dead_letters()] == list(reversed(ids))
        assert [d.id for d in await queue.get_dead_letters(limit=1)] == [ids[-1]]
