"""Shared FastAPI dependencies."""

from fastapi import Request
from redis.asyncio import Redis

from gatoryde.bookings.service import BookingLifecycleManager
from gatoryde.database import get_session as _get_session
from gatoryde.notifications.dispatcher import NotificationDispatcher
from gatoryde.notifications.providers import NotificationTransport
from gatoryde.notifications.queue import NotificationQueue
from gatoryde.redis_client import get_optional_redis

get_db = _get_session


def get_redis_dep() -> Redis | None:
    """The Redis client, or None when Redis is not configured."""
    return get_optional_redis()


def get_bookings(request: Request) -> BookingLifecycleManager:
    return request.app.state.bookings


def get_queue(request: Request) -> NotificationQueue:
    return request.app.state.notification_queue


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_transport(request: Request) -> NotificationTransport:
    return request.app.state.transport
