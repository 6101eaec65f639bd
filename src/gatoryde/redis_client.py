"""Optional Redis client.

Redis only backs the login and request rate limits. When ``redis_url`` is
empty the client stays ``None`` and those limits are skipped.
"""

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 20) -> None:
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_optional_redis() -> redis.Redis | None:
    """The shared client, or None when Redis is not configured."""
    return _client


async def redis_status() -> str:
    """Readiness check result: ``ok``, ``disabled`` or ``error: <ExceptionName>``."""
    if _client is None:
        return "disabled"
    try:
        await _client.ping()
    except (redis.RedisError, OSError) as exc:
        return f"error: {type(exc).__name__}"
    return "ok"
