"""Redis client for the change-feed relay.

Redis is optional: without it the change feed still delivers to
subscribers of the same process, it just is not relayed between
API processes.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError

from src.config.settings import Settings
from src.core.logging import get_logger


logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


async def init_redis(settings: Settings) -> redis.Redis | None:
    """Connect to Redis.

    Returns:
        The client, or None when the server cannot be reached
    """
    global _redis_client  # noqa: PLW0603 - Required for DI pattern

    client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=True,
        health_check_interval=settings.redis_health_check_interval,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning("redis_unavailable", error=str(e))
        await client.aclose()
        return None

    logger.info("redis_connected", max_connections=settings.redis_max_connections)
    _redis_client = client
    return client


async def shutdown_redis() -> None:
    """Close the client if one was opened."""
    global _redis_client  # noqa: PLW0603 - Required for DI pattern

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_disconnected")


def get_redis() -> redis.Redis | None:
    return _redis_client
