"""
Redis client initialization and connection management.

Redis holds the per-account recalculation locks so that two API workers
never rebuild the same ledger at the same time.
"""

import logging

import redis.asyncio as redis
from backend.app.core.config import settings

logger = logging.getLogger("courier_ledger.redis")


def create_redis_client(url: str = None) -> redis.Redis:
    """Build an async Redis client from the configured URL."""
    return redis.from_url(
        url or settings.redis_url,
        decode_responses=settings.redis_decode_responses,
    )


# Shared async Redis client
redis_client = create_redis_client()


async def get_redis():
    """
    FastAPI dependency returning the shared Redis client.

    Tests override this dependency with an in-memory stand-in.
    """
    return redis_client


async def ping_redis() -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await redis_client.ping()
    except Exception as exc:
        logger.warning("Redis ping failed", extra={"error": str(exc)})
        return False


async def close_redis() -> None:
    """Close the shared client on application shutdown."""
    await redis_client.aclose()
