"""
Shared Redis connection (heartbeats, alert cooldowns, AI spend counters).
"""
_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from aidwatch.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    client = _redis_client
    _redis_client = None
    if client is not None:
        await client.aclose()
