# post_scheduler/infrastructure/redis_cache.py
import redis.asyncio as aioredis

from ..config import REDIS_URL

redis_client = aioredis.from_url(REDIS_URL, decode_responses=True)


async def is_access_jti_blacklisted(jti: str) -> bool:
    # written by the auth service on logout
    return await redis_client.exists(f"bl:{jti}") == 1
