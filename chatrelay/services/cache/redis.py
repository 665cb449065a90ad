"""Response cache on Upstash Redis."""

import asyncio

from upstash_redis.asyncio import Redis

from chatrelay.core.logging import get_logger
from chatrelay.services.cache.base import (
    Clock,
    ResponseCache,
    decode_entry,
    encode_entry,
    is_expired,
    wall_clock,
)
from chatrelay.services.cache.constants import KEY_PREFIX_RESPONSE, TTL_RESPONSE
from chatrelay.services.response import ChatResponse

logger = get_logger(__name__)


class RedisResponseCache(ResponseCache):
    """Shared cache with graceful degradation.

    Redis expires keys natively; the stored ``expires_at`` is still checked
    on read so a lookup at the exact expiry instant is a miss.
    """

    def __init__(self, client: Redis, clock: Clock = wall_clock) -> None:
        self._client = client
        self._clock = clock

    async def lookup(self, key: str) -> ChatResponse | None:
        try:
            raw = await self._client.get(key)
        except Exception as e:
            logger.debug("Cache get failed", key=key, error=str(e))
            return None
        if not raw:
            return None

        try:
            response, expires_at = decode_entry(raw)
        except ValueError:
            logger.debug("Removing corrupt cache entry", key=key)
            await self.invalidate(key)
            return None

        if is_expired(expires_at, self._clock()):
            await self.invalidate(key)
            return None
        return response

    async def store(
        self, key: str, response: ChatResponse, ttl_seconds: int = TTL_RESPONSE
    ) -> bool:
        value = encode_entry(response, ttl_seconds, self._clock()).decode()
        try:
            if ttl_seconds > 0:
                await self._client.set(key, value, ex=ttl_seconds)
            else:
                await self._client.set(key, value)
            return True
        except Exception as e:
            logger.debug("Cache set failed", key=key, error=str(e))
            return False

    async def invalidate(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except Exception as e:
            logger.debug("Cache delete failed", key=key, error=str(e))
            return False

    async def clear(self) -> bool:
        # Upstash supports KEYS; the namespace is small and owned by us
        try:
            keys = await self._client.keys(f"{KEY_PREFIX_RESPONSE}:*")
            if keys:
                await self._client.delete(*keys)
            return True
        except Exception as e:
            logger.debug("Cache delete pattern failed", error=str(e))
            return False

    async def check_health(self, timeout: float = 5.0) -> bool:
        """Check Redis connectivity with timeout."""
        try:
            result = await asyncio.wait_for(self._client.ping(), timeout=timeout)
            return bool(result)
        except asyncio.TimeoutError:
            logger.error("Redis health check timed out", timeout=timeout)
            return False
        except Exception as e:
            logger.error("Redis health check failed", error=str(e))
            return False
