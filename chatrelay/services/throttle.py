"""Per-key sliding-window throttling.

Two gates share one contract: ``MemoryThrottleGate`` for a single
process and ``RedisThrottleGate`` backed by an Upstash Redis sorted set.
Both keep a log of admitted request timestamps per key; a request is
admitted while fewer than ``max_requests`` timestamps remain inside the
window. Rejected attempts are never recorded.
"""

import asyncio
import math
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from chatrelay.core.config import get_settings
from chatrelay.core.exceptions import ThrottleExceeded
from chatrelay.core.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class ThrottleDecision:
    """Outcome of a throttle check, usable without exceptions."""

    allowed: bool
    key: str
    limit: int
    window: int
    remaining: int
    reset_in: int

    def error(self) -> ThrottleExceeded:
        return ThrottleExceeded(self.key, self.limit, self.window, self.reset_in)


class ThrottleGate(ABC):
    """Sliding-window admission control contract."""

    @abstractmethod
    async def admit(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Record and admit a request if the window has room."""

    @abstractmethod
    async def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        """Requests still available in the current window."""

    @abstractmethod
    async def reset_in(self, key: str, window_seconds: int) -> int:
        """Whole seconds until the oldest admitted request leaves the window."""

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Forget all requests for ``key``."""

    @abstractmethod
    async def clear(self) -> None:
        """Forget all requests for every key."""

    async def check(self, key: str, max_requests: int, window_seconds: int) -> ThrottleDecision:
        """Admit and describe the result as a ``ThrottleDecision``."""
        allowed = await self.admit(key, max_requests, window_seconds)
        return ThrottleDecision(
            allowed=allowed,
            key=key,
            limit=max_requests,
            window=window_seconds,
            remaining=await self.remaining(key, max_requests, window_seconds),
            reset_in=0 if allowed else await self.reset_in(key, window_seconds),
        )

    async def close(self) -> None:
        """Release any held resources."""


class MemoryThrottleGate(ThrottleGate):
    """In-process gate; one ``asyncio.Lock`` makes purge-count-append atomic."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._buckets: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()

    def _purge(self, key: str, window_seconds: int, now: float) -> deque[float]:
        bucket = self._buckets.get(key)
        if bucket is None:
            return deque()
        cutoff = now - window_seconds
        while bucket and bucket[0] <= cutoff:
            bucket.popleft()
        return bucket

    async def admit(self, key: str, max_requests: int, window_seconds: int) -> bool:
        async with self._lock:
            now = self._clock()
            bucket = self._purge(key, window_seconds, now)
            if len(bucket) >= max_requests:
                return False
            self._buckets.setdefault(key, bucket).append(now)
            return True

    async def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        async with self._lock:
            bucket = self._purge(key, window_seconds, self._clock())
            return max(0, max_requests - len(bucket))

    async def reset_in(self, key: str, window_seconds: int) -> int:
        async with self._lock:
            now = self._clock()
            bucket = self._purge(key, window_seconds, now)
            if not bucket:
                return 0
            return max(0, math.ceil(bucket[0] + window_seconds - now))

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._buckets.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._buckets.clear()


# Purge, count and conditionally add in one atomic step.
ADMIT_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
if count >= limit then
    return {0, count}
end
redis.call('ZADD', key, now, ARGV[4])
redis.call('EXPIRE', key, window + 1)
return {1, count + 1}
"""


class RedisThrottleGate(ThrottleGate):
    """Gate backed by Upstash Redis REST, shared across processes.

    Uses a persistent httpx.AsyncClient for connection reuse. Transport
    failures fail open: the request is admitted and the error logged.
    """

    def __init__(
        self,
        url: str | None = None,
        token: str | None = None,
        prefix: str = "chatbot:ratelimit:",
        clock: Clock = time.time,
    ) -> None:
        settings = get_settings()
        self._url = (url or settings.upstash_redis_rest_url).rstrip("/")
        self._token = token or settings.upstash_redis_rest_token
        self._prefix = prefix
        self._clock = clock
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create persistent HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(5.0, connect=2.0),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                headers={"Authorization": f"Bearer {self._token}"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def _pipeline(self, commands: list[list[str]]) -> list[object]:
        client = await self._get_client()
        response = await client.post(f"{self._url}/pipeline", json=commands)
        response.raise_for_status()
        return [item.get("result") for item in response.json()]

    async def admit(self, key: str, max_requests: int, window_seconds: int) -> bool:
        now = self._clock()
        member = f"{now}:{uuid.uuid4().hex}"
        try:
            (result,) = await self._pipeline(
                [
                    [
                        "EVAL",
                        ADMIT_SCRIPT,
                        "1",
                        self._key(key),
                        str(now),
                        str(window_seconds),
                        str(max_requests),
                        member,
                    ]
                ]
            )
            return bool(result and int(result[0]) == 1)  # type: ignore[index]
        except Exception as e:
            logger.warning("Rate limit check failed", key=key, error=str(e))
            return True

    async def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        cutoff = self._clock() - window_seconds
        try:
            _, count = await self._pipeline(
                [
                    ["ZREMRANGEBYSCORE", self._key(key), "-inf", str(cutoff)],
                    ["ZCARD", self._key(key)],
                ]
            )
            return max(0, max_requests - int(count or 0))  # type: ignore[call-overload]
        except Exception as e:
            logger.warning("Rate limit lookup failed", key=key, error=str(e))
            return max_requests

    async def reset_in(self, key: str, window_seconds: int) -> int:
        now = self._clock()
        try:
            _, oldest = await self._pipeline(
                [
                    ["ZREMRANGEBYSCORE", self._key(key), "-inf", str(now - window_seconds)],
                    ["ZRANGE", self._key(key), "0", "0", "WITHSCORES"],
                ]
            )
        except Exception as e:
            logger.warning("Rate limit lookup failed", key=key, error=str(e))
            return 0
        if not oldest:
            return 0
        oldest_score = float(oldest[1])  # type: ignore[index]
        return max(0, math.ceil(oldest_score + window_seconds - now))

    async def reset(self, key: str) -> None:
        try:
            await self._pipeline([["DEL", self._key(key)]])
        except Exception as e:
            logger.warning("Rate limit reset failed", key=key, error=str(e))

    async def clear(self) -> None:
        try:
            (keys,) = await self._pipeline([["KEYS", f"{self._prefix}*"]])
            if keys:
                await self._pipeline([["DEL", *keys]])  # type: ignore[misc]
        except Exception as e:
            logger.warning("Rate limit clear failed", error=str(e))

    async def check_health(self) -> bool:
        try:
            (result,) = await self._pipeline([["PING"]])
            return result == "PONG"
        except Exception as e:
            logger.error("Redis health check failed", error=str(e))
            return False


def create_throttle_gate() -> ThrottleGate | None:
    """Build the configured gate, or ``None`` when throttling is off."""
    settings = get_settings()
    if not settings.rate_limit_enabled:
        logger.info("Rate limiting disabled")
        return None
    if settings.rate_limit_backend == "redis":
        if not settings.redis_available:
            logger.warning("Redis rate limiting requested but not configured, using memory")
            return MemoryThrottleGate()
        logger.info("Rate limiting initialized", backend="redis")
        return RedisThrottleGate()
    logger.info("Rate limiting initialized", backend="memory")
    return MemoryThrottleGate()
