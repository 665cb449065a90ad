"""In-process response cache."""

from dataclasses import dataclass

from chatrelay.services.cache.base import (
    Clock,
    ResponseCache,
    expires_at_for,
    is_expired,
    wall_clock,
)
from chatrelay.services.cache.constants import TTL_RESPONSE
from chatrelay.services.response import ChatResponse


@dataclass(frozen=True)
class CacheEntry:
    response: ChatResponse
    created_at: float
    expires_at: float


class MemoryResponseCache(ResponseCache):
    """Dict-backed cache local to one process.

    Lookups never await, so lookup-expire-delete runs atomically on the
    event loop.
    """

    def __init__(self, clock: Clock = wall_clock) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    async def lookup(self, key: str) -> ChatResponse | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if is_expired(entry.expires_at, self._clock()):
            del self._entries[key]
            return None
        return entry.response

    async def store(
        self, key: str, response: ChatResponse, ttl_seconds: int = TTL_RESPONSE
    ) -> bool:
        now = self._clock()
        self._entries[key] = CacheEntry(response, now, expires_at_for(ttl_seconds, now))
        return True

    async def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def clear(self) -> bool:
        self._entries.clear()
        return True

    def stats(self) -> dict[str, int]:
        """Entry counts without evicting anything."""
        now = self._clock()
        expired = sum(1 for e in self._entries.values() if is_expired(e.expires_at, now))
        return {
            "count": len(self._entries),
            "expired": expired,
            "valid": len(self._entries) - expired,
        }
