"""Response cache contract and key derivation."""

import hashlib
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any

import orjson

from chatrelay.core.logging import get_logger
from chatrelay.services.cache.constants import (
    KEY_DEFAULT_MAX_TOKENS,
    KEY_DEFAULT_MODEL,
    KEY_DEFAULT_PROMPT,
    KEY_DEFAULT_TEMPERATURE,
    KEY_PREFIX_RESPONSE,
    TTL_RESPONSE,
)
from chatrelay.services.response import ChatResponse

logger = get_logger(__name__)

Clock = Callable[[], float]


def make_key(message: str, context: Mapping[str, Any] | None = None) -> str:
    """Derive the cache key for a message and its context.

    Only the model, prompt, system instructions, temperature, max_tokens and
    any mapping under ``cache_key_components`` take part; every other context
    key is ignored.
    """
    context = context or {}
    material: dict[str, Any] = {
        "input": message,
        "model": context.get("model", KEY_DEFAULT_MODEL),
        "prompt": context.get("prompt", KEY_DEFAULT_PROMPT),
        "system_instructions": context.get("system_instructions", KEY_DEFAULT_PROMPT),
        "temperature": context.get("temperature", KEY_DEFAULT_TEMPERATURE),
        "max_tokens": context.get("max_tokens", KEY_DEFAULT_MAX_TOKENS),
    }
    extra = context.get("cache_key_components")
    if isinstance(extra, Mapping):
        material.update(extra)

    canonical = orjson.dumps(
        material,
        option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
        default=str,
    )
    return f"{KEY_PREFIX_RESPONSE}:{hashlib.sha256(canonical).hexdigest()}"


def expires_at_for(ttl_seconds: int, now: float) -> float:
    """Absolute expiry for a TTL; 0 means never."""
    return now + ttl_seconds if ttl_seconds > 0 else 0


def is_expired(expires_at: float, now: float) -> bool:
    return expires_at != 0 and expires_at <= now


def encode_entry(response: ChatResponse, ttl_seconds: int, now: float) -> bytes:
    return orjson.dumps(
        {
            "response": response.to_dict(),
            "created_at": now,
            "expires_at": expires_at_for(ttl_seconds, now),
        }
    )


def decode_entry(raw: str | bytes) -> tuple[ChatResponse, float]:
    """Parse a stored entry into ``(response, expires_at)``.

    Raises:
        ValueError: If the entry is corrupt.
    """
    data = orjson.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Cache entry is not an object")
    expires_at = data.get("expires_at", 0)
    if not isinstance(expires_at, (int, float)):
        raise ValueError("Cache entry has no valid expiry")
    return ChatResponse.from_dict(data.get("response")), float(expires_at)


class ResponseCache(ABC):
    """Key-addressed store of previously computed answers with expiry.

    Reads are self-healing: a lookup that finds an expired or corrupt
    entry deletes it before reporting the miss.
    """

    make_key = staticmethod(make_key)

    @abstractmethod
    async def lookup(self, key: str) -> ChatResponse | None:
        """Return the live entry for ``key`` or ``None``."""

    @abstractmethod
    async def store(
        self, key: str, response: ChatResponse, ttl_seconds: int = TTL_RESPONSE
    ) -> bool:
        """Store ``response``; a TTL of 0 never expires."""

    @abstractmethod
    async def invalidate(self, key: str) -> bool:
        """Delete ``key``; True if something was removed."""

    @abstractmethod
    async def clear(self) -> bool:
        """Remove every cached response."""

    async def has(self, key: str) -> bool:
        return await self.lookup(key) is not None

    async def check_health(self) -> bool:
        return True

    async def close(self) -> None:
        """Release any held resources."""


def wall_clock() -> float:
    return time.time()
