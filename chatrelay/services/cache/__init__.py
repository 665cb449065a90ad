"""Response caching.

Cache-aside store for complete chat answers:
- Memory: dict per process, injectable clock
- File: one JSON document per key, atomic writes
- Redis: Upstash REST client, native TTL plus stored expiry

Keys come from ``make_key`` and look like ``chatbot:<sha256>``.
"""

from chatrelay.services.cache.base import ResponseCache, make_key
from chatrelay.services.cache.constants import KEY_PREFIX_RESPONSE, TTL_FOREVER, TTL_RESPONSE
from chatrelay.services.cache.file import FileResponseCache
from chatrelay.services.cache.memory import MemoryResponseCache
from chatrelay.services.cache.redis import RedisResponseCache
from chatrelay.services.cache.service import (
    create_redis_client,
    create_response_cache,
    get_response_cache,
)

__all__ = [
    # Constants
    "KEY_PREFIX_RESPONSE",
    "TTL_FOREVER",
    "TTL_RESPONSE",
    # Contract
    "ResponseCache",
    "make_key",
    # Backends
    "FileResponseCache",
    "MemoryResponseCache",
    "RedisResponseCache",
    # Factories
    "create_redis_client",
    "create_response_cache",
    "get_response_cache",
]
