"""Build the configured response cache."""

from upstash_redis.asyncio import Redis

from chatrelay.core.config import get_settings
from chatrelay.core.logging import get_logger
from chatrelay.services.cache.base import ResponseCache
from chatrelay.services.cache.file import FileResponseCache
from chatrelay.services.cache.memory import MemoryResponseCache
from chatrelay.services.cache.redis import RedisResponseCache

logger = get_logger(__name__)


def create_redis_client() -> Redis | None:
    """Create an Upstash client, or ``None`` when Redis is not configured."""
    settings = get_settings()
    if not settings.redis_available:
        return None
    try:
        return Redis(
            url=settings.upstash_redis_rest_url,
            token=settings.upstash_redis_rest_token,
        )
    except Exception as e:
        logger.warning("Failed to initialize Redis client", error=str(e))
        return None


def create_response_cache() -> ResponseCache | None:
    """Create the cache selected by ``CACHE_BACKEND``; ``None`` disables caching."""
    settings = get_settings()
    backend = settings.cache_backend

    if not settings.cache_enabled or backend == "none":
        logger.info("Response cache disabled")
        return None

    if backend == "redis":
        client = create_redis_client()
        if client is not None:
            logger.info("Response cache initialized", backend="redis")
            return RedisResponseCache(client)
        logger.warning("Redis cache not configured, falling back to memory")
        backend = "memory"

    if backend == "file":
        logger.info("Response cache initialized", backend="file", path=settings.cache_dir)
        return FileResponseCache(settings.cache_dir)

    logger.info("Response cache initialized", backend="memory")
    return MemoryResponseCache()


# Global cache instance
_response_cache: ResponseCache | None = None
_initialized = False


def get_response_cache() -> ResponseCache | None:
    """Get or create the global response cache."""
    global _response_cache, _initialized

    if not _initialized:
        _response_cache = create_response_cache()
        _initialized = True

    return _response_cache
