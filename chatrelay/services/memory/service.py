"""Build the configured conversation memory."""

from chatrelay.core.config import get_settings
from chatrelay.core.logging import get_logger
from chatrelay.db.session import get_engine
from chatrelay.services.cache.service import create_redis_client
from chatrelay.services.memory.conversation import ConversationMemory
from chatrelay.services.memory.storage import (
    DatabaseStorage,
    FileStorage,
    InMemoryStorage,
    MemoryStorage,
    RedisStorage,
)

logger = get_logger(__name__)


def create_memory_storage() -> MemoryStorage:
    """Storage selected by ``MEMORY_STORAGE``."""
    settings = get_settings()
    kind = settings.memory_storage

    if kind == "redis":
        client = create_redis_client()
        if client is not None:
            return RedisStorage(client, prefix=settings.memory_redis_prefix, ttl=settings.memory_ttl)
        logger.warning("Redis memory storage not configured, falling back to memory")
        kind = "memory"

    if kind == "file":
        return FileStorage(settings.memory_dir)
    if kind == "database":
        return DatabaseStorage(get_engine())
    return InMemoryStorage()


def create_conversation_memory() -> ConversationMemory:
    settings = get_settings()
    storage = create_memory_storage()
    logger.info(
        "Conversation memory initialized",
        storage=type(storage).__name__,
        enabled=settings.memory_enabled,
        max_history=settings.memory_max_history,
    )
    return ConversationMemory(
        storage,
        max_history=settings.memory_max_history,
        enabled=settings.memory_enabled,
    )


# Global memory instance
_memory: ConversationMemory | None = None


def get_conversation_memory() -> ConversationMemory:
    """Get or create the global conversation memory."""
    global _memory

    if _memory is None:
        _memory = create_conversation_memory()

    return _memory
