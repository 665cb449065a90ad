"""Multi-turn conversation memory and its storage backends."""

from chatrelay.services.memory.conversation import ConversationMemory
from chatrelay.services.memory.service import (
    create_conversation_memory,
    create_memory_storage,
    get_conversation_memory,
)
from chatrelay.services.memory.storage import (
    DatabaseStorage,
    FileStorage,
    InMemoryStorage,
    MemoryStorage,
    RedisStorage,
)

__all__ = [
    "ConversationMemory",
    "DatabaseStorage",
    "FileStorage",
    "InMemoryStorage",
    "MemoryStorage",
    "RedisStorage",
    "create_conversation_memory",
    "create_memory_storage",
    "get_conversation_memory",
]
