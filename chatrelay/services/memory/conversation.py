"""Per-session conversation memory."""

import asyncio
import time
import weakref
from collections.abc import Callable
from typing import Any

from chatrelay.core.exceptions import InvalidConfigError
from chatrelay.core.logging import get_logger
from chatrelay.services.memory.storage import MemoryStorage

logger = get_logger(__name__)

Turn = dict[str, Any]


class ConversationMemory:
    """Ordered message log per session, trimmed to ``max_history`` turns.

    Appends to one session run under that session's lock so concurrent
    read-modify-write cycles never lose a turn; different sessions never
    wait on each other. Disabling hides history without deleting it.
    """

    def __init__(
        self,
        storage: MemoryStorage,
        max_history: int = 20,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not isinstance(storage, MemoryStorage):
            raise InvalidConfigError(
                f"Conversation storage must implement MemoryStorage, got {type(storage).__name__}"
            )
        self._storage = storage
        self.max_history = max_history
        self._enabled = enabled
        self._clock = clock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def storage(self) -> MemoryStorage:
        return self._storage

    @property
    def max_history(self) -> int:
        return self._max_history

    @max_history.setter
    def max_history(self, value: int) -> None:
        if value < 0:
            raise ValueError("max_history must be >= 0")
        self._max_history = value

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        """Lock shared by every in-flight operation on ``session_id``; dropped once unused."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    async def append(self, session_id: str, role: str, content: str) -> bool:
        """Add a turn and trim the oldest ones past ``max_history``."""
        if not self._enabled:
            return False

        async with self._lock_for(session_id):
            data = await self._storage.retrieve(session_id) or {}
            messages: list[Turn] = list(data.get("messages") or [])
            now = int(self._clock())
            messages.append({"role": role, "content": content, "timestamp": now})

            if self._max_history > 0 and len(messages) > self._max_history:
                messages = messages[-self._max_history :]

            return await self._storage.store(
                session_id, {"messages": messages, "updated_at": now}
            )

    async def history(self, session_id: str) -> list[Turn]:
        if not self._enabled:
            return []
        data = await self._storage.retrieve(session_id)
        if not data:
            return []
        return list(data.get("messages") or [])

    async def formatted_history(self, session_id: str) -> list[dict[str, str]]:
        """History as ``{role, content}`` pairs ready to send to a backend."""
        return [
            {"role": turn["role"], "content": turn["content"]}
            for turn in await self.history(session_id)
        ]

    async def message_count(self, session_id: str) -> int:
        return len(await self.history(session_id))

    async def clear(self, session_id: str) -> bool:
        async with self._lock_for(session_id):
            return await self._storage.delete(session_id)

    async def clear_all(self) -> bool:
        return await self._storage.clear()

    async def exists(self, session_id: str) -> bool:
        return await self._storage.exists(session_id)
