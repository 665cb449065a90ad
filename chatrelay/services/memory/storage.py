"""Storage backends for conversation memory.

Every backend implements ``MemoryStorage``: a session id maps to one JSON
document of the shape ``{"messages": [...], "updated_at": <epoch>}``.
"""

import asyncio
import copy
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import orjson
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from chatrelay.core.exceptions import InvalidConfigError, StorageError
from chatrelay.core.logging import get_logger
from chatrelay.db.models import ConversationRecord
from chatrelay.db.session import init_db, make_session_factory, session_scope
from chatrelay.services.cache.file import atomic_write

logger = get_logger(__name__)

SessionData = dict[str, Any]

REDIS_REQUIRED_METHODS = ("get", "set", "delete", "exists", "keys")


class MemoryStorage(ABC):
    """Capability interface every conversation store must satisfy."""

    @abstractmethod
    async def store(self, session_id: str, data: SessionData) -> bool:
        """Replace the document for ``session_id``."""

    @abstractmethod
    async def retrieve(self, session_id: str) -> SessionData | None:
        """Load the document for ``session_id``, ``None`` if absent or unreadable."""

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Remove one session."""

    @abstractmethod
    async def clear(self) -> bool:
        """Remove every session."""

    @abstractmethod
    async def exists(self, session_id: str) -> bool:
        """Whether a document is stored for ``session_id``."""

    async def check_health(self) -> bool:
        return True


def _decode(raw: str | bytes | None) -> SessionData | None:
    if not raw:
        return None
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


# ---------------------------------------------------------------------------
# In-process
# ---------------------------------------------------------------------------


class InMemoryStorage(MemoryStorage):
    """Dict-backed storage; contents vanish with the process."""

    def __init__(self) -> None:
        self._sessions: dict[str, SessionData] = {}

    async def store(self, session_id: str, data: SessionData) -> bool:
        self._sessions[session_id] = copy.deepcopy(data)
        return True

    async def retrieve(self, session_id: str) -> SessionData | None:
        data = self._sessions.get(session_id)
        return copy.deepcopy(data) if data is not None else None

    async def delete(self, session_id: str) -> bool:
        self._sessions.pop(session_id, None)
        return True

    async def clear(self) -> bool:
        self._sessions.clear()
        return True

    async def exists(self, session_id: str) -> bool:
        return session_id in self._sessions


# ---------------------------------------------------------------------------
# File
# ---------------------------------------------------------------------------


class FileStorage(MemoryStorage):
    """One JSON file per session under ``storage_path``."""

    extension = ".json"

    def __init__(self, storage_path: str | Path) -> None:
        self._path = Path(storage_path)
        try:
            self._path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create storage directory: {self._path}") from e

    @property
    def storage_path(self) -> Path:
        return self._path

    def _file(self, session_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_-]", "_", session_id)
        return self._path / f"{safe}{self.extension}"

    async def store(self, session_id: str, data: SessionData) -> bool:
        try:
            await asyncio.to_thread(atomic_write, self._file(session_id), orjson.dumps(data))
            return True
        except OSError as e:
            logger.warning("Memory store failed", session_id=session_id, error=str(e))
            return False

    async def retrieve(self, session_id: str) -> SessionData | None:
        path = self._file(session_id)

        def _read() -> bytes | None:
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None

        return _decode(await asyncio.to_thread(_read))

    async def delete(self, session_id: str) -> bool:
        await asyncio.to_thread(self._file(session_id).unlink, missing_ok=True)
        return True

    async def clear(self) -> bool:
        def _clear() -> bool:
            ok = True
            for path in self._path.glob(f"*{self.extension}"):
                try:
                    path.unlink()
                except OSError:
                    ok = False
            return ok

        return await asyncio.to_thread(_clear)

    async def exists(self, session_id: str) -> bool:
        return await asyncio.to_thread(self._file(session_id).exists)

    async def check_health(self) -> bool:
        return self._path.is_dir()


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------


class DatabaseStorage(MemoryStorage):
    """Rows in ``chatbot_conversations``; the table is created on first use."""

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._engine = engine
        self._session_factory = session_factory or make_session_factory(engine)
        self._ready = False
        self._init_lock = asyncio.Lock()

    async def _ensure_table(self) -> None:
        if self._ready:
            return
        async with self._init_lock:
            if not self._ready:
                await init_db(self._engine)
                self._ready = True

    async def store(self, session_id: str, data: SessionData) -> bool:
        await self._ensure_table()
        async with session_scope(self._session_factory) as session:
            await session.merge(
                ConversationRecord(session_id=session_id, data=orjson.dumps(data).decode())
            )
        return True

    async def retrieve(self, session_id: str) -> SessionData | None:
        await self._ensure_table()
        async with self._session_factory() as session:
            record = await session.get(ConversationRecord, session_id)
            return _decode(record.data) if record else None

    async def delete(self, session_id: str) -> bool:
        await self._ensure_table()
        async with session_scope(self._session_factory) as session:
            await session.execute(
                delete(ConversationRecord).where(ConversationRecord.session_id == session_id)
            )
        return True

    async def clear(self) -> bool:
        await self._ensure_table()
        async with session_scope(self._session_factory) as session:
            await session.execute(delete(ConversationRecord))
        return True

    async def exists(self, session_id: str) -> bool:
        await self._ensure_table()
        async with self._session_factory() as session:
            result = await session.execute(
                select(ConversationRecord.session_id).where(
                    ConversationRecord.session_id == session_id
                )
            )
            return result.scalar_one_or_none() is not None

    async def check_health(self) -> bool:
        from chatrelay.db.session import check_db_health

        return await check_db_health(self._engine)


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class RedisStorage(MemoryStorage):
    """Upstash Redis storage with an optional per-session TTL.

    The client must expose async ``get``, ``set``, ``delete``, ``exists``
    and ``keys``; anything else is rejected at construction time.
    """

    def __init__(self, client: Any, prefix: str = "chatbot:memory:", ttl: int = 0) -> None:
        missing = [m for m in REDIS_REQUIRED_METHODS if not callable(getattr(client, m, None))]
        if missing:
            raise InvalidConfigError(
                f"Redis client is missing required methods: {', '.join(missing)}"
            )
        self._client = client
        self.prefix = prefix
        self.ttl = ttl

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    async def store(self, session_id: str, data: SessionData) -> bool:
        value = orjson.dumps(data).decode()
        if self.ttl > 0:
            await self._client.set(self._key(session_id), value, ex=self.ttl)
        else:
            await self._client.set(self._key(session_id), value)
        return True

    async def retrieve(self, session_id: str) -> SessionData | None:
        return _decode(await self._client.get(self._key(session_id)))

    async def delete(self, session_id: str) -> bool:
        return bool(await self._client.delete(self._key(session_id)))

    async def clear(self) -> bool:
        keys = await self._client.keys(f"{self.prefix}*")
        if keys:
            await self._client.delete(*keys)
        return True

    async def exists(self, session_id: str) -> bool:
        return bool(await self._client.exists(self._key(session_id)))

    async def check_health(self) -> bool:
        try:
            return bool(await self._client.ping())
        except Exception as e:
            logger.error("Redis health check failed", error=str(e))
            return False
