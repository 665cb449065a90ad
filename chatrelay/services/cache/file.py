"""File-backed response cache, one JSON document per key."""

import asyncio
import os
import tempfile
from pathlib import Path

from chatrelay.core.exceptions import StorageError
from chatrelay.core.logging import get_logger
from chatrelay.services.cache.base import (
    Clock,
    ResponseCache,
    decode_entry,
    encode_entry,
    is_expired,
    wall_clock,
)
from chatrelay.services.cache.constants import FILE_PREFIX_RESPONSE, TTL_RESPONSE
from chatrelay.services.response import ChatResponse

logger = get_logger(__name__)


def atomic_write(path: Path, data: bytes) -> None:
    """Write via a sibling temp file and rename over the target."""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class FileResponseCache(ResponseCache):
    """Persistent cache for single-host deployments."""

    def __init__(self, cache_dir: str | Path, clock: Clock = wall_clock) -> None:
        self._dir = Path(cache_dir)
        self._clock = clock
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create cache directory: {self._dir}") from e
        if not os.access(self._dir, os.W_OK):
            raise StorageError(f"Cache directory is not writable: {self._dir}")

    def _path(self, key: str) -> Path:
        _, _, digest = key.rpartition(":")
        return self._dir / f"{FILE_PREFIX_RESPONSE}{digest}.json"

    def _lookup_sync(self, path: Path) -> ChatResponse | None:
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        try:
            response, expires_at = decode_entry(raw)
        except ValueError:
            logger.debug("Removing corrupt cache file", path=str(path))
            path.unlink(missing_ok=True)
            return None
        if is_expired(expires_at, self._clock()):
            path.unlink(missing_ok=True)
            return None
        return response

    async def lookup(self, key: str) -> ChatResponse | None:
        return await asyncio.to_thread(self._lookup_sync, self._path(key))

    async def store(
        self, key: str, response: ChatResponse, ttl_seconds: int = TTL_RESPONSE
    ) -> bool:
        payload = encode_entry(response, ttl_seconds, self._clock())
        try:
            await asyncio.to_thread(atomic_write, self._path(key), payload)
            return True
        except OSError as e:
            logger.debug("Cache set failed", key=key, error=str(e))
            return False

    async def invalidate(self, key: str) -> bool:
        path = self._path(key)

        def _delete() -> bool:
            try:
                path.unlink()
                return True
            except FileNotFoundError:
                return False

        return await asyncio.to_thread(_delete)

    def _files(self) -> list[Path]:
        return list(self._dir.glob(f"{FILE_PREFIX_RESPONSE}*.json"))

    async def clear(self) -> bool:
        def _clear() -> bool:
            ok = True
            for path in self._files():
                try:
                    path.unlink(missing_ok=True)
                except OSError:
                    ok = False
            return ok

        return await asyncio.to_thread(_clear)

    async def gc(self) -> int:
        """Delete expired and corrupt files; returns how many were removed."""

        def _sweep() -> int:
            removed = 0
            for path in self._files():
                if self._lookup_sync(path) is None and not path.exists():
                    removed += 1
            return removed

        return await asyncio.to_thread(_sweep)

    async def check_health(self) -> bool:
        return self._dir.is_dir() and os.access(self._dir, os.W_OK)
