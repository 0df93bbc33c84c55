"""In-memory cache of extracted decoder functions keyed by script version."""

from __future__ import annotations

import asyncio
import time
from typing import Callable

import structlog
from cachetools import LRUCache

from tubefetch.domain.entities.media import DecoderFunction, DecoderKind

log = structlog.get_logger(__name__)

CacheKey = tuple[str, DecoderKind]
DecoderBuilder = Callable[[], DecoderFunction]


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class DecoderCache:
    """Bounded LRU of ``DecoderFunction`` per ``(script_version, kind)``.

    Concurrent callers asking for the same key share one build: the first
    runs the builder, the others wait on the key's lock and read the
    cached result. A build that raises stores nothing, so the next caller
    retries. A key's lock lives only while callers are waiting on it.
    """

    def __init__(self, maxsize: int = 16) -> None:
        self._entries: LRUCache[CacheKey, DecoderFunction] = LRUCache(maxsize=maxsize)
        self._locks: dict[CacheKey, _KeyLock] = {}
        self.builds = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def peek(self, version: str, kind: DecoderKind) -> DecoderFunction | None:
        return self._entries.get((version, kind))

    async def get_or_build(
        self, version: str, kind: DecoderKind, builder: DecoderBuilder
    ) -> DecoderFunction:
        """Return the cached decoder for *version*/*kind*, building it once."""
        key = (version, kind)
        cached = self._entries.get(key)
        if cached is not None:
            return cached

        key_lock = self._locks.get(key)
        if key_lock is None:
            key_lock = self._locks[key] = _KeyLock()
        key_lock.users += 1
        try:
            return await self._build_locked(key, key_lock.lock, builder)
        finally:
            key_lock.users -= 1
            if key_lock.users == 0 and self._locks.get(key) is key_lock:
                del self._locks[key]

    async def _build_locked(
        self, key: CacheKey, lock: asyncio.Lock, builder: DecoderBuilder
    ) -> DecoderFunction:
        version, kind = key
        async with lock:
            cached = self._entries.get(key)
            if cached is not None:
                return cached

            started = time.perf_counter()
            decoder = await asyncio.to_thread(builder)
            self._entries[key] = decoder
            self.builds += 1
            log.info(
                "decoder_built",
                script_version=version,
                kind=kind.value,
                entry_point=decoder.entry_point,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )

        return decoder

    def clear(self) -> None:
        self._entries.clear()
