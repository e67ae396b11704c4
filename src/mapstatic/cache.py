"""In-memory TTL cache for tile and marker icon bodies."""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable


_LOGGER = logging.getLogger("mapstatic.cache")


class TileCache:
    """TTL cache keyed by request identity (``GET:<url>``).

    Expired entries are dropped lazily when read and swept on every ``set``.
    ``max_entries`` adds least-recently-used eviction on top of the TTL.
    All public methods hold the lock, so one cache can back several
    concurrent renders.
    """

    def __init__(
        self,
        ttl_s: float = 3600,
        *,
        enabled: bool = True,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1 when set")
        self._ttl_s = max(float(ttl_s), 0.0)
        self._enabled = bool(enabled)
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[bytes, float]] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def ttl_s(self) -> float:
        return self._ttl_s

    def get(self, key: str) -> bytes | None:
        if not self._enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            body, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return body

    def set(self, key: str, body: bytes) -> None:
        if not self._enabled:
            return
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries[key] = (body, now + self._ttl_s)
            self._entries.move_to_end(key)
            if self._max_entries is not None:
                while len(self._entries) > self._max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    _LOGGER.debug("Evicted cache entry %s", evicted)

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
