"""Small in-process cache with per-entry expiry."""

from __future__ import annotations

import time
from typing import Callable, Generic, Hashable, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Maps keys to ``(value, expires_at)`` pairs.

    Expired entries are dropped lazily on read and by :meth:`prune`.
    """

    def __init__(
        self,
        default_ttl: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[V, float]] = {}

    def get(self, key: Hashable) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: Hashable, value: V, ttl: float | None = None) -> None:
        lifetime = self._default_ttl if ttl is None else ttl
        if lifetime <= 0:
            return
        self._entries[key] = (value, self._clock() + lifetime)

    def invalidate(self, key: Hashable | None = None) -> None:
        """Drop one key, or every key when ``key`` is ``None``."""

        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def prune(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
