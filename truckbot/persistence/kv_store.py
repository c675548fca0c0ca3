from __future__ import annotations

import time
from threading import Lock
from typing import Callable, Generic, Protocol, TypeVar

V = TypeVar("V")

Clock = Callable[[], float]


class KeyValueStore(Protocol[V]):
    """Minimal store the session layer depends on."""

    def get(self, key: str) -> V | None: ...

    def set(self, key: str, value: V) -> None: ...

    def evict(self, key: str) -> None: ...

    def evict_expired(self) -> list[str]: ...


class InMemoryKeyValueStore(Generic[V]):
    """Process-local store with idle TTL and a max-entries cap.

    Entries are expired lazily on every access, least recently written first
    when the cap is exceeded.
    """

    def __init__(
        self,
        ttl_seconds: float | None = 3600.0,
        max_entries: int | None = 1000,
        clock: Clock = time.time,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[float, V]] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> V | None:
        with self._lock:
            self._evict_expired_locked()
            entry = self._entries.get(key)
            return entry[1] if entry else None

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (self._clock(), value)
            self._prune_locked()

    def evict(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def evict_expired(self) -> list[str]:
        with self._lock:
            return self._evict_expired_locked()

    def _evict_expired_locked(self) -> list[str]:
        if not self._ttl_seconds:
            return []
        now = self._clock()
        expired = [key for key, (written_at, _) in self._entries.items() if now - written_at > self._ttl_seconds]
        for key in expired:
            del self._entries[key]
        return expired

    def _prune_locked(self) -> None:
        if not self._max_entries or self._max_entries <= 0:
            return
        overflow = len(self._entries) - self._max_entries
        if overflow <= 0:
            return
        # dict order is write order because set() re-inserts the key
        for key in list(self._entries)[:overflow]:
            del self._entries[key]
