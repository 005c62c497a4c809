"""Short-lived in-process cache for computed leaderboards."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple
from uuid import UUID


def leaderboard_key(class_id: UUID) -> str:
    return f"leaderboard:{class_id}"


def public_leaderboard_key(slug: str) -> str:
    return f"public-leaderboard:{slug}"


class LeaderboardCache:
    """Key/value store with per-entry TTL.

    Handlers run on worker threads, so every operation takes the lock. Values
    are expected to be plain serialized data (dicts, lists, scalars); callers
    rebuild their models from them on each hit.

    Every key carries a generation that ``delete`` bumps. A reader takes the
    generation before computing and hands it to ``set``; the value is dropped
    when an invalidation landed in between.
    """

    def __init__(self, default_ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._generations: Dict[str, int] = {}
        self._counter = 0
        self._cleared_at = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def _generation(self, key: str) -> int:
        return max(self._generations.get(key, 0), self._cleared_at)

    def generation(self, key: str) -> int:
        with self._lock:
            return self._generation(key)

    def set(self, key: str, value: Any, ttl: Optional[float] = None, generation: Optional[int] = None) -> bool:
        """Store ``value``; returns False when ``generation`` is no longer current."""
        expires_at = self._clock() + (self.default_ttl if ttl is None else ttl)
        with self._lock:
            if generation is not None and self._generation(key) != generation:
                return False
            self._entries[key] = (value, expires_at)
            return True

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)
                self._counter += 1
                self._generations[key] = self._counter

    def clear(self) -> None:
        with self._lock:
            self._counter += 1
            self._cleared_at = self._counter
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
