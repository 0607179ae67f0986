"""
In-process TTL Cache.

Implements the Cache protocol for single-process deployments. Entries expire
against the injected clock, so tests can step time forward.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..core.clock import Clock, SystemClock


@dataclass
class MemoryCache:
    """
    Dict-backed cache with per-entry expiry.

    Expired entries are dropped lazily on read and by `cleanup_expired()`.
    """

    clock: Clock = field(default_factory=SystemClock)
    _entries: dict[str, tuple[Any, datetime]] = field(default_factory=dict)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if self.clock.now() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            self._entries.pop(key, None)
            return
        self._entries[key] = (value, self.clock.now() + timedelta(seconds=ttl_seconds))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def cleanup_expired(self) -> int:
        """
        Remove expired entries to prevent memory growth.

        Returns:
            Number of entries removed
        """
        now = self.clock.now()
        expired_keys = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired_keys:
            del self._entries[key]
        return len(expired_keys)

    def __len__(self) -> int:
        return len(self._entries)
