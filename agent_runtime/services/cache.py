"""Thread-safe in-memory TTL cache used for tool-server discovery results.

Design decisions
────────────────
• **ToolCache protocol** (``get`` / ``set`` / ``is_expired``) is what callers
  depend on, so the store behind it can be this in-memory cache, a shared
  cache service, or a fake in tests.
• **OrderedDict** with an entry ceiling: the least-recently-written entry is
  evicted first once ``max_entries`` is reached.
• **threading.Lock** for thread safety (chat requests run on worker threads).
  Concurrent refreshes of the same key are last-writer-wins.
• **Injectable clock** so expiry can be tested without sleeping.
• Purely ephemeral - data is lost on process restart, which is acceptable
  for this use-case.

Usage
─────
>>> cache = TTLCache(ttl_seconds=3600)
>>> cache.set("https://tools.example.com/mcp", [tool1, tool2])
>>> cache.get("https://tools.example.com/mcp")
[tool1, tool2]
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Discovered tool lists are refreshed hourly
DEFAULT_TTL_SECONDS = 60 * 60
DEFAULT_MAX_ENTRIES = 512


class ToolCache(Protocol):
    """Minimal cache contract used by the tool discovery client."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def is_expired(self, key: str) -> bool: ...


class TTLCache:
    """Time-bounded cache with a ceiling on the number of entries."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        # key → (value, stored_at)
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = threading.Lock()

    # ── Core operations ──────────────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` if missing or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at >= self._ttl:
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        """Insert or overwrite *key*, evicting the oldest entry if full."""
        with self._lock:
            if key in self._store:
                self._store.pop(key)
            while len(self._store) >= self._max_entries and self._store:
                evicted_key, _ = self._store.popitem(last=False)
                logger.debug("Cache: evicted %s", evicted_key)
            self._store[key] = (value, self._clock())

    def is_expired(self, key: str) -> bool:
        """``True`` when *key* is missing or older than the TTL."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return True
            return self._clock() - entry[1] >= self._ttl

    def invalidate(self, key: str) -> bool:
        """Remove a single key.  Returns ``True`` if the key existed."""
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            self._store.clear()

    # ── Introspection ────────────────────────────────────────────────

    @property
    def entry_count(self) -> int:
        """Number of entries currently stored, expired ones included."""
        return len(self._store)


# ── Process-wide default ────────────────────────────────────────────
# Shared by every chat request unless a different cache is injected.
tool_discovery_cache = TTLCache()
