"""
BudgetDesk — Read-Through Cache

A TTLCache is constructed once per process and stored on app.state; route
handlers receive it through the get_cache dependency. Entries expire a
fixed TTL after insertion (reads do not extend them).

Keys are "<organizationId>:<namespace>[:<dimension>...]" so that
clear(org_prefix(org_id)) drops everything cached for one tenant.

There is no size bound: every distinct key lives until it expires and is
read, purged, or cleared.
"""
import time
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

from fastapi import Request

from budgetdesk.config import CACHE_TTL_SECONDS

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    key: str
    data: T
    timestamp: float


class TTLCache(Generic[T]):
    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def _fresh(self, entry: CacheEntry[T]) -> bool:
        return self._clock() - entry.timestamp < self.ttl

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not self._fresh(entry):
                del self._entries[key]
                return None
            return entry.data

    def set(self, key: str, data: T) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(key=key, data=data, timestamp=self._clock())

    def get_or_load(self, key: str, loader: Callable[[], T]) -> T:
        """Return the cached payload, or call loader() and cache its result."""
        cached = self.get(key)
        if cached is not None:
            return cached
        data = loader()
        self.set(key, data)
        return data

    def clear(self, prefix: str) -> int:
        """Remove every entry whose key starts with prefix. Returns the count removed."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        with self._lock:
            stale = [k for k, e in self._entries.items() if not self._fresh(e)]
            for k in stale:
                del self._entries[k]
            return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


# ============================================================
# KEYS
# ============================================================
def org_prefix(org_id: str) -> str:
    return f"{org_id}:"


def cache_key(org_id: str, namespace: str, *parts) -> str:
    return ":".join([org_id, namespace, *(str(p) for p in parts)])


# ============================================================
# DEPENDENCY
# ============================================================
def get_cache(request: Request) -> TTLCache:
    """Dependency: the process-wide cache service held on app.state."""
    return request.app.state.cache
