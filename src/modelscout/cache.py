"""Process-lifetime TTL cache for registry responses.

Entries carry an absolute expiry instant set at insertion. There is no
capacity bound and no background sweep: a stale entry is evicted by the lookup
that finds it.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class TTLCache:
    """Mapping from request fingerprint to a previously computed result."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._store: Dict[str, CacheEntry[Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        """Return the live value for ``key`` or ``None`` on a miss."""
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._store[key]
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._store[key] = CacheEntry(value, self._clock() + ttl_seconds)

    def clear(self) -> None:
        self._store.clear()

    def __contains__(self, key: object) -> bool:
        # Membership only; does not evict.
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)


def make_cache_key(namespace: str, params: Any) -> str:
    """Deterministically serialise ``params`` (a dataclass or mapping)."""
    if is_dataclass(params) and not isinstance(params, type):
        payload = asdict(params)
    else:
        payload = dict(params)
    return f"{namespace}:{json.dumps(payload, sort_keys=True, default=str)}"


_default_cache: Optional[TTLCache] = None


def get_default_cache() -> TTLCache:
    """Shared cache used when a client is built without one."""
    global _default_cache
    if _default_cache is None:
        _default_cache = TTLCache()
    return _default_cache


__all__ = ["TTLCache", "CacheEntry", "make_cache_key", "get_default_cache"]
