# cobrina/cache.py
from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    """
    Small read-through cache with a fixed time-to-live.

    Entries are evicted lazily: an expired key is dropped on the next lookup.
    `clock` returns seconds and is injectable for tests.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = float(ttl_seconds)
        self._clock = clock
        self._store: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        hit = self._store.get(key)
        if hit is None:
            return None
        expires_at, value = hit
        if self._clock() >= expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._store[key] = (self._clock() + self.ttl, value)

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is None:
            value = compute()
            self.set(key, value)
        return value

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


def filter_key(prefix: str, filters: dict) -> str:
    """Deterministic, case-insensitive key for a filter set (empty values ignored)."""
    clean = {
        str(k): v
        for k, v in sorted(filters.items())
        if v is not None and v != "" and v != []
    }
    return f"{prefix}:{json.dumps(clean, sort_keys=True, default=str)}".lower()
