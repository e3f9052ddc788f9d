"""
tka_invoice/cache.py

Small in-process TTL cache for list/stat queries.

One instance lives on the app (app.extensions["query_cache"]); services reach
it through get_query_cache() and invalidate by key prefix after mutations.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Dict, Optional, Tuple

from flask import current_app


class QueryCache:
    """Thread-safe TTL cache suitable for single-process deployments."""

    def __init__(self, default_ttl: int = 300):
        self.default_ttl = default_ttl
        self._store: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        now = time.time()
        with self._lock:
            item = self._store.get(key)
            if not item:
                return None
            value, exp = item
            if exp < now:
                self._store.pop(key, None)
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        exp = time.time() + max(1, int(ttl))
        with self._lock:
            self._store[key] = (value, exp)

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._store if k.startswith(prefix)]
            for key in doomed:
                del self._store[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


def get_query_cache() -> QueryCache:
    return current_app.extensions["query_cache"]
