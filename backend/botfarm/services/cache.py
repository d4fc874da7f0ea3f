"""
In-memory cache for oracle responses

Entries are keyed by task name plus a digest of the request, expire after a
TTL, and are evicted least-recently-used once the cache is full.
"""

import hashlib
import json
import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple


def make_key(namespace: str, payload: Any) -> str:
    """Stable key from a namespace (task name) and a JSON-able payload."""
    encoded = json.dumps(payload, sort_keys=True, default=str)
    digest = hashlib.sha256(encoded.encode('utf-8')).hexdigest()[:32]
    return f"{namespace}:{digest}"


class ResponseCache:
    """Thread-safe TTL + LRU cache for validated oracle results"""

    def __init__(
        self,
        ttl_seconds: float = 86400,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def lookup(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                expires_at, value = entry
                if self._clock() < expires_at:
                    self._entries.move_to_end(key)
                    self.hits += 1
                    return value
                del self._entries[key]
            self.misses += 1
            return None

    def store(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.evictions += 1

    def invalidate(self, namespace: Optional[str] = None) -> int:
        """Drop every entry, or only those of one task namespace."""
        with self._lock:
            if namespace is None:
                dropped = len(self._entries)
                self._entries.clear()
                return dropped
            prefix = f"{namespace}:"
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            'entries': len(self._entries),
            'max_entries': self.max_entries,
            'hits': self.hits,
            'misses': self.misses,
            'evictions': self.evictions,
            'hit_rate': round(self.hits / lookups, 3) if lookups else 0.0,
        }
