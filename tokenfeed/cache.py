"""
TTL key/value cache shared by provider adapters and the orchestrator.

Entries are overwritten on refresh, purged on explicit invalidation, and
dropped lazily when read after expiry. Mutation is guarded by a lock so one
store can be shared by many request threads.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    expires_at: float


class CacheStore:
    """
    Generic TTL cache keyed by request fingerprint.

    Usage:
        store = CacheStore(default_ttl_s=30.0)
        store.put("ohlcv:wif:1h:latest:2000", result)
        store.get("ohlcv:wif:1h:latest:2000")   # result until the TTL elapses
    """

    def __init__(
        self,
        default_ttl_s: float = 30.0,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._default_ttl_s = default_ttl_s
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def default_ttl_s(self) -> float:
        return self._default_ttl_s

    def get(self, key: str, default: Any = None) -> Any:
        """Return the payload for key, or default if absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if now >= entry.expires_at:
                del self._entries[key]
                return default
            return entry.payload

    def contains(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def put(self, key: str, payload: Any, ttl_s: Optional[float] = None) -> CacheEntry:
        ttl = self._default_ttl_s if ttl_s is None else ttl_s
        entry = CacheEntry(key=key, payload=payload, expires_at=self._clock() + ttl)
        with self._lock:
            self._entries[key] = entry
        return entry

    def invalidate(self, key: Optional[str] = None, prefix: Optional[str] = None) -> int:
        """Drop one key, every key with a prefix, or everything. Returns count removed."""
        with self._lock:
            if key is not None:
                return 1 if self._entries.pop(key, None) is not None else 0
            if prefix is not None:
                doomed = [k for k in self._entries if k.startswith(prefix)]
                for k in doomed:
                    del self._entries[k]
                return len(doomed)
            n = len(self._entries)
            self._entries.clear()
            return n

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            doomed = [k for k, e in self._entries.items() if now >= e.expires_at]
            for k in doomed:
                del self._entries[k]
        if doomed:
            logger.debug("Purged %d expired cache entries", len(doomed))
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def teardown(self) -> None:
        self.invalidate()
