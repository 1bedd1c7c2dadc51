"""
Short-lived storage for floor plan analyses that are not yet a quote.

One StagingCache lives per process (created in the app lifespan). Entries
expire after ttl_seconds; when the cache is full the oldest entry is dropped.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple

logger = logging.getLogger(__name__)


class StagingCache:
    def __init__(
        self,
        ttl_seconds: float = 900,
        max_entries: int = 128,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (expires_at, value), oldest first
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()

    def put(self, value: Any, key: Optional[str] = None) -> str:
        key = key or uuid.uuid4().hex
        with self._lock:
            self._purge_locked()
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.info("Staging cache full, evicted %s", evicted)
            self._entries[key] = (self._clock() + self.ttl_seconds, value)
        return key

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def pop(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is None or entry[0] <= self._clock():
            return None
        return entry[1]

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            self._purge_locked()
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
