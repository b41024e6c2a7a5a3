"""
PATCHBAY Response Cache

Fingerprints a request by (code, language, action) and keeps recent model
replies in memory so repeated requests never leave the process.

  - TTL expiry is lazy: checked against a stored timestamp on access.
  - Capacity is hard: a new key at capacity evicts exactly one
    least-recently-accessed entry before it is stored.
  - Disabled cache: get() always misses, set() stores nothing.
"""

from __future__ import annotations

import hashlib
import threading
from collections import OrderedDict
from dataclasses import dataclass

from loguru import logger
from pydantic import BaseModel

from patchbay.clock import Clock, system_clock


# ---------------------------------------------------------------------------
# Cache Key
# ---------------------------------------------------------------------------

def cache_key(code: str, language: str, action: str) -> str:
    """Deterministic SHA-256 fingerprint of a request.

    Each field is trimmed, length-prefixed and NUL-separated so that moving
    characters between fields always changes the digest input.
    """
    digest = hashlib.sha256()
    for field in (code, language, action):
        value = (field or "").strip().encode("utf-8")
        digest.update(str(len(value)).encode("ascii"))
        digest.update(b"\x00")
        digest.update(value)
        digest.update(b"\x00")
    return digest.hexdigest()


# ---------------------------------------------------------------------------
# Entries + Stats
# ---------------------------------------------------------------------------

@dataclass
class CacheEntry:
    key: str
    value: str
    created_at: float
    expires_at: float
    last_accessed_at: float

    def expired(self, now: float) -> bool:
        return self.expires_at <= now


class CacheStats(BaseModel):
    item_count: int
    max_items: int
    ttl_minutes: float
    enabled: bool
    hits: int = 0
    misses: int = 0
    evictions: int = 0


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class ResponseCache:
    """Thread-safe TTL + LRU store of model responses."""

    def __init__(
        self,
        max_items: int = 100,
        ttl_minutes: float = 60,
        enabled: bool = True,
        clock: Clock = system_clock,
    ):
        if max_items < 1:
            raise ValueError(f"max_items must be positive, got {max_items}")
        if ttl_minutes <= 0:
            raise ValueError(f"ttl_minutes must be positive, got {ttl_minutes}")

        self.max_items = max_items
        self.ttl_minutes = ttl_minutes
        self.enabled = enabled
        self._clock = clock
        # Ordered least-recently-accessed first
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def ttl_seconds(self) -> float:
        return self.ttl_minutes * 60.0

    def get(self, key: str) -> str | None:
        if not self.enabled:
            return None

        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expired(now):
                del self._entries[key]
                self._misses += 1
                logger.debug(f"[CACHE] Expired {key[:12]}")
                return None

            entry.last_accessed_at = now
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: str) -> None:
        if not self.enabled:
            return

        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_items:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug(f"[CACHE] Evicted LRU entry {evicted[:12]}")

            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                created_at=now,
                expires_at=now + self.ttl_seconds,
                last_accessed_at=now,
            )

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            stale = [k for k, e in self._entries.items() if e.expired(now)]
            for k in stale:
                del self._entries[k]
        if stale:
            logger.debug(f"[CACHE] Purged {len(stale)} expired entries")
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("[CACHE] Cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                item_count=len(self._entries),
                max_items=self.max_items,
                ttl_minutes=self.ttl_minutes,
                enabled=self.enabled,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )
