"""
Result cache for compliance analyses.

LRU cache keyed by (code, framework) with TTL support. Identical code
analyzed against the same framework is served from memory instead of
calling the reasoning service again.

Features:
- Content hash keys (SHA-256 over normalized code + framework)
- Lazy expiry on read plus an explicit cleanup sweep
- Strict LRU eviction ("use" = a get hit or a set)
- Hit/miss tracking since creation or the last clear()
- Thread-safe: a single lock guards entries, recency and counters
"""

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from .common_types import AnalysisResponse, Framework


logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 1000
DEFAULT_TTL_SECONDS = 3600.0


@dataclass
class CacheEntry:
    """A cached response. The cache owns the response once stored."""
    key: str
    response: AnalysisResponse
    inserted_at: float
    hits: int = 0


def normalize_code(code: str) -> str:
    """Normalize line endings and trailing whitespace before hashing."""
    return code.replace("\r\n", "\n").replace("\r", "\n").rstrip()


def make_cache_key(code: str, framework: "Framework | str") -> str:
    """Deterministic cache key for a (code, framework) pair."""
    framework_name = Framework.parse(framework).value
    # NUL separator so "ab" + "c" and "a" + "bc" cannot collide
    payload = f"{framework_name}\x00{normalize_code(code)}"
    return hashlib.sha256(payload.encode("utf-8", errors="surrogatepass")).hexdigest()


class ResultCache:
    """LRU cache for analysis responses with TTL support."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # Ordered oldest-used first; move_to_end marks most recently used
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at >= self.ttl_seconds

    def get(self, code: str, framework: "Framework | str") -> AnalysisResponse | None:
        """Get cached response if available and not expired."""
        key = make_cache_key(code, framework)

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if not self._is_expired(entry, self._clock()):
                    self._entries.move_to_end(key)
                    entry.hits += 1
                    self._hits += 1
                    return entry.response.with_metadata(cached=True)
                # Expired, remove it
                del self._entries[key]

            self._misses += 1
            return None

    def set(
        self,
        code: str,
        framework: "Framework | str",
        response: AnalysisResponse
    ) -> None:
        """Cache a response, evicting least recently used entries on overflow."""
        key = make_cache_key(code, framework)

        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                response=response,
                inserted_at=self._clock(),
            )
            self._entries.move_to_end(key)

            # The new entry sits at the end, so it is never the one evicted
            while len(self._entries) > self.max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted_key[:12])

    def evict(self, code: str, framework: "Framework | str") -> bool:
        """Remove a single entry. Returns True if it was present."""
        key = make_cache_key(code, framework)
        with self._lock:
            return self._entries.pop(key, None) is not None

    def cleanup(self) -> int:
        """Remove all expired entries. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [
                key for key, entry in self._entries.items()
                if self._is_expired(entry, now)
            ]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug("Cache cleanup removed %d expired entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        """Clear the cache and reset hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hit_rate": self._hits / total if total > 0 else 0.0,
                "hits": self._hits,
                "misses": self._misses,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, item: tuple[str, "Framework | str"]) -> bool:
        """Membership test on (code, framework); ignores expiry and recency."""
        code, framework = item
        key = make_cache_key(code, framework)
        with self._lock:
            return key in self._entries
