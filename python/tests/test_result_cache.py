"""
Unit tests for the result cache.

Tests cover:
- Store/retrieve and the cached flag
- Key derivation (framework isolation, line-ending normalization)
- TTL expiration and cleanup
- LRU eviction order
- Hit/miss statistics and clear()
"""

import threading

import pytest

from compliance_autopilot.common_types import Framework
from compliance_autopilot.result_cache import ResultCache, make_cache_key, normalize_code


class TestCacheKeys:
    """Tests for cache key derivation."""

    def test_key_is_deterministic(self):
        assert make_cache_key("x = 1", "soc2") == make_cache_key("x = 1", Framework.SOC2)

    def test_framework_changes_key(self):
        assert make_cache_key("x = 1", "soc2") != make_cache_key("x = 1", "gdpr")

    def test_line_endings_normalized(self):
        """CRLF and LF versions of the same file share a key."""
        assert make_cache_key("a\r\nb\r\n", "gdpr") == make_cache_key("a\nb", "gdpr")

    def test_normalize_code_keeps_leading_whitespace(self):
        assert normalize_code("  x\r\n") == "  x"


class TestResultCache:
    """Tests for ResultCache behaviour."""

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            ResultCache(max_size=0)
        with pytest.raises(ValueError):
            ResultCache(ttl_seconds=0)

    def test_store_and_retrieve(self, result_cache, make_response):
        """Test a hit returns the stored response marked as cached."""
        result_cache.set("const x=1;", "soc2", make_response(score=77))

        hit = result_cache.get("const x=1;", "soc2")

        assert hit is not None
        assert hit.score == 77
        assert hit.metadata.cached is True

    def test_stored_response_not_mutated(self, result_cache, make_response):
        response = make_response()
        result_cache.set("code", "soc2", response)

        result_cache.get("code", "soc2")

        assert response.metadata.cached is False

    def test_miss_returns_none(self, result_cache):
        assert result_cache.get("missing", "soc2") is None

    def test_different_framework_misses(self, result_cache, make_response):
        result_cache.set("code", "soc2", make_response())

        assert result_cache.get("code", "gdpr") is None

    def test_overwrite_replaces_response(self, result_cache, make_response):
        result_cache.set("code", "soc2", make_response(score=10))
        result_cache.set("code", "soc2", make_response(score=20))

        assert len(result_cache) == 1
        assert result_cache.get("code", "soc2").score == 20

    def test_ttl_expiration(self, result_cache, fake_clock, make_response):
        """Test that entries expire once their age reaches the TTL."""
        result_cache.set("code", "soc2", make_response())

        fake_clock.advance(59.9)
        assert result_cache.get("code", "soc2") is not None

        fake_clock.advance(0.1)
        assert result_cache.get("code", "soc2") is None
        # Expired entry is dropped on read
        assert len(result_cache) == 0

    def test_cleanup_removes_only_expired(self, result_cache, fake_clock, make_response):
        result_cache.set("old-1", "soc2", make_response())
        result_cache.set("old-2", "soc2", make_response())
        fake_clock.advance(30)
        result_cache.set("fresh", "soc2", make_response())
        fake_clock.advance(31)

        removed = result_cache.cleanup()

        assert removed == 2
        assert len(result_cache) == 1
        assert ("fresh", "soc2") in result_cache

    def test_cleanup_on_empty_cache(self, result_cache):
        assert result_cache.cleanup() == 0

    def test_lru_eviction(self, result_cache, make_response):
        """Test that the least recently used entry is evicted first."""
        result_cache.set("a", "soc2", make_response())
        result_cache.set("b", "soc2", make_response())
        result_cache.set("c", "soc2", make_response())

        # Touch "a" so "b" becomes least recently used
        result_cache.get("a", "soc2")
        result_cache.set("d", "soc2", make_response())

        assert len(result_cache) == 3
        assert ("b", "soc2") not in result_cache
        assert ("a", "soc2") in result_cache
        assert ("d", "soc2") in result_cache

    def test_new_entry_survives_eviction(self, make_response):
        cache = ResultCache(max_size=1)
        cache.set("first", "soc2", make_response())
        cache.set("second", "soc2", make_response())

        assert len(cache) == 1
        assert ("second", "soc2") in cache

    def test_size_never_exceeds_max(self, result_cache, make_response):
        for i in range(20):
            result_cache.set(f"code-{i}", "gdpr", make_response())
            assert len(result_cache) <= result_cache.max_size

    def test_hit_rate_tracking(self, result_cache, make_response):
        """Test hit/miss counters and hit rate."""
        result_cache.get("code", "soc2")
        result_cache.set("code", "soc2", make_response())
        result_cache.get("code", "soc2")
        result_cache.get("code", "soc2")

        stats = result_cache.get_stats()

        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["hit_rate"] == pytest.approx(2 / 3)
        assert stats["size"] == 1
        assert stats["max_size"] == 3

    def test_hit_rate_zero_without_lookups(self, result_cache):
        assert result_cache.get_stats()["hit_rate"] == 0.0

    def test_expired_read_counts_as_miss(self, result_cache, fake_clock, make_response):
        result_cache.set("code", "soc2", make_response())
        fake_clock.advance(120)

        result_cache.get("code", "soc2")

        assert result_cache.get_stats()["misses"] == 1

    def test_clear_resets_entries_and_counters(self, result_cache, make_response):
        result_cache.set("code", "soc2", make_response())
        result_cache.get("code", "soc2")
        result_cache.get("other", "soc2")

        result_cache.clear()
        stats = result_cache.get_stats()

        assert stats["size"] == 0
        assert stats["hits"] == 0
        assert stats["misses"] == 0
        assert stats["hit_rate"] == 0.0

    def test_evict_single_entry(self, result_cache, make_response):
        result_cache.set("code", "soc2", make_response())

        assert result_cache.evict("code", "soc2") is True
        assert result_cache.evict("code", "soc2") is False
        assert result_cache.get("code", "soc2") is None

    def test_concurrent_access(self, make_response):
        """Test that parallel threads keep the cache consistent."""
        cache = ResultCache(max_size=50)

        def worker(n: int) -> None:
            for i in range(200):
                key = f"code-{(n * 7 + i) % 80}"
                if cache.get(key, "soc2") is None:
                    cache.set(key, "soc2", make_response())

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stats = cache.get_stats()
        assert stats["size"] <= 50
        assert stats["hits"] + stats["misses"] == 8 * 200
