"""Tests for the in-memory LRU response cache."""

from __future__ import annotations

from receptionist.services.cache import DEFAULT_MAX_BYTES, DEFAULT_TTL_SECONDS, LRUCache


class FakeClock:
    def __init__(self):
        self.now = 1_000.0

    def __call__(self):
        return self.now


# ── Core operations ──────────────────────────────────────────────────


class TestLRUCacheBasics:
    def test_put_and_get(self):
        cache = LRUCache()
        cache.put("call_1", {"results": [{"toolCallId": "call_1", "result": "ok"}]})
        assert cache.get("call_1") == {"results": [{"toolCallId": "call_1", "result": "ok"}]}

    def test_get_returns_none_for_missing_key(self):
        assert LRUCache().get("nonexistent") is None

    def test_put_overwrites_existing_key(self):
        cache = LRUCache()
        cache.put("call_1", "old")
        cache.put("call_1", "new")
        assert cache.get("call_1") == "new"
        assert cache.entry_count == 1

    def test_invalidate(self):
        cache = LRUCache()
        cache.put("call_1", "value")
        assert cache.invalidate("call_1") is True
        assert cache.invalidate("call_1") is False
        assert cache.get("call_1") is None

    def test_clear_removes_all_entries(self):
        cache = LRUCache()
        cache.put("a", 1)
        cache.put("b", 2)
        cache.clear()
        assert cache.entry_count == 0
        assert cache.current_bytes == 0


# ── Expiry ───────────────────────────────────────────────────────────


class TestExpiry:
    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = LRUCache(ttl_seconds=60, clock=clock)
        cache.put("call_1", "value")

        clock.now += 59
        assert cache.get("call_1") == "value"
        clock.now += 1
        assert cache.get("call_1") is None
        assert cache.entry_count == 0
        assert cache.current_bytes == 0

    def test_overwrite_restarts_ttl(self):
        clock = FakeClock()
        cache = LRUCache(ttl_seconds=60, clock=clock)
        cache.put("call_1", "a")
        clock.now += 45
        cache.put("call_1", "b")
        clock.now += 45
        assert cache.get("call_1") == "b"


# ── LRU eviction ────────────────────────────────────────────────────


class TestLRUEviction:
    def test_evicts_lru_when_over_limit(self):
        # json.dumps("aaa") → '"aaa"' → 5 bytes.  Limit of 10 fits 2 entries.
        cache = LRUCache(max_bytes=10)
        cache.put("first", "aaa")
        cache.put("second", "bbb")
        cache.put("third", "ccc")
        assert cache.get("first") is None
        assert cache.get("third") == "ccc"

    def test_access_promotes_to_mru(self):
        cache = LRUCache(max_bytes=10)
        cache.put("a", "111")
        cache.put("b", "222")
        cache.get("a")
        cache.put("c", "333")
        assert cache.get("a") == "111"
        assert cache.get("b") is None

    def test_skips_entry_larger_than_max(self):
        cache = LRUCache(max_bytes=10)
        cache.put("huge", "x" * 100)
        assert cache.get("huge") is None
        assert cache.entry_count == 0


class TestDefaults:
    def test_default_limits(self):
        cache = LRUCache()
        assert cache._max_bytes == DEFAULT_MAX_BYTES == 5 * 1024 * 1024
        assert cache._ttl == DEFAULT_TTL_SECONDS == 15 * 60
