"""Tests for the tool discovery TTL cache."""

from __future__ import annotations

from agent_runtime.services.cache import DEFAULT_TTL_SECONDS, TTLCache

# ── Core operations ──────────────────────────────────────────────────


class TestTTLCacheBasics:
    def test_set_and_get(self):
        cache = TTLCache()
        cache.set("https://tools.example.com", ["tool-a"])
        assert cache.get("https://tools.example.com") == ["tool-a"]

    def test_get_returns_none_for_missing_key(self):
        cache = TTLCache()
        assert cache.get("nonexistent") is None

    def test_set_overwrites_existing_key(self):
        cache = TTLCache()
        cache.set("key1", "old")
        cache.set("key1", "new")
        assert cache.get("key1") == "new"
        assert cache.entry_count == 1

    def test_invalidate_removes_key(self):
        cache = TTLCache()
        cache.set("key1", "value")
        assert cache.invalidate("key1") is True
        assert cache.get("key1") is None

    def test_invalidate_returns_false_for_missing_key(self):
        cache = TTLCache()
        assert cache.invalidate("nonexistent") is False

    def test_clear_removes_all_entries(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert cache.entry_count == 0

    def test_default_ttl_is_one_hour(self):
        assert DEFAULT_TTL_SECONDS == 3600


# ── Expiry ───────────────────────────────────────────────────────────


class TestTTLExpiry:
    def test_missing_key_is_expired(self):
        assert TTLCache().is_expired("nope") is True

    def test_fresh_entry_is_not_expired(self, fake_clock):
        cache = TTLCache(ttl_seconds=60, clock=fake_clock)
        cache.set("k", "v")
        fake_clock.advance(59)
        assert cache.is_expired("k") is False
        assert cache.get("k") == "v"

    def test_entry_expires_after_ttl(self, fake_clock):
        cache = TTLCache(ttl_seconds=60, clock=fake_clock)
        cache.set("k", "v")
        fake_clock.advance(60)
        assert cache.is_expired("k") is True
        assert cache.get("k") is None

    def test_rewrite_resets_age(self, fake_clock):
        cache = TTLCache(ttl_seconds=60, clock=fake_clock)
        cache.set("k", "old")
        fake_clock.advance(50)
        cache.set("k", "new")
        fake_clock.advance(50)
        assert cache.get("k") == "new"


# ── Entry ceiling ────────────────────────────────────────────────────


class TestEviction:
    def test_oldest_entry_evicted_when_full(self):
        cache = TTLCache(max_entries=2)
        cache.set("first", 1)
        cache.set("second", 2)
        cache.set("third", 3)
        assert cache.get("first") is None
        assert cache.get("second") == 2
        assert cache.get("third") == 3
        assert cache.entry_count == 2

    def test_rewritten_entry_moves_to_back(self):
        cache = TTLCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        cache.set("c", 3)
        assert cache.get("a") == 10
        assert cache.get("b") is None
