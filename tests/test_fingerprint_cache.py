"""
Tests for fingerprint_cache.py.

Covers:
  - normalize_ingredients / fingerprint: case + whitespace insensitivity, stability
  - get/set round-trip: value returned with cached=True, stored value untouched
  - LRU size bound and TTL expiry
  - lifecycle: closed cache returns nothing and ignores writes
  - concurrent get/set from many tasks
"""
from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass
from types import SimpleNamespace

import pytest

import fingerprint_cache
from fingerprint_cache import FingerprintCache, fingerprint, normalize_ingredients


@dataclass(frozen=True)
class FakeResult:
    ingredients_text: str
    processing_time_ms: int = 1234
    cached: bool = False


# ── fingerprint ───────────────────────────────────────────────────────────────

class TestFingerprint:
    def test_normalize_collapses_case_and_whitespace(self):
        assert normalize_ingredients("  Sugar,\n  WATER,\tSalt  ") == "sugar, water, salt"

    def test_same_text_different_spacing_same_key(self):
        assert fingerprint("Sugar, Water, Salt") == fingerprint("sugar,   water,\nSALT")

    def test_different_text_different_key(self):
        assert fingerprint("Sugar, Water") != fingerprint("Sugar, Salt")

    def test_is_sha256_of_normalized_text(self):
        # Pure function of the text: identical value in any process
        expected = hashlib.sha256(b"sugar, water, salt.").hexdigest()
        assert fingerprint("Sugar, Water, Salt.") == expected

    def test_none_is_treated_as_empty(self):
        assert fingerprint(None) == fingerprint("")


# ── get / set ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestGetSet:
    async def test_miss_returns_none(self, cache):
        assert await cache.get("nope") is None

    async def test_round_trip_forces_cached_flag(self, cache):
        value = FakeResult("sugar, water")
        await cache.set("k", value)
        got = await cache.get("k")
        assert got == FakeResult("sugar, water", cached=True)

    async def test_timing_fields_kept_as_recorded(self, cache):
        await cache.set("k", FakeResult("x", processing_time_ms=9876))
        got = await cache.get("k")
        assert got.processing_time_ms == 9876

    async def test_stored_value_not_mutated(self, cache):
        value = FakeResult("sugar")
        await cache.set("k", value)
        await cache.get("k")
        assert value.cached is False
        again = await cache.get("k")
        assert again is not value

    async def test_overwrite_replaces_value(self, cache):
        await cache.set("k", FakeResult("old"))
        await cache.set("k", FakeResult("new"))
        assert (await cache.get("k")).ingredients_text == "new"


# ── Retention ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestRetention:
    async def test_lru_eviction_past_max_entries(self):
        cache = FingerprintCache(max_entries=2, ttl_secs=60).open()
        await cache.set("a", FakeResult("a"))
        await cache.set("b", FakeResult("b"))
        await cache.get("a")                 # a is now most recent
        await cache.set("c", FakeResult("c"))
        assert await cache.get("b") is None
        assert await cache.get("a") is not None
        assert await cache.get("c") is not None
        assert len(cache) == 2

    async def test_expired_entry_is_dropped(self, monkeypatch):
        fake_now = [1000.0]
        # Patch only the cache module's clock; the event loop keeps the real one
        monkeypatch.setattr(fingerprint_cache, "time", SimpleNamespace(monotonic=lambda: fake_now[0]))
        cache = FingerprintCache(max_entries=4, ttl_secs=10).open()
        await cache.set("k", FakeResult("x"))

        fake_now[0] += 5
        assert await cache.get("k") is not None

        fake_now[0] += 20
        assert await cache.get("k") is None
        assert len(cache) == 0

    async def test_max_entries_at_least_one(self):
        cache = FingerprintCache(max_entries=0).open()
        await cache.set("k", FakeResult("x"))
        assert len(cache) == 1


# ── Lifecycle ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestLifecycle:
    async def test_unopened_cache_is_inert(self):
        cache = FingerprintCache()
        await cache.set("k", FakeResult("x"))
        assert await cache.get("k") is None

    async def test_close_releases_entries(self, cache):
        await cache.set("k", FakeResult("x"))
        await cache.close()
        assert not cache.is_open
        assert await cache.get("k") is None
        assert len(cache) == 0

    async def test_async_context_manager(self):
        async with FingerprintCache() as cache:
            assert cache.is_open
            await cache.set("k", FakeResult("x"))
        assert not cache.is_open


# ── Concurrency ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestConcurrency:
    async def test_parallel_writers_and_readers(self, cache):
        async def writer(i: int):
            await cache.set(f"k{i % 8}", FakeResult(f"text-{i % 8}"))

        async def reader(i: int):
            got = await cache.get(f"k{i % 8}")
            # Either absent or a complete entry for exactly this key
            assert got is None or got.ingredients_text == f"text-{i % 8}"

        await asyncio.gather(*(writer(i) for i in range(50)), *(reader(i) for i in range(50)))
        for i in range(8):
            assert (await cache.get(f"k{i}")).ingredients_text == f"text-{i}"
