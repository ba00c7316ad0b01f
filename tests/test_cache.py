"""Tests for the in-process scrape cache and its key normalisation."""

from __future__ import annotations

import pytest

from orbit_crawler.cache import (
    ScrapeCache,
    cache_key,
    make_site_identity_cache,
    make_site_ingestion_cache,
)
from orbit_crawler.config import Settings


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(clock: FakeClock) -> ScrapeCache:
    return ScrapeCache(ttl_s=60, max_size=3, sweep_interval_s=None, clock=clock)


# ---------------------------------------------------------------------------
# cache_key
# ---------------------------------------------------------------------------

class TestCacheKey:
    def test_www_case_and_trailing_slash_share_a_key(self) -> None:
        assert cache_key("https://www.Example.com/Path/") == cache_key("https://example.com/Path")

    def test_scheme_is_ignored(self) -> None:
        assert cache_key("http://example.com/a") == cache_key("https://example.com/a")

    def test_query_is_preserved(self) -> None:
        assert cache_key("https://example.com/a?page=2") == "example.com/a?page=2"
        assert cache_key("https://example.com/a?page=2") != cache_key("https://example.com/a")

    def test_path_case_is_kept(self) -> None:
        assert cache_key("https://example.com/Menu") != cache_key("https://example.com/menu")

    def test_root_path(self) -> None:
        assert cache_key("https://www.example.com/") == "example.com"

    def test_bare_host_gets_a_scheme(self) -> None:
        assert cache_key("www.example.com/about/") == "example.com/about"

    def test_unparsable_input_is_lowercased(self) -> None:
        assert cache_key("WWW.Not A Url/") == "not a url"


# ---------------------------------------------------------------------------
# ScrapeCache
# ---------------------------------------------------------------------------

class TestScrapeCache:
    def test_get_returns_stored_value(self, cache: ScrapeCache) -> None:
        cache.set("a", {"x": 1})
        assert cache.get("a") == {"x": 1}
        assert cache.has("a")

    def test_missing_key_returns_none(self, cache: ScrapeCache) -> None:
        assert cache.get("missing") is None
        assert not cache.has("missing")

    def test_entry_expires_after_ttl(self, cache: ScrapeCache, clock: FakeClock) -> None:
        cache.set("a", "value")
        clock.now += 59
        assert cache.get("a") == "value"
        clock.now += 1
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_per_entry_ttl_override(self, cache: ScrapeCache, clock: FakeClock) -> None:
        cache.set("short", "v", ttl_s=5)
        clock.now += 6
        assert cache.get("short") is None

    def test_least_hit_entry_is_evicted_at_capacity(self, cache: ScrapeCache) -> None:
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.get("a")
        cache.get("a")
        cache.get("c")

        cache.set("d", 4)

        assert len(cache) == 3
        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert cache.get("d") == 4

    def test_replacing_existing_key_does_not_evict(self, cache: ScrapeCache) -> None:
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.set("b", 20)
        assert len(cache) == 3
        assert cache.get("a") == 1
        assert cache.get("b") == 20

    def test_delete_and_clear(self, cache: ScrapeCache) -> None:
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        cache.clear()
        assert len(cache) == 0
        assert cache.stats()["hits"] == 0

    def test_sweep_removes_only_expired(self, cache: ScrapeCache, clock: FakeClock) -> None:
        cache.set("old", 1, ttl_s=10)
        cache.set("new", 2, ttl_s=100)
        clock.now += 20
        assert cache.sweep() == 1
        assert len(cache) == 1
        assert cache.get("new") == 2

    def test_stats_track_hits_and_misses(self, cache: ScrapeCache) -> None:
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("a")
        cache.get("b")
        stats = cache.stats()
        assert stats["size"] == 1
        assert stats["max_size"] == 3
        assert stats["hits"] == 3
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 75.0
        assert stats["ttl_s"] == 60

    def test_stats_hit_rate_zero_when_unused(self, cache: ScrapeCache) -> None:
        assert cache.stats()["hit_rate"] == 0.0

    def test_invalid_max_size(self) -> None:
        with pytest.raises(ValueError):
            ScrapeCache(max_size=0, sweep_interval_s=None)

    def test_background_sweeper_starts_and_stops(self) -> None:
        cache = ScrapeCache(ttl_s=60, sweep_interval_s=3600)
        try:
            assert cache._sweeper is not None
            assert cache._sweeper.daemon
            assert cache._sweeper.is_alive()
        finally:
            cache.close()
        assert not cache._sweeper.is_alive()


class TestCacheFactories:
    def test_site_ingestion_cache_defaults(self) -> None:
        cfg = Settings(cache_sweep_interval_s=0)
        cache = make_site_ingestion_cache(cfg)
        assert cache.ttl_s == 24 * 3600
        assert cache.max_size == 500
        assert cache.name == "site_ingestion"

    def test_site_identity_cache_defaults(self) -> None:
        cfg = Settings(cache_sweep_interval_s=0)
        cache = make_site_identity_cache(cfg)
        assert cache.ttl_s == 48 * 3600
        assert cache.max_size == 1000

    def test_factories_return_independent_instances(self) -> None:
        cfg = Settings(cache_sweep_interval_s=0)
        a = make_site_ingestion_cache(cfg)
        b = make_site_ingestion_cache(cfg)
        a.set("k", 1)
        assert b.get("k") is None
