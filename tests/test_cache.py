"""
Tests for the metrics session cache.
"""

from repo_roster.cache import MetricsCache
from repo_roster.identity import RepositoryIdentity
from repo_roster.models import MetricsBundle


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_make_key_includes_mode_and_ignores_case():
    assert MetricsCache.make_key("Acme", "Widgets", True) == "acme/widgets:loc"
    assert MetricsCache.make_key("acme", "widgets", False) == "acme/widgets:noloc"
    assert MetricsCache.key_for(
        RepositoryIdentity("ACME", "widgets"), True
    ) == MetricsCache.make_key("acme", "WIDGETS", True)


def test_get_returns_fresh_entry():
    clock = FakeClock()
    cache = MetricsCache(ttl_seconds=1800, clock=clock)
    bundle = MetricsBundle(total_commits=5)
    cache.put("acme/widgets:loc", bundle)

    clock.now += 1799
    assert cache.get("acme/widgets:loc") is bundle
    assert "acme/widgets:loc" in cache


def test_get_expires_at_ttl():
    """Test that an entry reads as a miss once its age reaches the TTL."""
    clock = FakeClock()
    cache = MetricsCache(ttl_seconds=1800, clock=clock)
    cache.put("acme/widgets:loc", MetricsBundle(total_commits=5))

    clock.now += 1800
    assert cache.get("acme/widgets:loc") is None
    # Lazy expiry: the stale entry is still stored
    assert len(cache) == 1
    assert cache.stats()["expired_entries"] == 1


def test_modes_are_cached_separately():
    cache = MetricsCache(ttl_seconds=60, clock=FakeClock())
    with_loc = MetricsBundle(total_commits=3, total_lines_of_code=120)
    cache.put(MetricsCache.make_key("acme", "widgets", True), with_loc)

    assert cache.get(MetricsCache.make_key("acme", "widgets", False)) is None
    assert cache.get(MetricsCache.make_key("acme", "widgets", True)) is with_loc


def test_invalidate_removes_both_modes():
    cache = MetricsCache(ttl_seconds=60, clock=FakeClock())
    cache.put(MetricsCache.make_key("acme", "widgets", True), MetricsBundle())
    cache.put(MetricsCache.make_key("acme", "widgets", False), MetricsBundle())
    cache.put(MetricsCache.make_key("acme", "gadgets", True), MetricsBundle())

    assert cache.invalidate("Acme", "Widgets") == 2
    assert len(cache) == 1
    assert cache.invalidate("acme", "widgets") == 0


def test_clear_returns_count():
    cache = MetricsCache(ttl_seconds=60, clock=FakeClock())
    cache.put("a/b:loc", MetricsBundle())
    cache.put("c/d:loc", MetricsBundle())

    assert cache.clear() == 2
    assert len(cache) == 0
    assert cache.stats() == {
        "total_entries": 0,
        "valid_entries": 0,
        "expired_entries": 0,
        "ttl_seconds": 60,
    }
