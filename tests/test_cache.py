"""
Unit Tests for budgetdesk/cache

TTL expiry, prefix invalidation, read-through loading and key format.
"""

import pytest

from budgetdesk.cache import TTLCache, cache_key, org_prefix


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(ttl=3, clock=clock)


class TestTTL:
    """Entries live for ttl seconds after insertion."""

    def test_read_within_ttl_returns_exact_payload(self, cache, clock):
        payload = [{"id": "t1", "name": "IT"}]
        cache.set("org1:budget-types", payload)
        clock.advance(2.9)

        assert cache.get("org1:budget-types") is payload

    def test_read_after_ttl_is_a_miss(self, cache, clock):
        cache.set("org1:budget-types", ["x"])
        clock.advance(3)

        assert cache.get("org1:budget-types") is None

    def test_expired_entry_is_dropped_on_read(self, cache, clock):
        cache.set("k", 1)
        clock.advance(10)
        cache.get("k")

        assert len(cache) == 0

    def test_reads_do_not_extend_lifetime(self, cache, clock):
        cache.set("k", "v")
        clock.advance(2)
        assert cache.get("k") == "v"
        clock.advance(1.5)

        assert cache.get("k") is None

    def test_set_overwrites_and_restarts_ttl(self, cache, clock):
        cache.set("k", "old")
        clock.advance(2)
        cache.set("k", "new")
        clock.advance(2)

        assert cache.get("k") == "new"

    def test_missing_key(self, cache):
        assert cache.get("nope") is None

    def test_purge_expired(self, cache, clock):
        cache.set("a", 1)
        clock.advance(2)
        cache.set("b", 2)
        clock.advance(1.5)

        assert cache.purge_expired() == 1
        assert cache.get("b") == 2


class TestInvalidation:
    """Prefix clearing and full reset."""

    def test_clear_prefix_only_touches_one_tenant(self, cache):
        cache.set(cache_key("org1", "budget-types"), [1])
        cache.set(cache_key("org1", "monthly", 2024, 2025), [2])
        cache.set(cache_key("org2", "budget-types"), [3])

        removed = cache.clear(org_prefix("org1"))

        assert removed == 2
        assert cache.get("org1:budget-types") is None
        assert cache.get("org2:budget-types") == [3]

    def test_prefix_does_not_match_longer_org_id(self, cache):
        cache.set(cache_key("org1", "x"), 1)
        cache.set(cache_key("org10", "x"), 2)

        cache.clear(org_prefix("org1"))

        assert cache.get("org10:x") == 2

    def test_clear_all_then_every_get_is_absent(self, cache):
        for i in range(5):
            cache.set(f"org{i}:k", i)

        cache.clear_all()

        assert all(cache.get(f"org{i}:k") is None for i in range(5))
        assert len(cache) == 0


class TestReadThrough:
    """get_or_load calls the loader only on a miss."""

    def test_loader_called_once_within_ttl(self, cache, clock):
        calls = []

        def loader():
            calls.append(1)
            return {"years": [2025]}

        first = cache.get_or_load("org1:budget-years", loader)
        clock.advance(1)
        second = cache.get_or_load("org1:budget-years", loader)

        assert first is second
        assert len(calls) == 1

    def test_loader_called_again_after_expiry(self, cache, clock):
        calls = []
        cache.get_or_load("k", lambda: calls.append(1) or "v")
        clock.advance(3)
        cache.get_or_load("k", lambda: calls.append(1) or "v")

        assert len(calls) == 2

    def test_empty_list_is_cached(self, cache):
        calls = []
        cache.get_or_load("k", lambda: calls.append(1) or [])
        cache.get_or_load("k", lambda: calls.append(1) or [])

        assert len(calls) == 1


class TestKeys:

    def test_key_format(self):
        assert cache_key("abc", "monthly", 2024, 2025) == "abc:monthly:2024:2025"
        assert cache_key("abc", "budget-types") == "abc:budget-types"
        assert org_prefix("abc") == "abc:"
