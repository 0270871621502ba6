"""
Tests for SeenTxCache.

The cache only short-circuits duplicate detection; expiry and eviction
must never make it claim a transaction it has not seen.
"""

from app.services.settlement.tx_cache import SeenTxCache


class FakeMonotonic:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


class TestSeenTxCache:
    """Membership, expiry and size bound."""

    def test_added_ids_are_seen(self):
        cache = SeenTxCache()

        cache.add("tx-1")

        assert "tx-1" in cache
        assert "tx-2" not in cache

    def test_entries_expire(self):
        clock = FakeMonotonic()
        cache = SeenTxCache(ttl_seconds=60, clock=clock)
        cache.add("tx-1")

        clock.value += 59
        assert "tx-1" in cache

        clock.value += 1
        assert "tx-1" not in cache
        assert len(cache) == 0

    def test_oldest_entry_is_evicted(self):
        cache = SeenTxCache(max_size=2)
        cache.add("tx-1")
        cache.add("tx-2")
        cache.add("tx-3")

        assert len(cache) == 2
        assert "tx-1" not in cache
        assert "tx-3" in cache

    def test_lookup_refreshes_recency(self):
        cache = SeenTxCache(max_size=2)
        cache.add("tx-1")
        cache.add("tx-2")

        assert "tx-1" in cache
        cache.add("tx-3")

        assert "tx-1" in cache
        assert "tx-2" not in cache

    def test_discard_and_clear(self):
        cache = SeenTxCache()
        cache.add("tx-1")
        cache.add("tx-2")

        cache.discard("tx-1")
        cache.discard("missing")
        assert "tx-1" not in cache

        cache.clear()
        assert len(cache) == 0
