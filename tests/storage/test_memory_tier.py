# tests/storage/test_memory_tier.py
"""
Tests for MemoryTier.

These tests verify:
- Basic get/put/exists operations
- Type-scoped and bucket-scoped listing
- Thread safety
- Statistics tracking
"""

import threading

from polistore.config import MemoryTierConfig
from polistore.models import Bill, Legislator
from polistore.storage.tiers import MemoryTier


# =============================================================================
# BASIC OPERATIONS
# =============================================================================


class TestMemoryTierBasics:
    def test_put_and_get(self, memory, bill):
        memory.put(bill)
        assert memory.get(bill.id, Bill) is bill

    def test_get_missing(self, memory):
        assert memory.get("BIL/us/congress/118/hr/404", Bill) is None

    def test_type_mismatch_is_a_miss(self, memory, bill):
        memory.put(bill)
        assert memory.get(bill.id, Legislator) is None
        assert not memory.exists(bill.id, Legislator)

    def test_put_overwrites(self, memory, bill_factory):
        memory.put(bill_factory(rating=10))
        memory.put(bill_factory(rating=90))
        assert memory.get("BIL/us/congress/118/hr/1", Bill).rating == 90
        assert len(memory) == 1

    def test_contains(self, memory, bill):
        memory.put(bill)
        assert bill.id in memory

    def test_clear(self, memory, bill, legislator):
        memory.put(bill)
        memory.put(legislator)
        assert memory.clear() == 2
        assert len(memory) == 0


class TestMemoryTierListing:
    def test_query_by_type_in_id_order(self, memory, bill_factory, legislator):
        for number in (3, 1, 2):
            memory.put(bill_factory(number=number))
        memory.put(legislator)
        ids = [b.id for b in memory.query_by_type(Bill)]
        assert ids == sorted(ids)
        assert len(ids) == 3

    def test_query_by_bucket(self, memory, bill_factory):
        memory.put(bill_factory(number=1))
        other = bill_factory(number=2).model_copy(update={"id": "BIL/us/congress/117/hr/2"})
        memory.put(other)
        assert [b.id for b in memory.query_by_bucket(Bill, "BIL/us/congress/118")] == ["BIL/us/congress/118/hr/1"]

    def test_count_by_type(self, memory, bill, legislator):
        memory.put(bill)
        memory.put(legislator)
        assert memory.count(Bill) == 1
        assert memory.count() == 2


# =============================================================================
# STATISTICS
# =============================================================================


class TestMemoryTierStats:
    def test_hit_rate(self, memory, bill):
        memory.put(bill)
        memory.get(bill.id, Bill)
        memory.get("BIL/us/congress/118/hr/404", Bill)
        stats = memory.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["puts"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["item_count"] == 1

    def test_stats_disabled(self, bill):
        tier = MemoryTier(MemoryTierConfig(enable_stats=False))
        tier.put(bill)
        tier.get(bill.id, Bill)
        assert tier.stats()["hits"] == 0


# =============================================================================
# THREAD SAFETY
# =============================================================================


class TestMemoryTierConcurrency:
    def test_concurrent_puts(self, memory, bill_factory):
        """Test parallel writers never lose an entity."""
        bills = [bill_factory(number=n) for n in range(1, 101)]

        def writer(chunk):
            for b in chunk:
                memory.put(b)

        threads = [threading.Thread(target=writer, args=(bills[i::4],)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert memory.count(Bill) == 100
