# tests/storage/test_indexed_tier.py
"""
Tests for IndexedQueryTier on the SQLite backend.

These tests verify:
- Head/auxiliary page splitting of large attributes
- Recovery from missing and stale auxiliary pages
- Size limit enforcement before any write
- Secondary-index pagination with opaque cursors
- Composite-key and issue-scoped entities
"""

import datetime as dt
import hashlib
import logging

import pytest

from polistore.config import IndexedTierConfig
from polistore.exceptions import MalformedIdentifierError, SizeLimitExceededError, UnsupportedQueryError
from polistore.models import (
    Bill,
    BillIssueStat,
    BillText,
    Legislator,
    LegislatorBillInteraction,
    TrackedIssue,
)
from polistore.schema import SecondaryIndex
from polistore.storage import codec
from polistore.storage.tiers import IndexedQueryTier

BILLS = "BIL/us/congress/118"
LEGISLATORS = "LEG/us/congress/118"


def _noise(seed: int, length: int = 64) -> str:
    """Incompressible text, so encoded sizes are predictable."""
    out = ""
    while len(out) < length:
        out += hashlib.sha256(f"{seed}:{len(out)}".encode()).hexdigest()
    return out[:length]


@pytest.fixture
def busy_legislator(legislator_factory, interaction_factory):
    """A legislator whose interactions need several auxiliary pages."""
    legislator = legislator_factory(code="B000001")
    for n in range(1, 61):
        interaction = interaction_factory(legislator.id, n, dt.date(2023, 1, 1) + dt.timedelta(days=n))
        legislator.add_bill_interaction(interaction.model_copy(update={"short_explain": _noise(n)}))
    return legislator


def _encoded_interactions(legislator):
    return codec.encode_attribute(legislator.model_dump(mode="json", by_alias=True)["interactions"])


class PageReadCounter:
    """Wraps an indexed backend and counts page reads and page listings."""

    def __init__(self, inner):
        self.inner = inner
        self.name = inner.name
        self.get_pages_calls = 0
        self.list_page_keys_calls = 0

    def get_pages(self, entity_id):
        self.get_pages_calls += 1
        return self.inner.get_pages(entity_id)

    def list_page_keys(self, entity_id):
        self.list_page_keys_calls += 1
        return self.inner.list_page_keys(entity_id)

    def __getattr__(self, name):
        return getattr(self.inner, name)


# =============================================================================
# PAGE SPLITTING
# =============================================================================


class TestPageSplitting:
    def test_round_trip(self, indexed_tier, busy_legislator):
        indexed_tier.put(busy_legislator)
        assert indexed_tier.get(busy_legislator.id, Legislator) == busy_legislator

    def test_page_count(self, indexed_tier, sqlite_backend, indexed_config, busy_legislator):
        indexed_tier.put(busy_legislator)
        expected = len(codec.chunk(_encoded_interactions(busy_legislator), indexed_config.page_size_threshold_bytes))
        assert expected > 1
        pages = sqlite_backend.list_page_keys(busy_legislator.id)
        assert sorted(pages, key=int) == [str(p) for p in range(expected + 1)]

    def test_head_holds_no_large_attribute(self, indexed_tier, sqlite_backend, busy_legislator):
        indexed_tier.put(busy_legislator)
        head = sqlite_backend.get_item((busy_legislator.id, "0"))
        assert "interactions" not in head
        assert head["storageBucket"] == LEGISLATORS
        assert head["location"] == "CA/11"

    def test_every_record_within_limit(self, indexed_tier, sqlite_backend, indexed_config, busy_legislator):
        indexed_tier.put(busy_legislator)
        for record in sqlite_backend.get_pages(busy_legislator.id):
            assert codec.item_size(record) <= indexed_config.item_size_limit_bytes

    def test_empty_collection_has_no_aux_page(self, indexed_tier, sqlite_backend, legislator_factory):
        legislator = legislator_factory(code="E000001")
        indexed_tier.put(legislator)
        assert sqlite_backend.list_page_keys(legislator.id) == ["0"]
        assert indexed_tier.get(legislator.id, Legislator).interactions == []

    def test_data_page(self, indexed_tier, sqlite_backend, bill_text):
        indexed_tier.put(bill_text)
        assert sqlite_backend.list_page_keys(bill_text.id) == ["0", "1"]
        assert indexed_tier.get(bill_text.id, BillText) == bill_text

    def test_put_is_idempotent(self, indexed_tier, sqlite_backend, busy_legislator):
        indexed_tier.put(busy_legislator)
        first = sqlite_backend.get_pages(busy_legislator.id)
        indexed_tier.put(busy_legislator)
        second = sqlite_backend.get_pages(busy_legislator.id)
        assert first == second

    def test_types_without_large_attributes_skip_page_listing(self, sqlite_backend, indexed_config, bill, legislator):
        counting = PageReadCounter(sqlite_backend)
        tier = IndexedQueryTier(counting, config=indexed_config)
        tier.put(bill)
        assert counting.list_page_keys_calls == 0
        tier.put(legislator)
        assert counting.list_page_keys_calls == 1


class TestPageRecovery:
    def test_missing_aux_page_falls_back_to_default(self, indexed_tier, sqlite_backend, busy_legislator):
        indexed_tier.put(busy_legislator)
        sqlite_backend.delete_item((busy_legislator.id, "2"))
        restored = indexed_tier.get(busy_legislator.id, Legislator)
        assert restored.interactions == []
        assert restored.name == busy_legislator.name
        assert restored.terms == busy_legislator.terms

    def test_missing_aux_page_is_logged_on_get(self, indexed_tier, sqlite_backend, busy_legislator, caplog):
        indexed_tier.put(busy_legislator)
        sqlite_backend.delete_item((busy_legislator.id, "2"))
        with caplog.at_level(logging.WARNING, logger="polistore"):
            indexed_tier.get(busy_legislator.id, Legislator)
        assert "are missing, using default" in caplog.text

    def test_stale_pages_removed_when_collection_shrinks(self, indexed_tier, sqlite_backend, busy_legislator):
        indexed_tier.put(busy_legislator)
        busy_legislator.interactions = busy_legislator.interactions[:1]
        indexed_tier.put(busy_legislator)
        assert sqlite_backend.list_page_keys(busy_legislator.id) == ["0", "1"]
        assert indexed_tier.get(busy_legislator.id, Legislator).interactions == busy_legislator.interactions

    def test_leftover_chunk_does_not_corrupt(self, indexed_tier, sqlite_backend, busy_legislator):
        """Test a chunk from an older, longer version is ignored via the digest."""
        indexed_tier.put(busy_legislator)
        stale = sqlite_backend.get_item((busy_legislator.id, "1"))
        busy_legislator.interactions = busy_legislator.interactions[:30]
        indexed_tier.put(busy_legislator)
        sqlite_backend.put_item(stale)
        assert indexed_tier.get(busy_legislator.id, Legislator).interactions == []

    def test_aux_pages_without_head_are_absent(self, indexed_tier, busy_legislator):
        indexed_tier.put(busy_legislator)
        indexed_tier.delete(busy_legislator.id, Legislator)
        assert indexed_tier.get(busy_legislator.id, Legislator) is None
        assert not indexed_tier.exists(busy_legislator.id, Legislator)


class TestSizeLimit:
    def test_oversized_data_page_rejected_before_write(self, indexed_tier, sqlite_backend, bill_text):
        huge = bill_text.model_copy(update={"xml": _noise(1, 12_000)})
        with pytest.raises(SizeLimitExceededError) as exc_info:
            indexed_tier.put(huge)
        assert exc_info.value.page == "1"
        assert sqlite_backend.list_page_keys(huge.id) == []

    def test_malformed_id_rejected_before_write(self, indexed_tier, sqlite_backend, bill):
        bad = bill.model_copy(update={"id": "BIL/us/congress/118/null"})
        with pytest.raises(MalformedIdentifierError):
            indexed_tier.put(bad)
        assert sqlite_backend.get_pages("BIL/us/congress/118/null") == []

    def test_large_default_limit_accepts_the_same_text(self, sqlite_backend, bill_text):
        tier = IndexedQueryTier(sqlite_backend, config=IndexedTierConfig())
        tier.put(bill_text.model_copy(update={"xml": _noise(1, 12_000)}))
        assert len(tier.get(bill_text.id, BillText).xml) == 12_000


# =============================================================================
# DELETION
# =============================================================================


class TestDeletion:
    def test_delete_is_head_only(self, indexed_tier, sqlite_backend, busy_legislator):
        indexed_tier.put(busy_legislator)
        pages = sqlite_backend.list_page_keys(busy_legislator.id)
        indexed_tier.delete(busy_legislator.id, Legislator)
        assert sqlite_backend.list_page_keys(busy_legislator.id) == pages[1:]

    def test_delete_auxiliary_pages(self, indexed_tier, sqlite_backend, busy_legislator):
        indexed_tier.put(busy_legislator)
        aux_count = len(sqlite_backend.list_page_keys(busy_legislator.id)) - 1
        indexed_tier.delete_entity(busy_legislator)
        assert indexed_tier.delete_auxiliary_pages(busy_legislator.id, Legislator) == aux_count
        assert sqlite_backend.list_page_keys(busy_legislator.id) == []


# =============================================================================
# INDEX QUERIES
# =============================================================================


class TestIndexQueries:
    @pytest.fixture
    def rated_bills(self, indexed_tier, bill_factory):
        ratings = [30, -10, 75, 30, 0, -60, 90]
        bills = [bill_factory(number=n, rating=r) for n, r in enumerate(ratings, start=1)]
        for b in bills:
            indexed_tier.put(b)
        return bills

    def _walk(self, tier, entity_type, bucket, page_size, **kwargs):
        seen, cursor, pages = [], None, 0
        while True:
            page = tier.query(entity_type, bucket, page_size=page_size, exclusive_start_key=cursor, **kwargs)
            assert len(page) <= page_size
            seen.extend(page.items)
            pages += 1
            if not page.has_more:
                assert page.next_cursor is None
                return seen, pages
            assert len(page) == page_size
            cursor = page.next_cursor

    def test_pages_are_exhaustive_and_ordered(self, indexed_tier, rated_bills):
        seen, pages = self._walk(indexed_tier, Bill, BILLS, 3, index=SecondaryIndex.BY_RATING)
        expected = sorted(rated_bills, key=lambda b: (b.rating, b.id))
        assert [b.id for b in seen] == [b.id for b in expected]
        assert pages == 3

    def test_descending(self, indexed_tier, rated_bills):
        seen, _ = self._walk(indexed_tier, Bill, BILLS, 2, index="ByRating", ascending=False)
        assert [b.rating for b in seen] == sorted((b.rating for b in rated_bills), reverse=True)

    def test_exact_multiple_has_no_empty_last_page(self, indexed_tier, bill_factory):
        for n in range(1, 5):
            indexed_tier.put(bill_factory(number=n))
        first = indexed_tier.query(Bill, BILLS, page_size=2)
        second = indexed_tier.query(Bill, BILLS, page_size=2, exclusive_start_key=first.next_cursor)
        assert first.has_more
        assert len(second) == 2
        assert not second.has_more

    def test_all_items(self, indexed_tier, rated_bills):
        page = indexed_tier.query(Bill, BILLS, index=SecondaryIndex.BY_IMPACT)
        assert len(page) == len(rated_bills)
        assert not page.has_more

    def test_default_index_is_date(self, indexed_tier, bill_factory):
        indexed_tier.put(bill_factory(number=1, introduced=dt.date(2024, 3, 1)))
        indexed_tier.put(bill_factory(number=2, introduced=dt.date(2024, 1, 1)))
        assert [b.number for b in indexed_tier.query(Bill, BILLS)] == [2, 1]

    def test_hot_index(self, indexed_tier, bill_factory):
        today = dt.date.today()
        indexed_tier.put(bill_factory(number=1, introduced=today - dt.timedelta(days=90)))
        indexed_tier.put(bill_factory(number=2, introduced=today))
        page = indexed_tier.query(Bill, BILLS, index=SecondaryIndex.BY_HOT, ascending=False)
        assert [b.number for b in page] == [2, 1]

    def test_sort_key_prefix_on_location(self, indexed_tier, legislator_factory):
        indexed_tier.put(legislator_factory(code="A000001", state="CA", district="11"))
        indexed_tier.put(legislator_factory(code="A000002", state="NY", district="3"))
        indexed_tier.put(legislator_factory(code="A000003", state="CA", district=None))
        page = indexed_tier.query(Legislator, LEGISLATORS, index=SecondaryIndex.BY_LOCATION, sort_key_prefix="CA")
        assert sorted(l.location for l in page) == ["CA", "CA/11"]

    def test_index_reads_are_head_only_unless_hydrated(self, indexed_tier, busy_legislator):
        indexed_tier.put(busy_legislator)
        head_only = indexed_tier.query(Legislator, LEGISLATORS).items[0]
        assert head_only.interactions == []
        hydrated = indexed_tier.query(Legislator, LEGISLATORS, hydrate=True).items[0]
        assert hydrated == busy_legislator

    def test_head_only_query_logs_no_warnings(self, indexed_tier, legislator_factory, caplog):
        for code in ("A000001", "A000002", "A000003"):
            indexed_tier.put(legislator_factory(code=code, interactions=2))
        with caplog.at_level(logging.WARNING, logger="polistore"):
            page = indexed_tier.query(Legislator, LEGISLATORS, index=SecondaryIndex.BY_LOCATION)
        assert len(page.items) == 3
        assert [r.getMessage() for r in caplog.records if r.levelno >= logging.WARNING] == []

    def test_hydrated_query_reads_each_entity_once(self, indexed_tier, sqlite_backend, legislator_factory):
        for code in ("A000001", "A000002"):
            indexed_tier.put(legislator_factory(code=code, interactions=2))
        counting = PageReadCounter(sqlite_backend)
        tier = IndexedQueryTier(counting, config=indexed_tier.config, retry=indexed_tier.retry)
        page = tier.query(Legislator, LEGISLATORS, hydrate=True)
        assert [len(l.interactions) for l in page] == [2, 2]
        assert counting.get_pages_calls == 2

    def test_buckets_are_isolated(self, indexed_tier, bill_factory):
        indexed_tier.put(bill_factory(number=1))
        other = bill_factory(number=2).model_copy(update={"id": "BIL/us/congress/117/hr/2"})
        indexed_tier.put(other)
        assert [b.id for b in indexed_tier.query(Bill, BILLS)] == ["BIL/us/congress/118/hr/1"]


class TestUnsupportedQueries:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"index": "ObjectsByNothing"},
            {"index": SecondaryIndex.BY_LOCATION},
            {"index": SecondaryIndex.BY_ISSUE_IMPACT},
            {"page_size": 0},
            {"sort_key_prefix": "5", "index": SecondaryIndex.BY_RATING},
            {"exclusive_start_key": "not-a-cursor"},
        ],
    )
    def test_rejected(self, indexed_tier, kwargs):
        with pytest.raises(UnsupportedQueryError):
            indexed_tier.query(Bill, BILLS, **kwargs)

    def test_missing_bucket(self, indexed_tier):
        with pytest.raises(UnsupportedQueryError):
            indexed_tier.query(Bill, None)

    def test_issue_index_requires_issue(self, indexed_tier):
        with pytest.raises(UnsupportedQueryError):
            indexed_tier.query(BillIssueStat, "BIS/us/congress/118", index=SecondaryIndex.BY_ISSUE_IMPACT)


# =============================================================================
# COMPOSITE AND ISSUE-SCOPED ENTITIES
# =============================================================================


class TestCompositeKeys:
    def test_round_trip(self, indexed_tier, sqlite_backend, legislator):
        interaction = legislator.interactions[0]
        indexed_tier.put(interaction)
        record = sqlite_backend.get_item((interaction.partition_key, interaction.sort_key))
        assert record is not None
        assert indexed_tier.get(interaction.id, LegislatorBillInteraction) == interaction
        assert indexed_tier.exists(interaction.id, LegislatorBillInteraction)

    def test_query_cursor_round_trips_composite_ids(self, indexed_tier, legislator):
        for interaction in legislator.interactions:
            indexed_tier.put(interaction)
        seen, cursor = [], None
        while True:
            page = indexed_tier.query(
                LegislatorBillInteraction, "LBI/us/congress/118", page_size=1, exclusive_start_key=cursor
            )
            seen.extend(i.id for i in page)
            if not page.has_more:
                break
            cursor = page.next_cursor
        assert seen == [i.id for i in sorted(legislator.interactions, key=lambda i: i.date)]

    def test_delete(self, indexed_tier, legislator):
        interaction = legislator.interactions[0]
        indexed_tier.put(interaction)
        indexed_tier.delete(interaction.id, LegislatorBillInteraction)
        assert indexed_tier.get(interaction.id, LegislatorBillInteraction) is None


class TestIssueScoped:
    def test_issue_leaderboard(self, indexed_tier, bill_factory):
        for n, rating in enumerate([10, 80, 40], start=1):
            bill = bill_factory(number=n, rating=rating)
            indexed_tier.put(BillIssueStat.for_bill(bill, TrackedIssue.OVERALL_BENEFIT_TO_SOCIETY))
            indexed_tier.put(BillIssueStat.for_bill(bill, TrackedIssue.EDUCATION))

        page = indexed_tier.query(
            BillIssueStat,
            "BIS/us/congress/118",
            index=SecondaryIndex.BY_ISSUE_RATING,
            issue=TrackedIssue.OVERALL_BENEFIT_TO_SOCIETY,
            ascending=False,
        )
        assert [s.rating for s in page] == [80, 40, 10]
        assert all(s.issue is TrackedIssue.OVERALL_BENEFIT_TO_SOCIETY for s in page)

    def test_get_by_derived_id(self, indexed_tier, issue_stat):
        indexed_tier.put(issue_stat)
        assert indexed_tier.get(issue_stat.id, BillIssueStat) == issue_stat
