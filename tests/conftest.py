# tests/conftest.py
"""
Shared fixtures: sample entities for every persistable type and stores
backed by a temporary directory and an in-memory SQLite table.
"""

import datetime as dt

import pytest

from polistore.config import IndexedTierConfig, RetryConfig
from polistore.identity import LegislativeNamespace
from polistore.models import (
    Bill,
    BillInterpretation,
    BillIssueStat,
    BillStatus,
    BillText,
    IssueStats,
    LegislativeChamber,
    LegislativeTerm,
    Legislator,
    LegislatorBillInteraction,
    LegislatorName,
    TrackedIssue,
)
from polistore.storage.backends import FileSystemBlobBackend, SQLiteIndexedBackend
from polistore.storage.tiers import DurableBlobTier, IndexedQueryTier, MemoryTier

CONGRESS = LegislativeNamespace.US_CONGRESS
SESSION = "118"

# No sleeping between retries in tests
FAST_RETRY = RetryConfig(max_attempts=3, base_delay_seconds=0.0, max_delay_seconds=0.0)


def make_bill(number: int = 1, rating: int = 50, introduced: dt.date = dt.date(2024, 1, 15), progress: float = 0.2) -> Bill:
    bill_id = Bill.generate_bill_id(CONGRESS, SESSION, "hr", number)
    return Bill(
        id=bill_id,
        type="hr",
        number=number,
        name=f"Test Act {number}",
        status=BillStatus(description="Introduced", progress=progress),
        introduced_date=introduced,
        cosponsor_percent=0.1,
        interpretation=BillInterpretation(
            id=BillInterpretation.generate_id_for_bill(bill_id),
            bill_id=bill_id,
            issue_stats=IssueStats(stats={TrackedIssue.OVERALL_BENEFIT_TO_SOCIETY: rating, TrackedIssue.EDUCATION: 10}),
            short_explain="Short.",
            generated_date=dt.date(2024, 2, 1),
        ),
    )


def make_interaction(leg_id: str, bill_number: int, day: dt.date, rating: int = 40) -> LegislatorBillInteraction:
    return LegislatorBillInteraction(
        leg_id=leg_id,
        bill_id=Bill.generate_bill_id(CONGRESS, SESSION, "hr", bill_number),
        bill_name=f"Test Act {bill_number}",
        date=day,
        kind="vote",
        vote_status="AYE",
        issue_stats=IssueStats(stats={TrackedIssue.OVERALL_BENEFIT_TO_SOCIETY: rating}),
        short_explain="An interaction " * 5,
        status_progress=0.2,
    )


def make_legislator(code: str = "P000197", interactions: int = 0, state: str = "CA", district: str | None = "11") -> Legislator:
    leg_id = Legislator.generate_id(CONGRESS, SESSION, code)
    legislator = Legislator(
        id=leg_id,
        name=LegislatorName(first="Test", last=code, official_full=f"Test {code}"),
        birthday=dt.date(1960, 3, 26),
        terms=[
            LegislativeTerm(start_date=dt.date(2023, 1, 3), state=state, district=district, chamber=LegislativeChamber.HOUSE)
        ],
    )
    for i in range(interactions):
        legislator.add_bill_interaction(make_interaction(leg_id, i + 1, dt.date(2023, 1, 1) + dt.timedelta(days=i)))
    return legislator


@pytest.fixture
def bill() -> Bill:
    return make_bill()


@pytest.fixture
def legislator() -> Legislator:
    return make_legislator(interactions=3)


@pytest.fixture
def bill_text(bill) -> BillText:
    return BillText(
        id=BillText.generate_id_for_bill(bill.id),
        bill_id=bill.id,
        xml="<bill><section>Be it enacted...</section></bill>",
        last_updated=dt.date(2024, 1, 20),
    )


@pytest.fixture
def issue_stat(bill) -> BillIssueStat:
    return BillIssueStat.for_bill(bill, TrackedIssue.EDUCATION)


@pytest.fixture
def memory() -> MemoryTier:
    return MemoryTier()


@pytest.fixture
def blob_backend(tmp_path) -> FileSystemBlobBackend:
    return FileSystemBlobBackend(tmp_path / "blobs")


@pytest.fixture
def blob_tier(blob_backend) -> DurableBlobTier:
    return DurableBlobTier(blob_backend, retry=FAST_RETRY)


@pytest.fixture
def sqlite_backend():
    backend = SQLiteIndexedBackend(":memory:")
    yield backend
    backend.close()


@pytest.fixture
def indexed_config() -> IndexedTierConfig:
    # Small pages so modest collections split
    return IndexedTierConfig(item_size_limit_bytes=4096, page_size_threshold_bytes=1024)


@pytest.fixture
def indexed_tier(sqlite_backend, indexed_config) -> IndexedQueryTier:
    return IndexedQueryTier(sqlite_backend, config=indexed_config, retry=FAST_RETRY)


@pytest.fixture
def bill_factory():
    return make_bill


@pytest.fixture
def legislator_factory():
    return make_legislator


@pytest.fixture
def interaction_factory():
    return make_interaction
