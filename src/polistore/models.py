# src/polistore/models.py
"""
Persistable legislative entities.

All entities are pydantic models serialized with camelCase aliases. Index
sort values (``date``, ``rating``, ``impact``, ``hot`` ...) are read-only
properties computed from the stored fields: they never appear in the JSON
document and are recomputed on every read and write.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .identity import (
    ID_SEPARATOR,
    LegislativeNamespace,
    derive_id,
    hot_score,
    parse_id,
    storage_bucket,
)


# Weight of a passed law relative to its status progress when ranking legislators
DEFAULT_IMPACT_LAW_WEIGHT = 100.0

# Bills rank "hot" with laws mattering less, so recency can outweigh them
HOT_IMPACT_LAW_WEIGHT = 1.5

COMPOSITE_KEY_SEPARATOR = "~"


class TrackedIssue(str, Enum):
    """Policy areas every interpretation is scored against."""

    AGRICULTURE_AND_FOOD = "AgricultureAndFood"
    EDUCATION = "Education"
    TRANSPORTATION = "Transportation"
    ECONOMICS_AND_COMMERCE = "EconomicsAndCommerce"
    FOREIGN_RELATIONS = "ForeignRelations"
    GOVERNMENT_EFFICIENCY_AND_MANAGEMENT = "GovernmentEfficiencyAndManagement"
    HEALTHCARE = "Healthcare"
    HOUSING = "Housing"
    ENERGY = "Energy"
    TECHNOLOGY = "Technology"
    IMMIGRATION = "Immigration"
    NATIONAL_DEFENSE = "NationalDefense"
    CRIME_AND_LAW_ENFORCEMENT = "CrimeAndLawEnforcement"
    WILDLIFE_AND_FOREST_MANAGEMENT = "WildlifeAndForestManagement"
    PUBLIC_LANDS_AND_NATURAL_RESOURCES = "PublicLandsAndNaturalResources"
    ENVIRONMENTAL_MANAGEMENT_AND_CLIMATE_CHANGE = "EnvironmentalManagementAndClimateChange"
    SOCIAL_EQUITY = "SocialEquity"
    OVERALL_BENEFIT_TO_SOCIETY = "OverallBenefitToSociety"


OVERALL = TrackedIssue.OVERALL_BENEFIT_TO_SOCIETY


class Party(str, Enum):
    DEMOCRAT = "DEMOCRAT"
    REPUBLICAN = "REPUBLICAN"
    INDEPENDENT = "INDEPENDENT"


class LegislativeChamber(str, Enum):
    HOUSE = "HOUSE"
    SENATE = "SENATE"


def calculate_impact(
    rating: int,
    status_progress: float,
    cosponsor_percent: float,
    law_weight: float = DEFAULT_IMPACT_LAW_WEIGHT,
) -> int:
    """Combine how far a bill got, how strongly it was rated and its support.

    A bill that became law (``status_progress == 1``) has its status term
    multiplied by ``law_weight``. The sign of the result is the sign of
    ``rating``.
    """
    status_term = status_progress * 100000.0 * (law_weight if status_progress == 1.0 else 1.0)
    rating_term = abs(rating / 100.0) * 10000.0
    cosponsor_term = cosponsor_percent * 1000.0
    sign = -1 if rating < 0 else 1
    return int(round(status_term + rating_term + cosponsor_term)) * sign


# =============================================================================
# VALUE OBJECTS
# =============================================================================


class PolistoreModel(BaseModel):
    """Base for every serialized object: camelCase JSON, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class IssueStats(PolistoreModel):
    """Per-issue scores in [-100, 100] with a free-text explanation."""

    stats: dict[TrackedIssue, int] = Field(default_factory=dict)
    explanation: str = ""

    def get_stat(self, issue: TrackedIssue = OVERALL) -> int:
        return self.stats.get(issue, 0)

    @property
    def rating(self) -> int:
        return self.get_stat(OVERALL)


class LegislatorName(PolistoreModel):
    first: str = ""
    last: str = ""
    official_full: str = ""


class LegislativeTerm(PolistoreModel):
    start_date: dt.date
    end_date: dt.date | None = None
    state: str
    district: str | None = None
    party: Party | None = None
    chamber: LegislativeChamber


class BillStatus(PolistoreModel):
    description: str = ""
    progress: float = 0.0


class BillSponsor(PolistoreModel):
    legislator_id: str
    name: LegislatorName = Field(default_factory=LegislatorName)
    party: Party | None = None


# =============================================================================
# PERSISTABLE BASES
# =============================================================================


class Persistable(PolistoreModel):
    """An entity with a hierarchical id. Subclasses set ``ID_CLASS_PREFIX``."""

    ID_CLASS_PREFIX: ClassVar[str] = ""

    id: str

    @property
    def storage_bucket(self) -> str:
        return storage_bucket(self.id)


class SessionPersistable(Persistable):
    """An entity whose id is assigned once, at creation, from its session."""

    @property
    def namespace(self) -> LegislativeNamespace:
        return LegislativeNamespace(parse_id(self.id).namespace)

    @property
    def session_code(self) -> str:
        return parse_id(self.id).session_code

    @property
    def object_code(self) -> str:
        return parse_id(self.id).object_code

    @classmethod
    def generate_id(cls, namespace: LegislativeNamespace | str, session_code: str | int, *object_code: str | int) -> str:
        return derive_id(cls.ID_CLASS_PREFIX, namespace, session_code, *object_code)


# =============================================================================
# INTERPRETATIONS
# =============================================================================


class BillInterpretation(SessionPersistable):
    """An AI generated assessment of one bill (or one slice of a long bill)."""

    ID_CLASS_PREFIX: ClassVar[str] = "BIT"

    bill_id: str
    issue_stats: IssueStats = Field(default_factory=IssueStats)
    gen_bill_title: str = ""
    short_explain: str = ""
    long_explain: str = ""
    riders: list[str] = Field(default_factory=list)
    generated_date: dt.date = Field(default_factory=dt.date.today)

    @classmethod
    def generate_id_for_bill(cls, bill_id: str, slice_index: int | None = None) -> str:
        interp_id = cls.ID_CLASS_PREFIX + bill_id[len(Bill.ID_CLASS_PREFIX) :]
        if slice_index is not None:
            interp_id += f"-{slice_index}"
        return interp_id

    @property
    def date(self) -> dt.date:
        return self.generated_date

    @property
    def rating(self) -> int:
        return self.issue_stats.rating

    def get_rating(self, issue: TrackedIssue = OVERALL) -> int:
        return self.issue_stats.get_stat(issue)


class LegislatorInterpretation(SessionPersistable):
    """An AI generated assessment of a legislator's record in one session."""

    ID_CLASS_PREFIX: ClassVar[str] = "LIT"

    issue_stats: IssueStats = Field(default_factory=IssueStats)
    long_explain: str = ""
    generated_date: dt.date = Field(default_factory=dt.date.today)

    @property
    def date(self) -> dt.date:
        return self.generated_date

    @property
    def rating(self) -> int:
        return self.issue_stats.rating

    def get_rating(self, issue: TrackedIssue = OVERALL) -> int:
        return self.issue_stats.get_stat(issue)


# =============================================================================
# BILLS
# =============================================================================


class BillText(SessionPersistable):
    """Full text of a bill. ``xml`` is routed to its own page in the indexed tier."""

    ID_CLASS_PREFIX: ClassVar[str] = "BTX"

    bill_id: str
    xml: str = ""
    last_updated: dt.date | None = None

    @classmethod
    def generate_id_for_bill(cls, bill_id: str) -> str:
        return cls.ID_CLASS_PREFIX + bill_id[len(Bill.ID_CLASS_PREFIX) :]

    @property
    def date(self) -> dt.date | None:
        return self.last_updated


class Bill(SessionPersistable):
    ID_CLASS_PREFIX: ClassVar[str] = "BIL"

    type: str
    number: int
    name: str = ""
    status: BillStatus = Field(default_factory=BillStatus)
    sponsor: BillSponsor | None = None
    cosponsors: list[BillSponsor] = Field(default_factory=list)
    introduced_date: dt.date
    last_action_date: dt.date | None = None
    cosponsor_percent: float = 0.0
    interpretation: BillInterpretation | None = None

    @classmethod
    def generate_bill_id(cls, namespace: LegislativeNamespace | str, session_code: str | int, bill_type: str, number: int) -> str:
        return cls.generate_id(namespace, session_code, bill_type.lower(), number)

    @property
    def date(self) -> dt.date:
        return self.last_action_date or self.introduced_date

    def get_rating(self, issue: TrackedIssue = OVERALL) -> int:
        return self.interpretation.get_rating(issue) if self.interpretation else 0

    @property
    def rating(self) -> int:
        return self.get_rating()

    @property
    def rating_abs(self) -> int:
        return abs(self.rating)

    def get_impact(self, issue: TrackedIssue = OVERALL, law_weight: float = DEFAULT_IMPACT_LAW_WEIGHT) -> int:
        return calculate_impact(self.get_rating(issue), self.status.progress, self.cosponsor_percent, law_weight)

    @property
    def impact(self) -> int:
        return self.get_impact()

    @property
    def impact_abs(self) -> int:
        return abs(self.impact)

    @property
    def hot(self) -> float:
        return hot_score(abs(self.get_impact(OVERALL, HOT_IMPACT_LAW_WEIGHT)), self.date)


class IssueStatBase(PolistoreModel):
    """A denormalized (issue, score) row backing the per-issue leaderboards.

    The id is not stored: it is ``<issuePK>/<subject id>`` where
    ``issuePK = <PREFIX>/<namespace>/<session>/<issue>``.
    """

    ID_CLASS_PREFIX: ClassVar[str] = ""

    issue: TrackedIssue
    impact: int = 0
    rating: int = 0

    def _subject_id(self) -> str:
        raise NotImplementedError

    @property
    def issue_pk(self) -> str:
        subject = parse_id(self._subject_id())
        return ID_SEPARATOR.join([self.ID_CLASS_PREFIX, subject.namespace, subject.session_code, self.issue.value])

    @property
    def id(self) -> str:
        return f"{self.issue_pk}{ID_SEPARATOR}{self._subject_id()}"

    @property
    def storage_bucket(self) -> str:
        return storage_bucket(self.id)


class BillIssueStat(IssueStatBase):
    ID_CLASS_PREFIX: ClassVar[str] = "BIS"

    bill_id: str
    name: str = ""
    introduced_date: dt.date | None = None

    def _subject_id(self) -> str:
        return self.bill_id

    @classmethod
    def for_bill(cls, bill: Bill, issue: TrackedIssue) -> "BillIssueStat":
        return cls(
            issue=issue,
            impact=bill.get_impact(issue),
            rating=bill.get_rating(issue),
            bill_id=bill.id,
            name=bill.name,
            introduced_date=bill.introduced_date,
        )


class LegislatorIssueStat(IssueStatBase):
    ID_CLASS_PREFIX: ClassVar[str] = "LIS"

    legislator_id: str
    name: LegislatorName = Field(default_factory=LegislatorName)

    def _subject_id(self) -> str:
        return self.legislator_id

    @classmethod
    def for_legislator(cls, legislator: "Legislator", issue: TrackedIssue) -> "LegislatorIssueStat":
        return cls(
            issue=issue,
            impact=legislator.get_impact(issue),
            rating=legislator.get_rating(issue),
            legislator_id=legislator.id,
            name=legislator.name,
        )


# =============================================================================
# LEGISLATORS
# =============================================================================


class LegislatorBillInteraction(PolistoreModel):
    """A legislator's vote on, or (co)sponsorship of, one bill.

    Stored under a composite key: the partition is the legislator's id with
    the ``LBI`` prefix, the sort key is ``<yyyyMMdd>/<bill id without prefix
    and country>``. ``id`` joins both with ``~``.
    """

    ID_CLASS_PREFIX: ClassVar[str] = "LBI"

    leg_id: str
    bill_id: str
    bill_name: str = ""
    date: dt.date
    kind: Literal["vote", "sponsor", "cosponsor"] = "vote"
    vote_status: Literal["AYE", "NAY", "PRESENT", "NOT_VOTING"] | None = None
    issue_stats: IssueStats | None = None
    short_explain: str = ""
    status_progress: float = 0.0
    cosponsor_percent: float = 0.0

    @property
    def partition_key(self) -> str:
        return self.ID_CLASS_PREFIX + self.leg_id[len(Legislator.ID_CLASS_PREFIX) :]

    @property
    def sort_key(self) -> str:
        bill_parts = self.bill_id.split(ID_SEPARATOR)[2:]
        return ID_SEPARATOR.join([self.date.strftime("%Y%m%d"), *bill_parts])

    @property
    def id(self) -> str:
        return f"{self.partition_key}{COMPOSITE_KEY_SEPARATOR}{self.sort_key}"

    @property
    def storage_bucket(self) -> str:
        return storage_bucket(self.id)

    @property
    def judgement_weight(self) -> float:
        if self.kind == "sponsor":
            return 1.0
        if self.kind == "cosponsor":
            return 0.5
        return -0.5 if self.vote_status == "NAY" else 0.5

    def supersedes(self, other: "LegislatorBillInteraction") -> bool:
        """Sponsorship outranks cosponsorship, which outranks a vote; later wins ties."""
        rank = {"vote": 0, "cosponsor": 1, "sponsor": 2}
        if rank[self.kind] != rank[other.kind]:
            return rank[self.kind] > rank[other.kind]
        return self.date >= other.date

    def get_rating(self, issue: TrackedIssue = OVERALL) -> int:
        if self.issue_stats is None:
            return 0
        return int(round(self.issue_stats.get_stat(issue) * self.judgement_weight))

    @property
    def rating(self) -> int:
        return self.get_rating()

    @property
    def rating_abs(self) -> int:
        return abs(self.rating)

    def get_impact(self, issue: TrackedIssue = OVERALL) -> int:
        if self.issue_stats is None:
            return 0
        base = calculate_impact(self.issue_stats.get_stat(issue), self.status_progress, self.cosponsor_percent)
        return int(round(base * self.judgement_weight))

    @property
    def impact(self) -> int:
        return self.get_impact()

    @property
    def impact_abs(self) -> int:
        return abs(self.impact)

    @property
    def hot(self) -> float:
        return hot_score(self.impact_abs, self.date)


class Legislator(SessionPersistable):
    """A legislator in one session, with the full history of bill interactions."""

    ID_CLASS_PREFIX: ClassVar[str] = "LEG"

    name: LegislatorName = Field(default_factory=LegislatorName)
    birthday: dt.date | None = None
    terms: list[LegislativeTerm] = Field(default_factory=list)
    impact_map: dict[TrackedIssue, int] = Field(default_factory=dict)
    interpretation: LegislatorInterpretation | None = None
    interactions: list[LegislatorBillInteraction] = Field(default_factory=list)

    @property
    def date(self) -> dt.date | None:
        return self.birthday

    def get_rating(self, issue: TrackedIssue = OVERALL) -> int:
        return self.interpretation.get_rating(issue) if self.interpretation else -1

    @property
    def rating(self) -> int:
        return self.get_rating()

    @property
    def rating_abs(self) -> int:
        return -1 if self.interpretation is None else abs(self.rating)

    def get_impact(self, issue: TrackedIssue = OVERALL) -> int:
        return self.impact_map.get(issue, 0)

    @property
    def impact(self) -> int:
        return self.get_impact()

    @property
    def impact_abs(self) -> int:
        return abs(self.impact)

    @property
    def location(self) -> str | None:
        if not self.terms:
            return None
        last = max(self.terms, key=lambda t: t.start_date)
        return last.state if last.district is None else f"{last.state}{ID_SEPARATOR}{last.district}"

    def add_bill_interaction(self, incoming: LegislatorBillInteraction) -> None:
        """Record an interaction, replacing an existing one for the same bill if it is superseded."""
        for i, existing in enumerate(self.interactions):
            if existing.bill_id == incoming.bill_id:
                if incoming.supersedes(existing):
                    self.interactions[i] = incoming
                return
        self.interactions.append(incoming)

    def calculate_impact(self) -> dict[TrackedIssue, int]:
        """Sum interaction impacts per issue into ``impact_map`` and return it."""
        self.impact_map = {issue: sum(i.get_impact(issue) for i in self.interactions) for issue in TrackedIssue}
        return self.impact_map
