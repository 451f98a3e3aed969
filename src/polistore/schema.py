# src/polistore/schema.py
"""
Static persistence schema.

For every persistable type this module declares, once and at import time:

- which attributes are *large* and where the indexed tier puts them
  (``DataPage``: the whole attribute on one fixed auxiliary page;
  ``ListPage``: the encoded collection chunked across consecutive pages),
- which secondary indexes the type participates in,
- how the type's primary key is formed (paged ``(id, page)`` or composite
  ``(partition, sort)``).

Each secondary index sorts on exactly one derived attribute and partitions
on either ``storageBucket`` or, for issue-scoped indexes, ``issuePK``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

from .exceptions import UnsupportedQueryError, ValidationError
from .identity import class_prefix
from .models import (
    COMPOSITE_KEY_SEPARATOR,
    Bill,
    BillInterpretation,
    BillIssueStat,
    BillText,
    Legislator,
    LegislatorBillInteraction,
    LegislatorInterpretation,
    LegislatorIssueStat,
)

HEAD_PAGE = "0"

ID_ATTRIBUTE = "id"
PAGE_ATTRIBUTE = "page"
STORAGE_BUCKET_ATTRIBUTE = "storageBucket"
ISSUE_PK_ATTRIBUTE = "issuePK"


class SecondaryIndex(str, Enum):
    """Secondary indexes, named as they are in the backing table."""

    BY_DATE = "ObjectsByDate"
    BY_RATING = "ObjectsByRating"
    BY_RATING_ABS = "ObjectsByRatingAbs"
    BY_IMPACT = "ObjectsByImpact"
    BY_IMPACT_ABS = "ObjectsByImpactAbs"
    BY_HOT = "ObjectsByHot"
    BY_LOCATION = "ObjectsByLocation"
    BY_ISSUE_IMPACT = "ObjectsByIssueImpact"
    BY_ISSUE_RATING = "ObjectsByIssueRating"

    @classmethod
    def resolve(cls, index: "SecondaryIndex | str | None") -> "SecondaryIndex":
        """Accept an index, its table name or its short name (``"ByHot"``). ``None`` means ByDate."""
        if index is None:
            return cls.BY_DATE
        if isinstance(index, cls):
            return index
        for candidate in cls:
            if index in (candidate.value, candidate.value.replace("Objects", "", 1), candidate.name):
                return candidate
        raise UnsupportedQueryError(f"Unknown secondary index '{index}'.")


class IndexSpec(NamedTuple):
    """How one secondary index is keyed."""

    sort_attribute: str
    getter: str
    numeric: bool
    partition_attribute: str = STORAGE_BUCKET_ATTRIBUTE

    @property
    def issue_scoped(self) -> bool:
        return self.partition_attribute == ISSUE_PK_ATTRIBUTE


INDEX_SPECS: dict[SecondaryIndex, IndexSpec] = {
    SecondaryIndex.BY_DATE: IndexSpec("date", "date", numeric=False),
    SecondaryIndex.BY_RATING: IndexSpec("rating", "rating", numeric=True),
    SecondaryIndex.BY_RATING_ABS: IndexSpec("ratingAbs", "rating_abs", numeric=True),
    SecondaryIndex.BY_IMPACT: IndexSpec("impact", "impact", numeric=True),
    SecondaryIndex.BY_IMPACT_ABS: IndexSpec("impactAbs", "impact_abs", numeric=True),
    SecondaryIndex.BY_HOT: IndexSpec("hot", "hot", numeric=True),
    SecondaryIndex.BY_LOCATION: IndexSpec("location", "location", numeric=False),
    SecondaryIndex.BY_ISSUE_IMPACT: IndexSpec("impact", "impact", numeric=True, partition_attribute=ISSUE_PK_ATTRIBUTE),
    SecondaryIndex.BY_ISSUE_RATING: IndexSpec("rating", "rating", numeric=True, partition_attribute=ISSUE_PK_ATTRIBUTE),
}


# -----------------------------------------------------------------------------
# Large attribute routing
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class DataPage:
    """The whole attribute is stored on the single auxiliary page ``page``."""

    attribute: str
    page: int


@dataclass(frozen=True)
class ListPage:
    """The encoded attribute is chunked over pages ``first_page``, ``first_page + 1``, ..."""

    attribute: str
    first_page: int = 1


LargeAttribute = DataPage | ListPage


@dataclass(frozen=True)
class EntitySchema:
    entity_type: type
    indexes: frozenset[SecondaryIndex]
    large_attributes: tuple[LargeAttribute, ...] = ()
    composite_key: bool = False
    prefix: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "prefix", class_prefix(self.entity_type))

        data_pages = [a.page for a in self.large_attributes if isinstance(a, DataPage)]
        list_pages = [a for a in self.large_attributes if isinstance(a, ListPage)]
        if any(p < 1 for p in data_pages):
            raise ValueError(f"{self.entity_type.__name__}: DataPage pages must be >= 1")
        if len(list_pages) > 1:
            raise ValueError(f"{self.entity_type.__name__}: at most one ListPage attribute is supported")
        if list_pages and data_pages and list_pages[0].first_page <= max(data_pages):
            raise ValueError(f"{self.entity_type.__name__}: ListPage pages must follow every DataPage")
        if self.composite_key and self.large_attributes:
            raise ValueError(f"{self.entity_type.__name__}: composite-key types cannot be page split")

        for attr in self.large_attributes:
            if attr.attribute not in self.entity_type.model_fields:
                raise ValueError(f"{self.entity_type.__name__} has no field '{attr.attribute}'")

    @property
    def issue_scoped(self) -> bool:
        return any(INDEX_SPECS[i].issue_scoped for i in self.indexes)

    def alias(self, field_name: str) -> str:
        """The stored (camelCase) name of a model field."""
        info = self.entity_type.model_fields[field_name]
        return info.alias or field_name

    def primary_key(self, entity_id: str) -> tuple[str, str]:
        """The ``(id, page)`` table key of an entity's head record."""
        if self.composite_key:
            partition, sep, sort = entity_id.partition(COMPOSITE_KEY_SEPARATOR)
            if not sep or not sort:
                raise ValidationError(f"'{entity_id}' is not a composite key of {self.entity_type.__name__}.")
            return partition, sort
        return entity_id, HEAD_PAGE

    def id_from_key(self, partition: str, sort: str) -> str:
        if self.composite_key:
            return f"{partition}{COMPOSITE_KEY_SEPARATOR}{sort}"
        return partition

    def supports(self, index: SecondaryIndex) -> bool:
        return index in self.indexes


_SESSION_INDEXES = frozenset({SecondaryIndex.BY_DATE, SecondaryIndex.BY_RATING})
_RANKED_INDEXES = frozenset(
    {
        SecondaryIndex.BY_DATE,
        SecondaryIndex.BY_RATING,
        SecondaryIndex.BY_RATING_ABS,
        SecondaryIndex.BY_IMPACT,
        SecondaryIndex.BY_IMPACT_ABS,
    }
)
_ISSUE_INDEXES = frozenset({SecondaryIndex.BY_ISSUE_IMPACT, SecondaryIndex.BY_ISSUE_RATING})

SCHEMAS: dict[type, EntitySchema] = {
    schema.entity_type: schema
    for schema in (
        EntitySchema(
            Legislator,
            indexes=_RANKED_INDEXES | {SecondaryIndex.BY_LOCATION},
            large_attributes=(ListPage("interactions", first_page=1),),
        ),
        EntitySchema(Bill, indexes=_RANKED_INDEXES | {SecondaryIndex.BY_HOT}),
        EntitySchema(BillText, indexes=frozenset({SecondaryIndex.BY_DATE}), large_attributes=(DataPage("xml", page=1),)),
        EntitySchema(BillInterpretation, indexes=_SESSION_INDEXES),
        EntitySchema(LegislatorInterpretation, indexes=_SESSION_INDEXES),
        EntitySchema(BillIssueStat, indexes=_ISSUE_INDEXES),
        EntitySchema(LegislatorIssueStat, indexes=_ISSUE_INDEXES),
        EntitySchema(
            LegislatorBillInteraction,
            indexes=_RANKED_INDEXES | {SecondaryIndex.BY_HOT},
            composite_key=True,
        ),
    )
}

_SCHEMAS_BY_PREFIX: dict[str, EntitySchema] = {s.prefix: s for s in SCHEMAS.values()}


def schema_for(entity_type: type) -> EntitySchema:
    """Return the registered schema of a type.

    Raises:
        ValidationError: If the type is not persistable.
    """
    try:
        return SCHEMAS[entity_type]
    except KeyError:
        raise ValidationError(f"Type '{getattr(entity_type, '__name__', entity_type)}' is not a registered persistable type.") from None


def schema_for_prefix(prefix: str) -> EntitySchema:
    try:
        return _SCHEMAS_BY_PREFIX[prefix]
    except KeyError:
        raise ValidationError(f"No persistable type is registered for prefix '{prefix}'.") from None


def persistable_types() -> list[type]:
    return list(SCHEMAS)
