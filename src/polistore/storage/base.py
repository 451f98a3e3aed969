# src/polistore/storage/base.py
"""
Abstract base classes and shared result types for polistore storage.

Defines:
- ``BaseObjectStore``: the get/put/exists/query/delete contract shared by
  the tiers, the cached orchestrators and the union store.
- ``BlobBackend`` / ``IndexedBackend``: the raw key/value and table
  protocols that tiers drive.
- ``QueryPage`` and the opaque cursor codec.
"""

from __future__ import annotations

import abc
import base64
import binascii
import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

from ..exceptions import UnsupportedQueryError

T = TypeVar("T")


@dataclass
class QueryPage(Generic[T]):
    """One page of query results.

    Attributes:
        items: Entities in index order.
        next_cursor: Opaque cursor for the following page, ``None`` when exhausted.
        has_more: Whether another non-empty page exists.
    """

    items: list[T] = field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


# ------------------------------------------------------------------------------
# Cursor
# ------------------------------------------------------------------------------


def encode_cursor(last_id: str, last_sort_value: Any) -> str:
    payload = json.dumps({"id": last_id, "sort": last_sort_value}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> tuple[str, Any]:
    """Return ``(last_id, last_sort_value)``.

    Raises:
        UnsupportedQueryError: If the cursor was not produced by ``encode_cursor``.
    """
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        return payload["id"], payload["sort"]
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError, AttributeError) as e:
        raise UnsupportedQueryError(f"Invalid pagination cursor '{cursor}'.") from e


# ------------------------------------------------------------------------------
# Backend protocols
# ------------------------------------------------------------------------------


class BlobBackend(Protocol):
    """Flat key -> bytes storage (a local directory, an S3 bucket)."""

    name: str

    def get(self, key: str) -> bytes | None: ...

    def put(self, key: str, data: bytes) -> None: ...

    def exists(self, key: str) -> bool: ...

    def delete(self, key: str) -> None: ...

    def list_keys(self, prefix: str) -> Iterator[list[str]]:
        """Yield keys starting with ``prefix`` one backend page at a time, in key order."""
        ...


@dataclass
class IndexQuery:
    """A single secondary-index read, expressed in backend terms."""

    index_name: str
    partition_attribute: str
    partition_value: str
    sort_attribute: str
    ascending: bool = True
    limit: int | None = None
    exclusive_start: dict[str, Any] | None = None
    sort_prefix: str | None = None


@dataclass
class IndexQueryResult:
    items: list[dict[str, Any]] = field(default_factory=list)
    last_evaluated_key: dict[str, Any] | None = None


class IndexedBackend(Protocol):
    """A table keyed by ``(id, page)`` with sparse secondary indexes."""

    name: str

    def put_item(self, item: dict[str, Any]) -> None: ...

    def get_item(self, key: tuple[str, str]) -> dict[str, Any] | None: ...

    def get_pages(self, item_id: str) -> list[dict[str, Any]]:
        """All records sharing the partition ``item_id``."""
        ...

    def list_page_keys(self, item_id: str) -> list[str]: ...

    def delete_item(self, key: tuple[str, str]) -> None: ...

    def query_index(self, query: IndexQuery) -> IndexQueryResult:
        """Read one backend page of an index.

        Items are ordered by ``(sort attribute, id, page)``. When ``limit``
        items were returned, ``last_evaluated_key`` holds the table and index
        keys of the last one, which may be passed back as ``exclusive_start``.
        """
        ...


# ------------------------------------------------------------------------------
# Object store
# ------------------------------------------------------------------------------


class BaseObjectStore(abc.ABC):
    """Contract every object store in polistore fulfils."""

    @abc.abstractmethod
    def get(self, entity_id: str, entity_type: type[T]) -> T | None:
        """Return the entity with ``entity_id`` or ``None`` when it does not exist."""
        raise NotImplementedError

    @abc.abstractmethod
    def put(self, entity: Any) -> None:
        """Store the entity, replacing any previous version."""
        raise NotImplementedError

    @abc.abstractmethod
    def exists(self, entity_id: str, entity_type: type) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def query(
        self,
        entity_type: type[T],
        bucket: str | None = None,
        page_size: int = -1,
        index: Any = None,
        ascending: bool = True,
        exclusive_start_key: str | None = None,
        sort_key_prefix: str | None = None,
        issue: Any = None,
    ) -> QueryPage[T]:
        """Return one page of entities of a type within a storage bucket."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, entity_id: str, entity_type: type) -> None:
        raise NotImplementedError
