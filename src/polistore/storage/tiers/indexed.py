# src/polistore/storage/tiers/indexed.py
"""
Indexed-Query Tier - paged entity storage with secondary-index pagination.

An entity is stored as a head record ``(id, page="0")`` holding every small
attribute, every derived index attribute and the partition attributes, plus
zero or more auxiliary records ``(id, page="1".."n")`` holding the large
attributes named in ``polistore.schema``:

- a ``DataPage`` attribute is encoded whole onto its fixed page;
- a ``ListPage`` attribute is encoded and sliced into chunks of at most
  ``page_size_threshold_bytes`` on consecutive pages.

The head records a manifest of which pages carry which large attribute,
with a digest of the encoded value, so a reader can tell a complete
attribute from a missing or stale chunk. A damaged large attribute falls
back to its default and is logged; the rest of the entity is still
returned.

Composite-key types (``LegislatorBillInteraction``) are a single record
keyed ``(partition, sort)`` and are never split.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, TypeVar

from ...config import IndexedTierConfig, RetryConfig
from ...exceptions import SizeLimitExceededError, UnsupportedQueryError
from ...identity import validate_id
from ...schema import (
    HEAD_PAGE,
    ID_ATTRIBUTE,
    INDEX_SPECS,
    ISSUE_PK_ATTRIBUTE,
    PAGE_ATTRIBUTE,
    STORAGE_BUCKET_ATTRIBUTE,
    DataPage,
    EntitySchema,
    SecondaryIndex,
    schema_for,
)
from .. import codec
from ..base import (
    BaseObjectStore,
    IndexedBackend,
    IndexQuery,
    QueryPage,
    decode_cursor,
    encode_cursor,
)
from ..retry import call_with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

MANIFEST_ATTRIBUTE = "largeAttributePages"

# "id" stays: paged entities declare it as a field; derived ids ignore it.
STRUCTURAL_ATTRIBUTES = frozenset({PAGE_ATTRIBUTE, MANIFEST_ATTRIBUTE})


def _index_value(value: Any) -> Any:
    if isinstance(value, dt.date):
        return value.isoformat()
    return value


def _page_order(page: str) -> tuple[int, str]:
    return (int(page), page) if page.isdigit() else (1 << 62, page)


class IndexedQueryTier(BaseObjectStore):
    """Entity storage on an indexed backend (SQLite, DynamoDB)."""

    def __init__(
        self,
        backend: IndexedBackend,
        config: IndexedTierConfig | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self.backend = backend
        self.config = config or IndexedTierConfig()
        self.retry = retry or RetryConfig()

    def _call(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        return call_with_retry(fn, *args, policy=self.retry, operation=f"{self.backend.name}.{operation}")

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def _index_attributes(self, entity: Any, schema: EntitySchema) -> dict[str, Any]:
        """Derived sort values and partition attributes, recomputed now."""
        attrs: dict[str, Any] = {}
        for index in schema.indexes:
            spec = INDEX_SPECS[index]
            value = getattr(entity, spec.getter, None)
            if value is not None:
                attrs[spec.sort_attribute] = _index_value(value)
        if schema.issue_scoped:
            attrs[ISSUE_PK_ATTRIBUTE] = entity.issue_pk
        else:
            attrs[STORAGE_BUCKET_ATTRIBUTE] = entity.storage_bucket
        return attrs

    def _split(self, entity: Any, schema: EntitySchema) -> tuple[dict[str, Any], dict[str, dict[str, Any]]]:
        """Build the head record and the auxiliary records of an entity."""
        entity_id = entity.id
        key_id, key_page = schema.primary_key(entity_id)
        document = entity.model_dump(mode="json", by_alias=True)
        threshold = self.config.page_size_threshold_bytes

        aux: dict[str, dict[str, Any]] = {}
        manifest: dict[str, dict[str, Any]] = {}
        for large in schema.large_attributes:
            alias = schema.alias(large.attribute)
            value = document.pop(alias, None)
            if codec.is_empty(value):
                continue
            encoded = codec.encode_attribute(value)
            if isinstance(large, DataPage):
                chunks = {str(large.page): encoded}
            else:
                chunks = {
                    str(large.first_page + i): part for i, part in enumerate(codec.chunk(encoded, threshold))
                }
            for page, part in chunks.items():
                aux.setdefault(page, {ID_ATTRIBUTE: key_id, PAGE_ATTRIBUTE: page})[alias] = part
            manifest[alias] = {"pages": list(chunks), "digest": codec.digest(encoded)}

        head = {**document, **self._index_attributes(entity, schema), ID_ATTRIBUTE: key_id, PAGE_ATTRIBUTE: key_page}
        if manifest:
            head[MANIFEST_ATTRIBUTE] = manifest
        return head, aux

    def _check_size(self, page: str, record: dict[str, Any]) -> None:
        size = codec.item_size(record)
        limit = self.config.item_size_limit_bytes
        if size > limit:
            raise SizeLimitExceededError(page=page, size=size, limit=limit)

    def _reassemble(
        self, entity_id: str, head: dict[str, Any], aux: dict[str, dict[str, Any]] | None
    ) -> dict[str, Any]:
        """Merge large attributes from auxiliary pages back into the head document.

        With ``aux`` of ``None`` the head is taken as is and large attributes
        keep their defaults.
        """
        document = {k: v for k, v in head.items() if k not in STRUCTURAL_ATTRIBUTES}
        if aux is None:
            return document
        for alias, entry in (head.get(MANIFEST_ATTRIBUTE) or {}).items():
            pages = sorted(entry.get("pages", []), key=_page_order)
            parts = [aux.get(page, {}).get(alias) for page in pages]
            if any(part is None for part in parts):
                missing = [p for p, part in zip(pages, parts) if part is None]
                logger.warning(f"{entity_id}: pages {missing} of '{alias}' are missing, using default")
                continue
            encoded = "".join(parts)
            if codec.digest(encoded) != entry.get("digest"):
                logger.warning(f"{entity_id}: '{alias}' does not match its digest, using default")
                continue
            try:
                document[alias] = codec.decode_attribute(encoded)
            except ValueError as e:
                logger.warning(f"{entity_id}: cannot decode '{alias}' ({e}), using default")
        return document

    def _to_entity(self, entity_type: type[T], head: dict[str, Any], aux: dict[str, dict[str, Any]] | None = None) -> T:
        document = self._reassemble(str(head.get(ID_ATTRIBUTE)), head, aux)
        return entity_type.model_validate(document)  # type: ignore[attr-defined]

    # -------------------------------------------------------------------------
    # Single entity operations
    # -------------------------------------------------------------------------

    def put(self, entity: Any) -> None:
        """Write the head record, then every auxiliary page, then drop stale pages.

        Raises:
            MalformedIdentifierError: Before any backend call, for a bad id.
            SizeLimitExceededError: Before any backend call, if a record is too large.
        """
        schema = schema_for(type(entity))
        entity_id = validate_id(entity.id)
        head, aux = self._split(entity, schema)

        self._check_size(HEAD_PAGE, head)
        for page, record in aux.items():
            self._check_size(page, record)

        self._call("put_item", self.backend.put_item, head)
        for page in sorted(aux, key=_page_order):
            self._call("put_item", self.backend.put_item, aux[page])

        if schema.large_attributes and not schema.composite_key:
            self._delete_stale_pages(entity_id, set(aux))

        logger.info(f"Put {entity_id} to {self.backend.name} ({1 + len(aux)} pages)")

    def _delete_stale_pages(self, entity_id: str, written: set[str]) -> None:
        for page in self._call("list_page_keys", self.backend.list_page_keys, entity_id):
            if page != HEAD_PAGE and page not in written:
                self._call("delete_item", self.backend.delete_item, (entity_id, page))
                logger.debug(f"Deleted stale page {page} of {entity_id}")

    def get(self, entity_id: str, entity_type: type[T]) -> T | None:
        schema = schema_for(entity_type)
        validate_id(entity_id)

        if schema.composite_key or not schema.large_attributes:
            head = self._call("get_item", self.backend.get_item, schema.primary_key(entity_id))
            if head is None:
                logger.debug(f"{entity_id} not found in {self.backend.name}")
                return None
            return self._to_entity(entity_type, head, {})

        pages = self._call("get_pages", self.backend.get_pages, entity_id)
        by_page = {str(p[PAGE_ATTRIBUTE]): p for p in pages}
        head = by_page.pop(HEAD_PAGE, None)
        if head is None:
            if by_page:
                logger.debug(f"{entity_id} has auxiliary pages but no head, treating as absent")
            return None
        return self._to_entity(entity_type, head, by_page)

    def exists(self, entity_id: str, entity_type: type) -> bool:
        schema = schema_for(entity_type)
        validate_id(entity_id)
        return self._call("get_item", self.backend.get_item, schema.primary_key(entity_id)) is not None

    def delete(self, entity_id: str, entity_type: type) -> None:
        """Delete the head record only.

        Auxiliary pages are left in place and become unreachable; call
        ``delete_auxiliary_pages`` to remove them as well.
        """
        schema = schema_for(entity_type)
        validate_id(entity_id)
        self._call("delete_item", self.backend.delete_item, schema.primary_key(entity_id))
        logger.info(f"Deleted {entity_id} from {self.backend.name}")

    def delete_entity(self, entity: Any) -> None:
        self.delete(entity.id, type(entity))

    def delete_auxiliary_pages(self, entity_id: str, entity_type: type) -> int:
        """Remove every non-head page of an entity. Returns the number removed."""
        schema = schema_for(entity_type)
        validate_id(entity_id)
        if schema.composite_key:
            return 0
        removed = 0
        for page in self._call("list_page_keys", self.backend.list_page_keys, entity_id):
            if page != HEAD_PAGE:
                self._call("delete_item", self.backend.delete_item, (entity_id, page))
                removed += 1
        if removed:
            logger.info(f"Deleted {removed} auxiliary pages of {entity_id}")
        return removed

    # -------------------------------------------------------------------------
    # Index queries
    # -------------------------------------------------------------------------

    def query(
        self,
        entity_type: type[T],
        bucket: str | None = None,
        page_size: int = -1,
        index: SecondaryIndex | str | None = None,
        ascending: bool = True,
        exclusive_start_key: str | None = None,
        sort_key_prefix: str | None = None,
        issue: Any = None,
        hydrate: bool = False,
    ) -> QueryPage[T]:
        """
        Read one page of a secondary index.

        Args:
            entity_type: Type to query.
            bucket: Storage bucket (partition scope). Required.
            page_size: Maximum items to return, -1 for all.
            index: Secondary index; defaults to ByDate.
            ascending: Sort direction.
            exclusive_start_key: Cursor from a previous page's ``next_cursor``.
            sort_key_prefix: Only items whose (string) sort value starts with this.
            issue: Required for the issue-scoped indexes.
            hydrate: Load large attributes too. Index reads return head
                records, so without this, large attributes hold their defaults.

        Raises:
            UnsupportedQueryError: For an unknown or undeclared index, a missing
                bucket or issue, a prefix on a numeric index, or a bad cursor.
        """
        schema = schema_for(entity_type)
        resolved = SecondaryIndex.resolve(index)
        if not schema.supports(resolved):
            raise UnsupportedQueryError(f"{entity_type.__name__} is not indexed by {resolved.value}.")
        if not bucket:
            raise UnsupportedQueryError(f"Querying {entity_type.__name__} requires a storage bucket.")
        if page_size == 0 or page_size < -1:
            raise UnsupportedQueryError(f"Invalid page size {page_size}.")

        spec = INDEX_SPECS[resolved]
        partition = bucket.rstrip("/")
        if spec.issue_scoped:
            if issue is None:
                raise UnsupportedQueryError(f"{resolved.value} requires an issue.")
            partition = f"{partition}/{getattr(issue, 'value', issue)}"
        if sort_key_prefix and spec.numeric:
            raise UnsupportedQueryError(f"{resolved.value} sorts on a number; sort key prefixes are not supported.")

        start = None
        if exclusive_start_key:
            last_id, last_sort = decode_cursor(exclusive_start_key)
            key_id, key_page = schema.primary_key(last_id)
            start = {
                ID_ATTRIBUTE: key_id,
                PAGE_ATTRIBUTE: key_page,
                spec.partition_attribute: partition,
                spec.sort_attribute: last_sort,
            }

        # One extra item tells us whether another page exists.
        wanted = None if page_size == -1 else page_size + 1
        records: list[dict[str, Any]] = []
        while True:
            request = IndexQuery(
                index_name=resolved.value,
                partition_attribute=spec.partition_attribute,
                partition_value=partition,
                sort_attribute=spec.sort_attribute,
                ascending=ascending,
                limit=None if wanted is None else wanted - len(records),
                exclusive_start=start,
                sort_prefix=sort_key_prefix,
            )
            result = self._call("query_index", self.backend.query_index, request)
            records.extend(result.items)
            start = result.last_evaluated_key
            if start is None or (wanted is not None and len(records) >= wanted):
                break

        has_more = wanted is not None and len(records) > page_size
        if wanted is not None:
            records = records[:page_size]

        if hydrate and schema.large_attributes:
            items = [
                self.get(schema.id_from_key(r[ID_ATTRIBUTE], r[PAGE_ATTRIBUTE]), entity_type)
                or self._to_entity(entity_type, r)
                for r in records
            ]
        else:
            items = [self._to_entity(entity_type, r) for r in records]

        next_cursor = None
        if has_more and records:
            last = records[-1]
            next_cursor = encode_cursor(
                schema.id_from_key(last[ID_ATTRIBUTE], last[PAGE_ATTRIBUTE]), last[spec.sort_attribute]
            )
        logger.debug(f"Query {resolved.value} on {partition}: {len(items)} items (has_more={has_more})")
        return QueryPage(items=items, next_cursor=next_cursor, has_more=has_more)
