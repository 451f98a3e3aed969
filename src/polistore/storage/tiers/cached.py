# src/polistore/storage/tiers/cached.py
"""
Tiered composite stores.

``CachedBlobStore`` and ``CachedIndexedStore`` put the memory tier in front
of a durable tier:

- reads check memory first; a durable hit is copied into memory
  (best effort: a failure to populate is logged, never raised);
- writes go to memory first, then to the durable tier(s), synchronously.

Deletes only reach the durable tiers. The memory tier is never
invalidated, so a process that deleted an entity can still read it from
memory until restart.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from ...schema import schema_for
from ..base import BaseObjectStore, QueryPage
from .blob import DurableBlobTier
from .indexed import IndexedQueryTier
from .memory import MemoryTier

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _populate(memory: MemoryTier, entity: Any) -> None:
    """Store a deep copy of a durable read in memory; callers may mutate what they got."""
    try:
        memory.put(entity.model_copy(deep=True))
    except Exception:
        logger.error(f"Failed to populate memory tier with {getattr(entity, 'id', entity)!r}", exc_info=True)


class CachedBlobStore(BaseObjectStore):
    """Memory -> (optional local file cache) -> remote blob store."""

    def __init__(self, memory: MemoryTier, durable: DurableBlobTier, local: DurableBlobTier | None = None) -> None:
        self.memory = memory
        self.durable = durable
        self.local = local

    def get(self, entity_id: str, entity_type: type[T]) -> T | None:
        cached = self.memory.get(entity_id, entity_type)
        if cached is not None:
            return cached

        if self.local is not None:
            result = self.local.get(entity_id, entity_type)
            if result is not None:
                _populate(self.memory, result)
                return result

        result = self.durable.get(entity_id, entity_type)
        if result is not None:
            _populate(self.memory, result)
            if self.local is not None:
                try:
                    self.local.put(result)
                except Exception:
                    logger.error(f"Failed to populate local cache with {entity_id}", exc_info=True)
        return result

    def put(self, entity: Any) -> None:
        self.memory.put(entity)
        if self.local is not None:
            self.local.put(entity)
        self.durable.put(entity)

    def exists(self, entity_id: str, entity_type: type) -> bool:
        return (
            self.memory.exists(entity_id, entity_type)
            or (self.local is not None and self.local.exists(entity_id, entity_type))
            or self.durable.exists(entity_id, entity_type)
        )

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
        return self.durable.query(
            entity_type, bucket, page_size, index, ascending, exclusive_start_key, sort_key_prefix, issue
        )

    def list(self, entity_type: type[T], bucket: str | None = None, **kwargs: Any) -> list[T]:
        return self.durable.list(entity_type, bucket, **kwargs)

    def delete(self, entity_id: str, entity_type: type) -> None:
        self.durable.delete(entity_id, entity_type)
        if self.local is not None:
            self.local.delete(entity_id, entity_type)

    def optimize_exists(self, entity_type: type, bucket: str) -> None:
        self.durable.optimize_exists(entity_type, bucket)

    def clear_exists_optimize(self, entity_type: type, bucket: str) -> None:
        self.durable.clear_exists_optimize(entity_type, bucket)


class CachedIndexedStore(BaseObjectStore):
    """Memory -> indexed-query tier."""

    def __init__(self, memory: MemoryTier, indexed: IndexedQueryTier) -> None:
        self.memory = memory
        self.indexed = indexed

    def get(self, entity_id: str, entity_type: type[T]) -> T | None:
        cached = self.memory.get(entity_id, entity_type)
        if cached is not None:
            return cached
        result = self.indexed.get(entity_id, entity_type)
        if result is not None:
            _populate(self.memory, result)
        return result

    def put(self, entity: Any) -> None:
        self.memory.put(entity)
        self.indexed.put(entity)

    def exists(self, entity_id: str, entity_type: type) -> bool:
        # Memory may hold entities deleted from the indexed tier.
        return self.indexed.exists(entity_id, entity_type)

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
        hydrate: bool = False,
    ) -> QueryPage[T]:
        """Query the indexed tier and cache complete results in memory.

        Index reads of types with large attributes are head-only unless
        ``hydrate`` is set; those partial entities are not cached.
        """
        page = self.indexed.query(
            entity_type,
            bucket,
            page_size,
            index,
            ascending,
            exclusive_start_key,
            sort_key_prefix,
            issue,
            hydrate=hydrate,
        )
        if hydrate or not schema_for(entity_type).large_attributes:
            for item in page.items:
                _populate(self.memory, item)
        return page

    def delete(self, entity_id: str, entity_type: type) -> None:
        self.indexed.delete(entity_id, entity_type)

    def delete_auxiliary_pages(self, entity_id: str, entity_type: type) -> int:
        return self.indexed.delete_auxiliary_pages(entity_id, entity_type)
