# src/polistore/storage/tiers/blob.py
"""
Durable Blob Tier - one JSON document per entity.

Entities are stored whole at ``<id>.json`` on a blob backend (local
directory or S3). There is no page splitting and no secondary index:
listing is by key order within a storage bucket.

Existence checks against a remote backend cost a round trip each. When a
caller is about to probe many ids of one bucket it can call
``optimize_exists`` first: the bucket is listed once and later ``exists``
calls for that bucket are answered from the cached key set.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from ...config import RetryConfig
from ...exceptions import UnsupportedQueryError
from ...identity import ID_SEPARATOR, class_prefix, storage_bucket, validate_id
from ...schema import schema_for
from ..base import BaseObjectStore, BlobBackend, QueryPage, decode_cursor, encode_cursor
from ..retry import call_with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

BLOB_SUFFIX = ".json"


def object_key(entity_id: str) -> str:
    return entity_id + BLOB_SUFFIX


def _bucket_prefix(bucket: str) -> str:
    return bucket.rstrip(ID_SEPARATOR) + ID_SEPARATOR


# =============================================================================
# EXISTENCE CACHE
# =============================================================================


class ExistenceCache:
    """Per-bucket sets of known ids.

    Each bucket has its own lock. A set is built completely before it is
    published, and readers of a bucket wait on that bucket's lock while it
    is being built, so a partially listed bucket is never observed.
    """

    def __init__(self) -> None:
        self._sets: dict[str, set[str]] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, bucket: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(bucket)
            if lock is None:
                lock = self._locks[bucket] = threading.Lock()
            return lock

    def build(self, bucket: str, loader: Callable[[], Iterable[str]]) -> bool:
        """Populate ``bucket`` from ``loader`` unless already built. Returns True if built now."""
        with self._lock_for(bucket):
            if bucket in self._sets:
                return False
            self._sets[bucket] = set(loader())
            return True

    def contains(self, bucket: str, entity_id: str) -> bool | None:
        """True/False if the bucket is optimized, None if it is not."""
        with self._lock_for(bucket):
            ids = self._sets.get(bucket)
            return None if ids is None else entity_id in ids

    def add(self, bucket: str, entity_id: str) -> None:
        with self._lock_for(bucket):
            if bucket in self._sets:
                self._sets[bucket].add(entity_id)

    def discard(self, bucket: str, entity_id: str) -> None:
        with self._lock_for(bucket):
            if bucket in self._sets:
                self._sets[bucket].discard(entity_id)

    def clear(self, bucket: str) -> bool:
        with self._lock_for(bucket):
            return self._sets.pop(bucket, None) is not None

    def size(self, bucket: str) -> int:
        with self._lock_for(bucket):
            return len(self._sets.get(bucket, ()))


# =============================================================================
# DURABLE BLOB TIER
# =============================================================================


class DurableBlobTier(BaseObjectStore):
    """Whole-document entity storage on a blob backend."""

    def __init__(
        self,
        backend: BlobBackend,
        retry: RetryConfig | None = None,
        existence_cache: ExistenceCache | None = None,
    ) -> None:
        self.backend = backend
        self.retry = retry or RetryConfig()
        self.existence_cache = existence_cache or ExistenceCache()

    def _call(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        return call_with_retry(fn, *args, policy=self.retry, operation=f"{self.backend.name}.{operation}")

    @staticmethod
    def _check_bucket(entity_type: type, bucket: str | None) -> str:
        if not bucket:
            raise UnsupportedQueryError(
                f"Listing {entity_type.__name__} requires a storage bucket; unscoped scans are not supported."
            )
        prefix = class_prefix(entity_type)
        if bucket.split(ID_SEPARATOR, 1)[0] != prefix:
            raise UnsupportedQueryError(f"Bucket '{bucket}' does not hold {entity_type.__name__} ({prefix}) entities.")
        return bucket.rstrip(ID_SEPARATOR)

    # -------------------------------------------------------------------------
    # Single entity operations
    # -------------------------------------------------------------------------

    def get(self, entity_id: str, entity_type: type[T]) -> T | None:
        key = object_key(validate_id(entity_id))
        data = self._call("get", self.backend.get, key)
        if data is None:
            logger.debug(f"{key} not found in {self.backend.name} blob store")
            return None
        return entity_type.model_validate_json(data)  # type: ignore[attr-defined]

    def put(self, entity: Any) -> None:
        schema_for(type(entity))
        entity_id = validate_id(entity.id)
        key = object_key(entity_id)
        data = entity.model_dump_json(by_alias=True).encode("utf-8")
        self._call("put", self.backend.put, key, data)
        self.existence_cache.add(storage_bucket(entity_id), entity_id)
        logger.info(f"Uploaded {key} to {self.backend.name} blob store")

    def exists(self, entity_id: str, entity_type: type) -> bool:
        validate_id(entity_id)
        cached = self.existence_cache.contains(storage_bucket(entity_id), entity_id)
        if cached is not None:
            return cached
        return bool(self._call("exists", self.backend.exists, object_key(entity_id)))

    def delete(self, entity_id: str, entity_type: type) -> None:
        key = object_key(validate_id(entity_id))
        self._call("delete", self.backend.delete, key)
        self.existence_cache.discard(storage_bucket(entity_id), entity_id)
        logger.info(f"Deleted {key} from {self.backend.name} blob store")

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    def _list_ids(self, prefix: str) -> list[str]:
        ids: list[str] = []
        for page in self.backend.list_keys(prefix):
            ids.extend(k[: -len(BLOB_SUFFIX)] for k in page if k.endswith(BLOB_SUFFIX))
        return ids

    def list_ids(self, entity_type: type, bucket: str | None, object_prefix: str | None = None) -> list[str]:
        """Every id of ``entity_type`` in ``bucket``, in ascending key order."""
        prefix = _bucket_prefix(self._check_bucket(entity_type, bucket)) + (object_prefix or "")
        return sorted(self._call("list", self._list_ids, prefix))

    def list(
        self,
        entity_type: type[T],
        bucket: str | None = None,
        object_prefix: str | None = None,
        page_size: int = -1,
        ascending: bool = True,
    ) -> list[T]:
        """Fetch and decode every entity in a bucket, in key order.

        Args:
            entity_type: The type to decode.
            bucket: Storage bucket to scan. Required.
            object_prefix: Optional object-code prefix within the bucket.
            page_size: Maximum entities to return (-1 = all).
            ascending: Key order.
        """
        ids = self.list_ids(entity_type, bucket, object_prefix)
        if not ascending:
            ids.reverse()
        if page_size != -1:
            ids = ids[:page_size]
        items = [self.get(i, entity_type) for i in ids]
        return [i for i in items if i is not None]

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
        """Key-ordered pages over a bucket.

        The blob tier has no secondary indexes: ``index`` and ``issue`` must
        be None. ``sort_key_prefix`` filters on the object code.
        """
        if index is not None or issue is not None:
            raise UnsupportedQueryError("The blob tier only supports key ordered queries.")
        if page_size == 0 or page_size < -1:
            raise UnsupportedQueryError(f"Invalid page size {page_size}.")

        ids = self.list_ids(entity_type, bucket, sort_key_prefix)
        if not ascending:
            ids.reverse()
        if exclusive_start_key:
            last_id, _ = decode_cursor(exclusive_start_key)
            ids = [i for i in ids if (i > last_id if ascending else i < last_id)]

        has_more = page_size != -1 and len(ids) > page_size
        if page_size != -1:
            ids = ids[:page_size]

        items = [e for e in (self.get(i, entity_type) for i in ids) if e is not None]
        next_cursor = encode_cursor(ids[-1], ids[-1]) if has_more else None
        return QueryPage(items=items, next_cursor=next_cursor, has_more=has_more)

    # -------------------------------------------------------------------------
    # Bulk existence optimization
    # -------------------------------------------------------------------------

    def optimize_exists(self, entity_type: type, bucket: str) -> None:
        """List ``bucket`` once so later ``exists`` calls for it skip the backend."""
        bucket = self._check_bucket(entity_type, bucket)
        built = self.existence_cache.build(
            bucket, lambda: self._call("list", self._list_ids, _bucket_prefix(bucket))
        )
        if built:
            logger.info(f"Optimized exists for {bucket} ({self.existence_cache.size(bucket)} objects)")

    def clear_exists_optimize(self, entity_type: type, bucket: str) -> None:
        bucket = self._check_bucket(entity_type, bucket)
        if self.existence_cache.clear(bucket):
            logger.debug(f"Cleared exists optimization for {bucket}")
