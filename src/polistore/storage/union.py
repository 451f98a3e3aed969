# src/polistore/storage/union.py
"""Read-only union of several object stores."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, TypeVar

from ..exceptions import UnsupportedOperationError, UnsupportedQueryError
from .base import BaseObjectStore, QueryPage

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UnionStore(BaseObjectStore):
    """Reads across datasets in order; the first dataset holding an id wins.

    Writes are refused. Queries concatenate every dataset's results; their
    order across datasets is not defined, and since cursors belong to a
    single dataset, paging with ``exclusive_start_key`` is refused too.
    """

    def __init__(self, datasets: Sequence[BaseObjectStore]) -> None:
        if not datasets:
            raise ValueError("UnionStore needs at least one dataset")
        self.datasets = list(datasets)

    def get(self, entity_id: str, entity_type: type[T]) -> T | None:
        for dataset in self.datasets:
            result = dataset.get(entity_id, entity_type)
            if result is not None:
                return result
        return None

    def exists(self, entity_id: str, entity_type: type) -> bool:
        return any(dataset.exists(entity_id, entity_type) for dataset in self.datasets)

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
        if exclusive_start_key is not None:
            raise UnsupportedQueryError("Cursors are dataset specific and cannot page a union.")

        items: list[T] = []
        has_more = False
        for dataset in self.datasets:
            page = dataset.query(entity_type, bucket, page_size, index, ascending, None, sort_key_prefix, issue)
            items.extend(page.items)
            has_more = has_more or page.has_more
        logger.debug(f"Union query over {len(self.datasets)} datasets returned {len(items)} items")
        return QueryPage(items=items, next_cursor=None, has_more=has_more)

    def put(self, entity: Any) -> None:
        raise UnsupportedOperationError("UnionStore is read-only.")

    def delete(self, entity_id: str, entity_type: type) -> None:
        raise UnsupportedOperationError("UnionStore is read-only.")
