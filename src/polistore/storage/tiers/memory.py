# src/polistore/storage/tiers/memory.py
"""
Memory Tier - In-process entity map.

A thread-safe dictionary from entity id to entity, used as the top tier of
the cached stores. It has no expiry, no eviction and no persistence: it is
never authoritative across restarts and is never invalidated by deletes on
the durable tiers.

Usage:
    tier = MemoryTier()
    tier.put(bill)
    tier.get(bill.id, Bill)
    tier.query_by_type(Bill)
    print(f"Hit rate: {tier.stats()['hit_rate']:.2%}")
"""

from __future__ import annotations

import logging
import threading
from typing import Any, TypeVar

from ...config import MemoryTierConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MemoryTier:
    """Thread-safe id -> entity map with hit/miss statistics.

    All lookups are exact id matches; ``put`` unconditionally overwrites.
    """

    def __init__(self, config: MemoryTierConfig | None = None) -> None:
        self.config = config or MemoryTierConfig()

        self._store: dict[str, Any] = {}
        self._lock = threading.RLock()

        self._stats = {
            "hits": 0,
            "misses": 0,
            "puts": 0,
        }

        logger.debug(f"MemoryTier initialized (stats={self.config.enable_stats})")

    def _record(self, stat: str) -> None:
        if self.config.enable_stats:
            self._stats[stat] += 1

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def get(self, entity_id: str, entity_type: type[T] | None = None) -> T | None:
        """Return the entity stored under ``entity_id``.

        Args:
            entity_id: The entity id.
            entity_type: If given, an entity of another type counts as a miss.

        Returns:
            The stored entity, or None.
        """
        with self._lock:
            entity = self._store.get(entity_id)
            if entity is None or (entity_type is not None and not isinstance(entity, entity_type)):
                self._record("misses")
                return None
            self._record("hits")
            return entity

    def put(self, entity: Any) -> None:
        with self._lock:
            self._store[entity.id] = entity
            self._record("puts")

    def exists(self, entity_id: str, entity_type: type | None = None) -> bool:
        with self._lock:
            entity = self._store.get(entity_id)
            return entity is not None and (entity_type is None or isinstance(entity, entity_type))

    def query_by_type(self, entity_type: type[T]) -> list[T]:
        """Every stored entity that is an instance of ``entity_type``, in id order."""
        with self._lock:
            return [self._store[k] for k in sorted(self._store) if isinstance(self._store[k], entity_type)]

    def query_by_bucket(self, entity_type: type[T], bucket: str) -> list[T]:
        prefix = bucket.rstrip("/") + "/"
        with self._lock:
            return [
                self._store[k]
                for k in sorted(self._store)
                if k.startswith(prefix) and isinstance(self._store[k], entity_type)
            ]

    def count(self, entity_type: type | None = None) -> int:
        with self._lock:
            if entity_type is None:
                return len(self._store)
            return sum(1 for v in self._store.values() if isinstance(v, entity_type))

    def clear(self) -> int:
        """Remove every entity. Returns the number removed."""
        with self._lock:
            removed = len(self._store)
            self._store.clear()
            logger.debug(f"Cleared {removed} entities from memory tier")
            return removed

    def stats(self) -> dict[str, Any]:
        """Get tier statistics.

        Returns:
            Dictionary containing item_count, hit_rate, hits, misses and puts.
        """
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            return {
                "item_count": len(self._store),
                "hit_rate": self._stats["hits"] / total if total > 0 else 0.0,
                **self._stats.copy(),
            }

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, entity_id: str) -> bool:
        return self.exists(entity_id)
