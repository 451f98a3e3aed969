# src/polistore/storage/__init__.py
"""
Storage package for polistore.

Tiers, the composite stores built from them, the raw backends they drive
and the manager that wires them together from configuration.
"""

from .base import BaseObjectStore, QueryPage
from .manager import StorageManager
from .tiers import (
    CachedBlobStore,
    CachedIndexedStore,
    DurableBlobTier,
    ExistenceCache,
    IndexedQueryTier,
    MemoryTier,
)
from .union import UnionStore

__all__ = [
    "BaseObjectStore",
    "CachedBlobStore",
    "CachedIndexedStore",
    "DurableBlobTier",
    "ExistenceCache",
    "IndexedQueryTier",
    "MemoryTier",
    "QueryPage",
    "StorageManager",
    "UnionStore",
]
