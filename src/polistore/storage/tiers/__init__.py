# src/polistore/storage/tiers/__init__.py
"""
Storage Tiers Package.

Tiers:
- **MemoryTier**: in-process id -> entity map
- **DurableBlobTier**: one JSON document per entity on a blob backend
- **IndexedQueryTier**: paged records with secondary-index pagination

Composites::

    MemoryTier → (local DurableBlobTier) → DurableBlobTier    CachedBlobStore
    MemoryTier → IndexedQueryTier                             CachedIndexedStore
"""

from .blob import BLOB_SUFFIX, DurableBlobTier, ExistenceCache, object_key
from .cached import CachedBlobStore, CachedIndexedStore
from .indexed import MANIFEST_ATTRIBUTE, IndexedQueryTier
from .memory import MemoryTier

__all__ = [
    # Memory
    "MemoryTier",
    # Blob
    "BLOB_SUFFIX",
    "DurableBlobTier",
    "ExistenceCache",
    "object_key",
    # Indexed
    "IndexedQueryTier",
    "MANIFEST_ATTRIBUTE",
    # Composites
    "CachedBlobStore",
    "CachedIndexedStore",
]
