# src/polistore/__init__.py
"""
polistore - tiered persistent object store for legislative entities.

Legislators, bills, interpretations, issue stats and legislator/bill
interactions are stored behind one get/put/exists/query/delete interface,
composed from an in-process memory tier, a durable blob tier (local files
or S3) and an indexed-query tier (SQLite or DynamoDB) that splits oversized
entities across pages and paginates secondary indexes with opaque cursors.
"""

from importlib.metadata import PackageNotFoundError, version

from .config import StoreConfig, load_store_config
from .exceptions import (
    ConfigError,
    MalformedIdentifierError,
    PoliStoreError,
    SizeLimitExceededError,
    StorageError,
    TransientBackendError,
    UnsupportedOperationError,
    UnsupportedQueryError,
    ValidationError,
)
from .identity import (
    LegislativeNamespace,
    class_storage_bucket,
    derive_id,
    storage_bucket,
    validate_id,
)
from .models import (
    Bill,
    BillInterpretation,
    BillIssueStat,
    BillText,
    Legislator,
    LegislatorBillInteraction,
    LegislatorInterpretation,
    LegislatorIssueStat,
    TrackedIssue,
)
from .schema import SecondaryIndex
from .storage import (
    CachedBlobStore,
    CachedIndexedStore,
    DurableBlobTier,
    IndexedQueryTier,
    MemoryTier,
    QueryPage,
    StorageManager,
    UnionStore,
)

try:
    __version__ = version("polistore")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    # Configuration
    "StoreConfig",
    "load_store_config",
    # Exceptions
    "ConfigError",
    "MalformedIdentifierError",
    "PoliStoreError",
    "SizeLimitExceededError",
    "StorageError",
    "TransientBackendError",
    "UnsupportedOperationError",
    "UnsupportedQueryError",
    "ValidationError",
    # Identity
    "LegislativeNamespace",
    "class_storage_bucket",
    "derive_id",
    "storage_bucket",
    "validate_id",
    # Models
    "Bill",
    "BillInterpretation",
    "BillIssueStat",
    "BillText",
    "Legislator",
    "LegislatorBillInteraction",
    "LegislatorInterpretation",
    "LegislatorIssueStat",
    "TrackedIssue",
    "SecondaryIndex",
    # Storage
    "CachedBlobStore",
    "CachedIndexedStore",
    "DurableBlobTier",
    "IndexedQueryTier",
    "MemoryTier",
    "QueryPage",
    "StorageManager",
    "UnionStore",
]
