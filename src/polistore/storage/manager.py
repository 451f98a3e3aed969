# src/polistore/storage/manager.py
"""
Storage Manager for polistore.

Builds the configured blob and indexed backends and wires them into the
tiered stores. All stores created by one manager share a single memory tier.
"""

import logging
from typing import Any, Dict, Optional, Type, Union

from ..config import StoreConfig
from ..exceptions import ConfigError
from .backends import DynamoDBIndexedBackend, FileSystemBlobBackend, S3BlobBackend, SQLiteIndexedBackend
from .tiers import CachedBlobStore, CachedIndexedStore, DurableBlobTier, IndexedQueryTier, MemoryTier

logger = logging.getLogger(__name__)

# --- Mappings from config type string to class ---
BLOB_BACKEND_MAP: Dict[str, Type[Any]] = {
    "filesystem": FileSystemBlobBackend,
    "s3": S3BlobBackend,
}

INDEXED_BACKEND_MAP: Dict[str, Type[Any]] = {
    "sqlite": SQLiteIndexedBackend,
    "dynamodb": DynamoDBIndexedBackend,
}
# --- End Mappings ---


class StorageManager:
    """
    Factory for the polistore tiered stores.

    Stores are created lazily on first access and reused afterwards.
    """

    def __init__(self, config: Optional[StoreConfig] = None):
        """
        Initializes the StorageManager.

        Args:
            config: The store configuration; defaults to ``StoreConfig()``.
        """
        self.config = config or StoreConfig()
        self._memory: Optional[MemoryTier] = None
        self._blob_store: Optional[Union[CachedBlobStore, DurableBlobTier]] = None
        self._indexed_store: Optional[Union[CachedIndexedStore, IndexedQueryTier]] = None
        self._indexed_backend: Any = None
        logger.info(
            f"StorageManager initialized (blob={self.config.blob.backend}, indexed={self.config.indexed.backend})"
        )

    def memory_tier(self) -> MemoryTier:
        if self._memory is None:
            self._memory = MemoryTier(self.config.memory)
        return self._memory

    def create_blob_backend(self) -> Any:
        """Instantiate the configured blob backend.

        Raises:
            ConfigError: If ``blob.backend`` names no known backend.
        """
        backend_type = self.config.blob.backend.lower()
        if backend_type not in BLOB_BACKEND_MAP:
            raise ConfigError(
                f"Unsupported blob backend type: '{backend_type}'. "
                f"Available types: {list(BLOB_BACKEND_MAP.keys())}"
            )
        return BLOB_BACKEND_MAP[backend_type].from_config(self.config.blob)

    def create_indexed_backend(self) -> Any:
        """Instantiate the configured indexed backend.

        Raises:
            ConfigError: If ``indexed.backend`` names no known backend.
        """
        backend_type = self.config.indexed.backend.lower()
        if backend_type not in INDEXED_BACKEND_MAP:
            raise ConfigError(
                f"Unsupported indexed backend type: '{backend_type}'. "
                f"Available types: {list(INDEXED_BACKEND_MAP.keys())}"
            )
        return INDEXED_BACKEND_MAP[backend_type].from_config(self.config.indexed)

    def blob_store(self) -> Union[CachedBlobStore, DurableBlobTier]:
        """Memory -> (local file cache) -> configured blob backend.

        With the memory tier disabled this is the bare blob tier.
        """
        if self._blob_store is None:
            durable = DurableBlobTier(self.create_blob_backend(), retry=self.config.retry)
            if not self.config.memory.enabled:
                self._blob_store = durable
                return durable
            local = None
            if self.config.blob.local_cache_path and self.config.blob.backend != "filesystem":
                local = DurableBlobTier(
                    FileSystemBlobBackend(self.config.blob.local_cache_path), retry=self.config.retry
                )
            self._blob_store = CachedBlobStore(self.memory_tier(), durable, local=local)
        return self._blob_store

    def indexed_store(self) -> Union[CachedIndexedStore, IndexedQueryTier]:
        """Memory -> configured indexed backend, or the bare indexed tier with the memory tier disabled."""
        if self._indexed_store is None:
            self._indexed_backend = self.create_indexed_backend()
            tier = IndexedQueryTier(self._indexed_backend, config=self.config.indexed, retry=self.config.retry)
            self._indexed_store = CachedIndexedStore(self.memory_tier(), tier) if self.config.memory.enabled else tier
        return self._indexed_store

    def close(self) -> None:
        """Close backends that hold connections."""
        close = getattr(self._indexed_backend, "close", None)
        if callable(close):
            close()
        self._indexed_store = None
        self._indexed_backend = None
        logger.info("StorageManager closed.")
