# tests/storage/test_manager.py
"""Tests for StorageManager backend selection and store wiring."""

import pytest

from polistore.config import StoreConfig, load_store_config
from polistore.exceptions import ConfigError
from polistore.models import Bill, Legislator
from polistore.storage import StorageManager
from polistore.storage.backends import FileSystemBlobBackend, S3BlobBackend, SQLiteIndexedBackend
from polistore.storage.tiers import DurableBlobTier, IndexedQueryTier
from polistore.storage.manager import BLOB_BACKEND_MAP


@pytest.fixture
def config(tmp_path):
    return load_store_config(
        overrides={
            "blob": {"path": str(tmp_path / "blobs")},
            "indexed": {"db_path": str(tmp_path / "indexed.db")},
        }
    )


@pytest.fixture
def manager(config):
    manager = StorageManager(config)
    yield manager
    manager.close()


class TestBackendSelection:
    def test_default_backends(self, manager):
        assert isinstance(manager.create_blob_backend(), FileSystemBlobBackend)
        backend = manager.create_indexed_backend()
        assert isinstance(backend, SQLiteIndexedBackend)
        backend.close()

    def test_s3_backend_from_config(self):
        config = StoreConfig.model_validate(
            {"blob": {"backend": "s3", "bucket_name": "archive", "region": "us-east-1"}}
        )
        backend = StorageManager(config).create_blob_backend()
        assert isinstance(backend, S3BlobBackend)
        assert backend.bucket_name == "archive"

    def test_unknown_backend(self, manager, monkeypatch):
        monkeypatch.setattr(manager.config.blob, "backend", "ftp")
        with pytest.raises(ConfigError):
            manager.create_blob_backend()

    def test_backend_map_names(self):
        assert set(BLOB_BACKEND_MAP) == {"filesystem", "s3"}


class TestStores:
    def test_stores_share_memory_tier(self, manager):
        assert manager.blob_store().memory is manager.indexed_store().memory

    def test_stores_are_reused(self, manager):
        assert manager.blob_store() is manager.blob_store()
        assert manager.indexed_store() is manager.indexed_store()

    def test_blob_store_round_trip(self, manager, bill):
        manager.blob_store().put(bill)
        assert manager.blob_store().durable.get(bill.id, Bill) == bill

    def test_indexed_store_round_trip(self, manager, legislator):
        store = manager.indexed_store()
        store.put(legislator)
        assert store.indexed.get(legislator.id, Legislator) == legislator

    def test_filesystem_backend_has_no_local_cache(self, tmp_path):
        config = load_store_config(
            overrides={"blob": {"path": str(tmp_path / "blobs"), "local_cache_path": str(tmp_path / "cache")}}
        )
        assert StorageManager(config).blob_store().local is None

    def test_disabled_memory_tier_returns_bare_tiers(self, tmp_path, bill):
        config = load_store_config(
            overrides={
                "memory": {"enabled": False},
                "blob": {"path": str(tmp_path / "blobs")},
                "indexed": {"db_path": str(tmp_path / "indexed.db")},
            }
        )
        manager = StorageManager(config)
        try:
            assert isinstance(manager.blob_store(), DurableBlobTier)
            assert isinstance(manager.indexed_store(), IndexedQueryTier)
            manager.indexed_store().put(bill)
            assert manager.indexed_store().get(bill.id, Bill) == bill
            assert manager._memory is None
        finally:
            manager.close()

