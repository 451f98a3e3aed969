# src/polistore/storage/backends/filesystem.py
"""
Local filesystem blob backend.

Keys map to relative paths under a root directory, so ``BIL/us/congress/118/hr/1.json``
becomes ``<root>/BIL/us/congress/118/hr/1.json``. Writes go to a temporary
file that is renamed into place, so readers never see a partial document.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path

from ...config import BlobTierConfig
from ...exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


class FileSystemBlobBackend:
    """Blob backend rooted at a local directory."""

    name = "filesystem"

    def __init__(self, root: str | Path, list_page_size: int = 1000):
        self.root = Path(os.path.expanduser(str(root))).resolve()
        self.list_page_size = list_page_size
        self.root.mkdir(parents=True, exist_ok=True)
        logger.debug(f"FileSystemBlobBackend initialized (root={self.root})")

    @classmethod
    def from_config(cls, config: BlobTierConfig) -> "FileSystemBlobBackend":
        return cls(config.path, list_page_size=config.list_page_size)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path != self.root and self.root not in path.parents:
            raise ValidationError(f"Key '{key}' escapes the storage root.")
        return path

    def get(self, key: str) -> bytes | None:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read '{key}': {e}") from e

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=path.name + ".", suffix=TEMP_SUFFIX)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write '{key}': {e}") from e

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete '{key}': {e}") from e

    def list_keys(self, prefix: str) -> Iterator[list[str]]:
        # Walk only the deepest directory the prefix names.
        directory = self.root / prefix.rsplit("/", 1)[0] if "/" in prefix else self.root
        if not directory.is_dir():
            return
        keys = sorted(
            key
            for key in (p.relative_to(self.root).as_posix() for p in directory.rglob("*") if p.is_file())
            if key.startswith(prefix) and not key.endswith(TEMP_SUFFIX)
        )
        for i in range(0, len(keys), self.list_page_size):
            yield keys[i : i + self.list_page_size]
