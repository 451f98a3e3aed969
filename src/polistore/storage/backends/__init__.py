# src/polistore/storage/backends/__init__.py
"""
Raw storage backends driven by the polistore tiers.

Blob backends (key -> bytes):
- FileSystemBlobBackend: a local directory
- S3BlobBackend: an S3 bucket

Indexed backends ((id, page) table with sparse secondary indexes):
- SQLiteIndexedBackend: a single SQLite table queried with json_extract
- DynamoDBIndexedBackend: a DynamoDB table with one GSI per index
"""

from .dynamodb import DynamoDBIndexedBackend
from .filesystem import FileSystemBlobBackend
from .s3 import S3BlobBackend
from .sqlite import SQLiteIndexedBackend

__all__ = [
    "DynamoDBIndexedBackend",
    "FileSystemBlobBackend",
    "S3BlobBackend",
    "SQLiteIndexedBackend",
]
