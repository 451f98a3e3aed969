# src/polistore/storage/backends/s3.py
"""
S3 blob backend.

One object per key. Listing uses the ``list_objects_v2`` paginator, so a
bucket-scoped prefix listing costs one round trip per 1000 keys.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from ...config import BlobTierConfig
from .aws import is_not_found, make_client, translate_error

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/json"


class S3BlobBackend:
    """Blob backend storing each key as an S3 object."""

    name = "s3"

    def __init__(
        self,
        bucket_name: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        client: Any = None,
        list_page_size: int = 1000,
    ):
        self.bucket_name = bucket_name
        self.list_page_size = list_page_size
        self._client = client or make_client("s3", region=region, endpoint_url=endpoint_url)
        logger.debug(f"S3BlobBackend initialized (bucket={bucket_name}, endpoint={endpoint_url})")

    @classmethod
    def from_config(cls, config: BlobTierConfig) -> "S3BlobBackend":
        return cls(
            bucket_name=config.bucket_name,
            region=config.region,
            endpoint_url=config.endpoint_url,
            list_page_size=config.list_page_size,
        )

    def get(self, key: str) -> bytes | None:
        try:
            response = self._client.get_object(Bucket=self.bucket_name, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            if is_not_found(e):
                return None
            raise translate_error(self.name, f"get_object({key})", e) from e

    def put(self, key: str, data: bytes) -> None:
        try:
            self._client.put_object(Bucket=self.bucket_name, Key=key, Body=data, ContentType=CONTENT_TYPE)
        except (ClientError, BotoCoreError) as e:
            raise translate_error(self.name, f"put_object({key})", e) from e

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except (ClientError, BotoCoreError) as e:
            if is_not_found(e):
                return False
            raise translate_error(self.name, f"head_object({key})", e) from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise translate_error(self.name, f"delete_object({key})", e) from e

    def list_keys(self, prefix: str) -> Iterator[list[str]]:
        paginator = self._client.get_paginator("list_objects_v2")
        pages = paginator.paginate(
            Bucket=self.bucket_name,
            Prefix=prefix,
            PaginationConfig={"PageSize": self.list_page_size},
        )
        try:
            for page in pages:
                yield [obj["Key"] for obj in page.get("Contents", [])]
        except (ClientError, BotoCoreError) as e:
            raise translate_error(self.name, f"list_objects_v2({prefix})", e) from e
