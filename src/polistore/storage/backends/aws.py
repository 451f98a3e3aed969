# src/polistore/storage/backends/aws.py
"""Shared boto3 client construction and botocore error translation."""

from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from ...exceptions import StorageError, TransientBackendError

NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})

THROTTLING_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "RequestThrottled",
        "RequestThrottledException",
        "ProvisionedThroughputExceededException",
        "RequestLimitExceeded",
        "SlowDown",
        "TooManyRequestsException",
        "InternalError",
        "InternalServerError",
        "ServiceUnavailable",
        "TransactionInProgressException",
    }
)

CONNECTION_ERRORS = (EndpointConnectionError, ConnectionClosedError, ConnectTimeoutError, ReadTimeoutError)

DEFAULT_TIMEOUT_SECONDS = 30


def make_client(service: str, region: str | None = None, endpoint_url: str | None = None) -> Any:
    """Build a boto3 client. polistore retries itself, so botocore makes one attempt."""
    session = boto3.Session(region_name=region)
    return session.client(
        service,
        region_name=region,
        endpoint_url=endpoint_url,
        config=BotoConfig(
            connect_timeout=DEFAULT_TIMEOUT_SECONDS,
            read_timeout=DEFAULT_TIMEOUT_SECONDS,
            retries={"total_max_attempts": 1, "mode": "standard"},
        ),
    )


def error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def is_not_found(err: Exception) -> bool:
    return isinstance(err, ClientError) and error_code(err) in NOT_FOUND_CODES


def translate_error(backend: str, operation: str, err: Exception) -> StorageError:
    """Map a botocore failure to TransientBackendError (retryable) or StorageError."""
    if isinstance(err, ClientError):
        code = error_code(err)
        status = err.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0
        if code in THROTTLING_CODES or status >= 500:
            return TransientBackendError(backend, f"{operation}: {code or status}")
        return StorageError(f"{backend} {operation} failed: {code}: {err}")
    if isinstance(err, CONNECTION_ERRORS):
        return TransientBackendError(backend, f"{operation}: {err}")
    return StorageError(f"{backend} {operation} failed: {err}")
