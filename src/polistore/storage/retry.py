# src/polistore/storage/retry.py
"""
Retry with exponential backoff for backend calls.

Only ``TransientBackendError`` is retried. Backends are responsible for
translating their native errors (botocore, sqlite3) into either
``TransientBackendError`` or a plain ``StorageError``, which fails fast.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, TypeVar

from ..config import RetryConfig
from ..exceptions import TransientBackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY = RetryConfig()


def backoff_delay(attempt: int, policy: RetryConfig) -> float:
    """Delay before retry number ``attempt`` (0-based), without jitter."""
    return min(policy.base_delay_seconds * (2**attempt), policy.max_delay_seconds)


def call_with_retry(
    fn: Callable[..., T],
    *args: Any,
    policy: RetryConfig | None = None,
    operation: str = "backend call",
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """
    Call ``fn(*args, **kwargs)``, retrying transient backend failures.

    Args:
        fn: The backend callable.
        policy: Attempts and delays; defaults to ``RetryConfig()``.
        operation: Name used in log messages.
        sleep: Sleep function, replaceable in tests.

    Returns:
        Whatever ``fn`` returns.

    Raises:
        TransientBackendError: If every attempt failed transiently.
        Any other exception raised by ``fn``, immediately.
    """
    policy = policy or DEFAULT_RETRY
    last_exception: TransientBackendError | None = None

    for attempt in range(policy.max_attempts):
        try:
            return fn(*args, **kwargs)
        except TransientBackendError as e:
            last_exception = e
            if attempt + 1 >= policy.max_attempts:
                break
            # Exponential backoff with jitter
            delay = backoff_delay(attempt, policy) * (0.5 + random.random() / 2)
            logger.warning(
                f"{operation} failed (attempt {attempt + 1}/{policy.max_attempts}): {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            sleep(delay)

    logger.error(f"{operation} failed after {policy.max_attempts} attempts")
    raise last_exception  # type: ignore[misc]
