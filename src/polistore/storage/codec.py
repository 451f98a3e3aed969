# src/polistore/storage/codec.py
"""
Attribute codec for the indexed tier.

Large attributes are stored as JSON, zlib-compressed and base64-encoded so
the resulting ASCII string can be sliced into page-sized chunks and stored
as a plain string attribute by any backend.
"""

from __future__ import annotations

import base64
import hashlib
import json
import zlib
from typing import Any

COMPRESSION_LEVEL = 6


def encode_attribute(value: Any) -> str:
    """JSON-serialize, compress and base64 a JSON-compatible value."""
    raw = json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.b64encode(zlib.compress(raw, COMPRESSION_LEVEL)).decode("ascii")


def decode_attribute(encoded: str) -> Any:
    """Inverse of ``encode_attribute``.

    Raises:
        ValueError: If the string is not a valid encoding (binascii and zlib
            errors are normalised to ValueError).
    """
    try:
        raw = zlib.decompress(base64.b64decode(encoded.encode("ascii"), validate=True))
    except (zlib.error, ValueError) as e:
        raise ValueError(f"Cannot decode attribute: {e}") from e
    return json.loads(raw.decode("utf-8"))


def digest(encoded: str) -> str:
    return hashlib.sha256(encoded.encode("ascii")).hexdigest()


def chunk(encoded: str, size: int) -> list[str]:
    """Slice an encoded string into ``ceil(len / size)`` pieces of at most ``size`` characters."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [encoded[i : i + size] for i in range(0, len(encoded), size)]


def item_size(item: dict[str, Any]) -> int:
    """Approximate stored size of a record in bytes (its compact JSON form)."""
    return len(json.dumps(item, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8"))


def is_empty(value: Any) -> bool:
    """Empty large attributes produce no auxiliary page."""
    if value is None:
        return True
    if isinstance(value, (str, list, dict, tuple, set, bytes)):
        return len(value) == 0
    return False
