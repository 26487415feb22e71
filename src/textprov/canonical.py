"""Canonical JSON serialization and content digests.

Provides deterministic JSON output and the hashing primitives that every
provenance binding is built on.

Design decisions:
- Hash algorithm: SHA-256, hex encoded (64 chars)
- JSON: sorted keys, no whitespace, ASCII-only, null/bool/number normalization
- Arrays: preserved order (caller must sort where semantic ordering matters)
- Floats: NaN and infinities raise, JSON has no form for them; -0.0 becomes 0.0
- Base64 helpers operate on UTF-8 bytes so any Unicode text survives
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import math
from typing import Any

HASH_ALGORITHM = "sha256"


class CanonicalJSONEncoder(json.JSONEncoder):
    """JSON encoder that produces canonical, deterministic output.

    Guarantees:
    - Sorted keys at all levels
    - No whitespace
    - ASCII-only output
    - Consistent float representation (rejects NaN and infinities)
    - None → null, True → true, False → false (standard JSON)
    """

    def __init__(self, **kwargs: Any) -> None:
        kwargs["sort_keys"] = True
        kwargs["separators"] = (",", ":")
        kwargs["ensure_ascii"] = True
        super().__init__(**kwargs)

    def default(self, o: Any) -> Any:
        """Handle non-serializable types."""
        if hasattr(o, "to_dict"):
            return o.to_dict()
        if hasattr(o, "value"):
            return o.value
        return super().default(o)

    def encode(self, o: Any) -> str:
        """Encode with canonical formatting."""
        return super().encode(self._normalize(o))

    def _normalize(self, obj: Any) -> Any:
        """Recursively normalize values for canonical representation."""
        if obj is None or isinstance(obj, bool):
            return obj
        if isinstance(obj, float):
            if math.isnan(obj) or math.isinf(obj):
                raise ValueError(f"Cannot canonicalize non-finite float: {obj}")
            if obj == 0.0:
                return 0.0
            return obj
        if isinstance(obj, (int, str)):
            return obj
        if isinstance(obj, dict):
            for key in obj:
                if not isinstance(key, str):
                    raise TypeError(f"Mapping keys must be strings, got {type(key).__name__}")
            return {k: self._normalize(v) for k, v in sorted(obj.items())}
        if isinstance(obj, (list, tuple)):
            return [self._normalize(item) for item in obj]
        if hasattr(obj, "to_dict"):
            return self._normalize(obj.to_dict())
        if hasattr(obj, "value"):
            return obj.value
        return obj


# Singleton encoder instance
_encoder = CanonicalJSONEncoder()


def canonical_json(data: Any) -> str:
    """Produce canonical JSON string from data.

    Two structurally equal values canonicalize identically regardless of
    the insertion order of their mapping keys.

    Args:
        data: Any JSON-like value (None, bool, number, str, list, dict)

    Returns:
        Canonical JSON string with sorted keys, no whitespace, ASCII-only

    Raises:
        ValueError: If data contains NaN or infinite floats
    """
    return _encoder.encode(data)


def _to_bytes(data: bytes | str) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def digest(data: bytes | str) -> str:
    """Compute the SHA-256 hex digest of raw bytes (or UTF-8 text)."""
    return hashlib.sha256(_to_bytes(data)).hexdigest()


def digest_of_value(data: Any) -> str:
    """Compute the digest of a value's canonical JSON encoding."""
    return digest(canonical_json(data))


def utf8_to_base64(text: str) -> str:
    """Encode text as standard base64 over its UTF-8 bytes."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def base64_to_utf8(blob: str) -> str:
    """Decode standard base64 back into UTF-8 text.

    Raises:
        ValueError: If the blob is not valid base64 or not valid UTF-8
    """
    try:
        raw = base64.b64decode("".join(blob.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 data: {e}") from e
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Decoded data is not valid UTF-8: {e}") from e


def bytes_to_base64(data: bytes) -> str:
    """Encode raw bytes as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def base64_to_bytes(blob: str) -> bytes:
    """Decode standard base64 text into raw bytes.

    Raises:
        ValueError: If the blob is not valid base64
    """
    try:
        return base64.b64decode("".join(blob.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 data: {e}") from e
