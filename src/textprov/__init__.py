"""Text provenance core.

Tamper-evident provenance for edited text: canonical digests, signed
C2PA-style claims, embedded manifests, transparency receipts and a
word-level diff engine.
"""

from __future__ import annotations

__version__ = "1.0.0"

from textprov.canonical import canonical_json, digest, digest_of_value  # noqa: E402
from textprov.config import Settings  # noqa: E402
from textprov.diff import WordDiff, compute_word_diff  # noqa: E402

__all__ = [
    "Settings",
    "WordDiff",
    "__version__",
    "canonical_json",
    "compute_word_diff",
    "digest",
    "digest_of_value",
]
