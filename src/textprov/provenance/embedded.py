"""Single-file encoding: content followed by an embedded manifest footer.

Layout::

    <content>
    ---C2PA-MANIFEST-START---
    <base64 of pretty-printed manifest JSON>
    ---C2PA-MANIFEST-END---

The content hash is computed over ``<content>`` only, so extraction must
return it byte-for-byte.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from textprov.canonical import base64_to_utf8, utf8_to_base64
from textprov.provenance.builder import serialize_manifest
from textprov.provenance.manifest import ExternalManifest
from textprov.provenance.schema import ManifestStructureError

MANIFEST_START_MARKER = "---C2PA-MANIFEST-START---"
MANIFEST_END_MARKER = "---C2PA-MANIFEST-END---"


class EmbeddedManifestError(Exception):
    """Base error for embedded manifest decoding."""
    pass


class MarkersNotFoundError(EmbeddedManifestError):
    """Start or end marker is missing."""
    pass


class MarkersOutOfOrderError(EmbeddedManifestError):
    """End marker does not follow the start marker."""
    pass


class InvalidEncodingError(EmbeddedManifestError):
    """Footer blob is not valid base64-encoded UTF-8."""
    pass


class InvalidStructureError(EmbeddedManifestError, ManifestStructureError):
    """Decoded footer is not a well-formed manifest."""

    def __init__(self, message: str, errors: list[str] | None = None):
        ManifestStructureError.__init__(self, message, errors)


@dataclass(frozen=True)
class ExtractResult:
    """Clean content plus the decoded manifest."""

    content: str
    manifest_json: str
    manifest: ExternalManifest
    manifest_data: dict[str, Any]


def embed_manifest(content: str, manifest: ExternalManifest) -> str:
    """Append an encoded manifest footer to unmodified content."""
    blob = utf8_to_base64(serialize_manifest(manifest))
    footer = "\n".join(["", MANIFEST_START_MARKER, blob, MANIFEST_END_MARKER])
    return content + footer


def extract_manifest(embedded: str) -> ExtractResult:
    """Split embedded text back into content and manifest.

    The last occurrence of each marker is used, so marker-like text earlier
    in the content does not confuse extraction.

    Raises:
        MarkersNotFoundError: If either marker is absent
        MarkersOutOfOrderError: If the start marker does not precede the end marker
        InvalidEncodingError: If the footer blob cannot be decoded
        InvalidStructureError: If the decoded text is not a manifest
    """
    start = embedded.rfind(MANIFEST_START_MARKER)
    end = embedded.rfind(MANIFEST_END_MARKER)

    if start == -1 or end == -1:
        raise MarkersNotFoundError("No embedded manifest found: markers not found")
    if start >= end:
        raise MarkersOutOfOrderError("Invalid embedded manifest: markers out of order")

    blob = embedded[start + len(MANIFEST_START_MARKER):end].strip()
    try:
        manifest_json = base64_to_utf8(blob)
    except ValueError as e:
        raise InvalidEncodingError(f"Failed to decode manifest: invalid encoding ({e})") from e

    try:
        data = json.loads(manifest_json)
        manifest = ExternalManifest.from_dict(data)
    except json.JSONDecodeError as e:
        raise InvalidStructureError(f"Failed to parse manifest: invalid structure ({e})") from e
    except ManifestStructureError as e:
        raise InvalidStructureError(
            f"Failed to parse manifest: invalid structure ({e})", errors=e.errors
        ) from e

    # Only the single separator newline belongs to the footer; content that
    # itself ends in newlines must come back unchanged.
    footer_start = start
    if footer_start > 0 and embedded[footer_start - 1] == "\n":
        footer_start -= 1

    return ExtractResult(
        content=embedded[:footer_start],
        manifest_json=manifest_json,
        manifest=manifest,
        manifest_data=data,
    )


def has_embedded_manifest(text: str) -> bool:
    """Cheap presence check: both markers appear (order not checked)."""
    return MANIFEST_START_MARKER in text and MANIFEST_END_MARKER in text
