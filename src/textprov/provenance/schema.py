"""Structural validation of manifest JSON against the bundled schema."""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any

from jsonschema import Draft202012Validator

SCHEMA_PACKAGE = "textprov.schemas"
MANIFEST_SCHEMA = "manifest.schema.json"


class ManifestStructureError(Exception):
    """Raised when manifest data does not have the expected shape."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


@lru_cache(maxsize=1)
def load_manifest_schema() -> dict[str, Any]:
    """Load the manifest JSON schema shipped with the package."""
    text = resources.files(SCHEMA_PACKAGE).joinpath(MANIFEST_SCHEMA).read_text(encoding="utf-8")
    return json.loads(text)


@lru_cache(maxsize=1)
def _validator() -> Draft202012Validator:
    return Draft202012Validator(load_manifest_schema())


def validate_manifest_data(data: Any) -> list[str]:
    """Validate manifest data.

    Returns:
        List of error messages, empty when the data is well formed
    """
    errors = []
    for error in sorted(_validator().iter_errors(data), key=lambda e: list(e.absolute_path)):
        location = "/".join(str(p) for p in error.absolute_path) or "$"
        errors.append(f"{location}: {error.message}")
    return errors


def ensure_valid_manifest(data: Any) -> None:
    """Raise ManifestStructureError if data is not a well-formed manifest."""
    errors = validate_manifest_data(data)
    if errors:
        raise ManifestStructureError(
            f"Invalid manifest structure: {errors[0]}",
            errors=errors,
        )
