"""Shared fixtures for textprov tests."""

from __future__ import annotations

import pytest

from textprov.canonical import bytes_to_base64, canonical_json, utf8_to_base64
from textprov.provenance.actions import created_action
from textprov.provenance.builder import ManifestBuilder
from textprov.provenance.signing import KeyPair, sign


@pytest.fixture(scope="session")
def key_pair() -> KeyPair:
    """One signing key for the whole run (key generation is slow-ish)."""
    return KeyPair.generate()


@pytest.fixture(scope="session")
def other_key_pair() -> KeyPair:
    return KeyPair.generate()


@pytest.fixture
def builder() -> ManifestBuilder:
    return ManifestBuilder()


@pytest.fixture
def signed(builder, key_pair):
    """Factory: sign content with a single created action."""

    def _signed(content: str):
        return builder.create_manifest(content, [created_action(content)], key_pair)

    return _signed


@pytest.fixture
def resign(key_pair):
    """Factory: re-sign a manifest dict after its claim was edited.

    ``payload_claim`` replaces what gets signed; by default the outer claim
    is signed as it now stands.
    """

    def _resign(data: dict, payload_claim: dict | None = None) -> dict:
        signature = data["claim"]["signature"]
        source = data["claim"] if payload_claim is None else payload_claim
        unsigned = {k: v for k, v in source.items() if k != "signature"}
        signature["payload"] = utf8_to_base64(canonical_json(unsigned))
        signature["signature"] = bytes_to_base64(
            sign(f"{signature['protected']}.{signature['payload']}", key_pair)
        )
        return data

    return _resign


@pytest.fixture
def extended_manifest(signed, resign):
    """Factory: a signed manifest dict carrying keys this package does not model."""

    def _extended(content: str) -> dict:
        data = signed(content).to_dict()
        data["x-envelope"] = {"producer": "other-tool"}
        data["claim"]["x-review-state"] = "approved"
        data["claim"]["assertions"][0]["kind"] = "Json"
        data["claim"]["signature"]["x-cert-chain"] = []
        return resign(data)

    return _extended
