"""Tests for claim construction, signing and manifest serialization."""

from __future__ import annotations

import json

import pytest

from textprov.canonical import base64_to_bytes, base64_to_utf8, canonical_json, digest
from textprov.config import Settings
from textprov.determinism import FIXED_TIMESTAMP, determinism_mode
from textprov.provenance.actions import created_action, human_edit_action
from textprov.provenance.builder import (
    ManifestBuilder,
    attach_receipt,
    build_claim,
    create_manifest,
    serialize_manifest,
    sign_claim,
)
from textprov.provenance.manifest import (
    ACTIONS_ASSERTION_LABEL,
    HASH_ASSERTION_LABEL,
    MANIFEST_CONTEXT,
    Action,
    ActionType,
    ChangeRange,
    ExternalManifest,
    ScittReceipt,
)
from textprov.provenance.schema import ManifestStructureError
from textprov.provenance.signing import COSE_ALG_ES256, SigningError, verify


class TestBuildClaim:
    """Test unsigned claim construction."""

    def test_hash_assertion_binds_content(self):
        claim = build_claim("Hello", [created_action("Hello")])
        hash_data = claim.find_assertion(HASH_ASSERTION_LABEL).data
        assert hash_data == {"name": "sha256", "hash": digest("Hello")}
        assert claim.content_hash == digest("Hello")

    def test_actions_in_order(self):
        actions = [created_action(""), human_edit_action("", "Hi")]
        claim = build_claim("Hi", actions)
        recorded = claim.find_assertion(ACTIONS_ASSERTION_LABEL).data["actions"]
        assert [a["action"] for a in recorded] == ["c2pa.created", "c2pa.edited"]
        assert [a.action for a in claim.actions] == [ActionType.CREATED.value, ActionType.EDITED.value]

    def test_instance_ids_are_unique(self):
        actions = [created_action("x")]
        assert build_claim("x", actions).instance_id != build_claim("x", actions).instance_id

    def test_generator_identity(self):
        builder = ManifestBuilder(claim_generator="editor", generator_version="9.9")
        claim = builder.build_claim("x", [])
        assert claim.claim_generator == "editor"
        assert claim.claim_generator_info == {"name": "editor", "version": "9.9"}
        assert claim.format == "text/plain"

    def test_builder_from_settings(self):
        settings = Settings(claim_generator="gen", claim_generator_version="2.0", content_format="text/markdown")
        claim = ManifestBuilder.from_settings(settings).build_claim("x", [])
        assert claim.claim_generator == "gen"
        assert claim.format == "text/markdown"

    def test_title_is_optional(self):
        claim = build_claim("x", [])
        assert "dc:title" not in claim.to_dict()
        titled = ManifestBuilder().build_claim("x", [], title="Draft")
        assert titled.to_dict()["dc:title"] == "Draft"


class TestSignClaim:
    """Test COSE-style claim signing."""

    def test_protected_header(self, key_pair):
        claim = build_claim("x", [created_action("x")])
        signature = sign_claim(claim, key_pair)
        header = json.loads(base64_to_utf8(signature.protected))
        assert header == {"alg": COSE_ALG_ES256, "kid": key_pair.key_id}

    def test_payload_is_unsigned_claim(self, key_pair):
        claim = build_claim("x", [created_action("x")])
        signature = sign_claim(claim, key_pair)
        payload = json.loads(base64_to_utf8(signature.payload))
        assert canonical_json(payload) == canonical_json(claim.to_dict(include_signature=False))
        assert "signature" not in payload

    def test_signature_verifies(self, key_pair):
        claim = build_claim("x", [created_action("x")])
        signature = sign_claim(claim, key_pair)
        assert verify(signature.signing_input, base64_to_bytes(signature.signature), signature.public_key)

    def test_invalid_key_raises(self):
        claim = build_claim("x", [])
        with pytest.raises(SigningError):
            sign_claim(claim, None)


class TestCreateManifest:
    """Test full manifest creation and serialization."""

    def test_manifest_shape(self, key_pair):
        manifest = create_manifest("Hello", [created_action("Hello")], key_pair)
        data = manifest.to_dict()
        assert data["@context"] == MANIFEST_CONTEXT
        assert set(data["claim"]["signature"]) == {"protected", "payload", "signature", "publicKey"}
        assert "scitt" not in data

    def test_serialize_is_sorted_pretty_json(self, key_pair):
        manifest = create_manifest("Hello", [created_action("Hello")], key_pair)
        text = serialize_manifest(manifest)
        assert text.startswith('{\n  "@context"')
        assert serialize_manifest(ExternalManifest.from_json(text)) == text

    def test_parse_round_trip(self, key_pair):
        manifest = create_manifest("Hello", [human_edit_action("Hell", "Hello", (0, 4))], key_pair)
        assert ExternalManifest.from_dict(manifest.to_dict()) == manifest

    def test_attach_receipt_returns_new_manifest(self, key_pair):
        manifest = create_manifest("Hello", [], key_pair)
        receipt = ScittReceipt(receipt="cmVj", service_url="demo://local", log_id="demo-log", timestamp=FIXED_TIMESTAMP)
        anchored = attach_receipt(manifest, receipt)
        assert anchored.scitt == receipt
        assert manifest.scitt is None
        assert anchored.without_receipt() == manifest

    def test_deterministic_timestamps(self):
        with determinism_mode():
            action = created_action("x")
        assert action.when == FIXED_TIMESTAMP

    def test_write_and_load(self, key_pair, tmp_path):
        manifest = create_manifest("Hello", [created_action("Hello")], key_pair)
        path = tmp_path / "out" / "manifest.json"
        manifest.write_json(path)
        assert ExternalManifest.load(path) == manifest


class TestManifestParsing:
    """Test structural validation of manifest input."""

    def test_missing_claim(self):
        with pytest.raises(ManifestStructureError) as exc_info:
            ExternalManifest.from_dict({"@context": MANIFEST_CONTEXT})
        assert exc_info.value.errors

    def test_not_an_object(self):
        with pytest.raises(ManifestStructureError):
            ExternalManifest.from_dict(["not", "a", "manifest"])

    def test_invalid_json(self):
        with pytest.raises(ManifestStructureError):
            ExternalManifest.from_json("{not json")

    def test_invalid_action_type(self):
        with pytest.raises(ManifestStructureError):
            Action.from_dict({"action": "c2pa.deleted", "when": FIXED_TIMESTAMP})

    def test_change_range_validation(self):
        with pytest.raises(ValueError):
            ChangeRange(start=5, end=2)
        with pytest.raises(ValueError):
            ChangeRange(start=-1, end=2)

    def test_unknown_keys_survive_round_trip(self, extended_manifest):
        data = extended_manifest("Hello")
        manifest = ExternalManifest.from_dict(data)
        assert manifest.to_dict() == data
        assert manifest.claim.extra == {"x-review-state": "approved"}
        assert ExternalManifest.from_json(manifest.to_json()) == manifest

    def test_unknown_keys_kept_when_receipt_attached(self, extended_manifest):
        manifest = ExternalManifest.from_dict(extended_manifest("Hello"))
        receipt = ScittReceipt(receipt="cmVj", service_url="demo://local", log_id="demo-log", timestamp=FIXED_TIMESTAMP)
        anchored = attach_receipt(manifest, receipt).to_dict()
        assert anchored["x-envelope"] == {"producer": "other-tool"}
        assert anchored["claim"]["signature"]["x-cert-chain"] == []
