"""Provenance for edited text (tamper-evident manifests).

Builds signed C2PA-style claims that hard-bind content by hash, embeds them
in single-file documents, anchors them in a transparency log and verifies
all bindings again from content plus manifest alone.
"""

from __future__ import annotations

from textprov.provenance.actions import ai_edit_action, created_action, human_edit_action, opened_action
from textprov.provenance.builder import (
    ManifestBuilder,
    attach_receipt,
    build_claim,
    create_manifest,
    serialize_manifest,
    sign_claim,
)
from textprov.provenance.embedded import (
    EmbeddedManifestError,
    ExtractResult,
    InvalidEncodingError,
    InvalidStructureError,
    MarkersNotFoundError,
    MarkersOutOfOrderError,
    embed_manifest,
    extract_manifest,
    has_embedded_manifest,
)
from textprov.provenance.manifest import (
    Action,
    ActionParameters,
    ActionType,
    Assertion,
    ChangeRange,
    Claim,
    CoseSignature,
    DigitalSourceType,
    ExternalManifest,
    ScittReceipt,
)
from textprov.provenance.recorder import ProvenanceRecorder
from textprov.provenance.schema import ManifestStructureError
from textprov.provenance.signing import KeyPair, SigningError, sign, verify
from textprov.provenance.transparency import (
    DelegatedTransparencyService,
    SimulatedTransparencyService,
    TransparencyService,
    anchor,
    receipt_verifier_for,
    verify_receipt,
)
from textprov.provenance.verifier import CheckResult, ManifestVerifier, VerificationResult, verify_manifest

__all__ = [
    "Action",
    "ActionParameters",
    "ActionType",
    "Assertion",
    "ChangeRange",
    "CheckResult",
    "Claim",
    "CoseSignature",
    "DelegatedTransparencyService",
    "DigitalSourceType",
    "EmbeddedManifestError",
    "ExternalManifest",
    "ExtractResult",
    "InvalidEncodingError",
    "InvalidStructureError",
    "KeyPair",
    "ManifestBuilder",
    "ManifestStructureError",
    "ManifestVerifier",
    "MarkersNotFoundError",
    "MarkersOutOfOrderError",
    "ProvenanceRecorder",
    "ScittReceipt",
    "SigningError",
    "SimulatedTransparencyService",
    "TransparencyService",
    "VerificationResult",
    "ai_edit_action",
    "anchor",
    "attach_receipt",
    "build_claim",
    "create_manifest",
    "created_action",
    "embed_manifest",
    "extract_manifest",
    "has_embedded_manifest",
    "human_edit_action",
    "opened_action",
    "receipt_verifier_for",
    "serialize_manifest",
    "sign",
    "sign_claim",
    "verify",
    "verify_manifest",
    "verify_receipt",
]
