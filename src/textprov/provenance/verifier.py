"""Manifest verification for tamper detection.

Three independent checks are run against content plus manifest:

1. Content hash: the hash assertion is read from the claim *inside the
   signature payload*, so swapping the outer claim cannot redirect the
   hard binding.
2. Signature: the COSE-style signature must verify over
   ``protected + "." + payload`` and the decoded payload claim must
   canonicalize identically to the outer claim (signature fields removed).
3. Receipt: optional; when present it must verify against the manifest.

Integrity failures are results, not exceptions.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from textprov.canonical import (
    HASH_ALGORITHM,
    base64_to_bytes,
    base64_to_utf8,
    canonical_json,
    digest,
)
from textprov.determinism import stable_timestamp
from textprov.provenance.embedded import EmbeddedManifestError, extract_manifest
from textprov.provenance.manifest import HASH_ASSERTION_LABEL, ExternalManifest
from textprov.provenance.schema import validate_manifest_data
from textprov.provenance.signing import COSE_ALG_ES256, key_id_for_jwk, verify
from textprov.provenance.transparency import TransparencyService, verify_receipt

logger = logging.getLogger(__name__)

CHECK_CONTENT_HASH = "content_hash"
CHECK_SIGNATURE = "signature"
CHECK_RECEIPT = "receipt"
CHECK_ORDER = (CHECK_CONTENT_HASH, CHECK_SIGNATURE, CHECK_RECEIPT)

_CHECK_TITLES = {
    CHECK_CONTENT_HASH: "Content Hash",
    CHECK_SIGNATURE: "Signature",
    CHECK_RECEIPT: "Transparency Receipt",
}


@dataclass
class CheckResult:
    """Outcome of a single verification check."""

    passed: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"passed": self.passed, "message": self.message}


@dataclass
class VerificationResult:
    """Aggregate verdict with per-check detail."""

    valid: bool
    checks: dict[str, CheckResult]
    errors: list[str] = field(default_factory=list)
    manifest: dict[str, Any] | None = None
    timestamp: str = field(default_factory=stable_timestamp)

    @classmethod
    def from_checks(
        cls,
        checks: dict[str, CheckResult],
        manifest: dict[str, Any] | None = None,
    ) -> VerificationResult:
        """Combine check results; errors follow the fixed check order."""
        ordered = {name: checks[name] for name in CHECK_ORDER}
        errors = [c.message for c in ordered.values() if not c.passed]
        return cls(
            valid=all(c.passed for c in ordered.values()),
            checks=ordered,
            errors=errors,
            manifest=manifest,
        )

    @classmethod
    def unparseable(cls, error: str) -> VerificationResult:
        """All-failed result for input that could not be parsed."""
        return cls(
            valid=False,
            checks={
                CHECK_CONTENT_HASH: CheckResult(False, "Failed to parse manifest"),
                CHECK_SIGNATURE: CheckResult(False, "Not verified"),
                CHECK_RECEIPT: CheckResult(False, "Not verified"),
            },
            errors=[error],
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "valid": self.valid,
            "checks": {name: check.to_dict() for name, check in self.checks.items()},
            "errors": list(self.errors),
            "manifest": self.manifest,
            "timestamp": self.timestamp,
        }

    def write_json(self, path: Path) -> None:
        """Write to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, sort_keys=True)

    def write_markdown(self, path: Path) -> None:
        """Write to Markdown file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.to_markdown())

    def to_markdown(self) -> str:
        """Generate markdown report. Every check is listed, pass or fail."""
        lines = [
            "# Provenance Verification Report",
            "",
            f"**Status:** {'✅ VALID' if self.valid else '❌ INVALID'}",
            f"**Timestamp:** {self.timestamp}",
            "",
            "## Checks",
            "",
        ]
        for name, check in self.checks.items():
            mark = "✅" if check.passed else "❌"
            lines.append(f"- {mark} **{_CHECK_TITLES.get(name, name)}:** {check.message}")
        lines.append("")

        if self.manifest:
            claim = self.manifest.get("claim", {})
            lines.extend([
                "## Manifest",
                "",
                f"- **Instance ID:** `{claim.get('instanceId')}`",
                f"- **Generator:** {claim.get('claimGenerator')}",
                f"- **Format:** {claim.get('dc:format')}",
                "",
            ])

        if self.errors:
            lines.extend(["## Errors", ""])
            for error in self.errors:
                lines.append(f"- {error}")
            lines.append("")

        return "\n".join(lines)


def decode_payload_claim(signature: dict[str, Any]) -> dict[str, Any]:
    """Decode the claim carried in a signature payload.

    Raises:
        ValueError: If the payload is not base64 JSON object
    """
    claim = json.loads(base64_to_utf8(signature["payload"]))
    if not isinstance(claim, dict):
        raise ValueError("Signature payload is not a JSON object")
    return claim


def _strip_signature(claim: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in claim.items() if k != "signature"}


def _find_hash_assertion(claim: dict[str, Any]) -> dict[str, Any] | None:
    assertions = claim.get("assertions")
    if not isinstance(assertions, list):
        return None
    for assertion in assertions:
        if isinstance(assertion, dict) and assertion.get("label") == HASH_ASSERTION_LABEL:
            data = assertion.get("data")
            return data if isinstance(data, dict) else None
    return None


class ManifestVerifier:
    """Verifier for content + manifest pairs."""

    def __init__(
        self,
        transparency: TransparencyService | None = None,
        trusted_key_ids: set[str] | frozenset[str] | None = None,
        parallel: bool = False,
    ) -> None:
        """Initialize verifier.

        Args:
            transparency: Service used for receipt checks; by default the
                service kind is chosen from each receipt's service URL
            trusted_key_ids: If given, only signatures from these key ids pass
            parallel: Run the three checks on a thread pool
        """
        self.transparency = transparency
        self.trusted_key_ids = frozenset(trusted_key_ids) if trusted_key_ids is not None else None
        self.parallel = parallel

    def verify(self, content: str, manifest: str | dict[str, Any] | ExternalManifest) -> VerificationResult:
        """Verify content against a manifest (JSON text, dict or object)."""
        if isinstance(manifest, ExternalManifest):
            data: Any = manifest.to_dict()
        elif isinstance(manifest, str):
            try:
                data = json.loads(manifest)
            except json.JSONDecodeError as e:
                return VerificationResult.unparseable(f"Failed to parse manifest JSON: {e}")
        else:
            data = manifest

        structure_errors = validate_manifest_data(data)
        if structure_errors:
            return VerificationResult.unparseable(f"Invalid manifest structure: {structure_errors[0]}")

        checks = self._run_checks(content, data)
        result = VerificationResult.from_checks(checks, manifest=data)

        if result.valid:
            logger.info("Manifest %s verified", data["claim"].get("instanceId"))
        else:
            logger.info(
                "Manifest %s failed verification: %s",
                data["claim"].get("instanceId"),
                "; ".join(result.errors),
            )
        return result

    def verify_embedded(self, text: str) -> VerificationResult:
        """Extract an embedded manifest and verify the content it covers."""
        try:
            extracted = extract_manifest(text)
        except EmbeddedManifestError as e:
            return VerificationResult.unparseable(str(e))
        return self.verify(extracted.content, extracted.manifest_data)

    def _run_checks(self, content: str, data: dict[str, Any]) -> dict[str, CheckResult]:
        tasks = {
            CHECK_CONTENT_HASH: lambda: self.check_content_hash(content, data),
            CHECK_SIGNATURE: lambda: self.check_signature(data),
            CHECK_RECEIPT: lambda: self.check_receipt(data),
        }
        if not self.parallel:
            return {name: task() for name, task in tasks.items()}

        with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
            futures = {name: executor.submit(task) for name, task in tasks.items()}
            return {name: future.result() for name, future in futures.items()}

    def check_content_hash(self, content: str, data: dict[str, Any]) -> CheckResult:
        """Compare the content digest with the signed hash assertion."""
        signature = data["claim"].get("signature")
        if not signature:
            return CheckResult(False, "No signature found; signed hash assertion unavailable")

        try:
            payload_claim = decode_payload_claim(signature)
        except (ValueError, KeyError) as e:
            return CheckResult(False, f"Signature payload could not be decoded: {e}")

        hash_data = _find_hash_assertion(payload_claim)
        if hash_data is None:
            return CheckResult(False, "No hash assertion found in signed claim")

        algorithm = hash_data.get("name", hash_data.get("algorithm"))
        if algorithm != HASH_ALGORITHM:
            return CheckResult(False, f"Unsupported hash algorithm: {algorithm}")

        expected = hash_data.get("hash")
        actual = digest(content)
        if actual != expected:
            return CheckResult(False, f"Content hash mismatch: expected {expected}, got {actual}")

        return CheckResult(True, "Content hash matches")

    def check_signature(self, data: dict[str, Any]) -> CheckResult:
        """Verify the signature and that the outer claim matches its payload."""
        claim = data["claim"]
        signature = claim.get("signature")
        if not signature:
            return CheckResult(False, "No signature found")

        try:
            header = json.loads(base64_to_utf8(signature["protected"]))
        except ValueError as e:
            return CheckResult(False, f"Protected header could not be decoded: {e}")
        if not isinstance(header, dict) or header.get("alg") != COSE_ALG_ES256:
            alg = header.get("alg") if isinstance(header, dict) else None
            return CheckResult(False, f"Unsupported signature algorithm: {alg}")

        try:
            raw_signature = base64_to_bytes(signature["signature"])
            key_id = key_id_for_jwk(signature["publicKey"])
        except (ValueError, TypeError) as e:
            return CheckResult(False, f"Signature or public key is malformed: {e}")

        if header.get("kid") is not None and header.get("kid") != key_id:
            return CheckResult(False, "Protected header key id does not match the public key")

        if self.trusted_key_ids is not None and key_id not in self.trusted_key_ids:
            return CheckResult(False, f"Signing key {key_id} is not trusted")

        signing_input = f"{signature['protected']}.{signature['payload']}"
        if not verify(signing_input, raw_signature, signature["publicKey"]):
            return CheckResult(False, "Signature verification failed")

        try:
            payload_claim = decode_payload_claim(signature)
        except ValueError as e:
            return CheckResult(False, f"Signature payload could not be decoded: {e}")

        try:
            matches = canonical_json(_strip_signature(payload_claim)) == canonical_json(_strip_signature(claim))
        except (ValueError, TypeError) as e:
            return CheckResult(False, f"Claim cannot be canonicalized: {e}")
        if not matches:
            return CheckResult(False, "Claim does not match signed payload (claim/payload mismatch)")

        return CheckResult(True, "Signature valid; claim matches signed payload")

    def check_receipt(self, data: dict[str, Any]) -> CheckResult:
        """Verify the transparency receipt, if one is attached."""
        receipt = data.get("scitt")
        if not receipt:
            return CheckResult(True, "No transparency receipt (optional)")

        if self.transparency is not None:
            valid = self.transparency.verify(data, receipt)
        else:
            valid = verify_receipt(data, receipt)

        if valid:
            return CheckResult(True, "Transparency receipt valid")
        return CheckResult(False, "Transparency receipt invalid")


def verify_manifest(content: str, manifest: str | dict[str, Any] | ExternalManifest) -> VerificationResult:
    """Verify content against a manifest with default settings."""
    return ManifestVerifier().verify(content, manifest)
