"""Transparency receipts binding a manifest to a log entry.

Two service kinds share one interface:

- SimulatedTransparencyService: a local hash commitment. The receipt blob
  decodes to ``{version, commitment, timestamp, logId, note}`` where
  ``commitment = digest(canonical(manifest without its receipt))``.
- DelegatedTransparencyService: posts the manifest to a remote log. Any
  submission failure falls back to a simulated receipt; anchoring is
  best-effort and never blocks an edit.

Without a real log query, delegated receipts are only checked for being
well formed (non-empty blob and timestamp).
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from textprov import __version__
from textprov.canonical import base64_to_utf8, canonical_json, digest_of_value, utf8_to_base64
from textprov.config import DEFAULT_SCITT_LOG_ID, DEFAULT_SCITT_SERVICE_URL, Settings
from textprov.determinism import stable_timestamp
from textprov.provenance.manifest import ExternalManifest, ScittReceipt

logger = logging.getLogger(__name__)

SIMULATED_SCHEME = "demo://"
RECEIPT_VERSION = 1
SIMULATED_NOTE = "Simulated transparency receipt (local hash commitment, not a public log entry)"


def _manifest_data(manifest: ExternalManifest | dict[str, Any]) -> dict[str, Any]:
    if isinstance(manifest, ExternalManifest):
        return manifest.to_dict()
    return manifest


def _receipt(receipt: ScittReceipt | dict[str, Any]) -> ScittReceipt:
    if isinstance(receipt, ScittReceipt):
        return receipt
    return ScittReceipt.from_dict(receipt)


def manifest_commitment(manifest: ExternalManifest | dict[str, Any]) -> str:
    """Digest of the manifest's canonical encoding, receipt field excluded."""
    data = {k: v for k, v in _manifest_data(manifest).items() if k != "scitt"}
    return digest_of_value(data)


def decode_receipt_blob(blob: str) -> dict[str, Any]:
    """Decode a simulated receipt blob.

    Raises:
        ValueError: If the blob is not base64 JSON object
    """
    data = json.loads(base64_to_utf8(blob))
    if not isinstance(data, dict):
        raise ValueError("Receipt blob must decode to a JSON object")
    return data


def is_simulated_receipt(receipt: ScittReceipt | dict[str, Any]) -> bool:
    """True when the receipt was issued by a local hash-commitment service."""
    return _receipt(receipt).service_url.startswith(SIMULATED_SCHEME)


class TransparencyService(ABC):
    """Capability interface for a transparency log client."""

    def __init__(self, service_url: str, log_id: str) -> None:
        self.service_url = service_url
        self.log_id = log_id

    @abstractmethod
    def submit(self, manifest: ExternalManifest) -> ScittReceipt:
        """Register a manifest and return its receipt."""
        pass

    @abstractmethod
    def verify(
        self,
        manifest: ExternalManifest | dict[str, Any],
        receipt: ScittReceipt | dict[str, Any],
    ) -> bool:
        """Check a receipt against a manifest. Never raises."""
        pass

    def anchor(self, manifest: ExternalManifest) -> ExternalManifest:
        """Submit the manifest and return a copy carrying the receipt."""
        return manifest.with_receipt(self.submit(manifest.without_receipt()))


class SimulatedTransparencyService(TransparencyService):
    """Local hash-commitment log."""

    def __init__(
        self,
        service_url: str = DEFAULT_SCITT_SERVICE_URL,
        log_id: str = DEFAULT_SCITT_LOG_ID,
    ) -> None:
        if not service_url.startswith(SIMULATED_SCHEME):
            raise ValueError(f"Simulated service URL must start with {SIMULATED_SCHEME!r}: {service_url}")
        super().__init__(service_url, log_id)

    def submit(self, manifest: ExternalManifest | dict[str, Any]) -> ScittReceipt:
        commitment = manifest_commitment(manifest)
        timestamp = stable_timestamp()
        body = {
            "version": RECEIPT_VERSION,
            "commitment": commitment,
            "timestamp": timestamp,
            "logId": self.log_id,
            "note": SIMULATED_NOTE,
        }
        logger.debug("Issued simulated receipt for commitment %s", commitment)
        return ScittReceipt(
            receipt=utf8_to_base64(canonical_json(body)),
            service_url=self.service_url,
            log_id=self.log_id,
            timestamp=timestamp,
            entry_id=f"{self.log_id}:{commitment[:16]}",
        )

    def verify(
        self,
        manifest: ExternalManifest | dict[str, Any],
        receipt: ScittReceipt | dict[str, Any],
    ) -> bool:
        try:
            body = decode_receipt_blob(_receipt(receipt).receipt)
            return body.get("commitment") == manifest_commitment(manifest)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.debug("Simulated receipt rejected: %s", e)
            return False


class DelegatedTransparencyService(TransparencyService):
    """Client for a remote transparency log, with simulated fallback."""

    def __init__(
        self,
        service_url: str,
        log_id: str,
        timeout: float = 10.0,
        fallback: SimulatedTransparencyService | None = None,
    ) -> None:
        parsed = urlparse(service_url)
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"Invalid URL scheme: {parsed.scheme}. Only http/https supported.")
        super().__init__(service_url.rstrip("/"), log_id)
        self.timeout = timeout
        self.fallback = fallback or SimulatedTransparencyService()

    def _post_entry(self, manifest: ExternalManifest | dict[str, Any]) -> dict[str, Any]:
        body = json.dumps(
            {"manifest": utf8_to_base64(canonical_json(_manifest_data(manifest)))}
        ).encode("utf-8")
        req = Request(f"{self.service_url}/entries", data=body, method="POST")
        req.add_header("Content-Type", "application/json")
        req.add_header("User-Agent", f"textprov/{__version__}")

        with urlopen(req, timeout=self.timeout) as response:
            result = json.loads(response.read().decode("utf-8"))

        if not isinstance(result, dict) or not result.get("receipt"):
            raise ValueError("Transparency service response has no receipt")
        return result

    def submit(self, manifest: ExternalManifest | dict[str, Any]) -> ScittReceipt:
        try:
            result = self._post_entry(manifest)
        except (HTTPError, URLError, TimeoutError, OSError, ValueError) as e:
            logger.warning("Transparency submission to %s failed, using simulated receipt: %s", self.service_url, e)
            return self.fallback.submit(manifest)

        entry_id = result.get("entryId")
        return ScittReceipt(
            receipt=str(result["receipt"]),
            service_url=self.service_url,
            log_id=self.log_id,
            timestamp=str(result.get("timestamp") or stable_timestamp()),
            entry_id=str(entry_id) if entry_id is not None else None,
        )

    def verify(
        self,
        manifest: ExternalManifest | dict[str, Any],
        receipt: ScittReceipt | dict[str, Any],
    ) -> bool:
        try:
            parsed = _receipt(receipt)
        except (KeyError, TypeError, AttributeError):
            return False
        if is_simulated_receipt(parsed):
            return self.fallback.verify(manifest, parsed)
        # Well-formedness only: no log query is performed.
        return bool(parsed.receipt) and bool(parsed.timestamp)


def service_from_settings(settings: Settings) -> TransparencyService:
    """Build the transparency service selected by configuration."""
    if settings.simulated_transparency:
        return SimulatedTransparencyService(settings.scitt_service_url, settings.scitt_log_id)
    return DelegatedTransparencyService(
        settings.scitt_service_url,
        settings.scitt_log_id,
        timeout=settings.scitt_timeout,
    )


def receipt_verifier_for(receipt: ScittReceipt | dict[str, Any]) -> TransparencyService:
    """Pick the service kind able to check a receipt, from its service URL.

    Raises:
        ValueError: If the service URL is neither ``demo://`` nor http(s)
        KeyError: If the receipt dict lacks required fields
    """
    parsed = _receipt(receipt)
    if is_simulated_receipt(parsed):
        return SimulatedTransparencyService(parsed.service_url, parsed.log_id)
    return DelegatedTransparencyService(parsed.service_url, parsed.log_id)


def verify_receipt(
    manifest: ExternalManifest | dict[str, Any],
    receipt: ScittReceipt | dict[str, Any],
) -> bool:
    """Verify a receipt with the service kind named by its service URL."""
    try:
        parsed = _receipt(receipt)
        verifier = receipt_verifier_for(parsed)
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        logger.debug("Receipt rejected: %s", e)
        return False
    return verifier.verify(manifest, parsed)


def anchor(manifest: ExternalManifest, service: TransparencyService | None = None) -> ExternalManifest:
    """Attach a transparency receipt to a manifest (simulated by default)."""
    return (service or SimulatedTransparencyService()).anchor(manifest)
