"""Tests for transparency receipts."""

from __future__ import annotations

from urllib.error import URLError

import pytest

from textprov.config import Settings
from textprov.determinism import FIXED_TIMESTAMP, determinism_mode
from textprov.provenance.manifest import ExternalManifest, ScittReceipt
from textprov.provenance.transparency import (
    SIMULATED_NOTE,
    DelegatedTransparencyService,
    SimulatedTransparencyService,
    anchor,
    decode_receipt_blob,
    manifest_commitment,
    receipt_verifier_for,
    service_from_settings,
    verify_receipt,
)
from textprov.provenance.verifier import verify_manifest


class TestSimulatedService:
    """Test the local hash-commitment service."""

    def test_submit_and_verify(self, signed):
        manifest = signed("Hello")
        service = SimulatedTransparencyService()
        receipt = service.submit(manifest)
        assert receipt.service_url == "demo://local"
        assert receipt.log_id == "demo-log"
        assert service.verify(manifest, receipt)

    def test_receipt_blob_contents(self, signed):
        manifest = signed("Hello")
        with determinism_mode():
            receipt = SimulatedTransparencyService().submit(manifest)
        body = decode_receipt_blob(receipt.receipt)
        assert body == {
            "version": 1,
            "commitment": manifest_commitment(manifest),
            "timestamp": FIXED_TIMESTAMP,
            "logId": "demo-log",
            "note": SIMULATED_NOTE,
        }
        assert receipt.entry_id == f"demo-log:{body['commitment'][:16]}"

    def test_commitment_ignores_receipt(self, signed):
        manifest = signed("Hello")
        anchored = anchor(manifest)
        assert manifest_commitment(anchored) == manifest_commitment(manifest)
        assert verify_receipt(anchored, anchored.scitt)

    def test_receipt_for_other_manifest_fails(self, signed):
        service = SimulatedTransparencyService()
        receipt = service.submit(signed("one"))
        assert not service.verify(signed("two"), receipt)

    def test_garbage_blob_fails(self, signed):
        receipt = ScittReceipt(receipt="@@@", service_url="demo://local", log_id="demo-log", timestamp=FIXED_TIMESTAMP)
        assert not SimulatedTransparencyService().verify(signed("x"), receipt)

    def test_dict_inputs(self, signed):
        manifest = signed("x")
        receipt = SimulatedTransparencyService().submit(manifest)
        assert verify_receipt(manifest.to_dict(), receipt.to_dict())

    def test_anchor_keeps_unknown_keys(self, extended_manifest):
        data = extended_manifest("Hello")
        anchored = anchor(ExternalManifest.from_dict(data))
        assert anchored.to_dict()["claim"]["x-review-state"] == "approved"
        assert verify_manifest("Hello", anchored).valid

    def test_requires_demo_url(self):
        with pytest.raises(ValueError):
            SimulatedTransparencyService("https://log.example")


class TestDelegatedService:
    """Test the remote service client."""

    def test_rejects_non_http_url(self):
        with pytest.raises(ValueError):
            DelegatedTransparencyService("ftp://log.example", "log")

    def test_submission_failure_falls_back(self, signed, monkeypatch):
        service = DelegatedTransparencyService("https://log.example", "remote-log")

        def fail(_manifest):
            raise URLError("connection refused")

        monkeypatch.setattr(service, "_post_entry", fail)
        manifest = signed("Hello")
        anchored = service.anchor(manifest)
        assert anchored.scitt.service_url.startswith("demo://")
        assert service.verify(anchored, anchored.scitt)
        assert verify_receipt(anchored, anchored.scitt)

    def test_successful_submission(self, signed, monkeypatch):
        service = DelegatedTransparencyService("https://log.example/", "remote-log")
        monkeypatch.setattr(
            service,
            "_post_entry",
            lambda _m: {"receipt": "b3BhcXVl", "entryId": "42", "timestamp": FIXED_TIMESTAMP},
        )
        receipt = service.submit(signed("Hello"))
        assert receipt.service_url == "https://log.example"
        assert receipt.entry_id == "42"
        assert receipt.receipt == "b3BhcXVl"

    def test_remote_receipt_checked_for_well_formedness(self, signed):
        manifest = signed("Hello")
        good = ScittReceipt(receipt="b3BhcXVl", service_url="https://log.example", log_id="l", timestamp=FIXED_TIMESTAMP)
        empty_blob = ScittReceipt(receipt="", service_url="https://log.example", log_id="l", timestamp=FIXED_TIMESTAMP)
        empty_timestamp = ScittReceipt(receipt="b3BhcXVl", service_url="https://log.example", log_id="l", timestamp="")
        assert verify_receipt(manifest, good)
        assert not verify_receipt(manifest, empty_blob)
        assert not verify_receipt(manifest, empty_timestamp)
        assert not DelegatedTransparencyService("https://log.example", "l").verify(manifest, empty_timestamp)

    def test_malformed_receipt_dict(self, signed):
        assert not verify_receipt(signed("x"), {"receipt": "abc"})


class TestServiceFromSettings:
    """Test service selection by configuration."""

    def test_default_is_simulated(self):
        assert isinstance(service_from_settings(Settings()), SimulatedTransparencyService)

    def test_http_url_is_delegated(self):
        service = service_from_settings(Settings(scitt_service_url="https://log.example", scitt_timeout=2.5))
        assert isinstance(service, DelegatedTransparencyService)
        assert service.timeout == 2.5


class TestReceiptDispatch:
    """Test choosing a verifier from the receipt's service URL."""

    def test_demo_url(self):
        receipt = ScittReceipt(receipt="x", service_url="demo://local", log_id="demo-log", timestamp=FIXED_TIMESTAMP)
        assert isinstance(receipt_verifier_for(receipt), SimulatedTransparencyService)

    def test_https_url(self):
        receipt = {"receipt": "x", "serviceUrl": "https://log.example", "logId": "l", "timestamp": FIXED_TIMESTAMP}
        assert isinstance(receipt_verifier_for(receipt), DelegatedTransparencyService)

    def test_unknown_scheme_fails_verification(self, signed):
        receipt = ScittReceipt(receipt="x", service_url="ftp://log.example", log_id="l", timestamp=FIXED_TIMESTAMP)
        with pytest.raises(ValueError):
            receipt_verifier_for(receipt)
        assert not verify_receipt(signed("x"), receipt)
