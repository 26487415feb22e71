"""Claim and manifest construction and signing.

A claim hard-binds content through a SHA-256 hash assertion over the raw
content bytes and carries the ordered action list. Signing encodes a
protected header and the unsigned claim independently, then signs
``protected + "." + payload``.

Manifest creation is all-or-nothing: any key or encoding failure
propagates to the caller.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import replace

from textprov import __version__
from textprov.canonical import HASH_ALGORITHM, bytes_to_base64, canonical_json, digest, utf8_to_base64
from textprov.config import DEFAULT_FORMAT, DEFAULT_GENERATOR, Settings
from textprov.provenance.manifest import (
    MANIFEST_CONTEXT,
    Action,
    Claim,
    CoseSignature,
    ExternalManifest,
    ScittReceipt,
    actions_assertion,
    hash_assertion,
)
from textprov.provenance.signing import COSE_ALG_ES256, KeyPair, SigningError, sign

logger = logging.getLogger(__name__)


def encode_protected_header(key_id: str, alg: int = COSE_ALG_ES256) -> str:
    """Encode the protected header ``{alg, kid}``."""
    return utf8_to_base64(canonical_json({"alg": alg, "kid": key_id}))


def encode_payload(claim: Claim) -> str:
    """Encode a claim (signature field excluded) as the signed payload."""
    return utf8_to_base64(canonical_json(claim.to_dict(include_signature=False)))


class ManifestBuilder:
    """Builds, signs and wraps claims."""

    def __init__(
        self,
        claim_generator: str = DEFAULT_GENERATOR,
        generator_version: str = __version__,
        content_format: str = DEFAULT_FORMAT,
    ) -> None:
        self.claim_generator = claim_generator
        self.generator_version = generator_version
        self.content_format = content_format

    @classmethod
    def from_settings(cls, settings: Settings) -> ManifestBuilder:
        return cls(
            claim_generator=settings.claim_generator,
            generator_version=settings.claim_generator_version,
            content_format=settings.content_format,
        )

    def build_claim(
        self,
        content: str,
        actions: Sequence[Action],
        content_format: str | None = None,
        title: str | None = None,
    ) -> Claim:
        """Build an unsigned claim for content and its action history.

        Each call gets a fresh random instance id, even for identical input.
        """
        return Claim(
            format=content_format or self.content_format,
            instance_id=str(uuid.uuid4()),
            claim_generator=self.claim_generator,
            claim_generator_info={"name": self.claim_generator, "version": self.generator_version},
            title=title,
            assertions=(
                hash_assertion(digest(content), HASH_ALGORITHM),
                actions_assertion(list(actions)),
            ),
        )

    def sign_claim(self, claim: Claim, key_pair: KeyPair) -> CoseSignature:
        """Sign a claim.

        Raises:
            SigningError: If the key is unusable or signing fails
        """
        try:
            protected = encode_protected_header(key_pair.key_id)
            payload = encode_payload(claim)
            public_key = key_pair.export_public_key()
        except SigningError:
            raise
        except (ValueError, TypeError, AttributeError) as e:
            raise SigningError(f"Failed to encode claim for signing: {e}") from e

        raw_signature = sign(f"{protected}.{payload}", key_pair)
        logger.debug("Signed claim %s with key %s", claim.instance_id, key_pair.key_id)

        return CoseSignature(
            protected=protected,
            payload=payload,
            signature=bytes_to_base64(raw_signature),
            public_key=public_key,
        )

    def create_manifest(
        self,
        content: str,
        actions: Sequence[Action],
        key_pair: KeyPair,
        content_format: str | None = None,
        title: str | None = None,
    ) -> ExternalManifest:
        """Build, sign and wrap a claim. No receipt is attached."""
        claim = self.build_claim(content, actions, content_format=content_format, title=title)
        signature = self.sign_claim(claim, key_pair)
        manifest = ExternalManifest(
            claim=replace(claim, signature=signature),
            context=MANIFEST_CONTEXT,
        )
        logger.info(
            "Created manifest %s (%d actions, content hash %s)",
            claim.instance_id,
            len(actions),
            claim.content_hash,
        )
        return manifest


_default_builder = ManifestBuilder()


def build_claim(content: str, actions: Sequence[Action], content_format: str = DEFAULT_FORMAT) -> Claim:
    """Build an unsigned claim with the default generator identity."""
    return _default_builder.build_claim(content, actions, content_format=content_format)


def sign_claim(claim: Claim, key_pair: KeyPair) -> CoseSignature:
    """Sign a claim with the given key."""
    return _default_builder.sign_claim(claim, key_pair)


def create_manifest(content: str, actions: Sequence[Action], key_pair: KeyPair) -> ExternalManifest:
    """Create a signed manifest with the default generator identity."""
    return _default_builder.create_manifest(content, actions, key_pair)


def serialize_manifest(manifest: ExternalManifest) -> str:
    """Serialize a manifest to deterministic pretty-printed JSON."""
    return manifest.to_json(indent=2)


def attach_receipt(manifest: ExternalManifest, receipt: ScittReceipt) -> ExternalManifest:
    """Return a copy of the manifest carrying a transparency receipt."""
    return manifest.with_receipt(receipt)
