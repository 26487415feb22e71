"""Cryptographic signing for provenance claims.

Uses ECDSA over NIST P-256 with SHA-256 (COSE algorithm ``-7``, "ES256").
Signatures are the fixed-width 64-byte ``r || s`` form used by COSE and
WebCrypto. Public keys travel inside manifests as JWK JSON strings.

Keys are plain values: callers create or load a :class:`KeyPair` and pass it
to every signing call. Loading from the environment is available through
:meth:`KeyPair.from_env`:

- TEXTPROV_SIGNING_PRIVATE_KEY: Base64-encoded PKCS#8 private key (DER or PEM)
"""

from __future__ import annotations

import base64
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from textprov.canonical import base64_to_bytes, canonical_json, digest_of_value

logger = logging.getLogger(__name__)

# COSE algorithm identifier for ECDSA w/ SHA-256
COSE_ALG_ES256 = -7
CURVE_NAME = "P-256"
COORDINATE_SIZE = 32
SIGNATURE_SIZE = 2 * COORDINATE_SIZE

PRIVATE_KEY_ENV = "TEXTPROV_SIGNING_PRIVATE_KEY"


class SigningError(Exception):
    """Error during signing operation."""
    pass


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def public_key_to_jwk(public_key: ec.EllipticCurvePublicKey) -> dict[str, str]:
    """Export a P-256 public key as a JWK dictionary."""
    numbers = public_key.public_numbers()
    return {
        "crv": CURVE_NAME,
        "kty": "EC",
        "x": _b64url_encode(numbers.x.to_bytes(COORDINATE_SIZE, "big")),
        "y": _b64url_encode(numbers.y.to_bytes(COORDINATE_SIZE, "big")),
    }


def public_key_from_jwk(jwk: str | dict[str, Any]) -> ec.EllipticCurvePublicKey:
    """Import a P-256 public key from a JWK string or dictionary.

    Raises:
        ValueError: If the JWK is malformed or not a P-256 EC key
    """
    data = json.loads(jwk) if isinstance(jwk, str) else jwk
    if not isinstance(data, dict):
        raise ValueError("JWK must be a JSON object")
    if data.get("kty") != "EC" or data.get("crv") != CURVE_NAME:
        raise ValueError(f"Unsupported JWK: kty={data.get('kty')!r} crv={data.get('crv')!r}")

    x = _b64url_decode(data["x"])
    y = _b64url_decode(data["y"])
    if len(x) != COORDINATE_SIZE or len(y) != COORDINATE_SIZE:
        raise ValueError("JWK coordinates must be 32 bytes")

    numbers = ec.EllipticCurvePublicNumbers(
        int.from_bytes(x, "big"),
        int.from_bytes(y, "big"),
        ec.SECP256R1(),
    )
    return numbers.public_key()


def key_id_for_jwk(jwk: str | dict[str, Any]) -> str:
    """Derive a short, stable key id from a public JWK."""
    data = json.loads(jwk) if isinstance(jwk, str) else jwk
    return digest_of_value(data)[:16]


@dataclass(frozen=True)
class KeyPair:
    """ECDSA P-256 signing key plus its exportable public half."""

    private_key: ec.EllipticCurvePrivateKey = field(repr=False)

    @classmethod
    def generate(cls) -> KeyPair:
        """Generate a fresh key pair."""
        return cls(private_key=ec.generate_private_key(ec.SECP256R1()))

    @classmethod
    def from_pem(cls, data: bytes | str, password: bytes | None = None) -> KeyPair:
        """Load a private key from PEM (PKCS#8 or SEC1).

        Raises:
            SigningError: If the key cannot be parsed or is not P-256
        """
        if isinstance(data, str):
            data = data.encode("ascii")
        try:
            key = serialization.load_pem_private_key(data, password=password)
        except (ValueError, TypeError) as e:
            raise SigningError(f"Invalid private key PEM: {e}") from e
        return cls._checked(key)

    @classmethod
    def from_der(cls, data: bytes, password: bytes | None = None) -> KeyPair:
        """Load a private key from PKCS#8 DER."""
        try:
            key = serialization.load_der_private_key(data, password=password)
        except (ValueError, TypeError) as e:
            raise SigningError(f"Invalid private key DER: {e}") from e
        return cls._checked(key)

    @classmethod
    def from_env(cls, env_var: str = PRIVATE_KEY_ENV) -> KeyPair | None:
        """Load a key pair from an environment variable, if set.

        Returns:
            KeyPair, or None if the variable is not set

        Raises:
            SigningError: If the variable holds an invalid key
        """
        value = os.environ.get(env_var)
        if not value:
            return None
        try:
            raw = base64_to_bytes(value)
        except ValueError as e:
            raise SigningError(f"Invalid base64 in {env_var}") from e
        if raw.lstrip().startswith(b"-----BEGIN"):
            return cls.from_pem(raw)
        return cls.from_der(raw)

    @staticmethod
    def _checked(key: Any) -> KeyPair:
        if not isinstance(key, ec.EllipticCurvePrivateKey) or not isinstance(key.curve, ec.SECP256R1):
            raise SigningError("Signing key must be an ECDSA P-256 private key")
        return KeyPair(private_key=key)

    @property
    def public_jwk(self) -> dict[str, str]:
        """Public key as a JWK dictionary."""
        return public_key_to_jwk(self.private_key.public_key())

    def export_public_key(self) -> str:
        """Public key as a canonical JWK JSON string."""
        return canonical_json(self.public_jwk)

    @property
    def key_id(self) -> str:
        """Short stable identifier of the public key."""
        return key_id_for_jwk(self.public_jwk)

    def private_pem(self) -> bytes:
        """Serialize the private key as unencrypted PKCS#8 PEM."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def to_env_format(self) -> str:
        """Private key in the base64 form read by :meth:`from_env`."""
        der = self.private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return base64.b64encode(der).decode("ascii")


def _message_bytes(message: bytes | str) -> bytes:
    return message.encode("utf-8") if isinstance(message, str) else bytes(message)


def sign(message: bytes | str, key_pair: KeyPair) -> bytes:
    """Sign a message with ECDSA P-256 / SHA-256.

    Args:
        message: Message to sign (text is UTF-8 encoded)
        key_pair: Signing key

    Returns:
        64-byte ``r || s`` signature

    Raises:
        SigningError: If signing fails
    """
    if not isinstance(key_pair, KeyPair):
        raise SigningError(f"Expected KeyPair, got {type(key_pair).__name__}")
    try:
        der = key_pair.private_key.sign(_message_bytes(message), ec.ECDSA(hashes.SHA256()))
    except (ValueError, TypeError) as e:
        raise SigningError(f"Signing failed: {e}") from e

    r, s = decode_dss_signature(der)
    return r.to_bytes(COORDINATE_SIZE, "big") + s.to_bytes(COORDINATE_SIZE, "big")


def verify(message: bytes | str, signature: bytes, public_jwk: str | dict[str, Any]) -> bool:
    """Verify a signature.

    Never raises: malformed keys, malformed signatures and mismatches all
    yield False.

    Args:
        message: Original message
        signature: 64-byte ``r || s`` signature
        public_jwk: Signer's public key as JWK

    Returns:
        True if valid, False otherwise
    """
    try:
        if len(signature) != SIGNATURE_SIZE:
            return False
        r = int.from_bytes(signature[:COORDINATE_SIZE], "big")
        s = int.from_bytes(signature[COORDINATE_SIZE:], "big")
        public_key = public_key_from_jwk(public_jwk)
        public_key.verify(
            encode_dss_signature(r, s),
            _message_bytes(message),
            ec.ECDSA(hashes.SHA256()),
        )
        return True
    except InvalidSignature:
        return False
    except Exception as e:
        logger.debug("Signature verification error: %s", e)
        return False
