"""Receipt signing provider.

Holds the service's ECDSA P-256 keypair and signs receipt payloads with
SHA-256. Verification never touches provider state: a receipt carries its own
public key, so any holder of the receipt can verify it.

Key sources:
- persistent: an EC private key in JWK form (kty=EC, crv=P-256, x, y, d).
  Import failures raise CryptoFailure; a broken key is never masked.
- ephemeral: generated when no persistent key is configured. A warning is
  logged because the key disappears with the process.

The provider loads its key at most once. Concurrent first callers wait on a
single asyncio.Lock and observe the same key.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    load_der_public_key,
)

from dlvr.core.errors import CryptoFailure

logger = logging.getLogger(__name__)

SIGNATURE_ALGORITHM = "ECDSA-P256-SHA256"
P256_COORDINATE_BYTES = 32


class KeySource:
    """Where the active signing key came from."""

    PERSISTENT = "persistent"
    EPHEMERAL = "ephemeral"


@dataclass(frozen=True, slots=True)
class SignedBytes:
    """Signature over a payload plus the DER SPKI public key that verifies it."""

    signature: bytes
    public_key: bytes

    @property
    def signature_b64(self) -> str:
        return base64.b64encode(self.signature).decode("ascii")

    @property
    def public_key_b64(self) -> str:
        return base64.b64encode(self.public_key).decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def _b64url_encode(value: bytes) -> str:
    return base64.urlsafe_b64encode(value).rstrip(b"=").decode("ascii")


def private_key_from_jwk(jwk: str | dict[str, Any]) -> ec.EllipticCurvePrivateKey:
    """Import an EC P-256 private key from its JWK representation.

    Raises:
        CryptoFailure: If the JWK is malformed, not P-256, or its public
            coordinates do not match the private scalar.
    """
    try:
        data = json.loads(jwk) if isinstance(jwk, str) else dict(jwk)
        if data.get("kty") != "EC" or data.get("crv") != "P-256":
            msg = f"expected an EC P-256 JWK, got kty={data.get('kty')} crv={data.get('crv')}"
            raise CryptoFailure(msg)
        if "d" not in data:
            msg = "JWK has no private component 'd'"
            raise CryptoFailure(msg)

        private_value = int.from_bytes(_b64url_decode(data["d"]), "big")
        private_key = ec.derive_private_key(private_value, ec.SECP256R1())

        if "x" in data and "y" in data:
            numbers = private_key.public_key().public_numbers()
            x = int.from_bytes(_b64url_decode(data["x"]), "big")
            y = int.from_bytes(_b64url_decode(data["y"]), "big")
            if (numbers.x, numbers.y) != (x, y):
                msg = "JWK public coordinates do not match the private key"
                raise CryptoFailure(msg)

        return private_key
    except CryptoFailure:
        raise
    except (ValueError, TypeError, KeyError, UnsupportedAlgorithm) as e:
        msg = f"Failed to import signing key: {e}"
        raise CryptoFailure(msg) from e


def private_key_to_jwk(private_key: ec.EllipticCurvePrivateKey) -> dict[str, str]:
    """Export a P-256 private key as a JWK dict (for provisioning the key secret)."""
    numbers = private_key.private_numbers()
    public = numbers.public_numbers
    size = P256_COORDINATE_BYTES
    return {
        "kty": "EC",
        "crv": "P-256",
        "x": _b64url_encode(public.x.to_bytes(size, "big")),
        "y": _b64url_encode(public.y.to_bytes(size, "big")),
        "d": _b64url_encode(numbers.private_value.to_bytes(size, "big")),
    }


class SignatureProvider:
    """Owns the signing keypair and performs sign/verify.

    Example:
        provider = SignatureProvider(key_jwk=settings.signing.key_jwk.get_secret_value())
        await provider.load()
        signed = await provider.sign(payload_bytes)
        assert SignatureProvider.verify_with_embedded_key(
            payload_bytes, signed.signature, signed.public_key
        )
    """

    def __init__(self, key_jwk: str | None = None) -> None:
        """Initialize the provider.

        Args:
            key_jwk: Persistent private key as a JWK JSON string. None selects
                an ephemeral key.
        """
        self._key_jwk = key_jwk
        self._private_key: ec.EllipticCurvePrivateKey | None = None
        self._public_key_der: bytes | None = None
        self._key_source: str | None = None
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._private_key is not None

    @property
    def key_source(self) -> str | None:
        return self._key_source

    @property
    def public_key_der(self) -> bytes:
        self._ensure_loaded()
        return self._public_key_der

    async def load(self) -> None:
        """Import or generate the signing key, once.

        Raises:
            CryptoFailure: If the configured key cannot be imported or a key
                cannot be generated.
        """
        if self._private_key is not None:
            return

        async with self._lock:
            if self._private_key is not None:
                return

            if self._key_jwk:
                private_key = private_key_from_jwk(self._key_jwk)
                source = KeySource.PERSISTENT
                logger.info("Loaded persistent receipt signing key")
            else:
                try:
                    private_key = ec.generate_private_key(ec.SECP256R1())
                except Exception as e:
                    msg = f"Failed to generate signing key: {e}"
                    raise CryptoFailure(msg) from e
                source = KeySource.EPHEMERAL
                logger.warning(
                    "No persistent signing key configured; generated an ephemeral key. "
                    "Receipts will not verify against the service key after restart."
                )

            self._public_key_der = private_key.public_key().public_bytes(
                Encoding.DER, PublicFormat.SubjectPublicKeyInfo
            )
            self._key_source = source
            self._private_key = private_key

    async def sign(self, payload: bytes) -> SignedBytes:
        """Sign payload bytes with ECDSA P-256 / SHA-256.

        Raises:
            CryptoFailure: If the provider is not loaded or signing fails.
        """
        self._ensure_loaded()
        try:
            signature = self._private_key.sign(payload, ec.ECDSA(hashes.SHA256()))
        except Exception as e:
            msg = f"Signing failed: {e}"
            raise CryptoFailure(msg) from e
        return SignedBytes(signature=signature, public_key=self._public_key_der)

    def export_public_jwk(self) -> dict[str, str]:
        """Public half of the signing key as a JWK, for publishing."""
        self._ensure_loaded()
        numbers = self._private_key.public_key().public_numbers()
        size = P256_COORDINATE_BYTES
        return {
            "kty": "EC",
            "crv": "P-256",
            "x": _b64url_encode(numbers.x.to_bytes(size, "big")),
            "y": _b64url_encode(numbers.y.to_bytes(size, "big")),
        }

    @staticmethod
    def verify_with_embedded_key(payload: bytes, signature: bytes, public_key: bytes) -> bool:
        """Verify a signature using only the DER SPKI key carried with it.

        Returns False on a signature mismatch. Malformed key bytes raise
        (ValueError / UnsupportedAlgorithm) so callers can tell a broken
        receipt apart from a forged one.
        """
        key = load_der_public_key(public_key)
        if not isinstance(key, ec.EllipticCurvePublicKey) or key.curve.name != "secp256r1":
            msg = "Embedded public key is not an EC P-256 key"
            raise ValueError(msg)
        try:
            key.verify(signature, payload, ec.ECDSA(hashes.SHA256()))
        except InvalidSignature:
            return False
        return True

    def _ensure_loaded(self) -> None:
        if self._private_key is None:
            msg = "Signature provider not loaded. Call load() first."
            raise CryptoFailure(msg)
