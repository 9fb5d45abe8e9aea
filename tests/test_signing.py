"""Tests for the receipt signing provider.

Covers key import/generation, single-flight loading, signing, and
verification with an embedded public key.
"""

import asyncio
import base64
import json
import logging

import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from dlvr.core.errors import CryptoFailure
from dlvr.services.signing import (
    KeySource,
    SignatureProvider,
    private_key_from_jwk,
    private_key_to_jwk,
)

PAYLOAD = b'{"delivery_id":"DD-TEST","receipt_id":"DR-TEST"}'


# ---------------------------------------------------------------------------
# JWK import
# ---------------------------------------------------------------------------


class TestJwkImport:
    def test_round_trip_preserves_key(self):
        """JWK export and import keep the key."""
        key = ec.generate_private_key(ec.SECP256R1())
        imported = private_key_from_jwk(private_key_to_jwk(key))
        assert imported.private_numbers() == key.private_numbers()

    def test_accepts_json_string(self, persistent_jwk):
        """A JSON string JWK is accepted."""
        assert isinstance(private_key_from_jwk(persistent_jwk), ec.EllipticCurvePrivateKey)

    def test_wrong_curve(self, persistent_jwk):
        """Only P-256 keys are accepted."""
        jwk = {**json.loads(persistent_jwk), "crv": "P-384"}
        with pytest.raises(CryptoFailure, match="P-256"):
            private_key_from_jwk(jwk)

    def test_missing_private_component(self, persistent_jwk):
        """A public-only JWK is rejected."""
        jwk = json.loads(persistent_jwk)
        del jwk["d"]
        with pytest.raises(CryptoFailure, match="private component"):
            private_key_from_jwk(jwk)

    def test_mismatched_public_coordinates(self, persistent_jwk):
        """x and y must match the private scalar."""
        other = private_key_to_jwk(ec.generate_private_key(ec.SECP256R1()))
        jwk = {**json.loads(persistent_jwk), "x": other["x"], "y": other["y"]}
        with pytest.raises(CryptoFailure, match="do not match"):
            private_key_from_jwk(jwk)

    def test_malformed_json(self):
        """Malformed JSON raises CryptoFailure."""
        with pytest.raises(CryptoFailure, match="Failed to import"):
            private_key_from_jwk("{not json")

    def test_invalid_scalar(self, persistent_jwk):
        """An invalid private scalar raises CryptoFailure."""
        jwk = {**json.loads(persistent_jwk), "d": "AA"}
        with pytest.raises(CryptoFailure):
            private_key_from_jwk(jwk)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoad:
    async def test_ephemeral_key_logs_warning(self, caplog):
        """No configured key generates an ephemeral one with a warning."""
        provider = SignatureProvider()
        with caplog.at_level(logging.WARNING, logger="dlvr.services.signing"):
            await provider.load()
        assert provider.key_source == KeySource.EPHEMERAL
        assert "ephemeral" in caplog.text

    async def test_persistent_key(self, persistent_jwk):
        """A configured JWK is loaded as persistent."""
        provider = SignatureProvider(key_jwk=persistent_jwk)
        await provider.load()
        assert provider.key_source == KeySource.PERSISTENT

        expected = private_key_from_jwk(persistent_jwk).public_key().public_bytes(
            Encoding.DER, PublicFormat.SubjectPublicKeyInfo
        )
        assert provider.public_key_der == expected

    async def test_broken_key_is_not_masked(self):
        """A broken configured key fails instead of going ephemeral."""
        provider = SignatureProvider(key_jwk='{"kty":"RSA"}')
        with pytest.raises(CryptoFailure):
            await provider.load()
        assert not provider.is_loaded

    async def test_load_is_idempotent(self, provider):
        """A second load keeps the key."""
        key_before = provider.public_key_der
        await provider.load()
        assert provider.public_key_der == key_before

    async def test_concurrent_first_load_yields_one_key(self):
        """Concurrent first loads agree on one key."""
        provider = SignatureProvider()
        await asyncio.gather(*(provider.load() for _ in range(10)))
        key = provider.public_key_der
        await provider.load()
        assert provider.public_key_der == key

    async def test_sign_before_load_fails(self):
        """Signing before load raises CryptoFailure."""
        with pytest.raises(CryptoFailure, match="not loaded"):
            await SignatureProvider().sign(PAYLOAD)


# ---------------------------------------------------------------------------
# Signing and verification
# ---------------------------------------------------------------------------


class TestSignVerify:
    async def test_signature_verifies_with_embedded_key(self, provider):
        """A signature verifies with the embedded key."""
        signed = await provider.sign(PAYLOAD)
        assert SignatureProvider.verify_with_embedded_key(
            PAYLOAD, signed.signature, signed.public_key
        )

    async def test_base64_forms(self, provider):
        """Base64 forms decode to the raw bytes."""
        signed = await provider.sign(PAYLOAD)
        assert base64.b64decode(signed.signature_b64) == signed.signature
        assert base64.b64decode(signed.public_key_b64) == signed.public_key

    async def test_modified_payload_fails(self, provider):
        """A changed payload does not verify."""
        signed = await provider.sign(PAYLOAD)
        assert not SignatureProvider.verify_with_embedded_key(
            PAYLOAD + b" ", signed.signature, signed.public_key
        )

    async def test_other_key_fails(self, provider):
        """Another key does not verify."""
        signed = await provider.sign(PAYLOAD)
        other = SignatureProvider()
        await other.load()
        assert not SignatureProvider.verify_with_embedded_key(
            PAYLOAD, signed.signature, other.public_key_der
        )

    async def test_garbage_signature_fails(self, provider):
        """A garbage signature does not verify."""
        assert not SignatureProvider.verify_with_embedded_key(
            PAYLOAD, b"\x00" * 70, provider.public_key_der
        )

    async def test_corrupt_public_key_raises(self, provider):
        """An unparseable public key raises ValueError."""
        signed = await provider.sign(PAYLOAD)
        with pytest.raises(ValueError):
            SignatureProvider.verify_with_embedded_key(PAYLOAD, signed.signature, b"not a key")

    async def test_reconstructed_provider_produces_verifiable_signatures(self, persistent_jwk):
        """A provider rebuilt from the same JWK has the same key."""
        first = SignatureProvider(key_jwk=persistent_jwk)
        await first.load()
        signed = await first.sign(PAYLOAD)

        second = SignatureProvider(key_jwk=persistent_jwk)
        await second.load()
        assert second.public_key_der == signed.public_key
        assert SignatureProvider.verify_with_embedded_key(
            PAYLOAD, signed.signature, second.public_key_der
        )


class TestExportPublicJwk:
    async def test_matches_private_jwk(self, persistent_jwk):
        """The public JWK matches the private one without d."""
        provider = SignatureProvider(key_jwk=persistent_jwk)
        await provider.load()
        public = provider.export_public_jwk()
        private = json.loads(persistent_jwk)
        assert public == {"kty": "EC", "crv": "P-256", "x": private["x"], "y": private["y"]}
        assert "d" not in public
