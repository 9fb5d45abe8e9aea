"""Signed receipt engine.

A receipt is a signed attestation that a recipient received a delivery. The
signed payload binds the receipt id, delivery id, signer, method, timestamp
and (when available) a beacon round:

    {"anchor_randomness": ..., "anchor_round": ..., "delivery_id": ...,
     "method": ..., "receipt_id": ..., "signer": ..., "timestamp": ...}

The payload is serialized once (sorted keys, compact separators, UTF-8) and
the exact string that was signed is embedded in the receipt next to the
signature and the DER public key. Verification therefore needs nothing but
the receipt itself.

Verification outcomes:
- valid: signature checks out against the embedded key
- signature_invalid: the receipt was altered or signed by another key
- verification_error: the receipt could not be processed (bad base64,
  corrupt key, missing fields)
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cryptography.exceptions import UnsupportedAlgorithm

from dlvr.core.errors import NotFoundError, ValidationError
from dlvr.core.identifiers import IdPrefix, generate_id
from dlvr.core.timestamps import utc_now_iso
from dlvr.core.types import ReceiptMethod
from dlvr.services.anchor import AnchorRound, TemporalAnchor
from dlvr.services.scoring import LegalScore, physical_receipt_score, receipt_score
from dlvr.services.signing import SIGNATURE_ALGORITHM, SignatureProvider
from dlvr.services.storage import InMemoryStore, KeyValueStore

logger = logging.getLogger(__name__)

RECEIPT_STATUS_VALID = "VALID"


class VerificationOutcome(str, Enum):
    """Result classes of receipt verification."""

    VALID = "valid"
    SIGNATURE_INVALID = "signature_invalid"
    VERIFICATION_ERROR = "verification_error"


@dataclass(frozen=True, slots=True)
class SignatureBlock:
    """Signature material embedded in a receipt."""

    signature_id: str
    value: str
    public_key: str
    signed_payload: str
    timestamp: str
    algorithm: str = SIGNATURE_ALGORITHM
    valid: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature_id": self.signature_id,
            "algorithm": self.algorithm,
            "value": self.value,
            "public_key": self.public_key,
            "signed_payload": self.signed_payload,
            "valid": self.valid,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignatureBlock:
        return cls(
            signature_id=data["signature_id"],
            algorithm=data.get("algorithm", SIGNATURE_ALGORITHM),
            value=data["value"],
            public_key=data["public_key"],
            signed_payload=data["signed_payload"],
            valid=bool(data.get("valid", True)),
            timestamp=data["timestamp"],
        )


@dataclass(frozen=True, slots=True)
class Receipt:
    """Cryptographically signed proof of receipt."""

    receipt_id: str
    delivery_id: str
    signer: str
    method: ReceiptMethod
    signature: SignatureBlock
    witnessed: bool
    witness: str
    witness_timestamp: str
    anchor: AnchorRound | None
    legal: LegalScore
    created_at: str
    verify_url: str
    status: str = RECEIPT_STATUS_VALID

    def to_dict(self) -> dict[str, Any]:
        return {
            "receipt_id": self.receipt_id,
            "delivery_id": self.delivery_id,
            "signer": self.signer,
            "method": self.method.value,
            "signature": self.signature.to_dict(),
            "witnessed": self.witnessed,
            "witness": self.witness,
            "witness_timestamp": self.witness_timestamp,
            "anchor": self.anchor.to_dict() if self.anchor else None,
            "status": self.status,
            "legal": self.legal.to_dict(),
            "created_at": self.created_at,
            "verify_url": self.verify_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Receipt:
        """Rebuild a receipt from its dict form.

        Raises:
            KeyError, TypeError, ValueError, AttributeError: If required fields
                are missing or malformed.
        """
        legal = data.get("legal") or {}
        anchor = data.get("anchor")
        return cls(
            receipt_id=data["receipt_id"],
            delivery_id=data["delivery_id"],
            signer=data["signer"],
            method=ReceiptMethod(data["method"]),
            signature=SignatureBlock.from_dict(data["signature"]),
            witnessed=bool(data.get("witnessed", False)),
            witness=data.get("witness", ""),
            witness_timestamp=data.get("witness_timestamp", ""),
            anchor=AnchorRound.from_dict(anchor) if anchor else None,
            status=data.get("status", RECEIPT_STATUS_VALID),
            legal=LegalScore(
                score=int(legal.get("score", 0)),
                technical=int(legal.get("technical", 0)),
                arguable=int(legal.get("arguable", 0)),
                admissible=bool(legal.get("admissible", True)),
            ),
            created_at=data.get("created_at", ""),
            verify_url=data.get("verify_url", ""),
        )


@dataclass(frozen=True, slots=True)
class PhysicalReceipt:
    """Return receipt from a carrier. Carries no cryptographic signature."""

    receipt_id: str
    delivery_id: str
    carrier: str | None
    tracking_number: str | None
    signed_by: str | None
    delivered_at: str
    legal: LegalScore
    created_at: str
    verify_url: str
    status: str = RECEIPT_STATUS_VALID

    def to_dict(self) -> dict[str, Any]:
        return {
            "receipt_id": self.receipt_id,
            "delivery_id": self.delivery_id,
            "type": "physical",
            "carrier": self.carrier,
            "tracking_number": self.tracking_number,
            "signed_by": self.signed_by,
            "delivered_at": self.delivered_at,
            "status": self.status,
            "legal": self.legal.to_dict(),
            "created_at": self.created_at,
            "verify_url": self.verify_url,
        }


@dataclass(frozen=True, slots=True)
class VerificationResult:
    """Outcome of verifying a receipt signature."""

    receipt_id: str
    verified: bool
    outcome: VerificationOutcome
    signature_valid: bool
    anchored: bool
    witness_confirmed: bool
    checked_at: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result = {
            "receipt_id": self.receipt_id,
            "verified": self.verified,
            "outcome": self.outcome.value,
            "signature_valid": self.signature_valid,
            "anchored": self.anchored,
            "witness_confirmed": self.witness_confirmed,
            "checked_at": self.checked_at,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


def canonical_payload(payload: dict[str, Any]) -> str:
    """Deterministic JSON form of a payload (sorted keys, no whitespace)."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class ReceiptEngine:
    """Creates, stores and verifies signed receipts.

    Example:
        engine = ReceiptEngine(provider, anchor=TemporalAnchor())
        receipt = await engine.create("DD-...", signer="jane@example.com")
        result = await engine.verify(receipt.receipt_id)
        assert result.verified
    """

    def __init__(
        self,
        provider: SignatureProvider,
        anchor: TemporalAnchor | None = None,
        store: KeyValueStore | None = None,
        *,
        witness_name: str = "DLVR",
        public_base_url: str = "https://dlvr.example",
    ) -> None:
        self._provider = provider
        self._anchor = anchor
        self._store = store if store is not None else InMemoryStore()
        self._witness_name = witness_name
        self._base_url = public_base_url.rstrip("/")

    def verify_url(self, receipt_id: str) -> str:
        return f"{self._base_url}/verify/receipt/{receipt_id}"

    async def create(
        self,
        delivery_id: str,
        signer: str | None,
        method: ReceiptMethod | str = ReceiptMethod.DIGITAL,
        timestamp: str | None = None,
    ) -> Receipt:
        """Create, sign, anchor and store a receipt.

        Raises:
            ValidationError: If signer or delivery_id is missing, or method is unknown.
            CryptoFailure: If the receipt cannot be signed.
        """
        receipt = await self.sign_receipt(delivery_id, signer, method, timestamp)
        await self.save(receipt)
        return receipt

    async def sign_receipt(
        self,
        delivery_id: str,
        signer: str | None,
        method: ReceiptMethod | str = ReceiptMethod.DIGITAL,
        timestamp: str | None = None,
    ) -> Receipt:
        """Build, anchor and sign a receipt without storing it.

        Callers that must commit other state first store it with save().
        """
        if not delivery_id or not isinstance(delivery_id, str):
            raise ValidationError("delivery_id is required", field="delivery_id")
        if not signer or not isinstance(signer, str):
            raise ValidationError("signer is required", field="signer")
        receipt_method = ReceiptMethod.parse(method)
        timestamp = timestamp or utc_now_iso()

        receipt_id = generate_id(IdPrefix.RECEIPT)
        anchor = await self._anchor.fetch_latest() if self._anchor is not None else None

        payload = canonical_payload(
            {
                "receipt_id": receipt_id,
                "delivery_id": delivery_id,
                "signer": signer,
                "method": receipt_method.value,
                "timestamp": timestamp,
                "anchor_round": anchor.round if anchor else None,
                "anchor_randomness": anchor.randomness if anchor else None,
            }
        )

        await self._provider.load()
        signed = await self._provider.sign(payload.encode("utf-8"))

        return Receipt(
            receipt_id=receipt_id,
            delivery_id=delivery_id,
            signer=signer,
            method=receipt_method,
            signature=SignatureBlock(
                signature_id=f"SIG-{receipt_id}",
                value=signed.signature_b64,
                public_key=signed.public_key_b64,
                signed_payload=payload,
                timestamp=timestamp,
            ),
            witnessed=True,
            witness=self._witness_name,
            witness_timestamp=timestamp,
            anchor=anchor,
            legal=receipt_score(receipt_method),
            created_at=timestamp,
            verify_url=self.verify_url(receipt_id),
        )

    async def save(self, receipt: Receipt) -> None:
        """Store a signed receipt so it can be fetched and verified by id."""
        await self._store.put(receipt.receipt_id, receipt)
        logger.info(
            "Created receipt %s for delivery %s",
            receipt.receipt_id,
            receipt.delivery_id,
            extra={
                "receipt_id": receipt.receipt_id,
                "delivery_id": receipt.delivery_id,
                "method": receipt.method.value,
                "anchor_round": receipt.anchor.round if receipt.anchor else None,
            },
        )

    async def get(self, receipt_id: str) -> Receipt | PhysicalReceipt:
        """Fetch a stored receipt.

        Raises:
            NotFoundError: If no receipt has this id.
        """
        receipt = await self._store.get(receipt_id)
        if receipt is None:
            raise NotFoundError("Receipt", receipt_id)
        return receipt

    async def verify(
        self,
        receipt_id: str,
        receipt_data: Receipt | dict[str, Any] | None = None,
    ) -> VerificationResult:
        """Verify a receipt's signature using only data embedded in the receipt.

        Without receipt_data the stored receipt is used. A signature mismatch
        or malformed receipt is reported in the result, never raised.

        Raises:
            NotFoundError: If receipt_data is omitted and the id is unknown.
        """
        if receipt_data is None:
            receipt_data = await self.get(receipt_id)

        if isinstance(receipt_data, PhysicalReceipt):
            return self._error_result(receipt_id, "Physical receipts carry no signature")

        if isinstance(receipt_data, dict):
            try:
                receipt = Receipt.from_dict(receipt_data)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                return self._error_result(receipt_id, f"Malformed receipt: {e}")
        else:
            receipt = receipt_data

        try:
            payload = receipt.signature.signed_payload.encode("utf-8")
            signature = base64.b64decode(receipt.signature.value, validate=True)
            public_key = base64.b64decode(receipt.signature.public_key, validate=True)
            valid = SignatureProvider.verify_with_embedded_key(payload, signature, public_key)
        except (ValueError, TypeError, AttributeError, UnsupportedAlgorithm) as e:
            return self._error_result(receipt_id, f"Verification failed: {e}")

        error = None
        if valid and not self._payload_matches(receipt):
            valid = False
            error = "Signed payload does not match receipt"

        if not valid:
            logger.info(
                "Receipt %s failed signature verification",
                receipt_id,
                extra={"receipt_id": receipt_id},
            )

        return VerificationResult(
            receipt_id=receipt_id,
            verified=valid,
            outcome=VerificationOutcome.VALID if valid else VerificationOutcome.SIGNATURE_INVALID,
            signature_valid=valid,
            anchored=receipt.anchor is not None,
            witness_confirmed=valid and receipt.witnessed,
            checked_at=utc_now_iso(),
            error=error,
        )

    async def create_physical_receipt(
        self,
        delivery_id: str,
        carrier: str | None,
        tracking_number: str | None,
        signed_by: str | None,
        timestamp: str | None = None,
    ) -> PhysicalReceipt:
        """Record a carrier return receipt."""
        if not delivery_id or not isinstance(delivery_id, str):
            raise ValidationError("delivery_id is required", field="delivery_id")
        timestamp = timestamp or utc_now_iso()
        receipt_id = generate_id(IdPrefix.RECEIPT)

        receipt = PhysicalReceipt(
            receipt_id=receipt_id,
            delivery_id=delivery_id,
            carrier=carrier,
            tracking_number=tracking_number,
            signed_by=signed_by,
            delivered_at=timestamp,
            legal=physical_receipt_score(),
            created_at=timestamp,
            verify_url=self.verify_url(receipt_id),
        )
        await self._store.put(receipt_id, receipt)
        logger.info("Recorded physical receipt %s for delivery %s", receipt_id, delivery_id)
        return receipt

    @staticmethod
    def _payload_matches(receipt: Receipt) -> bool:
        # A valid signature over another receipt's payload must not vouch for this one.
        signed = json.loads(receipt.signature.signed_payload)
        return (
            isinstance(signed, dict)
            and signed.get("receipt_id") == receipt.receipt_id
            and signed.get("delivery_id") == receipt.delivery_id
        )

    @staticmethod
    def _error_result(receipt_id: str, error: str) -> VerificationResult:
        logger.warning("Receipt %s could not be verified: %s", receipt_id, error)
        return VerificationResult(
            receipt_id=receipt_id,
            verified=False,
            outcome=VerificationOutcome.VERIFICATION_ERROR,
            signature_valid=False,
            anchored=False,
            witness_confirmed=False,
            checked_at=utc_now_iso(),
            error=error,
        )
