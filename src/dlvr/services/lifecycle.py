"""Delivery lifecycle orchestration.

DeliveryOrchestrator is the single entry point for certified deliveries. It
dispatches through the channel dispatcher, tracks each delivery through its
state machine, scores it, issues signed receipts and delegates service of
process.

State machine:

    PENDING -> SENT -> DELIVERED -> OPENED -> ACKNOWLEDGED -> RECEIPTED
                  \\-> FAILED    \\-> REFUSED   \\-> REFUSED
                  \\-> BOUNCED
                  \\-> RECEIPTED  (a recipient may sign without an open event)

RECEIPTED, FAILED, BOUNCED and REFUSED are terminal. Status history is
append-only and the current status is always the last history entry.

Transitions are enforced for deliveries created by this orchestrator. Events
for identifiers it does not track are answered with a snapshot and nothing is
checked, so callers holding records created elsewhere can still score them.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar

from dlvr.core.config import Settings
from dlvr.core.errors import (
    DLVRError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from dlvr.core.identifiers import IdPrefix, generate_id
from dlvr.core.settings import get_settings
from dlvr.core.timestamps import utc_now_iso
from dlvr.core.types import DeliveryMethod, DeliveryStatus, ReceiptMethod, ServiceType, StatusEntry
from dlvr.services.anchor import TemporalAnchor
from dlvr.services.channels import ChannelDispatcher, DispatchRequest
from dlvr.services.receipts import PhysicalReceipt, Receipt, ReceiptEngine, VerificationResult
from dlvr.services.scoring import DELIVERY_PILLAR, delivery_score
from dlvr.services.service_of_process import (
    Affidavit,
    ServiceAttempt,
    ServiceCase,
    ServiceOfProcessEngine,
)
from dlvr.services.signing import SignatureProvider
from dlvr.services.storage import InMemoryStore, KeyValueStore, RecordLocks

logger = logging.getLogger(__name__)

FAILURE_STATUSES = frozenset({DeliveryStatus.FAILED, DeliveryStatus.BOUNCED, DeliveryStatus.REFUSED})


@dataclass(frozen=True, slots=True)
class DeliveryProof:
    """Delivery-pillar evidence score for a delivery at its current status."""

    delivery_id: str
    method: str
    score: int
    mint_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result = {
            "pillar": DELIVERY_PILLAR,
            "delivery_id": self.delivery_id,
            "method": self.method,
            "score": self.score,
        }
        if self.mint_id is not None:
            result["mint_id"] = self.mint_id
        return result


@dataclass(frozen=True, slots=True)
class Delivery:
    """A certified delivery record."""

    delivery_id: str
    mint_id: str
    sender: str
    recipient: str | None
    method: DeliveryMethod
    address: str | None
    status: DeliveryStatus
    status_history: tuple[StatusEntry, ...]
    dispatch: dict[str, Any]
    proof: DeliveryProof
    created_at: str
    sent_at: str | None
    tracking_url: str
    receipt_url: str
    delivered_at: str | None = None
    receipted_at: str | None = None
    receipt_id: str | None = None
    options: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "delivery_id": self.delivery_id,
            "mint_id": self.mint_id,
            "sender": self.sender,
            "recipient": self.recipient,
            "method": self.method.value,
            "address": self.address,
            "status": self.status.value,
            "status_history": [entry.to_dict() for entry in self.status_history],
            "dispatch": dict(self.dispatch),
            "proof": self.proof.to_dict(),
            "created_at": self.created_at,
            "sent_at": self.sent_at,
            "delivered_at": self.delivered_at,
            "receipted_at": self.receipted_at,
            "receipt_id": self.receipt_id,
            "tracking_url": self.tracking_url,
            "receipt_url": self.receipt_url,
        }


@dataclass(frozen=True, slots=True)
class StatusSnapshot:
    """Result of a lifecycle event (confirm, opened, acknowledge, failure)."""

    delivery_id: str
    status: DeliveryStatus
    timestamp: str
    details: dict[str, Any]
    proof: DeliveryProof
    tracked: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "delivery_id": self.delivery_id,
            "status": self.status.value,
            "timestamp": self.timestamp,
            "details": dict(self.details),
            "proof": self.proof.to_dict(),
            "tracked": self.tracked,
        }


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Full timeline of a tracked delivery."""

    delivery: Delivery
    receipt: Receipt | PhysicalReceipt | None
    checked_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "delivery_id": self.delivery.delivery_id,
            "status": self.delivery.status.value,
            "timeline": [entry.to_dict() for entry in self.delivery.status_history],
            "receipt": self.receipt.to_dict() if self.receipt else None,
            "proof": self.delivery.proof.to_dict(),
            "tracking_url": self.delivery.tracking_url,
            "checked_at": self.checked_at,
        }


@dataclass(frozen=True, slots=True)
class BulkFailure:
    """A recipient of a bulk send that could not be dispatched."""

    to: str | None
    method: str | None
    error: str
    status: str = DeliveryStatus.FAILED.value
    delivery_id: None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "delivery_id": self.delivery_id,
            "to": self.to,
            "method": self.method,
            "status": self.status,
            "error": self.error,
        }


@dataclass(frozen=True, slots=True)
class BulkBatch:
    """Outcome of a bulk send, in recipient order."""

    bulk_id: str
    mint_id: str
    total_recipients: int
    sent: int
    failed: int
    deliveries: tuple[Delivery | BulkFailure, ...]
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "bulk_id": self.bulk_id,
            "mint_id": self.mint_id,
            "total_recipients": self.total_recipients,
            "sent": self.sent,
            "failed": self.failed,
            "deliveries": [d.to_dict() for d in self.deliveries],
            "created_at": self.created_at,
        }


class DeliveryOrchestrator:
    """Certified delivery facade.

    Owns the signing provider, so a single keypair backs every receipt this
    orchestrator issues.

    Example:
        dlvr = await DeliveryOrchestrator(settings).initialize()
        delivery = await dlvr.send("MINT-1", to="jane@example.com", method="email")
        await dlvr.confirm(delivery.delivery_id)
        receipt = await dlvr.receipt(delivery.delivery_id, signer="jane@example.com")
        assert (await dlvr.verify_receipt(receipt.receipt_id)).verified
    """

    VALID_TRANSITIONS: ClassVar[dict[DeliveryStatus, frozenset[DeliveryStatus]]] = {
        DeliveryStatus.PENDING: frozenset({DeliveryStatus.SENT}),
        DeliveryStatus.SENT: frozenset(
            {
                DeliveryStatus.DELIVERED,
                DeliveryStatus.FAILED,
                DeliveryStatus.BOUNCED,
                DeliveryStatus.RECEIPTED,
            }
        ),
        DeliveryStatus.DELIVERED: frozenset(
            {
                DeliveryStatus.OPENED,
                DeliveryStatus.ACKNOWLEDGED,
                DeliveryStatus.RECEIPTED,
                DeliveryStatus.REFUSED,
            }
        ),
        DeliveryStatus.OPENED: frozenset(
            {
                DeliveryStatus.ACKNOWLEDGED,
                DeliveryStatus.RECEIPTED,
                DeliveryStatus.REFUSED,
            }
        ),
        DeliveryStatus.ACKNOWLEDGED: frozenset({DeliveryStatus.RECEIPTED}),
        # Terminal states
        DeliveryStatus.RECEIPTED: frozenset(),
        DeliveryStatus.FAILED: frozenset(),
        DeliveryStatus.BOUNCED: frozenset(),
        DeliveryStatus.REFUSED: frozenset(),
    }

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        provider: SignatureProvider | None = None,
        anchor: TemporalAnchor | None = None,
        dispatcher: ChannelDispatcher | None = None,
        delivery_store: KeyValueStore | None = None,
        receipt_store: KeyValueStore | None = None,
        service_store: KeyValueStore | None = None,
    ) -> None:
        """Wire the engines.

        Args:
            settings: Configuration; defaults to the cached application settings.
            provider: Signing provider; defaults to one built from settings.signing.
            anchor: Beacon client; defaults to one built from settings.beacon.
            dispatcher: Channel dispatcher; defaults to the built-in handlers.
            delivery_store: Store for Delivery records.
            receipt_store: Store for receipts.
            service_store: Store for service cases.
        """
        self._settings = settings if settings is not None else get_settings()
        base_url = self._settings.public_base_url

        if provider is None:
            key = self._settings.signing.key_jwk
            provider = SignatureProvider(key_jwk=key.get_secret_value() if key else None)
        self._provider = provider

        self._dispatcher = dispatcher or ChannelDispatcher(public_base_url=base_url)
        self._deliveries = delivery_store if delivery_store is not None else InMemoryStore()
        self._receipts = ReceiptEngine(
            provider,
            anchor=anchor if anchor is not None else TemporalAnchor.from_settings(self._settings.beacon),
            store=receipt_store,
            witness_name=self._settings.witness_name,
            public_base_url=base_url,
        )
        self._service = ServiceOfProcessEngine(
            store=service_store,
            witness_name=self._settings.witness_name,
            public_base_url=base_url,
        )
        self._locks = RecordLocks()
        self._receipting: set[str] = set()
        self._initialized = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def provider(self) -> SignatureProvider:
        return self._provider

    @property
    def dispatcher(self) -> ChannelDispatcher:
        return self._dispatcher

    @property
    def receipts(self) -> ReceiptEngine:
        return self._receipts

    @property
    def service(self) -> ServiceOfProcessEngine:
        return self._service

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> DeliveryOrchestrator:
        """Load the signing key. Safe to call repeatedly."""
        if self._initialized:
            return self
        await self._provider.load()
        if not self._initialized:
            self._initialized = True
            logger.info(
                "Delivery orchestrator initialized (key source: %s)",
                self._provider.key_source,
            )
        return self

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def can_transition(self, from_status: DeliveryStatus, to_status: DeliveryStatus) -> bool:
        return to_status in self.VALID_TRANSITIONS.get(from_status, frozenset())

    def is_terminal_status(self, status: DeliveryStatus) -> bool:
        return not self.VALID_TRANSITIONS.get(status)

    def _check_transition(self, delivery: Delivery, to_status: DeliveryStatus) -> None:
        if not self.can_transition(delivery.status, to_status):
            logger.warning(
                "Invalid transition attempted",
                extra={
                    "delivery_id": delivery.delivery_id,
                    "from_status": delivery.status.value,
                    "to_status": to_status.value,
                },
            )
            raise InvalidTransitionError(delivery.delivery_id, delivery.status.value, to_status.value)

    async def _advance(
        self,
        delivery_id: str,
        to_status: DeliveryStatus,
        timestamp: str,
        actor: str,
        **changes: Any,
    ) -> Delivery | None:
        """Append a status to a tracked delivery. Returns None if untracked."""
        async with self._locks(delivery_id):
            delivery = await self._deliveries.get(delivery_id)
            if delivery is None:
                return None
            self._check_transition(delivery, to_status)

            updated = dataclasses.replace(
                delivery,
                status=to_status,
                status_history=(*delivery.status_history, StatusEntry(to_status.value, timestamp, actor)),
                proof=dataclasses.replace(
                    delivery.proof,
                    score=delivery_score(delivery.method, to_status),
                ),
                **changes,
            )
            await self._deliveries.put(delivery_id, updated)

        logger.info(
            "Delivery %s moved %s -> %s",
            delivery_id,
            delivery.status.value,
            to_status.value,
            extra={"delivery_id": delivery_id, "actor": actor},
        )
        return updated

    def _snapshot(
        self,
        delivery_id: str,
        status: DeliveryStatus,
        timestamp: str,
        details: dict[str, Any],
        tracked: Delivery | None,
        fallback_method: str | None,
    ) -> StatusSnapshot:
        if tracked is not None:
            proof = tracked.proof
        else:
            method = fallback_method or DeliveryMethod.EMAIL.value
            proof = DeliveryProof(
                delivery_id=delivery_id,
                method=method,
                score=delivery_score(method, status),
            )
        return StatusSnapshot(
            delivery_id=delivery_id,
            status=status,
            timestamp=timestamp,
            details=details,
            proof=proof,
            tracked=tracked is not None,
        )

    # -------------------------------------------------------------------------
    # Deliveries
    # -------------------------------------------------------------------------

    async def send(
        self,
        mint_id: str,
        to: str | None = None,
        method: DeliveryMethod | str = DeliveryMethod.EMAIL,
        address: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> Delivery:
        """Create and dispatch a certified delivery.

        Raises:
            ValidationError: If mint_id is missing or options is not a dict.
            UnsupportedMethodError: If method is not a supported channel.
            DispatchError: If a registered channel transport fails.
        """
        if not mint_id or not isinstance(mint_id, str):
            raise ValidationError("mint_id is required and must be a string", field="mint_id")
        channel = DeliveryMethod.parse(method)
        if options is not None and not isinstance(options, dict):
            raise ValidationError("options must be an object", field="options")
        options = dict(options or {})
        address = address if address is not None else to

        delivery_id = generate_id(IdPrefix.DELIVERY)
        created_at = utc_now_iso()
        dispatch = await self._dispatcher.dispatch(
            channel,
            DispatchRequest(
                delivery_id=delivery_id,
                method=channel,
                mint_id=mint_id,
                timestamp=created_at,
                address=address,
                options=options,
            ),
        )
        sent_at = utc_now_iso()

        base_url = self._settings.public_base_url
        delivery = Delivery(
            delivery_id=delivery_id,
            mint_id=mint_id,
            sender=self._settings.sender_id,
            recipient=to,
            method=channel,
            address=address,
            status=DeliveryStatus.SENT,
            status_history=(
                StatusEntry(DeliveryStatus.PENDING.value, created_at),
                StatusEntry(DeliveryStatus.SENT.value, sent_at),
            ),
            dispatch=dispatch,
            proof=DeliveryProof(
                delivery_id=delivery_id,
                method=channel.value,
                score=delivery_score(channel, DeliveryStatus.SENT),
                mint_id=mint_id,
            ),
            created_at=created_at,
            sent_at=sent_at,
            tracking_url=f"{base_url}/track/{delivery_id}",
            receipt_url=f"{base_url}/receipt/{delivery_id}",
            options=options,
        )
        await self._deliveries.put(delivery_id, delivery)

        logger.info(
            "Sent delivery %s via %s",
            delivery_id,
            channel.value,
            extra={"delivery_id": delivery_id, "mint_id": mint_id, "channel": channel.value},
        )
        return delivery

    async def get_delivery(self, delivery_id: str) -> Delivery:
        """Fetch a tracked delivery.

        Raises:
            NotFoundError: If the delivery is unknown.
        """
        delivery = await self._deliveries.get(delivery_id)
        if delivery is None:
            raise NotFoundError("Delivery", delivery_id)
        return delivery

    async def confirm(self, delivery_id: str, confirmation: dict[str, Any] | None = None) -> StatusSnapshot:
        """Record the channel's delivery confirmation (-> DELIVERED)."""
        confirmation = confirmation or {}
        timestamp = utc_now_iso()
        tracked = await self._advance(
            delivery_id,
            DeliveryStatus.DELIVERED,
            timestamp,
            actor="channel",
            delivered_at=timestamp,
        )
        details = {**confirmation, "channel_confirmed": True, "timestamp": timestamp}
        return self._snapshot(
            delivery_id,
            DeliveryStatus.DELIVERED,
            timestamp,
            details,
            tracked,
            confirmation.get("method"),
        )

    async def opened(self, delivery_id: str, view_data: dict[str, Any] | None = None) -> StatusSnapshot:
        """Record that the recipient opened the delivery (-> OPENED)."""
        view_data = view_data or {}
        timestamp = utc_now_iso()
        tracked = await self._advance(delivery_id, DeliveryStatus.OPENED, timestamp, actor="recipient")
        details = {
            **view_data,
            "ip": view_data.get("ip"),
            "user_agent": view_data.get("user_agent"),
            "timestamp": timestamp,
        }
        return self._snapshot(
            delivery_id,
            DeliveryStatus.OPENED,
            timestamp,
            details,
            tracked,
            view_data.get("method"),
        )

    async def acknowledge(self, delivery_id: str, actor: str | None = None) -> StatusSnapshot:
        """Record the recipient's explicit acknowledgement (-> ACKNOWLEDGED)."""
        timestamp = utc_now_iso()
        actor = actor or "recipient"
        tracked = await self._advance(delivery_id, DeliveryStatus.ACKNOWLEDGED, timestamp, actor=actor)
        return self._snapshot(
            delivery_id,
            DeliveryStatus.ACKNOWLEDGED,
            timestamp,
            {"acknowledged_by": actor, "timestamp": timestamp},
            tracked,
            None,
        )

    async def record_failure(
        self,
        delivery_id: str,
        status: DeliveryStatus | str,
        reason: str | None = None,
    ) -> StatusSnapshot:
        """Record a failed, bounced or refused delivery.

        Raises:
            ValidationError: If status is not FAILED, BOUNCED or REFUSED.
        """
        try:
            failure = DeliveryStatus(status)
        except ValueError:
            failure = None
        if failure not in FAILURE_STATUSES:
            raise ValidationError(
                f"Failure status must be one of FAILED, BOUNCED, REFUSED, got {status}",
                field="status",
            )

        timestamp = utc_now_iso()
        actor = "recipient" if failure == DeliveryStatus.REFUSED else "channel"
        tracked = await self._advance(delivery_id, failure, timestamp, actor=actor)
        return self._snapshot(
            delivery_id,
            failure,
            timestamp,
            {"reason": reason, "timestamp": timestamp},
            tracked,
            None,
        )

    async def receipt(
        self,
        delivery_id: str,
        signer: str | None,
        method: ReceiptMethod | str = ReceiptMethod.DIGITAL,
    ) -> Receipt:
        """Issue a signed receipt and mark a tracked delivery RECEIPTED.

        Raises:
            ValidationError: If signer is missing or the method is unknown.
            InvalidTransitionError: If a tracked delivery cannot be receipted.
            CryptoFailure: If signing fails.
        """
        tracked = await self._reserve_receipt(delivery_id)
        try:
            await self.initialize()
            receipt = await self._receipts.sign_receipt(delivery_id, signer, method)
            if tracked:
                # Re-checked here: a failure event may have landed while signing.
                await self._advance(
                    delivery_id,
                    DeliveryStatus.RECEIPTED,
                    receipt.created_at,
                    actor=receipt.signer,
                    receipted_at=receipt.created_at,
                    receipt_id=receipt.receipt_id,
                )
        finally:
            if tracked:
                self._receipting.discard(delivery_id)

        await self._receipts.save(receipt)
        return receipt

    async def _reserve_receipt(self, delivery_id: str) -> bool:
        """Claim the RECEIPTED transition of a tracked delivery.

        Only one receipt can be in flight per delivery. Returns False for
        untracked identifiers, which are not reserved.
        """
        async with self._locks(delivery_id):
            delivery = await self._deliveries.get(delivery_id)
            if delivery is None:
                return False
            if delivery_id in self._receipting:
                logger.warning(
                    "Receipt already being issued",
                    extra={"delivery_id": delivery_id, "from_status": delivery.status.value},
                )
                raise InvalidTransitionError(
                    delivery_id, delivery.status.value, DeliveryStatus.RECEIPTED.value
                )
            self._check_transition(delivery, DeliveryStatus.RECEIPTED)
            self._receipting.add(delivery_id)
            return True

    async def verify_receipt(
        self,
        receipt_id: str,
        receipt_data: Receipt | dict[str, Any] | None = None,
    ) -> VerificationResult:
        return await self._receipts.verify(receipt_id, receipt_data)

    async def status(self, delivery_id: str) -> StatusReport:
        """Timeline of a tracked delivery, with its receipt once issued.

        Raises:
            NotFoundError: If the delivery is unknown.
        """
        delivery = await self.get_delivery(delivery_id)
        receipt = None
        if delivery.receipt_id is not None:
            receipt = await self._receipts.get(delivery.receipt_id)
        return StatusReport(delivery=delivery, receipt=receipt, checked_at=utc_now_iso())

    async def bulk_send(self, mint_id: str, recipients: list[dict[str, Any]]) -> BulkBatch:
        """Send the same document to several recipients.

        Per-recipient failures are recorded in the batch, never raised.

        Raises:
            ValidationError: If mint_id is invalid or recipients is empty.
        """
        if not mint_id or not isinstance(mint_id, str):
            raise ValidationError("mint_id is required and must be a string", field="mint_id")
        if not isinstance(recipients, list) or not recipients:
            raise ValidationError("recipients must be a non-empty list", field="recipients")

        results: list[Delivery | BulkFailure] = []
        for recipient in recipients:
            entry = recipient if isinstance(recipient, dict) else {}
            try:
                if not isinstance(recipient, dict):
                    raise ValidationError("recipient must be an object", field="recipients")
                results.append(
                    await self.send(
                        mint_id,
                        to=recipient.get("to"),
                        method=recipient.get("method", DeliveryMethod.EMAIL),
                        address=recipient.get("address"),
                        options=recipient.get("options"),
                    )
                )
            except DLVRError as e:
                logger.warning(
                    "Bulk send to %s failed: %s",
                    entry.get("to"),
                    e.message,
                    extra={"mint_id": mint_id, "method": entry.get("method")},
                )
                results.append(self._bulk_failure(entry, e.message))
            except Exception as e:
                logger.exception(
                    "Unexpected error in bulk send to %s",
                    entry.get("to"),
                    extra={"mint_id": mint_id, "method": entry.get("method")},
                )
                results.append(self._bulk_failure(entry, str(e) or type(e).__name__))

        failed = sum(1 for r in results if isinstance(r, BulkFailure))
        batch = BulkBatch(
            bulk_id=generate_id(IdPrefix.BULK),
            mint_id=mint_id,
            total_recipients=len(recipients),
            sent=len(results) - failed,
            failed=failed,
            deliveries=tuple(results),
            created_at=utc_now_iso(),
        )
        logger.info(
            "Bulk send %s: %d sent, %d failed",
            batch.bulk_id,
            batch.sent,
            batch.failed,
            extra={"bulk_id": batch.bulk_id, "mint_id": mint_id},
        )
        return batch

    @staticmethod
    def _bulk_failure(entry: dict[str, Any], error: str) -> BulkFailure:
        method = entry.get("method")
        return BulkFailure(
            to=entry.get("to"),
            method=method.value if isinstance(method, DeliveryMethod) else method,
            error=error,
        )

    def calculate_delivery_score(self, method: DeliveryMethod | str, status: DeliveryStatus | str) -> int:
        return delivery_score(method, status)

    # -------------------------------------------------------------------------
    # Service of process
    # -------------------------------------------------------------------------

    async def serve(
        self,
        mint_id: str,
        respondent: str,
        service_type: ServiceType | str = ServiceType.PERSONAL,
        address: str | None = None,
        jurisdiction: str | None = None,
    ) -> ServiceCase:
        return await self._service.initiate(mint_id, respondent, service_type, address, jurisdiction)

    async def record_attempt(self, service_id: str, attempt: dict[str, Any] | None = None) -> ServiceAttempt:
        return await self._service.record_attempt(service_id, attempt)

    async def record_service(self, service_id: str, affidavit: dict[str, Any]) -> Affidavit:
        """File an affidavit of service.

        affidavit carries process_server, an optional service_type, and
        optional details (served_to, relationship, location, jurisdiction,
        notarized, witness_present, geo_verified, served_at).
        """
        affidavit = affidavit or {}
        return await self._service.record_affidavit(
            service_id,
            affidavit.get("process_server"),
            service_type=affidavit.get("service_type"),
            details=affidavit.get("details"),
        )

    async def get_service(self, service_id: str) -> ServiceCase:
        return await self._service.get(service_id)
