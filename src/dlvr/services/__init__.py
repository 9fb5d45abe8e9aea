"""DLVR service layer.

- DeliveryOrchestrator: Delivery state machine and top-level facade
- ChannelDispatcher: Dispatch over the supported delivery channels
- ReceiptEngine: Signed, beacon-anchored receipts
- SignatureProvider: ECDSA P-256 receipt signing key
- TemporalAnchor: drand latest-round client
- ServiceOfProcessEngine: Service of process and affidavits
- scoring: Evidentiary scoring tables
"""

from dlvr.services.anchor import AnchorRound, TemporalAnchor
from dlvr.services.channels import ChannelDispatcher, ChannelTransport, DispatchRequest
from dlvr.services.lifecycle import (
    BulkBatch,
    BulkFailure,
    Delivery,
    DeliveryOrchestrator,
    StatusReport,
    StatusSnapshot,
)
from dlvr.services.receipts import (
    PhysicalReceipt,
    Receipt,
    ReceiptEngine,
    VerificationOutcome,
    VerificationResult,
)
from dlvr.services.service_of_process import (
    Affidavit,
    ServiceAttempt,
    ServiceCase,
    ServiceOfProcessEngine,
)
from dlvr.services.signing import SignatureProvider
from dlvr.services.storage import InMemoryStore, KeyValueStore

__all__ = [
    "Affidavit",
    "AnchorRound",
    "BulkBatch",
    "BulkFailure",
    "ChannelDispatcher",
    "ChannelTransport",
    "Delivery",
    "DeliveryOrchestrator",
    "DispatchRequest",
    "InMemoryStore",
    "KeyValueStore",
    "PhysicalReceipt",
    "Receipt",
    "ReceiptEngine",
    "ServiceAttempt",
    "ServiceCase",
    "ServiceOfProcessEngine",
    "SignatureProvider",
    "StatusReport",
    "StatusSnapshot",
    "TemporalAnchor",
    "VerificationOutcome",
    "VerificationResult",
]
