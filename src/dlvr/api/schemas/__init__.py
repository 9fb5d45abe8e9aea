"""Pydantic request schemas for the DLVR API."""

from dlvr.api.schemas.delivery import (
    AcknowledgeRequest,
    BulkSendRequest,
    FailureRequest,
    ReceiptRequest,
    SendRequest,
    ViewDataRequest,
)
from dlvr.api.schemas.service import (
    AffidavitDetails,
    AffidavitRequest,
    AttemptRequest,
    ServeRequest,
)

__all__ = [
    "AcknowledgeRequest",
    "AffidavitDetails",
    "AffidavitRequest",
    "AttemptRequest",
    "BulkSendRequest",
    "FailureRequest",
    "ReceiptRequest",
    "SendRequest",
    "ServeRequest",
    "ViewDataRequest",
]
