"""Public verification and tracking router.

Unauthenticated endpoints that anyone holding a receipt or tracking link can
call. Receipt verification uses only the key embedded in the receipt.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from dlvr.api.dependencies import Orchestrator, require_prefix
from dlvr.core.identifiers import IdPrefix

router = APIRouter(
    tags=["public"],
    responses={
        400: {"description": "Invalid identifier"},
        404: {"description": "Receipt or delivery not found"},
    },
)


@router.get("/verify/receipt/{receipt_id}", summary="Verify a signed receipt")
async def verify_receipt(receipt_id: str, dlvr: Orchestrator) -> dict[str, Any]:
    require_prefix(receipt_id, IdPrefix.RECEIPT)
    result = await dlvr.verify_receipt(receipt_id)
    receipt = await dlvr.receipts.get(receipt_id)
    return {
        **result.to_dict(),
        "delivery_id": receipt.delivery_id,
        "created_at": receipt.created_at,
    }


@router.get("/track/{delivery_id}", summary="Track a delivery")
async def track(delivery_id: str, dlvr: Orchestrator) -> dict[str, Any]:
    """Public timeline: statuses and proof score only."""
    require_prefix(delivery_id, IdPrefix.DELIVERY)
    report = await dlvr.status(delivery_id)
    return {
        "delivery_id": delivery_id,
        "method": report.delivery.method.value,
        "status": report.delivery.status.value,
        "timeline": [entry.to_dict() for entry in report.delivery.status_history],
        "proof": report.delivery.proof.to_dict(),
        "receipt_id": report.delivery.receipt_id,
        "checked_at": report.checked_at,
    }
