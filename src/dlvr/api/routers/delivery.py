"""Delivery API router.

Sending, lifecycle events, signed receipts and bulk sends.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Request, status

from dlvr.api.dependencies import Orchestrator, require_prefix
from dlvr.api.schemas.delivery import (
    AcknowledgeRequest,
    BulkSendRequest,
    FailureRequest,
    ReceiptRequest,
    SendRequest,
    ViewDataRequest,
)
from dlvr.core.identifiers import IdPrefix

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/dlvr/v1",
    tags=["delivery"],
    responses={
        400: {"description": "Invalid request or identifier"},
        404: {"description": "Delivery not found"},
    },
)


@router.post(
    "/send",
    status_code=status.HTTP_201_CREATED,
    summary="Send a certified delivery",
)
async def send(body: SendRequest, dlvr: Orchestrator) -> dict[str, Any]:
    delivery = await dlvr.send(
        body.mint_id,
        to=body.to,
        method=body.method,
        address=body.address,
        options=body.options,
    )
    return delivery.to_dict()


@router.get("/status/{delivery_id}", summary="Delivery timeline")
async def delivery_status(delivery_id: str, dlvr: Orchestrator) -> dict[str, Any]:
    require_prefix(delivery_id, IdPrefix.DELIVERY)
    report = await dlvr.status(delivery_id)
    return report.to_dict()


@router.post("/confirm/{delivery_id}", summary="Record channel delivery confirmation")
async def confirm(
    delivery_id: str,
    dlvr: Orchestrator,
    confirmation: Annotated[dict[str, Any] | None, Body()] = None,
) -> dict[str, Any]:
    require_prefix(delivery_id, IdPrefix.DELIVERY)
    snapshot = await dlvr.confirm(delivery_id, confirmation)
    return snapshot.to_dict()


@router.post("/opened/{delivery_id}", summary="Record that the recipient opened the delivery")
async def opened(
    delivery_id: str,
    request: Request,
    dlvr: Orchestrator,
    body: ViewDataRequest | None = None,
) -> dict[str, Any]:
    """Record a view event.

    The caller's IP and user agent are used when the body does not supply them.
    """
    require_prefix(delivery_id, IdPrefix.DELIVERY)
    view_data = body.model_dump() if body else {}
    if not view_data.get("ip") and request.client:
        view_data["ip"] = request.client.host
    if not view_data.get("user_agent"):
        view_data["user_agent"] = request.headers.get("user-agent")
    snapshot = await dlvr.opened(delivery_id, view_data)
    return snapshot.to_dict()


@router.post("/acknowledge/{delivery_id}", summary="Record explicit acknowledgement")
async def acknowledge(
    delivery_id: str,
    dlvr: Orchestrator,
    body: AcknowledgeRequest | None = None,
) -> dict[str, Any]:
    require_prefix(delivery_id, IdPrefix.DELIVERY)
    snapshot = await dlvr.acknowledge(delivery_id, body.actor if body else None)
    return snapshot.to_dict()


@router.post("/failure/{delivery_id}", summary="Record a failed, bounced or refused delivery")
async def failure(delivery_id: str, body: FailureRequest, dlvr: Orchestrator) -> dict[str, Any]:
    require_prefix(delivery_id, IdPrefix.DELIVERY)
    snapshot = await dlvr.record_failure(delivery_id, body.status, body.reason)
    return snapshot.to_dict()


@router.post(
    "/receipt/{delivery_id}",
    status_code=status.HTTP_201_CREATED,
    summary="Sign a receipt for a delivery",
)
async def receipt(delivery_id: str, body: ReceiptRequest, dlvr: Orchestrator) -> dict[str, Any]:
    require_prefix(delivery_id, IdPrefix.DELIVERY)
    signed = await dlvr.receipt(delivery_id, body.signer, body.method)
    return signed.to_dict()


@router.post(
    "/bulk",
    status_code=status.HTTP_201_CREATED,
    summary="Send one document to several recipients",
)
async def bulk_send(body: BulkSendRequest, dlvr: Orchestrator) -> dict[str, Any]:
    batch = await dlvr.bulk_send(body.mint_id, body.recipients)
    return batch.to_dict()
