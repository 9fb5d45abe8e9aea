"""Service of process API router."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, status

from dlvr.api.dependencies import Orchestrator, require_prefix
from dlvr.api.schemas.service import AffidavitRequest, AttemptRequest, ServeRequest
from dlvr.core.identifiers import IdPrefix

router = APIRouter(
    prefix="/dlvr/v1",
    tags=["service"],
    responses={
        400: {"description": "Invalid request, identifier or closed case"},
        404: {"description": "Service case not found"},
    },
)


@router.post(
    "/serve",
    status_code=status.HTTP_201_CREATED,
    summary="Initiate service of process",
)
async def serve(body: ServeRequest, dlvr: Orchestrator) -> dict[str, Any]:
    case = await dlvr.serve(
        body.mint_id,
        body.respondent,
        service_type=body.service_type,
        address=body.address,
        jurisdiction=body.jurisdiction,
    )
    return case.to_dict()


@router.get("/service/{service_id}", summary="Service case and its attempts")
async def get_service(service_id: str, dlvr: Orchestrator) -> dict[str, Any]:
    require_prefix(service_id, IdPrefix.SERVICE)
    case = await dlvr.get_service(service_id)
    return case.to_dict()


@router.post(
    "/service/{service_id}/attempt",
    status_code=status.HTTP_201_CREATED,
    summary="Record a service attempt",
)
async def record_attempt(service_id: str, body: AttemptRequest, dlvr: Orchestrator) -> dict[str, Any]:
    require_prefix(service_id, IdPrefix.SERVICE)
    attempt = await dlvr.record_attempt(service_id, body.model_dump())
    return attempt.to_dict()


@router.post(
    "/service/{service_id}/affidavit",
    status_code=status.HTTP_201_CREATED,
    summary="File the affidavit of service",
)
async def record_affidavit(service_id: str, body: AffidavitRequest, dlvr: Orchestrator) -> dict[str, Any]:
    require_prefix(service_id, IdPrefix.SERVICE)
    affidavit = await dlvr.record_service(service_id, body.model_dump())
    return affidavit.to_dict()
