"""Service metadata router."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from dlvr.api.dependencies import Orchestrator
from dlvr.core.types import DeliveryMethod, ServiceType

router = APIRouter(prefix="/api/v1", tags=["meta"])


@router.get("/status", summary="Service status and configuration summary")
async def service_status(dlvr: Orchestrator) -> dict[str, Any]:
    settings = dlvr.settings
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment.value,
        "initialized": dlvr.initialized,
        "key_source": dlvr.provider.key_source,
        "beacon_enabled": settings.beacon.enabled,
        "channels": [m.value for m in DeliveryMethod],
        "service_types": [t.value for t in ServiceType],
        "policy_hash": settings.get_policy_hash(),
    }
