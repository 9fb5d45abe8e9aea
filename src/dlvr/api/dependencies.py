"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from dlvr.api.middleware.errors import InvalidIdentifierError
from dlvr.core.identifiers import IdPrefix, has_prefix
from dlvr.services.lifecycle import DeliveryOrchestrator


def get_orchestrator(request: Request) -> DeliveryOrchestrator:
    """The orchestrator created with the app (see create_app)."""
    return request.app.state.orchestrator


Orchestrator = Annotated[DeliveryOrchestrator, Depends(get_orchestrator)]


def require_prefix(identifier: str, prefix: IdPrefix) -> str:
    """Reject path identifiers of the wrong record kind before any lookup."""
    if not has_prefix(identifier, prefix):
        raise InvalidIdentifierError(identifier, prefix.value)
    return identifier
