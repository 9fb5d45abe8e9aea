"""Pydantic schemas for delivery endpoints.

Identifiers and enum-like fields are plain strings here; the services
validate them so that domain errors (unknown channel, missing document
reference) surface as 400 responses with a domain error code.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SendRequest(BaseModel):
    """Request schema for sending a certified delivery."""

    mint_id: str | None = Field(None, description="Reference of the document being delivered")
    to: str | None = Field(None, description="Recipient identity")
    method: str = Field("email", description="Delivery channel")
    address: str | None = Field(
        None, description="Channel address (email, phone, URL...); defaults to `to`"
    )
    options: dict[str, Any] = Field(default_factory=dict, description="Channel options")


class ViewDataRequest(BaseModel):
    """View event data captured when a recipient opens a delivery."""

    model_config = ConfigDict(extra="allow")

    ip: str | None = Field(None, description="Viewer IP address")
    user_agent: str | None = Field(None, description="Viewer user agent")


class AcknowledgeRequest(BaseModel):
    """Explicit acknowledgement by the recipient."""

    actor: str | None = Field(None, description="Who acknowledged")


class ReceiptRequest(BaseModel):
    """Request schema for signing a receipt."""

    signer: str | None = Field(None, description="Identity of the signing recipient")
    method: str = Field("digital", description="How the signature was obtained")


class FailureRequest(BaseModel):
    """Request schema for recording a failed, bounced or refused delivery."""

    status: str = Field(..., description="FAILED, BOUNCED or REFUSED")
    reason: str | None = Field(None, description="Failure reason reported by the channel")


class BulkSendRequest(BaseModel):
    """Request schema for sending one document to several recipients."""

    mint_id: str | None = Field(None, description="Reference of the document being delivered")
    recipients: list[Any] | None = Field(
        None, description="Recipients, each {to, method, address, options}"
    )
