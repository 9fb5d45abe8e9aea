"""Pydantic schemas for service of process endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ServeRequest(BaseModel):
    """Request schema for initiating service of process."""

    mint_id: str | None = Field(None, description="Reference of the document being served")
    respondent: str | None = Field(None, description="Person being served")
    service_type: str = Field(
        "personal", description="personal, substituted, constructive or publication"
    )
    address: str | None = Field(None, description="Address for service")
    jurisdiction: str | None = Field(None, description="Legal jurisdiction")


class AttemptRequest(BaseModel):
    """A process server's service attempt."""

    successful: bool = False
    served_to: str | None = None
    relationship: str | None = Field(None, description="Relationship to respondent (substituted service)")
    location: str | None = None
    geo_verified: bool = False
    process_server: str | None = None
    notes: str | None = None


class AffidavitDetails(BaseModel):
    """Details sworn in an affidavit of service."""

    jurisdiction: str | None = None
    served_to: str | None = None
    relationship: str | None = None
    location: str | None = None
    notarized: bool = False
    witness_present: bool = False
    geo_verified: bool | None = Field(
        None, description="Defaults to whether a successful attempt was geo-verified"
    )
    served_at: str | None = None


class AffidavitRequest(BaseModel):
    """Request schema for filing an affidavit of service."""

    process_server: str | None = Field(None, description="Server who performed service")
    service_type: str | None = Field(None, description="Defaults to the case's service type")
    details: AffidavitDetails = Field(default_factory=AffidavitDetails)
