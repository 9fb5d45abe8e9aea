"""Closed enumerations shared across the delivery, receipt and service engines.

Wire values keep the camelCase channel names used by API consumers
(``inPerson``, ``legalService``). Each enum exposes ``parse()`` which maps an
unknown value onto the matching domain error instead of a bare ValueError.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from dlvr.core.errors import InvalidServiceTypeError, UnsupportedMethodError, ValidationError


class DeliveryMethod(str, Enum):
    """Delivery channels.

    Values:
        EMAIL: Certified email with read receipt
        SMS: SMS with delivery confirmation
        PORTAL: Authenticated portal delivery
        API: Webhook delivery
        PHYSICAL: Tracked physical mail
        IN_PERSON: In-person delivery with witness attestation
        LEGAL_SERVICE: Process server / legal service
    """

    EMAIL = "email"
    SMS = "sms"
    PORTAL = "portal"
    API = "api"
    PHYSICAL = "physical"
    IN_PERSON = "inPerson"
    LEGAL_SERVICE = "legalService"

    @classmethod
    def parse(cls, value: object) -> DeliveryMethod:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedMethodError(value) from None


class DeliveryStatus(str, Enum):
    """Delivery lifecycle statuses.

    States:
        PENDING: Created, not yet sent
        SENT: Dispatched via channel
        DELIVERED: Channel confirmed delivery
        OPENED: Recipient opened/viewed
        ACKNOWLEDGED: Recipient explicitly acknowledged
        RECEIPTED: Cryptographic receipt signed
        FAILED: Delivery failed
        BOUNCED: Bounced back
        REFUSED: Recipient refused delivery
    """

    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    OPENED = "OPENED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RECEIPTED = "RECEIPTED"
    FAILED = "FAILED"
    BOUNCED = "BOUNCED"
    REFUSED = "REFUSED"


class ReceiptMethod(str, Enum):
    """How a receipt signature was obtained."""

    DIGITAL = "digital"
    WITNESS = "witness"
    PHYSICAL = "physical"
    NOTARIZED = "notarized"
    LEGAL_SERVICE = "legalService"

    @classmethod
    def parse(cls, value: object) -> ReceiptMethod:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unsupported receipt method: {value}", field="method") from None


class ServiceType(str, Enum):
    """Service of process types, from highest to lowest assurance."""

    PERSONAL = "personal"
    SUBSTITUTED = "substituted"
    CONSTRUCTIVE = "constructive"
    PUBLICATION = "publication"

    @classmethod
    def parse(cls, value: object) -> ServiceType:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidServiceTypeError(value) from None


class ServiceStatus(str, Enum):
    """Service case statuses. FILED is terminal."""

    INITIATED = "INITIATED"
    ATTEMPTED = "ATTEMPTED"
    FILED = "FILED"


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """One append-only entry in a record's status history."""

    status: str
    timestamp: str
    actor: str = "system"

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "timestamp": self.timestamp, "actor": self.actor}
