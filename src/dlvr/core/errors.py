"""Error taxonomy shared by the delivery, receipt and service engines.

Propagation policy:
- ValidationError and its subclasses, and NotFoundError, surface directly to
  the caller (4xx at the HTTP edge, never retried automatically).
- CryptoFailure is fatal. A broken signing key must abort the operation; it is
  never converted into a "valid" receipt.
- AnchorUnavailable is raised inside the temporal anchor only and recovered
  there; receipts proceed unanchored.
- A signature mismatch is not an exception at all (see VerificationOutcome).
"""

from __future__ import annotations


class DLVRError(Exception):
    """Base exception for all DLVR domain errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(DLVRError):
    """Raised when required input is missing or malformed."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class UnsupportedMethodError(ValidationError):
    """Raised when a delivery method is not one of the supported channels."""

    def __init__(self, method: object) -> None:
        self.method = method
        super().__init__(f"Unsupported delivery method: {method}", field="method")


class InvalidServiceTypeError(ValidationError):
    """Raised when a service type is not personal/substituted/constructive/publication."""

    def __init__(self, service_type: object) -> None:
        self.service_type = service_type
        super().__init__(f"Invalid service type: {service_type}", field="service_type")


class InvalidTransitionError(ValidationError):
    """Raised when a tracked record cannot move to the requested status."""

    def __init__(self, record_id: str, from_status: str, to_status: str) -> None:
        self.record_id = record_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot transition {record_id} from {from_status} to {to_status}")


class ServiceClosedError(ValidationError):
    """Raised when an attempt or affidavit is recorded on a filed service case."""

    def __init__(self, service_id: str) -> None:
        self.service_id = service_id
        super().__init__(f"Service case {service_id} is already filed")


class AttemptLimitError(ValidationError):
    """Raised when a service case has used all of its permitted attempts."""

    def __init__(self, service_id: str, max_attempts: int) -> None:
        self.service_id = service_id
        self.max_attempts = max_attempts
        super().__init__(
            f"Service case {service_id} has reached its limit of {max_attempts} attempt(s)"
        )


class NotFoundError(DLVRError):
    """Raised when a delivery, receipt or service identifier is unknown."""

    def __init__(self, resource: str, identifier: str) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class CryptoFailure(DLVRError):
    """Raised on key generation, import or signing failure. Never swallowed."""


class DispatchError(DLVRError):
    """Raised when a registered channel transport fails to dispatch."""

    def __init__(self, channel: str, reason: str) -> None:
        self.channel = channel
        self.reason = reason
        super().__init__(f"Dispatch via {channel} failed: {reason}")


class AnchorUnavailable(DLVRError):
    """Raised internally when the randomness beacon cannot supply a round."""
