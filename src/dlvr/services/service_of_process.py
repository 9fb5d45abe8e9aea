"""Service of process engine.

Tracks legal service of a document on a respondent:

    INITIATED -> ATTEMPTED (first attempt recorded) -> FILED (affidavit recorded)

FILED is terminal. Each service type allows a fixed number of attempts and
carries a fixed set of legal requirements. The affidavit of service is scored
on three axes by the scoring model.

Attempts on identifiers this engine never issued are accepted and returned
without being stored, so records created elsewhere can still be scored. An
affidavit can only be filed against a case this engine initiated, once.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, ClassVar

from dlvr.core.errors import (
    AttemptLimitError,
    NotFoundError,
    ServiceClosedError,
    ValidationError,
)
from dlvr.core.identifiers import IdPrefix, generate_id
from dlvr.core.timestamps import utc_now_iso
from dlvr.core.types import DeliveryMethod, ServiceStatus, ServiceType, StatusEntry
from dlvr.services.scoring import DELIVERY_PILLAR, LegalScore, affidavit_score
from dlvr.services.storage import InMemoryStore, KeyValueStore, RecordLocks

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ServiceProof:
    """Evidentiary summary of a service case; scored once the affidavit is filed."""

    service_type: ServiceType
    score: int = 0
    affidavit_filed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "pillar": DELIVERY_PILLAR,
            "method": DeliveryMethod.LEGAL_SERVICE.value,
            "service_type": self.service_type.value,
            "score": self.score,
            "affidavit_filed": self.affidavit_filed,
        }


@dataclass(frozen=True, slots=True)
class ServiceAttempt:
    """A single attempt by a process server to serve the respondent."""

    service_id: str
    attempt_number: int
    successful: bool
    served_to: str | None
    relationship: str | None
    location: str | None
    geo_verified: bool
    process_server: str | None
    notes: str | None
    timestamp: str
    witness: str
    witnessed: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_id": self.service_id,
            "attempt_number": self.attempt_number,
            "successful": self.successful,
            "served_to": self.served_to,
            "relationship": self.relationship,
            "location": self.location,
            "geo_verified": self.geo_verified,
            "process_server": self.process_server,
            "notes": self.notes,
            "timestamp": self.timestamp,
            "witnessed": self.witnessed,
            "witness": self.witness,
        }


@dataclass(frozen=True, slots=True)
class ServiceCase:
    """A service of process case and its attempt history."""

    service_id: str
    mint_id: str
    respondent: str
    service_type: ServiceType
    address: str | None
    jurisdiction: str | None
    status: ServiceStatus
    status_history: tuple[StatusEntry, ...]
    max_attempts: int
    requirements: dict[str, Any]
    proof: ServiceProof
    created_at: str
    tracking_url: str
    process_server: str | None = None
    attempts: tuple[ServiceAttempt, ...] = ()
    served_at: str | None = None
    affidavit_filed_at: str | None = None
    affidavit_id: str | None = None

    @property
    def server_assigned(self) -> bool:
        return self.process_server is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_id": self.service_id,
            "mint_id": self.mint_id,
            "respondent": self.respondent,
            "service_type": self.service_type.value,
            "address": self.address,
            "jurisdiction": self.jurisdiction,
            "process_server": self.process_server,
            "server_assigned": self.server_assigned,
            "status": self.status.value,
            "status_history": [entry.to_dict() for entry in self.status_history],
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "max_attempts": self.max_attempts,
            "requirements": dict(self.requirements),
            "proof": self.proof.to_dict(),
            "created_at": self.created_at,
            "served_at": self.served_at,
            "affidavit_filed_at": self.affidavit_filed_at,
            "affidavit_id": self.affidavit_id,
            "tracking_url": self.tracking_url,
        }


@dataclass(frozen=True, slots=True)
class Affidavit:
    """Sworn affidavit of service filed by a process server."""

    affidavit_id: str
    service_id: str
    process_server: str
    server_jurisdiction: str | None
    service_type: ServiceType
    served_to: str | None
    relationship: str | None
    location: str | None
    notarized: bool
    witness_present: bool
    geo_verified: bool
    proof: LegalScore
    served_at: str
    filed_at: str
    created_at: str
    verify_url: str
    server_licensed: bool = True
    sworn: bool = True
    status: str = ServiceStatus.FILED.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "affidavit_id": self.affidavit_id,
            "service_id": self.service_id,
            "process_server": self.process_server,
            "server_licensed": self.server_licensed,
            "server_jurisdiction": self.server_jurisdiction,
            "service_type": self.service_type.value,
            "served_to": self.served_to,
            "relationship": self.relationship,
            "location": self.location,
            "sworn": self.sworn,
            "notarized": self.notarized,
            "witness_present": self.witness_present,
            "geo_verified": self.geo_verified,
            "proof": {
                "pillar": DELIVERY_PILLAR,
                "method": DeliveryMethod.LEGAL_SERVICE.value,
                "score": self.proof.score,
                "technical": self.proof.technical,
                "arguable": self.proof.arguable,
            },
            "status": self.status,
            "served_at": self.served_at,
            "filed_at": self.filed_at,
            "created_at": self.created_at,
            "verify_url": self.verify_url,
        }


class ServiceOfProcessEngine:
    """Initiates service cases, records attempts and files affidavits.

    Example:
        engine = ServiceOfProcessEngine()
        case = await engine.initiate("MINT-1", "John Doe", "personal")
        await engine.record_attempt(case.service_id, {"successful": True, "served_to": "John Doe"})
        affidavit = await engine.record_affidavit(case.service_id, "Server Smith")
    """

    MAX_ATTEMPTS: ClassVar[dict[ServiceType, int]] = {
        ServiceType.PERSONAL: 3,
        ServiceType.SUBSTITUTED: 2,
        ServiceType.CONSTRUCTIVE: 1,
        ServiceType.PUBLICATION: 1,
    }

    REQUIREMENTS: ClassVar[dict[ServiceType, dict[str, Any]]] = {
        ServiceType.PERSONAL: {
            "in_person": True,
            "identify_respondent": True,
            "hand_deliver": True,
            "affidavit_required": True,
            "witness_optional": True,
        },
        ServiceType.SUBSTITUTED: {
            "at_address": True,
            "competent_person": True,
            "mail_copy": True,
            "affidavit_required": True,
            "court_order_may_be_required": True,
        },
        ServiceType.CONSTRUCTIVE: {
            "posted_on_door": True,
            "mail_copy": True,
            "affidavit_required": True,
            "court_order_required": True,
        },
        ServiceType.PUBLICATION: {
            "newspaper_notice": True,
            "court_order_required": True,
            "duration_weeks": 4,
            "affidavit_required": True,
            "proof_of_publication": True,
        },
    }

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        witness_name: str = "DLVR",
        public_base_url: str = "https://dlvr.example",
    ) -> None:
        self._store = store if store is not None else InMemoryStore()
        self._witness_name = witness_name
        self._base_url = public_base_url.rstrip("/")
        self._locks = RecordLocks()

    async def initiate(
        self,
        mint_id: str,
        respondent: str,
        service_type: ServiceType | str = ServiceType.PERSONAL,
        address: str | None = None,
        jurisdiction: str | None = None,
    ) -> ServiceCase:
        """Open a service case.

        Raises:
            ValidationError: If mint_id or respondent is missing.
            InvalidServiceTypeError: If service_type is not a known type.
        """
        if not mint_id or not isinstance(mint_id, str):
            raise ValidationError("mint_id is required and must be a string", field="mint_id")
        if not respondent or not isinstance(respondent, str):
            raise ValidationError("respondent is required", field="respondent")
        kind = ServiceType.parse(service_type)

        service_id = generate_id(IdPrefix.SERVICE)
        timestamp = utc_now_iso()
        case = ServiceCase(
            service_id=service_id,
            mint_id=mint_id,
            respondent=respondent,
            service_type=kind,
            address=address,
            jurisdiction=jurisdiction,
            status=ServiceStatus.INITIATED,
            status_history=(StatusEntry(ServiceStatus.INITIATED.value, timestamp),),
            max_attempts=self.MAX_ATTEMPTS[kind],
            requirements=dict(self.REQUIREMENTS[kind]),
            proof=ServiceProof(service_type=kind),
            created_at=timestamp,
            tracking_url=f"{self._base_url}/service/{service_id}",
        )
        await self._store.put(service_id, case)

        logger.info(
            "Initiated %s service %s for %s",
            kind.value,
            service_id,
            mint_id,
            extra={"service_id": service_id, "service_type": kind.value},
        )
        return case

    async def get(self, service_id: str) -> ServiceCase:
        """Fetch a stored service case.

        Raises:
            NotFoundError: If the case is unknown.
        """
        case = await self._store.get(service_id)
        if case is None:
            raise NotFoundError("Service", service_id)
        return case

    async def record_attempt(self, service_id: str, attempt: dict[str, Any] | None = None) -> ServiceAttempt:
        """Record a service attempt.

        Tracked cases number attempts sequentially and move to ATTEMPTED on
        the first one.

        Raises:
            ValidationError: If attempt_number is not a positive integer.
            ServiceClosedError: If the case is already FILED.
            AttemptLimitError: If the case has used all its attempts.
        """
        attempt = attempt or {}
        timestamp = utc_now_iso()
        try:
            claimed_number = int(attempt.get("attempt_number") or 1)
        except (TypeError, ValueError):
            claimed_number = 0
        if claimed_number < 1:
            raise ValidationError("attempt_number must be a positive integer", field="attempt_number")

        async with self._locks(service_id):
            case = await self._store.get(service_id)
            if case is None:
                return self._build_attempt(service_id, claimed_number, attempt, timestamp)

            if case.status == ServiceStatus.FILED:
                raise ServiceClosedError(service_id)
            if len(case.attempts) >= case.max_attempts:
                raise AttemptLimitError(service_id, case.max_attempts)

            recorded = self._build_attempt(service_id, len(case.attempts) + 1, attempt, timestamp)
            changes: dict[str, Any] = {"attempts": (*case.attempts, recorded)}
            if case.status == ServiceStatus.INITIATED:
                changes["status"] = ServiceStatus.ATTEMPTED
                changes["status_history"] = (
                    *case.status_history,
                    StatusEntry(ServiceStatus.ATTEMPTED.value, timestamp, recorded.process_server or "system"),
                )
            if recorded.process_server and case.process_server is None:
                changes["process_server"] = recorded.process_server
            if recorded.successful and case.served_at is None:
                changes["served_at"] = timestamp
            await self._store.put(service_id, dataclasses.replace(case, **changes))

        logger.info(
            "Recorded attempt %d on service %s (successful=%s)",
            recorded.attempt_number,
            service_id,
            recorded.successful,
        )
        return recorded

    async def record_affidavit(
        self,
        service_id: str,
        process_server: str,
        service_type: ServiceType | str | None = None,
        details: dict[str, Any] | None = None,
    ) -> Affidavit:
        """File the affidavit of service and close the case.

        Raises:
            ValidationError: If process_server is missing.
            NotFoundError: If the case was not initiated by this engine.
            InvalidServiceTypeError: If service_type is not a known type.
            ServiceClosedError: If an affidavit was already filed.
        """
        if not process_server or not isinstance(process_server, str):
            raise ValidationError("process_server is required", field="process_server")
        details = details or {}
        timestamp = utc_now_iso()

        async with self._locks(service_id):
            case = await self._store.get(service_id)
            if case is None:
                raise NotFoundError("Service", service_id)
            if case.status == ServiceStatus.FILED:
                raise ServiceClosedError(service_id)

            kind = case.service_type if service_type is None else ServiceType.parse(service_type)

            geo_verified = details.get("geo_verified")
            if geo_verified is None:
                geo_verified = any(a.geo_verified for a in case.attempts if a.successful)
            geo_verified = bool(geo_verified)
            notarized = bool(details.get("notarized", False))
            witness_present = bool(details.get("witness_present", False))

            scores = affidavit_score(
                kind,
                notarized=notarized,
                witness_present=witness_present,
                geo_verified=geo_verified,
            )
            served_at = details.get("served_at") or case.served_at or timestamp
            affidavit_id = generate_id(IdPrefix.AFFIDAVIT)
            affidavit = Affidavit(
                affidavit_id=affidavit_id,
                service_id=service_id,
                process_server=process_server,
                server_jurisdiction=details.get("jurisdiction") or case.jurisdiction,
                service_type=kind,
                served_to=details.get("served_to"),
                relationship=details.get("relationship"),
                location=details.get("location"),
                notarized=notarized,
                witness_present=witness_present,
                geo_verified=geo_verified,
                proof=scores,
                served_at=served_at,
                filed_at=timestamp,
                created_at=timestamp,
                verify_url=f"{self._base_url}/affidavit/{affidavit_id}",
            )

            await self._store.put(
                service_id,
                dataclasses.replace(
                    case,
                    status=ServiceStatus.FILED,
                    status_history=(
                        *case.status_history,
                        StatusEntry(ServiceStatus.FILED.value, timestamp, process_server),
                    ),
                    process_server=case.process_server or process_server,
                    proof=ServiceProof(service_type=kind, score=scores.score, affidavit_filed=True),
                    served_at=served_at,
                    affidavit_filed_at=timestamp,
                    affidavit_id=affidavit_id,
                ),
            )

        logger.info(
            "Filed affidavit %s for service %s (score=%d)",
            affidavit_id,
            service_id,
            scores.score,
            extra={"service_id": service_id, "affidavit_id": affidavit_id},
        )
        return affidavit

    def _build_attempt(
        self,
        service_id: str,
        number: int,
        attempt: dict[str, Any],
        timestamp: str,
    ) -> ServiceAttempt:
        return ServiceAttempt(
            service_id=service_id,
            attempt_number=number,
            successful=bool(attempt.get("successful", False)),
            served_to=attempt.get("served_to"),
            relationship=attempt.get("relationship"),
            location=attempt.get("location"),
            geo_verified=bool(attempt.get("geo_verified", False)),
            process_server=attempt.get("process_server"),
            notes=attempt.get("notes"),
            timestamp=timestamp,
            witness=self._witness_name,
        )
