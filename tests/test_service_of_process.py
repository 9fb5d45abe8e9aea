"""Tests for service of process and affidavits of service."""

import pytest

from dlvr.core.errors import (
    AttemptLimitError,
    InvalidServiceTypeError,
    NotFoundError,
    ServiceClosedError,
    ValidationError,
)
from dlvr.core.types import ServiceStatus, ServiceType
from dlvr.services.service_of_process import ServiceOfProcessEngine


@pytest.fixture
def engine() -> ServiceOfProcessEngine:
    return ServiceOfProcessEngine(public_base_url="https://dlvr.test")


@pytest.fixture
async def case(engine):
    return await engine.initiate("MINT-7", "John Doe", "personal", "1 Main St", "CA")


class TestInitiate:
    async def test_case_fields(self, case):
        """A new case is INITIATED with its requirements."""
        assert case.service_id.startswith("DS-")
        assert case.status == ServiceStatus.INITIATED
        assert [e.status for e in case.status_history] == ["INITIATED"]
        assert case.max_attempts == 3
        assert case.requirements["hand_deliver"] is True
        assert case.server_assigned is False
        assert case.attempts == ()
        assert case.proof.score == 0
        assert case.proof.affidavit_filed is False
        assert case.tracking_url == f"https://dlvr.test/service/{case.service_id}"

    async def test_publication(self, engine):
        """Publication requires a court order."""
        case = await engine.initiate("MINT-7", "John Doe", "publication")
        assert case.max_attempts == 1
        assert case.requirements["court_order_required"] is True
        assert case.requirements["duration_weeks"] == 4

    @pytest.mark.parametrize(
        ("service_type", "max_attempts"),
        [("personal", 3), ("substituted", 2), ("constructive", 1), ("publication", 1)],
    )
    async def test_attempt_limits(self, engine, service_type, max_attempts):
        """Attempt limit per service type."""
        case = await engine.initiate("MINT-7", "John Doe", service_type)
        assert case.max_attempts == max_attempts

    async def test_unknown_service_type(self, engine):
        """Unknown service types are rejected."""
        with pytest.raises(InvalidServiceTypeError) as exc_info:
            await engine.initiate("MINT-7", "John Doe", "telekinesis")
        assert exc_info.value.field == "service_type"

    async def test_respondent_required(self, engine):
        """A respondent is required."""
        with pytest.raises(ValidationError):
            await engine.initiate("MINT-7", "", "personal")

    async def test_requirements_not_shared(self, engine, case):
        """Cases do not share requirement dicts."""
        case.requirements["hand_deliver"] = False
        again = await engine.initiate("MINT-8", "Jane Doe", "personal")
        assert again.requirements["hand_deliver"] is True

    async def test_get(self, engine, case):
        """Cases are retrievable; unknown IDs raise NotFoundError."""
        assert await engine.get(case.service_id) == case
        with pytest.raises(NotFoundError):
            await engine.get("DS-UNKNOWN")


class TestAttempts:
    async def test_sequential_numbering(self, engine, case):
        """Tracked attempts are numbered by the engine."""
        first = await engine.record_attempt(case.service_id, {"notes": "no answer"})
        second = await engine.record_attempt(case.service_id, {"attempt_number": 9})

        assert (first.attempt_number, second.attempt_number) == (1, 2)
        assert first.witnessed is True
        assert first.witness == "DLVR"

    async def test_first_attempt_moves_to_attempted(self, engine, case):
        """The first attempt moves the case to ATTEMPTED."""
        await engine.record_attempt(case.service_id, {"process_server": "Server Smith"})
        stored = await engine.get(case.service_id)

        assert stored.status == ServiceStatus.ATTEMPTED
        assert [e.status for e in stored.status_history] == ["INITIATED", "ATTEMPTED"]
        assert stored.process_server == "Server Smith"
        assert stored.server_assigned is True

    async def test_successful_attempt_sets_served_at(self, engine, case):
        """Only a successful attempt sets served_at."""
        await engine.record_attempt(case.service_id, {"successful": False})
        assert (await engine.get(case.service_id)).served_at is None

        attempt = await engine.record_attempt(case.service_id, {"successful": True, "served_to": "John Doe"})
        assert (await engine.get(case.service_id)).served_at == attempt.timestamp

    async def test_limit_enforced(self, engine):
        """Attempts past the limit are rejected."""
        case = await engine.initiate("MINT-7", "John Doe", "substituted")
        await engine.record_attempt(case.service_id)
        await engine.record_attempt(case.service_id)

        with pytest.raises(AttemptLimitError) as exc_info:
            await engine.record_attempt(case.service_id)
        assert exc_info.value.max_attempts == 2
        assert len((await engine.get(case.service_id)).attempts) == 2

    async def test_rejected_after_filing(self, engine, case):
        """A filed case takes no more attempts."""
        await engine.record_affidavit(case.service_id, "Server Smith")
        with pytest.raises(ServiceClosedError):
            await engine.record_attempt(case.service_id)

    async def test_untracked(self, engine):
        """Untracked attempts are returned but not stored."""
        attempt = await engine.record_attempt("DS-ELSEWHERE", {"attempt_number": 2, "successful": True})
        assert attempt.attempt_number == 2
        assert attempt.successful is True
        with pytest.raises(NotFoundError):
            await engine.get("DS-ELSEWHERE")

    async def test_untracked_defaults_to_first(self, engine):
        """Untracked attempts default to number 1."""
        attempt = await engine.record_attempt("DS-ELSEWHERE")
        assert attempt.attempt_number == 1
        assert attempt.successful is False

    @pytest.mark.parametrize("attempt_number", ["abc", -1, "2.5", [3]])
    async def test_invalid_attempt_number(self, engine, case, attempt_number):
        """A non-numeric or negative attempt number is a validation error."""
        with pytest.raises(ValidationError) as exc_info:
            await engine.record_attempt(case.service_id, {"attempt_number": attempt_number})
        assert exc_info.value.field == "attempt_number"
        assert (await engine.get(case.service_id)).attempts == ()


class TestAffidavit:
    async def test_personal_affidavit(self, engine, case):
        """A personal service affidavit is sworn and scored."""
        affidavit = await engine.record_affidavit(
            case.service_id,
            "Server Smith",
            details={"served_to": "John Doe", "location": "1 Main St"},
        )

        assert affidavit.affidavit_id.startswith("DA-")
        assert affidavit.service_type == ServiceType.PERSONAL
        assert affidavit.server_jurisdiction == "CA"
        assert affidavit.sworn is True
        assert affidavit.server_licensed is True
        assert affidavit.status == "FILED"
        assert (affidavit.proof.score, affidavit.proof.technical, affidavit.proof.arguable) == (95, 90, 95)
        assert affidavit.verify_url == f"https://dlvr.test/affidavit/{affidavit.affidavit_id}"

    async def test_bonuses_are_capped(self, engine, case):
        """Affidavit bonuses are capped."""
        affidavit = await engine.record_affidavit(
            case.service_id,
            "Server Smith",
            details={"notarized": True, "witness_present": True, "geo_verified": True},
        )
        assert (affidavit.proof.score, affidavit.proof.technical, affidavit.proof.arguable) == (100, 95, 100)

    async def test_geo_verified_from_successful_attempt(self, engine, case):
        """geo_verified defaults from successful attempts."""
        await engine.record_attempt(case.service_id, {"successful": True, "geo_verified": True})
        affidavit = await engine.record_affidavit(case.service_id, "Server Smith")
        assert affidavit.geo_verified is True
        assert affidavit.proof.technical == 95

    async def test_failed_geo_attempt_does_not_count(self, engine, case):
        """Failed attempts do not make the affidavit geo-verified."""
        await engine.record_attempt(case.service_id, {"successful": False, "geo_verified": True})
        affidavit = await engine.record_affidavit(case.service_id, "Server Smith")
        assert affidavit.geo_verified is False

    async def test_explicit_geo_flag_wins(self, engine, case):
        """An explicit geo_verified overrides attempts."""
        await engine.record_attempt(case.service_id, {"successful": True, "geo_verified": True})
        affidavit = await engine.record_affidavit(
            case.service_id, "Server Smith", details={"geo_verified": False}
        )
        assert affidavit.geo_verified is False

    async def test_case_filed(self, engine, case):
        """Filing closes the case and records the affidavit."""
        affidavit = await engine.record_affidavit(case.service_id, "Server Smith")
        stored = await engine.get(case.service_id)

        assert stored.status == ServiceStatus.FILED
        assert stored.status_history[-1].status == "FILED"
        assert stored.affidavit_id == affidavit.affidavit_id
        assert stored.affidavit_filed_at == affidavit.filed_at
        assert stored.proof.affidavit_filed is True
        assert stored.proof.score == 95

    async def test_second_affidavit_rejected(self, engine, case):
        """A case accepts one affidavit."""
        await engine.record_affidavit(case.service_id, "Server Smith")
        with pytest.raises(ServiceClosedError):
            await engine.record_affidavit(case.service_id, "Server Jones")

    async def test_process_server_required(self, engine, case):
        """process_server is required."""
        with pytest.raises(ValidationError) as exc_info:
            await engine.record_affidavit(case.service_id, None)
        assert exc_info.value.field == "process_server"

    async def test_service_type_override(self, engine, case):
        """service_type overrides the case's type for scoring."""
        affidavit = await engine.record_affidavit(case.service_id, "Server Smith", service_type="substituted")
        assert affidavit.service_type == ServiceType.SUBSTITUTED
        assert affidavit.proof.score == 80

    async def test_unknown_case_rejected(self, engine):
        """An affidavit needs a case this engine initiated, and nothing is filed."""
        for _ in range(2):
            with pytest.raises(NotFoundError):
                await engine.record_affidavit("DS-ELSEWHERE", "Server Smith")
        with pytest.raises(NotFoundError):
            await engine.get("DS-ELSEWHERE")

    async def test_to_dict_proof(self, engine, case):
        """Affidavit proof serializes on the delivery pillar."""
        affidavit = await engine.record_affidavit(case.service_id, "Server Smith")
        assert affidavit.to_dict()["proof"] == {
            "pillar": "delivery",
            "method": "legalService",
            "score": 95,
            "technical": 90,
            "arguable": 95,
        }


class TestOrchestratorDelegation:
    async def test_serve_and_record_service(self, orchestrator):
        """The orchestrator delegates the service flow."""
        case = await orchestrator.serve("MINT-7", "John Doe", "constructive")
        await orchestrator.record_attempt(case.service_id, {"successful": True})
        affidavit = await orchestrator.record_service(
            case.service_id,
            {"process_server": "Server Smith", "details": {"notarized": True}},
        )

        assert affidavit.proof.score == 75
        assert (await orchestrator.get_service(case.service_id)).status == ServiceStatus.FILED

    async def test_record_service_unknown_case(self, orchestrator):
        """Filing through the orchestrator also requires a known case."""
        with pytest.raises(NotFoundError):
            await orchestrator.record_service("DS-UNKNOWN", {"process_server": "Server Smith"})
