"""Tests for the evidentiary scoring model."""

import pytest

from dlvr.core.types import DeliveryMethod, DeliveryStatus, ReceiptMethod, ServiceType
from dlvr.services.scoring import (
    DELIVERY_PILLAR,
    PROOF_STANDARD,
    affidavit_score,
    delivery_score,
    physical_receipt_score,
    receipt_score,
    round_half_up,
)


class TestRounding:
    """Half-up rounding of fractional scores."""

    def test_half_rounds_up(self):
        """Halves round up."""
        assert round_half_up(20.5) == 21
        assert round_half_up(42.5) == 43

    def test_below_half_rounds_down(self):
        """Below half rounds down."""
        assert round_half_up(20.49) == 20

    def test_integers_unchanged(self):
        """Whole numbers are unchanged."""
        assert round_half_up(95.0) == 95
        assert round_half_up(0) == 0


class TestDeliveryScore:
    """method base x status multiplier."""

    @pytest.mark.parametrize(
        ("method", "status", "expected"),
        [
            ("email", "SENT", 21),
            ("legalService", "RECEIPTED", 95),
            ("email", "PENDING", 0),
            ("email", "REFUSED", 35),
            ("portal", "DELIVERED", 51),
            ("inPerson", "OPENED", 68),
            ("sms", "ACKNOWLEDGED", 51),
            ("physical", "FAILED", 0),
            ("api", "BOUNCED", 0),
        ],
    )
    def test_score_table(self, method, status, expected):
        """Method base times status multiplier."""
        assert delivery_score(method, status) == expected

    def test_accepts_enums(self):
        """Enum members score like their values."""
        assert delivery_score(DeliveryMethod.EMAIL, DeliveryStatus.SENT) == 21

    def test_unknown_method_uses_base_50(self):
        """Unknown methods use base 50."""
        assert delivery_score("carrier-pigeon", "RECEIPTED") == 50

    def test_unknown_status_scores_zero(self):
        """Unknown statuses score zero."""
        assert delivery_score("email", "TELEPORTED") == 0

    def test_none_inputs(self):
        """None inputs score zero."""
        assert delivery_score(None, None) == 0


class TestReceiptScore:
    """Receipt scores by signature method."""

    def test_digital(self):
        """Digital receipt scores."""
        legal = receipt_score(ReceiptMethod.DIGITAL)
        assert (legal.score, legal.technical, legal.arguable) == (85, 90, 80)

    def test_witness(self):
        """Witness receipt scores."""
        legal = receipt_score("witness")
        assert (legal.score, legal.technical, legal.arguable) == (90, 80, 95)

    def test_notarized(self):
        """Notarized receipt scores."""
        legal = receipt_score("notarized")
        assert (legal.score, legal.technical, legal.arguable) == (95, 90, 95)

    def test_unknown_method_defaults(self):
        """Unknown receipt methods use the default scores."""
        legal = receipt_score("smoke-signal")
        assert (legal.score, legal.technical, legal.arguable) == (70, 60, 70)

    def test_legal_metadata(self):
        """Legal scores carry standard and pillar."""
        legal = receipt_score("digital").to_dict()
        assert legal["admissible"] is True
        assert legal["standard"] == PROOF_STANDARD
        assert legal["pillar"] == DELIVERY_PILLAR

    def test_physical_receipt_fixed(self):
        """Physical receipts have fixed scores."""
        legal = physical_receipt_score()
        assert (legal.score, legal.technical, legal.arguable) == (75, 70, 80)


class TestAffidavitScore:
    """Three-axis affidavit scores with capped bonuses."""

    def test_personal_base(self):
        """Personal service base scores."""
        legal = affidavit_score(ServiceType.PERSONAL)
        assert (legal.score, legal.technical, legal.arguable) == (95, 90, 95)

    def test_publication_base(self):
        """Publication base scores."""
        legal = affidavit_score("publication")
        assert (legal.score, legal.technical, legal.arguable) == (65, 60, 70)

    def test_substituted_with_all_bonuses(self):
        """All bonuses add to substituted service."""
        legal = affidavit_score(
            "substituted", notarized=True, witness_present=True, geo_verified=True
        )
        assert legal.score == 88
        assert legal.technical == 80
        assert legal.arguable == 95

    def test_bonuses_capped_at_100(self):
        """Bonuses never push a score past its cap."""
        legal = affidavit_score(
            "personal", notarized=True, witness_present=True, geo_verified=True
        )
        assert legal.score == 100
        assert legal.technical == 95
        assert legal.arguable == 100

    def test_unknown_type_defaults(self):
        """Unknown service types use the default scores."""
        legal = affidavit_score("telekinesis")
        assert (legal.score, legal.technical, legal.arguable) == (70, 65, 70)
