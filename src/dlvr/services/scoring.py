"""Evidentiary scoring model.

Converts a delivery method and status, a receipt method, or a service type
plus affidavit details into 0-100 scores estimating how defensible the record
is as legal proof. The tables below are policy: changing a value changes the
legal weight reported for every record that uses it.

Three axes are reported for receipts and affidavits:
- score: admissibility
- technical: strength of the technical evidence
- arguable: persuasiveness before a tribunal
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

DELIVERY_PILLAR = "delivery"
PROOF_STANDARD = "DLVRProof"

METHOD_BASE_SCORES: dict[str, int] = {
    "legalService": 95,
    "inPerson": 90,
    "portal": 85,
    "physical": 75,
    "email": 70,
    "api": 65,
    "sms": 60,
}
DEFAULT_METHOD_BASE = 50

# REFUSED keeps half credit as an attempted delivery.
STATUS_MULTIPLIERS: dict[str, float] = {
    "PENDING": 0,
    "SENT": 0.3,
    "DELIVERED": 0.6,
    "OPENED": 0.75,
    "ACKNOWLEDGED": 0.85,
    "RECEIPTED": 1.0,
    "FAILED": 0,
    "BOUNCED": 0,
    "REFUSED": 0.5,
}

RECEIPT_ADMISSIBILITY: dict[str, int] = {
    "digital": 85,
    "witness": 90,
    "physical": 75,
    "notarized": 95,
    "legalService": 95,
}
RECEIPT_TECHNICAL: dict[str, int] = {
    "digital": 90,
    "witness": 80,
    "physical": 65,
    "notarized": 90,
    "legalService": 85,
}
RECEIPT_ARGUABLE: dict[str, int] = {
    "digital": 80,
    "witness": 95,
    "physical": 80,
    "notarized": 95,
    "legalService": 95,
}
RECEIPT_DEFAULTS = (70, 60, 70)

PHYSICAL_RECEIPT_SCORES = (75, 70, 80)

AFFIDAVIT_ADMISSIBILITY: dict[str, int] = {
    "personal": 95,
    "substituted": 80,
    "constructive": 70,
    "publication": 65,
}
AFFIDAVIT_TECHNICAL: dict[str, int] = {
    "personal": 90,
    "substituted": 75,
    "constructive": 65,
    "publication": 60,
}
AFFIDAVIT_ARGUABLE: dict[str, int] = {
    "personal": 95,
    "substituted": 85,
    "constructive": 75,
    "publication": 70,
}
AFFIDAVIT_DEFAULTS = (70, 65, 70)

MAX_SCORE = 100


@dataclass(frozen=True, slots=True)
class LegalScore:
    """Three-axis evidentiary score attached to receipts and affidavits."""

    score: int
    technical: int
    arguable: int
    admissible: bool = True
    standard: str = PROOF_STANDARD
    pillar: str = DELIVERY_PILLAR

    def to_dict(self) -> dict[str, Any]:
        return {
            "admissible": self.admissible,
            "standard": self.standard,
            "pillar": self.pillar,
            "score": self.score,
            "technical": self.technical,
            "arguable": self.arguable,
        }


def _key(value: str | Enum | None) -> str | None:
    if isinstance(value, Enum):
        return value.value
    return value


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative scores (Python's round() is banker's)."""
    return math.floor(value + 0.5)


def delivery_score(method: str | Enum | None, status: str | Enum | None) -> int:
    """Score a delivery by channel and lifecycle status.

    Unknown methods score from a base of 50; unknown statuses multiply by 0.
    """
    base = METHOD_BASE_SCORES.get(_key(method), DEFAULT_METHOD_BASE)
    multiplier = STATUS_MULTIPLIERS.get(_key(status), 0)
    return round_half_up(base * multiplier)


def receipt_score(method: str | Enum | None) -> LegalScore:
    """Score a signed receipt by how the signature was obtained."""
    key = _key(method)
    admissibility, technical, arguable = RECEIPT_DEFAULTS
    return LegalScore(
        score=RECEIPT_ADMISSIBILITY.get(key, admissibility),
        technical=RECEIPT_TECHNICAL.get(key, technical),
        arguable=RECEIPT_ARGUABLE.get(key, arguable),
    )


def physical_receipt_score() -> LegalScore:
    score, technical, arguable = PHYSICAL_RECEIPT_SCORES
    return LegalScore(score=score, technical=technical, arguable=arguable)


def affidavit_score(
    service_type: str | Enum | None,
    *,
    notarized: bool = False,
    witness_present: bool = False,
    geo_verified: bool = False,
) -> LegalScore:
    """Score an affidavit of service.

    Bonuses, each capped at 100:
        admissibility: +5 notarized, +3 witness present
        technical: +5 geolocation verified
        arguable: +5 notarized, +5 witness present
    """
    key = _key(service_type)
    default_score, default_technical, default_arguable = AFFIDAVIT_DEFAULTS

    score = AFFIDAVIT_ADMISSIBILITY.get(key, default_score)
    if notarized:
        score = min(MAX_SCORE, score + 5)
    if witness_present:
        score = min(MAX_SCORE, score + 3)

    technical = AFFIDAVIT_TECHNICAL.get(key, default_technical)
    if geo_verified:
        technical = min(MAX_SCORE, technical + 5)

    arguable = AFFIDAVIT_ARGUABLE.get(key, default_arguable)
    if notarized:
        arguable = min(MAX_SCORE, arguable + 5)
    if witness_present:
        arguable = min(MAX_SCORE, arguable + 5)

    return LegalScore(score=score, technical=technical, arguable=arguable)
