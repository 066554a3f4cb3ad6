"""Scoring weights and grade thresholds for housing lead qualification."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple

from .models import InteractionType


class ScoreCategory(Enum):
    """Categories that make up a lead's score breakdown."""

    DEMOGRAPHIC = "demographic"
    URGENCY = "urgency"
    ENGAGEMENT = "engagement"
    QUALIFICATION = "qualification"
    BEHAVIORAL = "behavioral"
    PENALTIES = "penalties"


class Grade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


class Priority(str, Enum):
    URGENT = "URGENT"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    MINIMAL = "MINIMAL"


@dataclass(frozen=True)
class Threshold:
    """A row of the grade table: scores at or above ``minimum`` get this grade."""

    minimum: int
    grade: Grade
    priority: Priority


# Evaluated high to low, first match wins
THRESHOLDS: List[Threshold] = [
    Threshold(80, Grade.A, Priority.URGENT),
    Threshold(60, Grade.B, Priority.HIGH),
    Threshold(40, Grade.C, Priority.MEDIUM),
    Threshold(20, Grade.D, Priority.LOW),
    Threshold(0, Grade.F, Priority.MINIMAL),
]

MIN_SCORE = 0
MAX_SCORE = 100

# === Demographics ===
VETERAN = 25
IN_RECOVERY = 20
REENTRY = 18
HAS_FAMILY = 15
EMPLOYED = 10

# === Urgency ===
CURRENTLY_HOMELESS = 30
EVICTION_RISK = 25

# (max days until move-in, bonus), tightest first
MOVE_IN_BUCKETS: List[Tuple[int, int]] = [
    (30, 20),
    (60, 15),
    (90, 10),
]

# === Engagement ===
ENGAGEMENT_WEIGHTS: Dict[InteractionType, int] = {
    InteractionType.EMAIL_OPENED: 5,
    InteractionType.EMAIL_CLICKED: 10,
    InteractionType.PHONE_CONTACT: 15,
    InteractionType.PHONE_CALL: 15,
    InteractionType.FORM_COMPLETED: 20,
    InteractionType.APPOINTMENT_SCHEDULED: 25,
    InteractionType.DOCUMENT_SUBMITTED: 20,
}
ENGAGEMENT_CAP = 50

# === Qualification ===
INCOME_VERIFIED = 15
REFERENCES_PROVIDED = 10
BACKGROUND_CHECK_CONSENT = 10

# === Behavioral: (max hours from outreach to response, bonus) ===
RESPONSE_TIME_TIERS: List[Tuple[int, int]] = [
    (1, 15),
    (6, 10),
    (24, 5),
    (72, 2),
]

# === Penalties ===
# (min days since last interaction, penalty), most severe first
INACTIVITY_PENALTIES: List[Tuple[int, int]] = [
    (14, -20),
    (7, -10),
]
BOUNCED_EMAIL = -15
INVALID_PHONE = -10
OPTED_OUT = -100


def threshold_for(score: int) -> Threshold:
    """Look up the grade table row for a clamped score."""
    for row in THRESHOLDS:
        if score >= row.minimum:
            return row
    return THRESHOLDS[-1]
