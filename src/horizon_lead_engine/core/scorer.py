"""Lead scoring engine - qualifies and prioritizes housing leads."""

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from . import weights
from .models import (
    Interaction,
    InteractionType,
    Lead,
    OUTREACH_TYPES,
    PHONE_CONTACT_TYPES,
    RESPONSE_TYPES,
    coerce_interactions,
    parse_timestamp,
)
from .weights import Grade, Priority, ScoreCategory

LeadLike = Union[Lead, Mapping[str, Any]]
InteractionLike = Union[Interaction, Mapping[str, Any]]

SECONDS_PER_DAY = 24 * 60 * 60
SECONDS_PER_HOUR = 60 * 60


class ActionType(str, Enum):
    """Next step the housing team should take with a lead."""

    CALL_NOW = "CALL_NOW"
    SCHEDULE_TOUR = "SCHEDULE_TOUR"
    FOLLOW_UP = "FOLLOW_UP"
    BOOK_CONSULTATION = "BOOK_CONSULTATION"
    CONTINUE_NURTURE = "CONTINUE_NURTURE"


@dataclass
class NextAction:
    """A next-action directive for a scored lead."""

    action: ActionType
    description: str
    priority: Priority
    script: Optional[str] = None
    template: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "action": self.action.value,
            "description": self.description,
            "priority": self.priority.value,
        }
        if self.script:
            data["script"] = self.script
        if self.template:
            data["template"] = self.template
        return data


RECOMMENDATIONS_BY_GRADE: Dict[Grade, List[str]] = {
    Grade.A: [
        "HOT LEAD: Call immediately - high conversion probability",
        "Assign to senior housing specialist",
        "Fast-track application process",
    ],
    Grade.B: [
        "Schedule phone call within 24 hours",
        "Send personalized video message",
        "Offer virtual tour",
    ],
    Grade.C: [
        "Continue email nurturing sequence",
        "Send relevant success stories",
        "Invite to upcoming webinar or event",
    ],
}
LONG_TERM_RECOMMENDATIONS = [
    "Add to long-term nurture campaign",
    "Send monthly newsletters",
    "Re-engage in 30 days",
]
VETERAN_RECOMMENDATION = "Connect with Veterans Liaison"
RECOVERY_RECOMMENDATION = "Assign recovery-specialized counselor"
HOMELESS_RECOMMENDATION = "Expedite housing placement"

CALL_NOW_SCRIPT = "hot_lead_phone_script_1"
STALE_CONTACT_DAYS = 3
MAX_FOLLOW_UP_DAY = 30


@dataclass
class ScoreResult:
    """Result of scoring a lead against its interaction history."""

    score: int
    raw_score: int = 0
    breakdown: Dict[ScoreCategory, int] = field(default_factory=dict)
    grade: Grade = Grade.F
    priority: Priority = Priority.MINIMAL
    recommendations: List[str] = field(default_factory=list)
    next_action: Optional[NextAction] = None

    def __post_init__(self):
        """Derive grade and priority from the clamped score."""
        row = weights.threshold_for(self.score)
        self.grade = row.grade
        self.priority = row.priority

    @property
    def is_urgent(self) -> bool:
        return self.priority == Priority.URGENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "raw_score": self.raw_score,
            "grade": self.grade.value,
            "priority": self.priority.value,
            "breakdown": {cat.value: value for cat, value in self.breakdown.items()},
            "recommendations": list(self.recommendations),
            "next_action": self.next_action.to_dict() if self.next_action else None,
        }


@dataclass
class ScoredLead:
    """A lead paired with its score, as returned by bulk scoring."""

    lead: Lead
    result: ScoreResult

    @property
    def score(self) -> int:
        return self.result.score

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.lead.id,
            "name": self.lead.name,
            "source": self.lead.source,
        }
        data.update(self.result.to_dict())
        return data


def _days_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


class LeadScorer:
    """Scores leads on demographics, urgency, engagement and behaviour.

    The scorer holds no state between calls, so one instance can be shared
    by any number of callers.
    """

    def score(
        self,
        lead: LeadLike,
        interactions: Optional[Iterable[InteractionLike]] = None,
        now: Optional[datetime] = None,
    ) -> ScoreResult:
        """Score a single lead. Never raises for partially populated records."""
        lead = Lead.coerce(lead)
        history = coerce_interactions(interactions)
        now = parse_timestamp(now) or datetime.now()

        breakdown = {
            ScoreCategory.DEMOGRAPHIC: self.demographic_score(lead),
            ScoreCategory.URGENCY: self.urgency_score(lead, now),
            ScoreCategory.ENGAGEMENT: self.engagement_score(history),
            ScoreCategory.QUALIFICATION: self.qualification_score(lead),
            ScoreCategory.BEHAVIORAL: self.behavioral_score(history),
            ScoreCategory.PENALTIES: self.penalties(lead, history, now),
        }

        raw_score = sum(breakdown.values())
        score = max(weights.MIN_SCORE, min(weights.MAX_SCORE, raw_score))

        result = ScoreResult(score=score, raw_score=raw_score, breakdown=breakdown)
        result.recommendations = self.recommendations(result.grade, lead)
        result.next_action = self.next_action(result.priority, lead, history, now)
        return result

    def score_leads(
        self,
        leads: Sequence[LeadLike],
        interaction_map: Optional[Mapping[str, Iterable[InteractionLike]]] = None,
        now: Optional[datetime] = None,
    ) -> List[ScoredLead]:
        """Score every lead and rank by score, highest first.

        Leads with equal scores keep their input order.
        """
        interaction_map = interaction_map or {}
        now = parse_timestamp(now) or datetime.now()

        scored = []
        for item in leads:
            lead = Lead.coerce(item)
            history = interaction_map.get(lead.id, []) if lead.id is not None else []
            scored.append(ScoredLead(lead=lead, result=self.score(lead, history, now)))

        return sorted(scored, key=lambda s: s.score, reverse=True)

    # --- sub-scores ---

    def demographic_score(self, lead: Lead) -> int:
        score = 0
        if lead.is_veteran:
            score += weights.VETERAN
        if lead.in_recovery:
            score += weights.IN_RECOVERY
        if lead.is_reentry:
            score += weights.REENTRY
        if lead.has_household:
            score += weights.HAS_FAMILY
        if lead.is_employed:
            score += weights.EMPLOYED
        return score

    def urgency_score(self, lead: Lead, now: datetime) -> int:
        score = 0
        if lead.is_homeless:
            score += weights.CURRENTLY_HOMELESS
        if lead.at_eviction_risk:
            score += weights.EVICTION_RISK

        if lead.move_in_date:
            days_until = self.days_until(lead.move_in_date, now)
            for max_days, bonus in weights.MOVE_IN_BUCKETS:
                if days_until <= max_days:
                    score += bonus
                    break
        return score

    def engagement_score(self, interactions: List[Interaction]) -> int:
        score = 0
        for interaction in interactions:
            score += weights.ENGAGEMENT_WEIGHTS.get(interaction.kind, 0)
        return min(score, weights.ENGAGEMENT_CAP)

    def qualification_score(self, lead: Lead) -> int:
        score = 0
        if lead.income_verified:
            score += weights.INCOME_VERIFIED
        if lead.references_provided:
            score += weights.REFERENCES_PROVIDED
        if lead.background_check_consent:
            score += weights.BACKGROUND_CHECK_CONSENT
        return score

    def behavioral_score(self, interactions: List[Interaction]) -> int:
        """Reward fast responses to the first outreach."""
        timeline = self._chronological(interactions)

        outreach = next((i for i in timeline if i.kind in OUTREACH_TYPES), None)
        if outreach is None or outreach.created_at is None:
            return 0

        response = next(
            (
                i for i in timeline
                if i.kind in RESPONSE_TYPES
                and i.created_at is not None
                and i.created_at >= outreach.created_at
            ),
            None,
        )
        if response is None:
            return 0

        hours = math.floor((response.created_at - outreach.created_at).total_seconds() / SECONDS_PER_HOUR)
        for max_hours, bonus in weights.RESPONSE_TIME_TIERS:
            if hours <= max_hours:
                return bonus
        return 0

    def penalties(self, lead: Lead, interactions: List[Interaction], now: datetime) -> int:
        penalty = 0

        days_since = self.days_since_last_interaction(interactions, now)
        if days_since is not None:
            for min_days, amount in weights.INACTIVITY_PENALTIES:
                if days_since >= min_days:
                    penalty += amount
                    break

        kinds = {i.kind for i in interactions}
        if lead.email_bounced or InteractionType.EMAIL_BOUNCED in kinds:
            penalty += weights.BOUNCED_EMAIL
        if lead.phone_invalid or InteractionType.PHONE_INVALID in kinds:
            penalty += weights.INVALID_PHONE
        if lead.opted_out:
            penalty += weights.OPTED_OUT

        return penalty

    # --- recommendations and next action ---

    def recommendations(self, grade: Grade, lead: Lead) -> List[str]:
        recommendations = list(RECOMMENDATIONS_BY_GRADE.get(grade, LONG_TERM_RECOMMENDATIONS))

        if lead.is_veteran:
            recommendations.append(VETERAN_RECOMMENDATION)
        if lead.in_recovery:
            recommendations.append(RECOVERY_RECOMMENDATION)
        if lead.is_homeless:
            recommendations.append(HOMELESS_RECOMMENDATION)

        return recommendations

    def next_action(
        self,
        priority: Priority,
        lead: Lead,
        interactions: List[Interaction],
        now: datetime,
    ) -> NextAction:
        kinds = {i.kind for i in interactions}

        if priority == Priority.URGENT:
            phone_contacted = lead.phone_contacted or bool(kinds & PHONE_CONTACT_TYPES)
            if not phone_contacted:
                return NextAction(
                    action=ActionType.CALL_NOW,
                    description="Call lead immediately",
                    priority=Priority.URGENT,
                    script=CALL_NOW_SCRIPT,
                )
            return NextAction(
                action=ActionType.SCHEDULE_TOUR,
                description="Schedule property tour",
                priority=Priority.HIGH,
            )

        days_since = self.days_since_last_interaction(interactions, now)
        if days_since is not None and days_since > STALE_CONTACT_DAYS:
            return NextAction(
                action=ActionType.FOLLOW_UP,
                description="Send follow-up email",
                priority=Priority.MEDIUM,
                template=f"follow_up_day_{min(days_since, MAX_FOLLOW_UP_DAY)}",
            )

        appointment_set = lead.appointment_scheduled or InteractionType.APPOINTMENT_SCHEDULED in kinds
        if not appointment_set:
            return NextAction(
                action=ActionType.BOOK_CONSULTATION,
                description="Send calendar link for consultation",
                priority=Priority.MEDIUM,
            )

        return NextAction(
            action=ActionType.CONTINUE_NURTURE,
            description="Continue automated nurture sequence",
            priority=Priority.LOW,
        )

    # --- time helpers ---

    @staticmethod
    def days_until(target: date, now: datetime) -> int:
        """Whole days until ``target``, rounding partial days up."""
        start = datetime(target.year, target.month, target.day)
        return math.ceil(_days_between(now, start))

    @staticmethod
    def days_since_last_interaction(interactions: List[Interaction], now: datetime) -> Optional[int]:
        """Whole days since the most recent timestamped interaction, or None."""
        timestamps = [i.created_at for i in interactions if i.created_at is not None]
        if not timestamps:
            return None
        return math.floor(_days_between(max(timestamps), now))

    @staticmethod
    def _chronological(interactions: List[Interaction]) -> List[Interaction]:
        # Untimed interactions sort last; sorted() keeps input order for ties
        return sorted(
            interactions,
            key=lambda i: (i.created_at is None, i.created_at or datetime.min),
        )

    def explain_score(self, result: ScoreResult) -> str:
        """Get a detailed explanation of a scoring result."""
        lines = [
            f"Score: {result.score} (grade {result.grade.value}, {result.priority.value})",
        ]
        if result.raw_score != result.score:
            lines.append(f"Raw score before clamping: {result.raw_score}")

        lines.extend(["", "Category Breakdown:"])
        for cat, value in result.breakdown.items():
            sign = "+" if value > 0 else ""
            lines.append(f"  {cat.value}: {sign}{value}")

        if result.recommendations:
            lines.extend(["", "Recommendations:"])
            lines.extend(f"  - {rec}" for rec in result.recommendations)

        if result.next_action:
            action = result.next_action
            lines.extend(["", f"Next Action: {action.action.value} - {action.description}"])

        return "\n".join(lines)


def quick_score(lead: LeadLike, interactions: Optional[Iterable[InteractionLike]] = None) -> int:
    """Quick helper to score a lead and return just the score."""
    return LeadScorer().score(lead, interactions).score
