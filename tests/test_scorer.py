"""Tests for the scoring engine."""

from datetime import date, datetime, timedelta, timezone

import pytest

from horizon_lead_engine.core.models import Interaction, Lead
from horizon_lead_engine.core.scorer import ActionType, LeadScorer, ScoreResult, quick_score
from horizon_lead_engine.core.weights import ENGAGEMENT_WEIGHTS, Grade, Priority, ScoreCategory

NOW = datetime(2026, 3, 10, 12, 0)

MAXIMAL_LEAD = {
    "id": "max",
    "is_veteran": True,
    "in_recovery": True,
    "is_reentry": True,
    "household_size": 3,
    "employment_status": "employed",
    "currently_homeless": True,
    "eviction_risk": True,
    "move_in_date": (NOW + timedelta(days=10)).date(),
    "income_verified": True,
    "references_provided": True,
    "background_check_consent": True,
}


def interaction(kind, hours_ago=0.0, **kwargs):
    return {"type": kind, "created_at": NOW - timedelta(hours=hours_ago), **kwargs}


class TestLeadScorer:
    """Tests for LeadScorer class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.scorer = LeadScorer()

    def test_score_empty_lead(self):
        """An empty lead scores zero and is graded F."""
        result = self.scorer.score({}, [], now=NOW)
        assert result.score == 0
        assert result.grade == Grade.F
        assert result.priority == Priority.MINIMAL
        assert all(v == 0 for v in result.breakdown.values())

    def test_veteran_homeless_scenario(self):
        """Veteran, currently homeless, nothing else: 55, C, book a consultation."""
        result = self.scorer.score({"is_veteran": True, "currently_homeless": True}, [], now=NOW)

        assert result.breakdown == {
            ScoreCategory.DEMOGRAPHIC: 25,
            ScoreCategory.URGENCY: 30,
            ScoreCategory.ENGAGEMENT: 0,
            ScoreCategory.QUALIFICATION: 0,
            ScoreCategory.BEHAVIORAL: 0,
            ScoreCategory.PENALTIES: 0,
        }
        assert result.score == 55
        assert result.grade == Grade.C
        assert result.priority == Priority.MEDIUM
        assert result.next_action.action == ActionType.BOOK_CONSULTATION

    def test_demographic_points(self):
        lead = Lead(is_veteran=True, in_recovery=True, is_reentry=True, has_family=True, employment_status="employed")
        assert self.scorer.demographic_score(lead) == 25 + 20 + 18 + 15 + 10

    def test_household_size_counts_as_family(self):
        assert self.scorer.demographic_score(Lead(household_size=2)) == 15
        assert self.scorer.demographic_score(Lead(household_size=1)) == 0

    def test_seeking_employment_gets_nothing(self):
        assert self.scorer.demographic_score(Lead(employment_status="seeking")) == 0

    @pytest.mark.parametrize("days,expected", [
        (0, 20),
        (30, 20),
        (31, 15),
        (60, 15),
        (61, 10),
        (90, 10),
        (91, 0),
        (-5, 20),
    ])
    def test_move_in_buckets(self, days, expected):
        """Move-in buckets are mutually exclusive, tightest first."""
        lead = Lead(move_in_date=(NOW + timedelta(days=days)).date())
        assert self.scorer.urgency_score(lead, NOW) == expected

    def test_urgency_stacks_with_move_in(self):
        lead = Lead(currently_homeless=True, eviction_risk=True, move_in_date=date(2026, 3, 20))
        assert self.scorer.urgency_score(lead, NOW) == 30 + 25 + 20

    def test_housing_status_aliases(self):
        assert self.scorer.urgency_score(Lead.from_dict({"housing_status": "homeless"}), NOW) == 30
        assert self.scorer.urgency_score(Lead.from_dict({"housing_status": "at_risk"}), NOW) == 25

    def test_engagement_weights(self):
        history = [
            Interaction.from_dict(interaction("email_opened")),
            Interaction.from_dict(interaction("email_clicked")),
        ]
        assert self.scorer.engagement_score(history) == 15

    def test_engagement_capped_at_50(self):
        """Ten appointments still cap at 50, not 250."""
        history = [Interaction.from_dict(interaction("appointment_scheduled")) for _ in range(10)]
        assert self.scorer.engagement_score(history) == 50

        result = self.scorer.score({}, history, now=NOW)
        assert result.breakdown[ScoreCategory.ENGAGEMENT] == 50

    def test_unknown_interaction_type_ignored(self):
        history = [Interaction.from_dict(interaction("carrier_pigeon"))]
        assert self.scorer.engagement_score(history) == 0

    def test_qualification_points(self):
        lead = Lead.from_dict({"income_qualified": True, "references_provided": True, "background_check_consent": True})
        assert self.scorer.qualification_score(lead) == 35

    @pytest.mark.parametrize("hours,expected", [
        (0.5, 15),
        (1, 15),
        (1.9, 15),
        (2, 10),
        (6, 10),
        (7, 5),
        (24, 5),
        (25, 2),
        (72, 2),
        (73, 0),
    ])
    def test_behavioral_response_tiers(self, hours, expected):
        """Elapsed hours are truncated to whole hours before tiering."""
        sent = datetime(2026, 3, 1, 8, 0)
        history = [
            Interaction(type="email_sent", created_at=sent),
            Interaction(type="email_opened", created_at=sent + timedelta(hours=hours)),
        ]
        assert self.scorer.behavioral_score(history) == expected

    def test_behavioral_requires_outreach(self):
        history = [Interaction.from_dict(interaction("email_opened"))]
        assert self.scorer.behavioral_score(history) == 0

    def test_behavioral_ignores_response_before_outreach(self):
        sent = datetime(2026, 3, 1, 8, 0)
        history = [
            Interaction(type="form_completed", created_at=sent - timedelta(hours=5)),
            Interaction(type="sms_sent", created_at=sent),
            Interaction(type="email_clicked", created_at=sent + timedelta(hours=3)),
        ]
        assert self.scorer.behavioral_score(history) == 10

    def test_behavioral_uses_chronological_order(self):
        sent = datetime(2026, 3, 1, 8, 0)
        history = [
            Interaction(type="email_opened", created_at=sent + timedelta(hours=30)),
            Interaction(type="email_sent", created_at=sent),
            Interaction(type="email_opened", created_at=sent + timedelta(minutes=20)),
        ]
        assert self.scorer.behavioral_score(history) == 15

    @pytest.mark.parametrize("days,expected", [
        (0, 0),
        (6, 0),
        (7, -10),
        (13, -10),
        (14, -20),
        (40, -20),
    ])
    def test_inactivity_penalties(self, days, expected):
        history = [Interaction.from_dict(interaction("email_sent", hours_ago=days * 24))]
        assert self.scorer.penalties(Lead(), history, NOW) == expected

    def test_channel_penalties(self):
        assert self.scorer.penalties(Lead(email_bounced=True), [], NOW) == -15
        assert self.scorer.penalties(Lead(phone_invalid=True), [], NOW) == -10
        assert self.scorer.penalties(Lead(opted_out=True), [], NOW) == -100

    def test_bounce_from_interaction_applies_once(self):
        history = [Interaction.from_dict(interaction("email_bounced")) for _ in range(3)]
        assert self.scorer.penalties(Lead(email_bounced=True), history, NOW) == -15

    def test_unsubscribed_alias(self):
        assert self.scorer.penalties(Lead.from_dict({"unsubscribed": "yes"}), [], NOW) == -100

    def test_penalties_never_positive(self):
        lead = Lead(email_bounced=True, phone_invalid=True, opted_out=True)
        history = [Interaction.from_dict(interaction("phone_invalid", hours_ago=24 * 20))]
        assert self.scorer.penalties(lead, history, NOW) <= 0

    def test_opted_out_clamps_to_zero(self):
        """An opted-out lead with every positive flag still clamps to 0."""
        lead = dict(MAXIMAL_LEAD, opted_out=True)
        result = self.scorer.score(lead, [], now=NOW)

        positives = 25 + 20 + 18 + 15 + 10 + 30 + 25 + 20 + 15 + 10 + 10
        assert result.raw_score == positives - 100
        assert result.raw_score > 0

        heavy = dict(lead, email_bounced=True, phone_invalid=True, is_veteran=False, in_recovery=False,
                     is_reentry=False, household_size=0, employment_status="")
        clamped = self.scorer.score(heavy, [], now=NOW)
        assert clamped.raw_score < 0
        assert clamped.score == 0
        assert clamped.grade == Grade.F
        assert clamped.priority == Priority.MINIMAL

    def test_score_clamped_to_100(self):
        result = self.scorer.score(MAXIMAL_LEAD, [], now=NOW)
        assert result.raw_score > 100
        assert result.score == 100
        assert result.grade == Grade.A

    @pytest.mark.parametrize("flag", [
        "is_veteran", "in_recovery", "is_reentry", "has_family", "currently_homeless",
        "eviction_risk", "income_verified", "references_provided", "background_check_consent",
    ])
    def test_adding_positive_flag_never_decreases_raw_score(self, flag):
        base = {"email_bounced": True, "move_in_date": "2026-05-01"}
        history = [interaction("email_sent", hours_ago=200), interaction("email_opened", hours_ago=190)]

        before = self.scorer.score(base, history, now=NOW).raw_score
        after = self.scorer.score(dict(base, **{flag: True}), history, now=NOW).raw_score
        assert after > before

    @pytest.mark.parametrize("field,value", [
        ("move_in_date", "2026-03-20"),
        ("move_in_date", "2026-05-01"),
        ("household_size", 4),
        ("employment_status", "employed"),
        ("housing_status", "homeless"),
        ("housing_status", "at_risk"),
        ("income_qualified", "yes"),
    ])
    def test_adding_profile_field_never_decreases_raw_score(self, field, value):
        base = {"phone_invalid": True}
        history = [interaction("sms_sent", hours_ago=400)]

        before = self.scorer.score(base, history, now=NOW).raw_score
        after = self.scorer.score(dict(base, **{field: value}), history, now=NOW).raw_score
        assert after >= before

    @pytest.mark.parametrize("kind", sorted(t.value for t in ENGAGEMENT_WEIGHTS))
    def test_adding_engagement_interaction_never_decreases_raw_score(self, kind):
        base = {"is_veteran": True}
        history = [interaction("email_sent", hours_ago=200), interaction("email_opened", hours_ago=190)]

        before = self.scorer.score(base, history, now=NOW).raw_score
        after = self.scorer.score(base, history + [interaction(kind, hours_ago=1)], now=NOW).raw_score
        assert after > before

    def test_timezone_aware_timestamps(self):
        """Aware interaction times and an aware clock are scored like local times."""
        sent = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)
        history = [
            Interaction(type="email_sent", created_at=sent),
            {"type": "email_opened", "created_at": (sent + timedelta(minutes=30)).isoformat()},
        ]

        result = self.scorer.score({"is_veteran": True}, history, now=sent + timedelta(hours=2))
        assert result.breakdown[ScoreCategory.BEHAVIORAL] == 15
        assert result.breakdown[ScoreCategory.PENALTIES] == 0
        assert result.next_action.action == ActionType.BOOK_CONSULTATION

        mixed = self.scorer.score({"is_veteran": True}, history, now=NOW)
        assert mixed.breakdown[ScoreCategory.BEHAVIORAL] == 15

        ranked = self.scorer.score_leads([{"id": "a"}], {"a": history}, now=sent + timedelta(days=8))
        assert ranked[0].result.breakdown[ScoreCategory.PENALTIES] == -10

    def test_missing_and_malformed_fields_tolerated(self):
        lead = {"household_size": "many", "move_in_date": "next spring", "is_veteran": None}
        history = [{"type": None, "created_at": "yesterday-ish"}, "not a record", {"created_at": 12}]
        result = self.scorer.score(lead, history, now=NOW)
        assert 0 <= result.score <= 100

    def test_score_always_bounded(self):
        leads = [{}, MAXIMAL_LEAD, dict(MAXIMAL_LEAD, opted_out=True), {"opted_out": True}]
        histories = [[], [interaction("appointment_scheduled")] * 5, [interaction("phone_invalid", 500)]]
        for lead in leads:
            for history in histories:
                result = self.scorer.score(lead, history, now=NOW)
                assert 0 <= result.score <= 100


class TestRecommendations:
    """Tests for recommendation lists."""

    def setup_method(self):
        self.scorer = LeadScorer()

    def test_generic_before_profile_items(self):
        result = self.scorer.score(
            {"is_veteran": True, "in_recovery": True, "currently_homeless": True}, [], now=NOW
        )
        assert result.grade == Grade.B
        assert result.recommendations == [
            "Schedule phone call within 24 hours",
            "Send personalized video message",
            "Offer virtual tour",
            "Connect with Veterans Liaison",
            "Assign recovery-specialized counselor",
            "Expedite housing placement",
        ]

    def test_low_grades_share_long_term_bucket(self):
        d_grade = self.scorer.recommendations(Grade.D, Lead())
        f_grade = self.scorer.recommendations(Grade.F, Lead())
        assert d_grade == f_grade
        assert d_grade[0] == "Add to long-term nurture campaign"

    def test_hot_lead_recommendations(self):
        recs = self.scorer.recommendations(Grade.A, Lead())
        assert recs[0].startswith("HOT LEAD")
        assert len(recs) == 3

    def test_housing_status_homeless_expedites_placement(self):
        recs = self.scorer.recommendations(Grade.C, Lead.from_dict({"housing_status": "homeless"}))
        assert recs[-1] == "Expedite housing placement"


class TestNextAction:
    """Tests for the next-action decision procedure."""

    def setup_method(self):
        self.scorer = LeadScorer()

    def test_urgent_without_phone_contact_calls_now(self):
        result = self.scorer.score(MAXIMAL_LEAD, [], now=NOW)
        assert result.next_action.action == ActionType.CALL_NOW
        assert result.next_action.priority == Priority.URGENT
        assert result.next_action.script

    def test_urgent_with_phone_contact_schedules_tour(self):
        result = self.scorer.score(MAXIMAL_LEAD, [interaction("phone_call", hours_ago=2)], now=NOW)
        assert result.next_action.action == ActionType.SCHEDULE_TOUR

    def test_urgent_with_phone_contacted_flag(self):
        result = self.scorer.score(dict(MAXIMAL_LEAD, phone_contacted=True), [], now=NOW)
        assert result.next_action.action == ActionType.SCHEDULE_TOUR

    def test_stale_contact_follows_up(self):
        result = self.scorer.score({}, [interaction("email_sent", hours_ago=24 * 5)], now=NOW)
        assert result.next_action.action == ActionType.FOLLOW_UP
        assert result.next_action.template == "follow_up_day_5"

    def test_follow_up_template_capped_at_30(self):
        result = self.scorer.score({}, [interaction("email_sent", hours_ago=24 * 45)], now=NOW)
        assert result.next_action.template == "follow_up_day_30"

    def test_three_days_is_not_stale(self):
        result = self.scorer.score({}, [interaction("email_sent", hours_ago=24 * 3)], now=NOW)
        assert result.next_action.action == ActionType.BOOK_CONSULTATION

    def test_appointment_continues_nurture(self):
        result = self.scorer.score({}, [interaction("appointment_scheduled", hours_ago=1)], now=NOW)
        assert result.next_action.action == ActionType.CONTINUE_NURTURE
        assert result.next_action.priority == Priority.LOW


class TestBulkScoring:
    """Tests for score_leads ranking."""

    def setup_method(self):
        self.scorer = LeadScorer()

    def test_sorted_by_score_descending(self):
        leads = [
            {"id": "low"},
            {"id": "high", "is_veteran": True, "currently_homeless": True},
            {"id": "mid", "is_veteran": True},
        ]
        ranked = self.scorer.score_leads(leads, {}, now=NOW)
        assert [s.lead.id for s in ranked] == ["high", "mid", "low"]

    def test_ties_keep_input_order(self):
        leads = [{"id": "a", "is_veteran": True}, {"id": "b"}, {"id": "c", "is_veteran": True}, {"id": "d"}]
        ranked = self.scorer.score_leads(leads, now=NOW)
        assert [s.lead.id for s in ranked] == ["a", "c", "b", "d"]

    def test_uses_interaction_map(self):
        leads = [{"id": "quiet"}, {"id": "engaged"}]
        interaction_map = {"engaged": [interaction("form_completed"), interaction("phone_contact")]}
        ranked = self.scorer.score_leads(leads, interaction_map, now=NOW)
        assert ranked[0].lead.id == "engaged"
        assert ranked[0].result.breakdown[ScoreCategory.ENGAGEMENT] == 35


class TestScoreResult:
    """Tests for ScoreResult class."""

    @pytest.mark.parametrize("score,grade,priority", [
        (100, Grade.A, Priority.URGENT),
        (80, Grade.A, Priority.URGENT),
        (79, Grade.B, Priority.HIGH),
        (60, Grade.B, Priority.HIGH),
        (59, Grade.C, Priority.MEDIUM),
        (40, Grade.C, Priority.MEDIUM),
        (39, Grade.D, Priority.LOW),
        (20, Grade.D, Priority.LOW),
        (19, Grade.F, Priority.MINIMAL),
        (0, Grade.F, Priority.MINIMAL),
    ])
    def test_grade_boundaries(self, score, grade, priority):
        result = ScoreResult(score=score)
        assert result.grade == grade
        assert result.priority == priority

    def test_to_dict(self):
        result = LeadScorer().score({"is_veteran": True}, [], now=NOW)
        data = result.to_dict()
        assert data["score"] == 25
        assert data["grade"] == "D"
        assert data["breakdown"]["demographic"] == 25
        assert data["next_action"]["action"] == "BOOK_CONSULTATION"

    def test_explain_score(self):
        scorer = LeadScorer()
        text = scorer.explain_score(scorer.score({"is_veteran": True}, [], now=NOW))
        assert "Score: 25" in text
        assert "demographic: +25" in text

    def test_quick_score(self):
        assert quick_score({"in_recovery": True}) == 20
