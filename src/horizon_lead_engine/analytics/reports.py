"""Daily and weekly analytics reports built from dashboard snapshots."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from .engine import ConversionFunnel, DashboardSnapshot, SourceMetrics

HIGH_LEAD_VOLUME = 10
STRONG_OPEN_RATE = 30
WEAK_OPEN_RATE = 20
WEAK_CONVERSION_RATE = 5
SLOW_RESPONSE_MS = 5000
TOP_SOURCES = 5


@dataclass
class Report:
    """A generated analytics report."""

    report_type: str  # "daily", "weekly"
    period_start: datetime
    period_end: datetime
    summary: Dict[str, Any] = field(default_factory=dict)
    highlights: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    # Weekly extras
    top_sources: List[Dict[str, Any]] = field(default_factory=list)
    funnel: Optional[Dict[str, int]] = None

    generated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.report_type,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "summary": dict(self.summary),
            "highlights": list(self.highlights),
            "recommendations": list(self.recommendations),
            "generated_at": self.generated_at.isoformat(),
        }
        if self.report_type == "weekly":
            data["top_sources"] = list(self.top_sources)
            data["funnel"] = dict(self.funnel or {})
        return data


def generate_highlights(snapshot: "DashboardSnapshot") -> List[str]:
    """Positive call-outs for a report."""
    highlights = []

    if snapshot.leads_today > HIGH_LEAD_VOLUME:
        highlights.append("High lead volume today - great job!")

    if snapshot.open_rate > STRONG_OPEN_RATE:
        highlights.append("Excellent email open rate performance")

    if snapshot.conversions_total > 0:
        highlights.append("Conversions generated today!")

    return highlights


def generate_recommendations(snapshot: "DashboardSnapshot") -> List[str]:
    """Improvement suggestions for a report."""
    recommendations = []

    if snapshot.open_rate < WEAK_OPEN_RATE:
        recommendations.append("Consider A/B testing email subject lines to improve open rates")

    if snapshot.lead_conversion_rate < WEAK_CONVERSION_RATE:
        recommendations.append("Focus on lead qualification to improve conversion rates")

    if snapshot.avg_response_time > SLOW_RESPONSE_MS:
        recommendations.append("Consider optimizing AI response time")

    return recommendations


def _summary(snapshot: "DashboardSnapshot") -> Dict[str, Any]:
    return {
        "leads": snapshot.leads_today,
        "conversations": snapshot.conversations_total,
        "emails": snapshot.emails_sent,
        "conversions": snapshot.conversions_total,
        "revenue": snapshot.revenue,
    }


def generate_daily_report(snapshot: "DashboardSnapshot") -> Report:
    """Summarize the day covered by a dashboard snapshot."""
    period_start = snapshot.generated_at.replace(hour=0, minute=0, second=0, microsecond=0)

    return Report(
        report_type="daily",
        period_start=period_start,
        period_end=period_start + timedelta(days=1),
        summary=_summary(snapshot),
        highlights=generate_highlights(snapshot),
        recommendations=generate_recommendations(snapshot),
        generated_at=snapshot.generated_at,
    )


def generate_weekly_report(
    snapshot: "DashboardSnapshot",
    sources: Dict[str, "SourceMetrics"],
    funnel: "ConversionFunnel",
) -> Report:
    """Summarize the trailing week, adding source and funnel breakdowns."""
    period_end = snapshot.generated_at
    summary = _summary(snapshot)
    summary["leads"] = snapshot.leads_this_week

    ranked = sorted(sources.values(), key=lambda m: (m.count, m.value), reverse=True)

    return Report(
        report_type="weekly",
        period_start=period_end - timedelta(weeks=1),
        period_end=period_end,
        summary=summary,
        highlights=generate_highlights(snapshot),
        recommendations=generate_recommendations(snapshot),
        top_sources=[
            {"source": m.source, **m.to_dict()}
            for m in ranked[:TOP_SOURCES]
        ],
        funnel=funnel.to_dict(),
        generated_at=snapshot.generated_at,
    )
