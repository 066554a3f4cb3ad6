"""Real-time analytics engine: event ingestion, counters and derived views."""

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from ..core.config import EngineConfig
from ..core.models import Lead, parse_timestamp
from .events import (
    ConversionType,
    EmailEvent,
    LeadEvent,
    Timeframe,
    parse_conversion_type,
    parse_event,
)
from .reports import Report, generate_daily_report, generate_weekly_report
from .samples import MemorySampleWindow, ResponseTimeBuffer, current_memory_usage
from .valuation import calculate_lead_value

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass
class TrackedEvent:
    """A single entry in an entity's event log."""

    event: str
    timestamp: datetime
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LeadRecord:
    """Analytics view of a lead: its source, estimated value and event log."""

    id: str
    source: str
    created: datetime
    value: int
    events: List[TrackedEvent] = field(default_factory=list)

    @property
    def event_names(self) -> set:
        return {e.event for e in self.events}

    @property
    def converted(self) -> bool:
        return LeadEvent.CONVERTED.value in self.event_names

    @property
    def last_activity(self) -> datetime:
        return self.events[-1].timestamp if self.events else self.created


@dataclass
class ConversationMessage:
    message: str
    response: str
    duration_ms: float
    timestamp: datetime


@dataclass
class ConversationRecord:
    id: str
    messages: List[ConversationMessage] = field(default_factory=list)
    total_duration_ms: float = 0
    started: Optional[datetime] = None

    @property
    def last_activity(self) -> Optional[datetime]:
        return self.messages[-1].timestamp if self.messages else self.started


@dataclass
class EmailRecord:
    id: str
    recipient: Optional[str] = None
    subject: Optional[str] = None
    campaign: Optional[str] = None
    events: List[TrackedEvent] = field(default_factory=list)

    @property
    def last_activity(self) -> Optional[datetime]:
        return self.events[-1].timestamp if self.events else None


@dataclass
class ConversionRecord:
    id: str
    lead_id: str
    type: ConversionType
    value: float
    timestamp: datetime

    @property
    def last_activity(self) -> datetime:
        return self.timestamp


def week_start(day: date) -> date:
    """Sunday that starts the week containing ``day``."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


@dataclass
class Counters:
    """Running totals. Lead counters reset when their calendar period ends."""

    daily_leads: int = 0
    weekly_leads: int = 0
    monthly_leads: int = 0
    total_conversations: int = 0
    emails_sent: int = 0
    emails_opened: int = 0
    emails_clicked: int = 0
    conversions: int = 0
    revenue: float = 0
    errors: int = 0

    day: Optional[date] = None
    week: Optional[date] = None
    month: Optional[tuple] = None

    def roll(self, now: datetime):
        """Reset lead counters whose day, week or month has passed."""
        today = now.date()
        if self.day != today:
            self.day = today
            self.daily_leads = 0
        if self.week != week_start(today):
            self.week = week_start(today)
            self.weekly_leads = 0
        if self.month != (today.year, today.month):
            self.month = (today.year, today.month)
            self.monthly_leads = 0

    def count_lead(self, created: datetime):
        created_day = created.date()
        if created_day == self.day:
            self.daily_leads += 1
        if week_start(created_day) == self.week:
            self.weekly_leads += 1
        if (created_day.year, created_day.month) == self.month:
            self.monthly_leads += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "daily_leads": self.daily_leads,
            "weekly_leads": self.weekly_leads,
            "monthly_leads": self.monthly_leads,
            "total_conversations": self.total_conversations,
            "emails_sent": self.emails_sent,
            "emails_opened": self.emails_opened,
            "emails_clicked": self.emails_clicked,
            "conversions": self.conversions,
            "revenue": self.revenue,
            "errors": self.errors,
        }


def _percent(numerator: float, denominator: float) -> float:
    return numerator / denominator * 100 if denominator > 0 else 0


def _round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


@dataclass
class DashboardSnapshot:
    """Point-in-time view of lead, conversation, email and conversion metrics."""

    leads_today: int
    leads_this_week: int
    leads_this_month: int
    lead_conversion_rate: float

    conversations_total: int
    avg_response_time: int
    active_conversations: int

    emails_sent: int
    emails_opened: int
    emails_clicked: int
    open_rate: int
    click_rate: int

    conversions_total: int
    revenue: float
    avg_conversion_value: float

    uptime: str
    error_rate: float
    memory_usage: Dict[str, float] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "leads": {
                "today": self.leads_today,
                "this_week": self.leads_this_week,
                "this_month": self.leads_this_month,
                "conversion_rate": self.lead_conversion_rate,
            },
            "conversations": {
                "total": self.conversations_total,
                "avg_response_time": self.avg_response_time,
                "active": self.active_conversations,
            },
            "emails": {
                "sent": self.emails_sent,
                "opened": self.emails_opened,
                "clicked": self.emails_clicked,
                "open_rate": self.open_rate,
                "click_rate": self.click_rate,
            },
            "conversions": {
                "total": self.conversions_total,
                "revenue": self.revenue,
                "avg_value": self.avg_conversion_value,
            },
            "performance": {
                "uptime": self.uptime,
                "error_rate": self.error_rate,
                "memory_usage": dict(self.memory_usage),
            },
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass
class SourceMetrics:
    """Lead volume, value and conversions for one lead source."""

    source: str
    count: int = 0
    value: int = 0
    converted: int = 0
    conversion_rate: float = 0
    avg_value: float = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "value": self.value,
            "converted": self.converted,
            "conversion_rate": self.conversion_rate,
            "avg_value": self.avg_value,
        }


# Funnel stage -> lead events that count as reaching it
FUNNEL_STAGES: Dict[str, tuple] = {
    "contacted": (LeadEvent.CONTACTED.value,),
    "interested": (LeadEvent.INTERESTED.value,),
    "toured": (LeadEvent.TOUR_SCHEDULED.value, LeadEvent.TOURED.value),
    "applied": (LeadEvent.APPLIED.value,),
    "approved": (LeadEvent.APPROVED.value,),
    "leased": (LeadEvent.LEASE_SIGNED.value,),
}


@dataclass
class ConversionFunnel:
    """Lead counts per funnel stage.

    Each stage counts leads whose log contains a qualifying event anywhere;
    reaching a later stage does not imply being counted in earlier ones.
    """

    leads: int = 0
    contacted: int = 0
    interested: int = 0
    toured: int = 0
    applied: int = 0
    approved: int = 0
    leased: int = 0

    def to_dict(self) -> Dict[str, int]:
        data = {"leads": self.leads}
        data.update({stage: getattr(self, stage) for stage in FUNNEL_STAGES})
        return data


class AnalyticsEngine:
    """In-process analytics over lead, conversation, email and conversion events.

    All state lives in memory for the lifetime of the instance. Every public
    method takes the same lock, so the engine can be fed from the monitor
    threads and request handlers at once.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        memory_probe: Optional[Callable[[], Dict[str, float]]] = None,
    ):
        self.config = config or EngineConfig()
        self.clock = clock or datetime.now
        self.memory_probe = memory_probe or current_memory_usage
        self._lock = threading.RLock()
        self._init_state()

    def _init_state(self):
        self.leads: "OrderedDict[str, LeadRecord]" = OrderedDict()
        self.conversations: "OrderedDict[str, ConversationRecord]" = OrderedDict()
        self.emails: "OrderedDict[str, EmailRecord]" = OrderedDict()
        self.conversions: "OrderedDict[str, ConversionRecord]" = OrderedDict()
        self.counters = Counters()
        self.response_times = ResponseTimeBuffer(self.config.response_time_capacity)
        self.memory_samples = MemorySampleWindow(self.config.memory_window_hours)
        self.started_at = self.clock()
        self.counters.roll(self.started_at)

    def reset(self):
        """Drop all tracked state and restart the uptime clock."""
        with self._lock:
            self._init_state()
        logger.info("Analytics state reset")

    # --- ingestion ---

    def track_lead(
        self,
        lead: Union[Lead, Mapping[str, Any]],
        event: Union[LeadEvent, str] = LeadEvent.CREATED,
        at: Optional[datetime] = None,
    ) -> Optional[str]:
        """Record a lifecycle event for a lead and return the lead id."""
        lead_event = parse_event(LeadEvent, event)
        if lead_event is None:
            logger.warning(f"Ignoring unknown lead event {event!r}")
            return None

        lead = Lead.coerce(lead)
        lead_id = lead.id or f"lead_{uuid.uuid4().hex}"

        with self._lock:
            now = self.clock()
            at = at or now
            self.counters.roll(now)

            record = self.leads.get(lead_id)
            if record is None:
                record = LeadRecord(
                    id=lead_id,
                    source=lead.source,
                    created=at,
                    value=calculate_lead_value(lead),
                )
                self._remember(self.leads, lead_id, record)

            record.events.append(TrackedEvent(event=lead_event.value, timestamp=at))

            if lead_event == LeadEvent.CREATED:
                self.counters.count_lead(at)

        logger.info(f"Lead tracked: {lead_id} - {lead_event.value}")
        return lead_id

    def track_conversation(
        self,
        conversation_id: str,
        message: str,
        response: str,
        duration_ms: float,
        at: Optional[datetime] = None,
    ):
        """Record one message/response exchange and its response time."""
        with self._lock:
            at = at or self.clock()
            record = self.conversations.get(conversation_id)
            if record is None:
                record = ConversationRecord(id=conversation_id, started=at)
                self._remember(self.conversations, conversation_id, record)

            record.messages.append(ConversationMessage(
                message=message,
                response=response,
                duration_ms=duration_ms,
                timestamp=at,
            ))
            record.total_duration_ms += duration_ms

            self.counters.total_conversations += 1
            self.response_times.add(duration_ms)

    def track_email(
        self,
        email_id: str,
        event: Union[EmailEvent, str],
        data: Optional[Mapping[str, Any]] = None,
        at: Optional[datetime] = None,
    ):
        """Record an email lifecycle event."""
        email_event = parse_event(EmailEvent, event)
        if email_event is None:
            logger.warning(f"Ignoring unknown email event {event!r} for {email_id}")
            return

        data = dict(data or {})
        with self._lock:
            at = at or self.clock()
            record = self.emails.get(email_id)
            if record is None:
                record = EmailRecord(
                    id=email_id,
                    recipient=data.get("recipient"),
                    subject=data.get("subject"),
                    campaign=data.get("campaign"),
                )
                self._remember(self.emails, email_id, record)

            record.events.append(TrackedEvent(event=email_event.value, timestamp=at, data=data))

            if email_event == EmailEvent.SENT:
                self.counters.emails_sent += 1
            elif email_event == EmailEvent.OPENED:
                self.counters.emails_opened += 1
            elif email_event == EmailEvent.CLICKED:
                self.counters.emails_clicked += 1

    def track_conversion(
        self,
        lead_id: str,
        conversion_type: Union[ConversionType, str],
        value: float = 0,
        at: Optional[datetime] = None,
    ) -> str:
        """Record a conversion and mark the lead as converted if it is tracked."""
        kind = parse_conversion_type(conversion_type)
        conversion_id = f"conv_{uuid.uuid4().hex}"

        with self._lock:
            at = at or self.clock()
            self._remember(self.conversions, conversion_id, ConversionRecord(
                id=conversion_id,
                lead_id=lead_id,
                type=kind,
                value=value,
                timestamp=at,
            ))

            self.counters.conversions += 1
            self.counters.revenue += value

            record = self.leads.get(lead_id)
            if record is not None:
                record.events.append(TrackedEvent(
                    event=LeadEvent.CONVERTED.value,
                    timestamp=at,
                    data={"type": kind.value, "value": value},
                ))

        logger.info(f"Conversion tracked: {kind.value} - ${value}")
        return conversion_id

    def track_error(self):
        """Count a failed response for the dashboard error rate."""
        with self._lock:
            self.counters.errors += 1

    def replay(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Rebuild state from previously stored event records.

        Each record has a ``kind`` of lead, conversation, email or conversion
        plus the arguments of the matching ``track_*`` call and an optional
        ``timestamp``. Returns the number of records applied.
        """
        applied = 0
        for record in records:
            kind = record.get("kind")
            at = parse_timestamp(record.get("timestamp"))

            if kind == "lead":
                if self.track_lead(record.get("lead") or {}, record.get("event", "created"), at=at):
                    applied += 1
            elif kind == "conversation":
                self.track_conversation(
                    str(record.get("id")),
                    record.get("message", ""),
                    record.get("response", ""),
                    float(record.get("duration_ms", 0)),
                    at=at,
                )
                applied += 1
            elif kind == "email":
                if parse_event(EmailEvent, record.get("event")) is not None:
                    applied += 1
                self.track_email(str(record.get("id")), record.get("event"), record.get("data"), at=at)
            elif kind == "conversion":
                self.track_conversion(
                    str(record.get("lead_id")),
                    record.get("type", "other"),
                    float(record.get("value", 0)),
                    at=at,
                )
                applied += 1
            else:
                logger.warning(f"Skipping replay record with unknown kind {kind!r}")

        logger.info(f"Replayed {applied} analytics records")
        return applied

    # --- retention ---

    def _remember(self, store: OrderedDict, key: str, record: Any):
        store[key] = record
        while len(store) > self.config.max_tracked_entities:
            evicted, _ = store.popitem(last=False)
            logger.debug(f"Evicted {evicted} from analytics store")

    def prune(self) -> int:
        """Drop entities with no activity inside the retention window."""
        with self._lock:
            cutoff = self.clock() - timedelta(days=self.config.retention_days)
            removed = 0
            for store in (self.leads, self.conversations, self.emails, self.conversions):
                stale = [
                    key for key, record in store.items()
                    if record.last_activity is not None and record.last_activity < cutoff
                ]
                for key in stale:
                    del store[key]
                removed += len(stale)

        if removed:
            logger.info(f"Pruned {removed} stale analytics entities")
        return removed

    # --- periodic maintenance ---

    def refresh_counters(self):
        """Roll period counters over if a day, week or month boundary passed."""
        with self._lock:
            self.counters.roll(self.clock())

    def collect_system_metrics(self):
        """Sample process memory into the rolling window."""
        usage = self.memory_probe()
        with self._lock:
            self.memory_samples.record(self.clock(), usage)

    # --- derived views ---

    def get_dashboard_metrics(self) -> DashboardSnapshot:
        """Build the real-time dashboard snapshot."""
        memory = self.memory_probe()
        with self._lock:
            now = self.clock()
            self.counters.roll(now)
            c = self.counters

            return DashboardSnapshot(
                leads_today=c.daily_leads,
                leads_this_week=c.weekly_leads,
                leads_this_month=c.monthly_leads,
                lead_conversion_rate=_percent(c.conversions, c.daily_leads),
                conversations_total=c.total_conversations,
                avg_response_time=_round_half_up(self.response_times.average()),
                active_conversations=self._active_conversations(now),
                emails_sent=c.emails_sent,
                emails_opened=c.emails_opened,
                emails_clicked=c.emails_clicked,
                open_rate=_round_half_up(_percent(c.emails_opened, c.emails_sent)),
                click_rate=_round_half_up(_percent(c.emails_clicked, c.emails_opened)),
                conversions_total=c.conversions,
                revenue=c.revenue,
                avg_conversion_value=c.revenue / c.conversions if c.conversions else 0,
                uptime=self._uptime(now),
                error_rate=_percent(c.errors, c.total_conversations),
                memory_usage=memory,
                generated_at=now,
            )

    def _active_conversations(self, now: datetime) -> int:
        cutoff = now - timedelta(minutes=self.config.active_conversation_minutes)
        return sum(
            1 for conv in self.conversations.values()
            if conv.messages and conv.messages[-1].timestamp > cutoff
        )

    def _uptime(self, now: datetime) -> str:
        seconds = max(0, int((now - self.started_at).total_seconds()))
        hours, remainder = divmod(seconds, 3600)
        return f"{hours}h {remainder // 60}m"

    def _leads_since(self, timeframe: Union[Timeframe, str]) -> List[LeadRecord]:
        cutoff = Timeframe.parse(timeframe).cutoff(self.clock())
        return [lead for lead in self.leads.values() if lead.created > cutoff]

    def get_lead_source_analysis(self, timeframe: Union[Timeframe, str] = Timeframe.LAST_30D) -> Dict[str, SourceMetrics]:
        """Lead count, value and conversions grouped by source."""
        with self._lock:
            sources: Dict[str, SourceMetrics] = {}
            for lead in self._leads_since(timeframe):
                source = lead.source or "unknown"
                metrics = sources.setdefault(source, SourceMetrics(source=source))
                metrics.count += 1
                metrics.value += lead.value
                if lead.converted:
                    metrics.converted += 1

        for metrics in sources.values():
            metrics.conversion_rate = _percent(metrics.converted, metrics.count)
            metrics.avg_value = metrics.value / metrics.count if metrics.count else 0

        return sources

    def get_conversion_funnel(self, timeframe: Union[Timeframe, str] = Timeframe.LAST_30D) -> ConversionFunnel:
        """Count leads reaching each funnel stage within the timeframe."""
        funnel = ConversionFunnel()
        with self._lock:
            for lead in self._leads_since(timeframe):
                funnel.leads += 1
                names = lead.event_names
                for stage, qualifying in FUNNEL_STAGES.items():
                    if names.intersection(qualifying):
                        setattr(funnel, stage, getattr(funnel, stage) + 1)
        return funnel

    def get_time_analysis(self, timeframe: Union[Timeframe, str] = Timeframe.LAST_7D) -> Dict[str, int]:
        """Lead creation counts keyed by "<day>-<hour>", day 0 being Sunday."""
        buckets: Dict[str, int] = {}
        with self._lock:
            for lead in self._leads_since(timeframe):
                day = (lead.created.weekday() + 1) % 7
                key = f"{day}-{lead.created.hour}"
                buckets[key] = buckets.get(key, 0) + 1
        return buckets

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total_leads": len(self.leads),
                "total_conversations": len(self.conversations),
                "total_emails": len(self.emails),
                "total_conversions": len(self.conversions),
                "response_time_samples": len(self.response_times),
                "memory_samples": len(self.memory_samples),
                "counters": self.counters.to_dict(),
            }

    # --- reports ---

    def generate_daily_report(self) -> Report:
        report = generate_daily_report(self.get_dashboard_metrics())
        logger.info("Daily report generated")
        return report

    def generate_weekly_report(self) -> Report:
        report = generate_weekly_report(
            self.get_dashboard_metrics(),
            self.get_lead_source_analysis(Timeframe.LAST_7D),
            self.get_conversion_funnel(Timeframe.LAST_7D),
        )
        logger.info("Weekly report generated")
        return report
