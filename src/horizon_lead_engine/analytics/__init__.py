"""Real-time analytics, reporting and background monitoring."""

from .engine import (
    AnalyticsEngine,
    ConversionFunnel,
    Counters,
    DashboardSnapshot,
    SourceMetrics,
)
from .events import ConversionType, EmailEvent, LeadEvent, Timeframe
from .monitor import AnalyticsMonitor, ReportScheduler
from .reports import Report
from .valuation import calculate_lead_value

__all__ = [
    "AnalyticsEngine",
    "ConversionFunnel",
    "Counters",
    "DashboardSnapshot",
    "SourceMetrics",
    "ConversionType",
    "EmailEvent",
    "LeadEvent",
    "Timeframe",
    "AnalyticsMonitor",
    "ReportScheduler",
    "Report",
    "calculate_lead_value",
]
