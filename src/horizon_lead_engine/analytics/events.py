"""Event identifiers and time windows used by the analytics engine."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional


class LeadEvent(Enum):
    """Lifecycle events recorded against a lead."""

    CREATED = "created"
    CONTACTED = "contacted"
    INTERESTED = "interested"
    TOUR_SCHEDULED = "tour_scheduled"
    TOURED = "toured"
    APPLIED = "applied"
    APPROVED = "approved"
    LEASE_SIGNED = "lease_signed"
    CONVERTED = "converted"
    LOST = "lost"


class EmailEvent(Enum):
    """Lifecycle events recorded against an outbound email."""

    SENT = "sent"
    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"
    BOUNCED = "bounced"
    UNSUBSCRIBED = "unsubscribed"


class ConversionType(Enum):
    """Kinds of conversion; anything unrecognised is recorded as OTHER."""

    APPLICATION = "application"
    TOUR = "tour"
    DEPOSIT = "deposit"
    LEASE_SIGNED = "lease_signed"
    OTHER = "other"


class Timeframe(Enum):
    """Cutoff windows for time-scoped analytics."""

    LAST_24H = "24h"
    LAST_7D = "7d"
    LAST_30D = "30d"
    LAST_90D = "90d"

    @property
    def window(self) -> timedelta:
        return _WINDOWS[self]

    def cutoff(self, now: datetime) -> datetime:
        return now - self.window

    @classmethod
    def parse(cls, value: Any) -> "Timeframe":
        """Parse a timeframe tag, defaulting to 30 days for unknown tags."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.LAST_30D


_WINDOWS = {
    Timeframe.LAST_24H: timedelta(hours=24),
    Timeframe.LAST_7D: timedelta(days=7),
    Timeframe.LAST_30D: timedelta(days=30),
    Timeframe.LAST_90D: timedelta(days=90),
}


def parse_event(enum_cls, value: Any) -> Optional[Enum]:
    """Look up an event identifier, returning None when it isn't recognised."""
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return None
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        return None


def parse_conversion_type(value: Any) -> ConversionType:
    return parse_event(ConversionType, value) or ConversionType.OTHER
