"""Shared fixtures for analytics tests."""

from datetime import datetime, timedelta

import pytest

from horizon_lead_engine.analytics import AnalyticsEngine
from horizon_lead_engine.core.config import EngineConfig

FAKE_MEMORY = {"rss": 64, "vms": 128, "percent": 1.5}


class FakeClock:
    """Manually advanced clock for deterministic analytics tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    # A Tuesday
    return FakeClock(datetime(2026, 3, 10, 14, 30))


@pytest.fixture
def make_engine(clock):
    """Factory for engines on the fake clock with a fixed memory reading."""
    def factory(**config_kwargs) -> AnalyticsEngine:
        return AnalyticsEngine(
            EngineConfig(**config_kwargs),
            clock=clock,
            memory_probe=lambda: dict(FAKE_MEMORY),
        )
    return factory


@pytest.fixture
def engine(make_engine):
    return make_engine()
