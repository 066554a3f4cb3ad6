"""Background monitor: system metrics, counter refresh and scheduled reports."""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..core.config import EngineConfig
from .engine import AnalyticsEngine
from .reports import Report

logger = logging.getLogger(__name__)

MONDAY = 0
ReportListener = Callable[[Report], None]

# Wait before recomputing a schedule that failed
RETRY_DELAY = timedelta(minutes=1)


class ReportScheduler:
    """Computes the exact next trigger instant for daily and weekly reports."""

    def __init__(self, hour: int = 9, minute: int = 0, weekday: int = MONDAY):
        self.hour = hour
        self.minute = minute
        self.weekday = weekday  # 0 = Monday, 6 = Sunday

    def next_daily(self, now: datetime) -> datetime:
        next_run = now.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if next_run <= now:
            next_run += timedelta(days=1)
        return next_run

    def next_weekly(self, now: datetime) -> datetime:
        days_ahead = (self.weekday - now.weekday()) % 7
        next_run = (now + timedelta(days=days_ahead)).replace(
            hour=self.hour, minute=self.minute, second=0, microsecond=0
        )
        if next_run <= now:
            next_run += timedelta(weeks=1)
        return next_run


@dataclass
class MonitorJob:
    """A recurring background job and its execution history."""

    name: str
    next_run: Callable[[datetime], datetime]
    action: Callable[[], None]
    run_count: int = 0
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None
    duration_seconds: float = 0
    errors: List[str] = field(default_factory=list)


class AnalyticsMonitor:
    """Runs the engine's periodic jobs on background threads.

    Each job has its own thread that sleeps until the job's next trigger
    instant, so a slow tick delays only its own next run and ticks of the
    same job never overlap.
    """

    def __init__(
        self,
        engine: AnalyticsEngine,
        config: Optional[EngineConfig] = None,
        scheduler: Optional[ReportScheduler] = None,
    ):
        self.engine = engine
        self.config = config or engine.config
        self.scheduler = scheduler or ReportScheduler(hour=self.config.report_hour)
        self.listeners: List[ReportListener] = []
        self.jobs: Dict[str, MonitorJob] = {}
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []
        self.retry_delay = RETRY_DELAY
        self._running = False
        self._register_default_jobs()

    def _register_default_jobs(self):
        metrics_interval = timedelta(seconds=self.config.system_metrics_interval)
        refresh_interval = timedelta(seconds=self.config.counter_refresh_interval)

        self.add_job("system_metrics", lambda now: now + metrics_interval, self.engine.collect_system_metrics)
        self.add_job("counter_refresh", lambda now: now + refresh_interval, self._refresh)
        self.add_job("daily_report", self.scheduler.next_daily, self._daily_report)
        self.add_job("weekly_report", self.scheduler.next_weekly, self._weekly_report)

    def add_job(self, name: str, next_run: Callable[[datetime], datetime], action: Callable[[], None]) -> MonitorJob:
        job = MonitorJob(name=name, next_run=next_run, action=action)
        self.jobs[name] = job
        return job

    def add_listener(self, listener: ReportListener):
        """Register a callable that receives every generated report."""
        self.listeners.append(listener)

    @property
    def running(self) -> bool:
        return self._running

    # --- job actions ---

    def _refresh(self):
        self.engine.refresh_counters()
        self.engine.prune()

    def _daily_report(self):
        self._publish(self.engine.generate_daily_report())

    def _weekly_report(self):
        self._publish(self.engine.generate_weekly_report())

    def _publish(self, report: Report):
        for listener in self.listeners:
            try:
                listener(report)
            except Exception as e:
                logger.exception(f"Report listener failed: {e}")

    # --- execution ---

    def run_job_now(self, name: str) -> MonitorJob:
        """Execute a job immediately, outside its schedule."""
        job = self.jobs[name]
        self._execute(job)
        return job

    def _execute(self, job: MonitorJob):
        start_time = time.monotonic()
        try:
            job.action()
            job.last_error = None
        except Exception as e:
            job.last_error = str(e)
            job.errors.append(str(e))
            logger.exception(f"Monitor job {job.name} failed: {e}")
        finally:
            job.run_count += 1
            job.last_run = self.engine.clock()
            job.duration_seconds = time.monotonic() - start_time

    def _next_target(self, job: MonitorJob) -> Optional[datetime]:
        """When the job should next run, or None if its schedule can't be computed."""
        try:
            return job.next_run(self.engine.clock())
        except Exception as e:
            job.last_error = str(e)
            job.errors.append(str(e))
            logger.exception(f"Could not schedule monitor job {job.name}: {e}")
            return None

    def _run_loop(self, job: MonitorJob):
        while not self._stop_event.is_set():
            target = self._next_target(job)
            if target is None:
                if self._stop_event.wait(self.retry_delay.total_seconds()):
                    return
                continue
            while True:
                remaining = (target - self.engine.clock()).total_seconds()
                if remaining <= 0:
                    break
                if self._stop_event.wait(remaining):
                    return
            self._execute(job)

    def start(self):
        """Start one background thread per job."""
        if self._running:
            return

        self._stop_event.clear()
        self._threads = [
            threading.Thread(target=self._run_loop, args=(job,), name=f"analytics-{job.name}", daemon=True)
            for job in self.jobs.values()
        ]
        for thread in self._threads:
            thread.start()
        self._running = True
        logger.info(f"Analytics monitor started ({len(self._threads)} jobs)")

    def stop(self, timeout: float = 5):
        """Stop all background jobs and wait for in-flight ticks to finish."""
        if not self._running:
            return

        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        self._running = False
        logger.info("Analytics monitor stopped")
