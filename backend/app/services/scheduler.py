"""
Compliance Monitoring Scheduler.

Runs the periodic compliance check using APScheduler:
- Re-evaluates every active case (bounded parallelism)
- Triggers the emergency protocol the first time a case reaches emergency
- Issues alerts for cases that need attention

Per-case failures are logged and counted, never allowed to abort the tick.
Stopping waits for the in-flight tick; the case being evaluated always
completes, remaining cases are left for the next run.

Includes job failure monitoring: repeated tick failures are logged at
CRITICAL and pause the job.
"""
import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.clock import Clock, SystemClock
from app.core.exceptions import SchedulerJobError
from app.models.enums import ComplianceStatus
from app.models.schemas import ComplianceContext
from app.services.timeline_enforcement import TimelineEnforcementService


# Configure logging
logger = logging.getLogger(__name__)


# ==========================================
# JOB FAILURE MONITOR
# ==========================================

class JobFailureMonitor:
    """
    Monitor job failures and alert when threshold exceeded.

    Prevents silent scheduler failures that would leave deadlines
    unwatched for hours.
    """

    def __init__(self, failure_threshold: int = 2, clock: Optional[Clock] = None):
        self.failure_threshold = failure_threshold
        self.clock = clock or SystemClock()
        self.failed_jobs: dict[str, list[datetime]] = defaultdict(list)
        self.last_errors: dict[str, str] = {}
        self.paused_jobs: set = set()

    def record_success(self, job_id: str) -> None:
        """Record job success - reset failure count."""
        self.failed_jobs[job_id] = []
        self.last_errors.pop(job_id, None)
        self.paused_jobs.discard(job_id)

    def record_failure(self, job_id: str, error: str) -> bool:
        """
        Record job failure and alert if threshold exceeded.

        Returns True if job should be paused.
        """
        now = self.clock.now()

        self.failed_jobs[job_id].append(now)
        self.last_errors[job_id] = error

        # Keep only failures from last 24 hours
        cutoff = now - timedelta(hours=24)
        self.failed_jobs[job_id] = [t for t in self.failed_jobs[job_id] if t > cutoff]

        failure_count = self.failure_count(job_id)

        if failure_count >= self.failure_threshold:
            logger.critical(
                f"CRITICAL: Job {job_id} failed {failure_count} times in 24h. "
                f"Last error: {error}. Job paused."
            )
            self.paused_jobs.add(job_id)
            return True

        return False

    def failure_count(self, job_id: str) -> int:
        return len(self.failed_jobs.get(job_id, []))

    def get_status(self) -> dict[str, Any]:
        """Get current failure status for all jobs."""
        return {
            job_id: {
                "failure_count": len(failures),
                "last_failure": failures[-1].isoformat() if failures else None,
                "last_error": self.last_errors.get(job_id),
                "is_paused": job_id in self.paused_jobs
            }
            for job_id, failures in self.failed_jobs.items()
        }


# ==========================================
# RUN SUMMARY
# ==========================================

@dataclass
class MonitoringRunSummary:
    """Outcome of one monitoring tick."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    total_cases: int = 0
    evaluated: int = 0
    failed: int = 0
    skipped: int = 0
    status_changes: int = 0
    emergencies_triggered: int = 0
    alerts_issued: int = 0
    notifications_delivered: int = 0
    duration_seconds: Optional[float] = None
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "total_cases": self.total_cases,
            "evaluated": self.evaluated,
            "failed": self.failed,
            "skipped": self.skipped,
            "status_changes": self.status_changes,
            "emergencies_triggered": self.emergencies_triggered,
            "alerts_issued": self.alerts_issued,
            "notifications_delivered": self.notifications_delivered,
            "errors": dict(self.errors),
        }


@dataclass
class CaseCheckResult:
    """Outcome of evaluating a single case."""
    context: ComplianceContext
    status_changed: bool = False
    emergency_triggered: bool = False
    alerts_issued: int = 0
    notifications_delivered: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "case_id": self.context.case_id,
            "compliance_status": self.context.compliance_status.value,
            "days_remaining": self.context.days_remaining,
            "legal_deadline": self.context.legal_deadline.isoformat(),
            "emergency_protocol_active": self.context.emergency_protocol_active,
            "status_changed": self.status_changed,
            "emergency_triggered": self.emergency_triggered,
            "alerts_issued": self.alerts_issued,
            "notifications_delivered": self.notifications_delivered,
        }


# ==========================================
# COMPLIANCE MONITOR
# ==========================================

class ComplianceMonitor:
    """
    Background compliance monitor.

    Wraps an AsyncIOScheduler with a single interval job. The service is
    the only thing that touches case state; the monitor just decides what
    to evaluate and when.
    """

    JOB_ID = "compliance_monitor"

    def __init__(
        self,
        service: TimelineEnforcementService,
        interval_minutes: int = 60,
        max_concurrency: int = 5,
        failure_threshold: int = 2,
        clock: Optional[Clock] = None,
        run_on_start: bool = True
    ):
        self.service = service
        self.interval_minutes = interval_minutes
        self.max_concurrency = max(1, max_concurrency)
        self.clock = clock or SystemClock()
        self.run_on_start = run_on_start
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.is_running = False
        self.job_monitor = JobFailureMonitor(failure_threshold=failure_threshold, clock=self.clock)
        self.last_run: Optional[MonitoringRunSummary] = None
        self._tick_lock = asyncio.Lock()
        self._stopping = False

    def create_scheduler(self) -> AsyncIOScheduler:
        """Create and configure the scheduler."""
        jobstores = {
            'default': MemoryJobStore()
        }

        executors = {
            'default': AsyncIOExecutor()
        }

        job_defaults = {
            'coalesce': True,  # Combine missed runs into one
            'max_instances': 1,  # Only one tick at a time
            'misfire_grace_time': 300  # 5 minute grace period
        }

        return AsyncIOScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone='UTC'
        )

    def start(self) -> bool:
        """
        Start the monitor. Must be called from a running event loop.

        Returns False if it was already running.
        """
        if self.is_running:
            logger.warning("Compliance monitor is already running")
            return False

        self.scheduler = self.create_scheduler()
        job_kwargs = {}
        if self.run_on_start:
            job_kwargs["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            self._scheduled_tick,
            IntervalTrigger(minutes=self.interval_minutes),
            id=self.JOB_ID,
            name="Compliance Monitor",
            replace_existing=True,
            **job_kwargs
        )

        self._stopping = False
        self.scheduler.start()
        self.is_running = True
        logger.info(f"🚀 Compliance monitor started (every {self.interval_minutes} min)")

        for job in self.scheduler.get_jobs():
            logger.info(f"  - {job.name}: Next run at {job.next_run_time}")
        return True

    async def stop(self) -> bool:
        """
        Stop the monitor gracefully.

        No new ticks start; an in-flight tick finishes the cases it is
        evaluating and skips the rest.

        Returns False if it was not running.
        """
        if not (self.scheduler and self.is_running):
            logger.info("Compliance monitor is not running")
            return False

        self._stopping = True
        self.scheduler.pause()

        # Wait for the in-flight tick
        async with self._tick_lock:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            self._stopping = False

        logger.info("🛑 Compliance monitor stopped")
        return True

    async def _scheduled_tick(self) -> MonitoringRunSummary:
        """Job entry point: one tick with failure monitoring."""
        try:
            summary = await self.run_monitoring_check()
        except Exception as e:
            logger.error(f"❌ Compliance monitoring tick failed: {e}", exc_info=True)

            should_pause = self.job_monitor.record_failure(self.JOB_ID, str(e))
            if should_pause and self.scheduler and self.is_running:
                self.scheduler.pause_job(self.JOB_ID)

            raise SchedulerJobError(
                "Compliance monitoring tick failed",
                job_id=self.JOB_ID,
                failure_count=self.job_monitor.failure_count(self.JOB_ID),
                last_error=str(e)
            ) from e

        self.job_monitor.record_success(self.JOB_ID)
        return summary

    async def run_monitoring_check(self) -> MonitoringRunSummary:
        """
        Evaluate every active case once.

        Safe with zero cases. A failing case is logged and counted; the
        other cases are still evaluated. Failure to list the active cases
        propagates.
        """
        async with self._tick_lock:
            summary = MonitoringRunSummary(started_at=self.clock.now())
            started = time.monotonic()
            logger.info("🔍 Starting compliance monitoring check...")

            contexts = await self.service.list_active_cases()
            summary.total_cases = len(contexts)
            logger.info(f"Found {len(contexts)} active case(s) to monitor")

            semaphore = asyncio.Semaphore(self.max_concurrency)

            async def _run(context: ComplianceContext) -> None:
                async with semaphore:
                    if self._stopping:
                        summary.skipped += 1
                        return
                    try:
                        result = await self._evaluate(context)
                    except Exception as e:
                        summary.failed += 1
                        summary.errors[context.case_id] = str(e)
                        logger.error(f"Error evaluating case {context.case_id}: {e}", exc_info=True)
                        return

                    summary.evaluated += 1
                    summary.status_changes += int(result.status_changed)
                    summary.emergencies_triggered += int(result.emergency_triggered)
                    summary.alerts_issued += result.alerts_issued
                    summary.notifications_delivered += result.notifications_delivered

            await asyncio.gather(*(_run(context) for context in contexts))

            summary.finished_at = self.clock.now()
            summary.duration_seconds = time.monotonic() - started
            self.last_run = summary

            logger.info(
                f"✅ Monitoring check completed in {summary.duration_seconds:.2f}s: "
                f"{summary.evaluated} evaluated, {summary.failed} failed, "
                f"{summary.skipped} skipped, {summary.status_changes} status change(s), "
                f"{summary.emergencies_triggered} emergency protocol(s) triggered"
            )
            return summary

    async def _evaluate(self, listed: ComplianceContext) -> CaseCheckResult:
        """Re-evaluate one case, escalate or alert as its tier requires."""
        refreshed = await self.service.monitor_compliance(listed.case_id)
        result = CaseCheckResult(
            context=refreshed,
            status_changed=refreshed.compliance_status is not listed.compliance_status,
        )

        if (
            refreshed.compliance_status is ComplianceStatus.EMERGENCY
            and not refreshed.emergency_protocol_active
        ):
            response = await self.service.escalate_emergency(refreshed)
            result.emergency_triggered = response.newly_triggered
            result.notifications_delivered += response.alerts_sent
            result.context = await self.service.load_context(listed.case_id)
        elif refreshed.compliance_status is not ComplianceStatus.PENDING:
            dispatch = await self.service.issue_alerts(listed.case_id, refreshed)
            result.alerts_issued += len(dispatch.alerts)
            result.notifications_delivered += dispatch.delivered

        return result

    async def check_case(self, case_id: str) -> CaseCheckResult:
        """
        Out-of-cycle evaluation of one case.

        Works whether or not the monitor is running.

        Raises:
            CaseNotFoundError: case is not tracked
        """
        listed = await self.service.load_persisted(case_id)
        logger.info(f"Manual compliance check for case {case_id}")
        return await self._evaluate(listed)

    def get_jobs_status(self) -> list:
        """Get status of all scheduled jobs."""
        if not self.scheduler or not self.is_running:
            return []

        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self.scheduler.get_jobs()
        ]

    def get_status(self) -> dict[str, Any]:
        """Monitor health for the operator surface."""
        failures = self.job_monitor.get_status()
        has_failures = any(info["failure_count"] > 0 for info in failures.values())

        return {
            "status": "degraded" if has_failures else "healthy",
            "is_running": self.is_running,
            "interval_minutes": self.interval_minutes,
            "max_concurrency": self.max_concurrency,
            "jobs": self.get_jobs_status(),
            "failures": failures,
            "paused_jobs": sorted(self.job_monitor.paused_jobs),
            "last_run": self.last_run.to_dict() if self.last_run else None,
        }
