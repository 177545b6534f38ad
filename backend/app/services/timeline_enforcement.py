"""
Timeline Enforcement Service.

Owns the lifecycle of compliance contexts and their audit timeline:
- Registration: compute the legal deadline and initial status
- Monitoring: re-evaluate days remaining and status against the clock
- Alerts: derive, deliver and record the alert for the current tier
- Dashboard overview of every active case

Status only ever moves towards more severe tiers. Evaluations of one case
are serialised in-process, and the store refuses stale downgrades from
other processes. The async operations run store calls in a worker thread
with a timeout, so one slow query does not hold up other cases.
"""
import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from app.core.clock import Clock, SystemClock, local_today
from app.core.exceptions import CaseNotFoundError, DuplicateCaseError
from app.models.enums import ComplianceStatus, TimelineEventType
from app.models.schemas import (
    ComplianceContext,
    ComplianceOverview,
    ComplianceOverviewEntry,
    DeadlineAlert,
    EmergencyResponse,
    TimelineEvent,
    WorkingDaysCalculation,
)
from app.services.alerts import generate_alerts as derive_alerts
from app.services.business_days import (
    calculate_deadline,
    calculate_working_days,
    days_remaining,
)
from app.services.compliance_store import ComplianceStore, call_store
from app.services.escalation import EmergencyProtocolHandler
from app.services.holiday_calendar import HolidayCalendar, normalize_date
from app.services.notifications import Notifier, deliver_alert
from app.services.status_classifier import (
    DEFAULT_THRESHOLDS,
    StatusThresholds,
    classify,
    most_severe,
)


logger = logging.getLogger(__name__)


@dataclass
class AlertDispatch:
    """Alerts issued for one case and how many stakeholders were reached."""
    case_id: str
    alerts: list[DeadlineAlert]
    delivered: int
    attempted: int


class TimelineEnforcementService:
    """
    Registers cases and keeps their compliance status current.

    All collaborators are injected; nothing here reaches for module-level
    state.
    """

    def __init__(
        self,
        store: ComplianceStore,
        calendar: HolidayCalendar,
        emergency_handler: EmergencyProtocolHandler,
        notifier: Notifier,
        clock: Optional[Clock] = None,
        required_working_days: int = 6,
        thresholds: StatusThresholds = DEFAULT_THRESHOLDS,
        timezone_name: str = "UTC",
        notifier_timeout: float = 10.0,
        store_timeout: float = 10.0
    ):
        self.store = store
        self.calendar = calendar
        self.emergency_handler = emergency_handler
        self.notifier = notifier
        self.clock = clock or SystemClock()
        self.required_working_days = required_working_days
        self.thresholds = thresholds
        self.timezone_name = timezone_name
        self.notifier_timeout = notifier_timeout
        self.store_timeout = store_timeout
        self._case_locks: dict[str, asyncio.Lock] = {}
        self._lock_holders: Counter[str] = Counter()

    # ==========================================
    # HELPERS
    # ==========================================

    def today(self) -> date:
        """Current calendar day in the jurisdiction."""
        return local_today(self.clock, self.timezone_name)

    def _evaluate(self, legal_deadline: date) -> tuple[int, ComplianceStatus]:
        remaining = days_remaining(legal_deadline, self.today())
        return remaining, classify(remaining, self.thresholds)

    def _working_window(self, trigger_date: date, legal_deadline: date) -> Optional[WorkingDaysCalculation]:
        """Breakdown of the days after the trigger date up to the deadline."""
        first_day = trigger_date + timedelta(days=1)
        if not (self.calendar.covers(first_day) and self.calendar.covers(legal_deadline)):
            return None
        return calculate_working_days(first_day, legal_deadline, self.calendar)

    def _load(self, case_id: str) -> ComplianceContext:
        context = self.store.get_context(case_id)
        if context is None:
            raise CaseNotFoundError(case_id)
        return context

    async def _store(self, func, *args):
        return await call_store(func, *args, timeout_seconds=self.store_timeout)

    @asynccontextmanager
    async def _case_lock(self, case_id: str):
        """Serialise work on one case; the lock is dropped once nobody holds or awaits it."""
        lock = self._case_locks.setdefault(case_id, asyncio.Lock())
        self._lock_holders[case_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[case_id] -= 1
            if self._lock_holders[case_id] == 0:
                del self._lock_holders[case_id]
                del self._case_locks[case_id]

    # ==========================================
    # REGISTRATION
    # ==========================================

    async def initialize_compliance(
        self,
        case_id: str,
        trigger_date: date | datetime,
        jurisdiction_code: Optional[str] = None,
        identity_verified: bool = False
    ) -> ComplianceContext:
        """
        Start tracking a case.

        If the case is already in emergency at registration, the emergency
        protocol runs before this returns.

        Raises:
            DuplicateCaseError: case is already tracked
            HolidayCalendarNotLoadedError: the deadline window is not covered
        """
        trigger_date = normalize_date(trigger_date)

        async with self._case_lock(case_id):
            if await self._store(self.store.get_context, case_id) is not None:
                raise DuplicateCaseError(case_id)

            legal_deadline = calculate_deadline(trigger_date, self.required_working_days, self.calendar)
            calculation = calculate_working_days(
                trigger_date + timedelta(days=1), legal_deadline, self.calendar
            )
            remaining, status = self._evaluate(legal_deadline)
            now = self.clock.now()

            context = await self._store(self.store.insert_context, ComplianceContext(
                case_id=case_id,
                trigger_date=trigger_date,
                legal_deadline=legal_deadline,
                required_working_days=self.required_working_days,
                days_remaining=remaining,
                compliance_status=status,
                jurisdiction_code=jurisdiction_code or self.calendar.jurisdiction,
                identity_verified=identity_verified,
                last_checked_at=now,
                created_at=now,
            ))

            await self._store(self.store.append_timeline_event, TimelineEvent(
                case_id=case_id,
                event_type=TimelineEventType.REGISTRATION,
                timestamp=now,
                description=f"Compliance tracking started, legal deadline {legal_deadline.isoformat()}",
                metadata={
                    "trigger_date": trigger_date.isoformat(),
                    "legal_deadline": legal_deadline.isoformat(),
                    "required_working_days": self.required_working_days,
                    "days_remaining": remaining,
                    "compliance_status": status.value,
                    "weekends_skipped": len(calculation.weekends),
                    "holidays_skipped": len(calculation.holidays),
                },
            ))

            logger.info(
                f"Registered case {case_id}: trigger {trigger_date}, deadline {legal_deadline}, "
                f"{remaining} day(s) remaining ({status.value})"
            )

            if status is ComplianceStatus.EMERGENCY:
                await self.emergency_handler.trigger_emergency_response(case_id, context)
                context = await self._store(self._load, case_id)

        return context.model_copy(update={"working_days_calculation": calculation})

    # ==========================================
    # MONITORING
    # ==========================================

    async def monitor_compliance(self, case_id: str) -> ComplianceContext:
        """
        Re-evaluate a tracked case against the current time.

        Persists days remaining and status; a status_tier_change event is
        appended only when the persisted tier actually moved.

        Raises:
            CaseNotFoundError: case is not tracked
        """
        async with self._case_lock(case_id):
            current = await self._store(self._load, case_id)
            remaining, status = self._evaluate(current.legal_deadline)
            now = self.clock.now()

            updated = await self._store(self.store.update_context, case_id, {
                "days_remaining": remaining,
                "compliance_status": status,
                "last_checked_at": now,
            })

            if updated.compliance_status is not current.compliance_status:
                await self._store(self.store.append_timeline_event, TimelineEvent(
                    case_id=case_id,
                    event_type=TimelineEventType.STATUS_TIER_CHANGE,
                    timestamp=now,
                    description=(
                        f"Status changed from {current.compliance_status.value} "
                        f"to {updated.compliance_status.value}"
                    ),
                    metadata={
                        "previous_status": current.compliance_status.value,
                        "new_status": updated.compliance_status.value,
                        "days_remaining": updated.days_remaining,
                    },
                ))
                logger.info(
                    f"Case {case_id}: {current.compliance_status.value} → "
                    f"{updated.compliance_status.value} ({updated.days_remaining} day(s) remaining)"
                )
            elif updated.compliance_status is not status:
                logger.debug(
                    f"Case {case_id}: kept {updated.compliance_status.value}, "
                    f"evaluation produced {status.value}"
                )

            return updated

    async def escalate_emergency(self, context: ComplianceContext) -> EmergencyResponse:
        """Hand an emergency context to the emergency protocol handler."""
        return await self.emergency_handler.trigger_emergency_response(context.case_id, context)

    # ==========================================
    # ALERTS
    # ==========================================

    def generate_alerts(self, context: ComplianceContext) -> list[DeadlineAlert]:
        """Exactly one alert, for the context's current tier."""
        return derive_alerts(context, created_at=self.clock.now())

    async def issue_alerts(
        self,
        case_id: str,
        context: Optional[ComplianceContext] = None
    ) -> AlertDispatch:
        """
        Deliver the current alert to its stakeholders and record it.

        Delivery failures are logged and counted; the alert_issued event is
        appended either way.
        """
        if context is None:
            context = await self.load_context(case_id)

        generated = self.generate_alerts(context)
        delivered = 0
        attempted = 0

        for alert in generated:
            attempted += len(alert.stakeholders)
            sent = await deliver_alert(
                self.notifier, case_id, alert, timeout_seconds=self.notifier_timeout
            )
            delivered += sent

            await self._store(self.store.append_timeline_event, TimelineEvent(
                case_id=case_id,
                event_type=TimelineEventType.ALERT_ISSUED,
                timestamp=alert.created_at,
                description=f"{alert.alert_type.value} alert issued to {len(alert.stakeholders)} stakeholder(s)",
                metadata={
                    "alert_id": str(alert.id),
                    "alert_type": alert.alert_type.value,
                    "status": alert.status.value,
                    "hours_remaining": alert.hours_remaining,
                    "stakeholders": [role.value for role in alert.stakeholders],
                    "delivered": sent,
                },
            ))

        return AlertDispatch(
            case_id=case_id,
            alerts=generated,
            delivered=delivered,
            attempted=attempted,
        )

    # ==========================================
    # READS
    # ==========================================

    def get_context(self, case_id: str) -> ComplianceContext:
        """
        Current view of a case without persisting anything.

        Days remaining are derived now; the reported status is never less
        severe than the persisted one.
        """
        stored = self._load(case_id)
        remaining, status = self._evaluate(stored.legal_deadline)
        return stored.model_copy(update={
            "days_remaining": remaining,
            "compliance_status": most_severe(stored.compliance_status, status),
            "working_days_calculation": self._working_window(stored.trigger_date, stored.legal_deadline),
        })

    async def load_context(self, case_id: str) -> ComplianceContext:
        """get_context off the event loop, for async callers."""
        return await self._store(self.get_context, case_id)

    async def load_persisted(self, case_id: str) -> ComplianceContext:
        """The case exactly as stored, off the event loop."""
        return await self._store(self._load, case_id)

    async def list_active_cases(self) -> list[ComplianceContext]:
        """Open cases as persisted, most urgent deadline first."""
        return await self._store(self.store.list_active_contexts)

    def get_alerts(self, case_id: str) -> list[DeadlineAlert]:
        return self.generate_alerts(self.get_context(case_id))

    def get_timeline(self, case_id: str) -> list[TimelineEvent]:
        self._load(case_id)
        return self.store.get_timeline_events(case_id)

    def get_overview(self) -> ComplianceOverview:
        """Dashboard summary of every active case, most urgent deadline first."""
        today = self.today()
        entries = []
        status_counts = {status: 0 for status in ComplianceStatus}

        for stored in self.store.list_active_contexts():
            remaining = days_remaining(stored.legal_deadline, today)
            status = most_severe(stored.compliance_status, classify(remaining, self.thresholds))
            status_counts[status] += 1
            entries.append(ComplianceOverviewEntry(
                case_id=stored.case_id,
                trigger_date=stored.trigger_date,
                legal_deadline=stored.legal_deadline,
                days_remaining=remaining,
                compliance_status=status,
                emergency_protocol_active=stored.emergency_protocol_active,
                jurisdiction_code=stored.jurisdiction_code,
            ))

        return ComplianceOverview(
            generated_at=self.clock.now(),
            total_active=len(entries),
            overdue_count=sum(1 for entry in entries if entry.days_remaining < 0),
            status_counts=status_counts,
            cases=entries,
        )
