"""
Engine wiring.

Builds the compliance engine's components once, from settings, with
explicit references between them. The FastAPI app keeps the result on
app.state; tests build their own with fakes.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from app.core.clock import Clock, SystemClock
from app.core.config import Settings
from app.core.exceptions import ConfigurationError
from app.services.compliance_store import (
    ComplianceStore,
    InMemoryComplianceStore,
    SupabaseComplianceStore,
)
from app.services.escalation import EmergencyProtocolHandler
from app.services.holiday_calendar import HolidayCalendar, load_holiday_calendar
from app.services.notifications import Notifier, build_notifier
from app.services.scheduler import ComplianceMonitor
from app.services.status_classifier import StatusThresholds
from app.services.timeline_enforcement import TimelineEnforcementService


logger = logging.getLogger(__name__)


@dataclass
class ComplianceEngine:
    """The assembled engine."""
    settings: Settings
    clock: Clock
    calendar: HolidayCalendar
    store: ComplianceStore
    notifier: Notifier
    emergency_handler: EmergencyProtocolHandler
    service: TimelineEnforcementService
    monitor: ComplianceMonitor


def build_store(settings: Settings) -> ComplianceStore:
    """Pick the persistence backend."""
    backend = settings.persistence_backend.lower()
    if backend == "memory":
        return InMemoryComplianceStore()
    if backend == "supabase":
        from app.core.database import get_supabase_client
        return SupabaseComplianceStore(get_supabase_client())
    raise ConfigurationError(
        f"Unknown persistence backend: {settings.persistence_backend}",
        config_key="persistence_backend",
        expected_type="memory | supabase",
        actual_value=settings.persistence_backend
    )


def build_engine(
    settings: Settings,
    clock: Optional[Clock] = None,
    store: Optional[ComplianceStore] = None,
    notifier: Optional[Notifier] = None,
    calendar: Optional[HolidayCalendar] = None
) -> ComplianceEngine:
    """
    Assemble the engine from settings.

    Any collaborator can be passed in to override the configured one.

    Raises:
        ConfigurationError: invalid thresholds, unknown backend or a
            holiday year that cannot be loaded
    """
    clock = clock or SystemClock()
    thresholds = StatusThresholds.from_settings(settings)

    if store is None:
        store = build_store(settings)

    if calendar is None:
        db = None
        if settings.holiday_source == "database":
            from app.core.database import get_supabase_client
            db = get_supabase_client()
        calendar = load_holiday_calendar(
            settings.jurisdiction_code,
            settings.holiday_year_list,
            source=settings.holiday_source,
            db=db,
        )

    if notifier is None:
        notifier = build_notifier(settings)

    emergency_handler = EmergencyProtocolHandler(
        store=store,
        notifier=notifier,
        clock=clock,
        review_interval=timedelta(hours=settings.emergency_review_interval_hours),
        notifier_timeout=settings.notifier_timeout_seconds,
        store_timeout=settings.persistence_timeout_seconds,
    )

    service = TimelineEnforcementService(
        store=store,
        calendar=calendar,
        emergency_handler=emergency_handler,
        notifier=notifier,
        clock=clock,
        required_working_days=settings.required_working_days,
        thresholds=thresholds,
        timezone_name=settings.jurisdiction_timezone,
        notifier_timeout=settings.notifier_timeout_seconds,
        store_timeout=settings.persistence_timeout_seconds,
    )

    monitor = ComplianceMonitor(
        service=service,
        interval_minutes=settings.monitor_interval_minutes,
        max_concurrency=settings.monitor_max_concurrency,
        failure_threshold=settings.job_failure_alert_threshold,
        clock=clock,
    )

    logger.info(
        f"Compliance engine ready: {calendar.jurisdiction}, "
        f"{settings.required_working_days} working days, "
        f"store={type(store).__name__}, notifier={type(notifier).__name__}"
    )

    return ComplianceEngine(
        settings=settings,
        clock=clock,
        calendar=calendar,
        store=store,
        notifier=notifier,
        emergency_handler=emergency_handler,
        service=service,
        monitor=monitor,
    )
