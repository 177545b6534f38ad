# Services - Business Logic Layer
"""
Compliance Engine Services Module.

This module provides the core business logic for:
- Working-day calendar arithmetic
- Compliance status tracking and audit timeline
- Alerts, notifications and the emergency protocol
- Background compliance monitoring
"""

# Working Day Calculations
from .business_days import (
    is_weekend,
    classify_day,
    is_working_day,
    calculate_working_days,
    calculate_deadline,
    days_remaining,
    format_deadline_message,
)

# Holiday Calendar
from .holiday_calendar import (
    HolidayCalendar,
    builtin_holiday_calendar,
    load_holiday_calendar,
)

# Status Classification
from .status_classifier import (
    StatusThresholds,
    classify,
)

# Alerts & Notifications
from .alerts import build_alert, generate_alerts
from .notifications import (
    Notifier,
    NotificationResult,
    NotificationService,
    LoggingNotifier,
    deliver_alert,
)

# Persistence
from .compliance_store import (
    ComplianceStore,
    InMemoryComplianceStore,
    SupabaseComplianceStore,
)

# Enforcement, Emergency Protocol, Monitoring
from .escalation import EmergencyProtocolHandler
from .timeline_enforcement import TimelineEnforcementService
from .scheduler import ComplianceMonitor, MonitoringRunSummary
from .engine import ComplianceEngine, build_engine


__all__ = [
    # Working Days
    "is_weekend",
    "classify_day",
    "is_working_day",
    "calculate_working_days",
    "calculate_deadline",
    "days_remaining",
    "format_deadline_message",

    # Holiday Calendar
    "HolidayCalendar",
    "builtin_holiday_calendar",
    "load_holiday_calendar",

    # Status
    "StatusThresholds",
    "classify",

    # Alerts & Notifications
    "build_alert",
    "generate_alerts",
    "Notifier",
    "NotificationResult",
    "NotificationService",
    "LoggingNotifier",
    "deliver_alert",

    # Persistence
    "ComplianceStore",
    "InMemoryComplianceStore",
    "SupabaseComplianceStore",

    # Engine
    "EmergencyProtocolHandler",
    "TimelineEnforcementService",
    "ComplianceMonitor",
    "MonitoringRunSummary",
    "ComplianceEngine",
    "build_engine",
]
