# Data models - Enums and Pydantic Schemas
from .enums import (
    AlertType,
    ComplianceStatus,
    DayType,
    EscalationLevel,
    StakeholderRole,
    TimelineEventType,
)
from .schemas import (
    ComplianceContext,
    ComplianceOverview,
    ComplianceOverviewEntry,
    DeadlineAlert,
    EmergencyResponse,
    TimelineEvent,
    WorkingDaysCalculation,
)

__all__ = [
    # Enums
    "AlertType",
    "ComplianceStatus",
    "DayType",
    "EscalationLevel",
    "StakeholderRole",
    "TimelineEventType",
    # Value objects
    "ComplianceContext",
    "DeadlineAlert",
    "EmergencyResponse",
    "TimelineEvent",
    "WorkingDaysCalculation",
    # Dashboard
    "ComplianceOverview",
    "ComplianceOverviewEntry",
]
