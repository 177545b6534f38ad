"""
Enum types shared by the engine and the database schema.
String values are what gets persisted in compliance_tracking / timeline_events.
"""
from enum import Enum


class ComplianceStatus(str, Enum):
    """
    Compliance status tiers, declared in increasing order of severity.
    Matches: compliance_status in ('pending', 'in_progress', 'at_risk', 'emergency')
    """
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    AT_RISK = "at_risk"
    EMERGENCY = "emergency"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def is_more_severe_than(self, other: "ComplianceStatus") -> bool:
        return self.severity > other.severity

    @classmethod
    def at_most(cls, status: "ComplianceStatus") -> list["ComplianceStatus"]:
        """All tiers with severity lower than or equal to ``status``."""
        return [tier for tier in cls if tier.severity <= status.severity]


_SEVERITY = {status: rank for rank, status in enumerate(ComplianceStatus)}


class TimelineEventType(str, Enum):
    """Kinds of audit records appended to a case timeline."""
    REGISTRATION = "registration"
    STATUS_TIER_CHANGE = "status_tier_change"
    ALERT_ISSUED = "alert_issued"
    EMERGENCY_TRIGGERED = "emergency_triggered"


class AlertType(str, Enum):
    """Alert severity label shown to stakeholders."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class StakeholderRole(str, Enum):
    """Parties notified about a case, in escalation order."""
    FAMILY = "family"
    DIRECTOR = "director"
    VENUE = "venue"
    MUNICIPALITY = "municipality"  # the regulating authority
    MANAGEMENT = "management"


class EscalationLevel(str, Enum):
    """Escalation level reported by the emergency protocol."""
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class DayType(str, Enum):
    """Classification of a single calendar day."""
    WORKING = "working"
    WEEKEND = "weekend"
    HOLIDAY = "holiday"
