"""
Pydantic schemas for the compliance engine's value objects.
Covers: working-day calculations, compliance contexts, timeline events,
deadline alerts and emergency responses.
"""
from datetime import date, datetime, timezone
from typing import Optional, Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import (
    AlertType,
    ComplianceStatus,
    EscalationLevel,
    StakeholderRole,
    TimelineEventType,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ==========================================
# WORKING DAYS
# ==========================================

class WorkingDaysCalculation(BaseModel):
    """Day-by-day breakdown of a closed interval [start_date, end_date]."""
    model_config = ConfigDict(frozen=True)

    start_date: date
    end_date: date
    total_days: int = Field(..., ge=1)
    working_days: int = Field(..., ge=0)
    weekends: list[date] = Field(default_factory=list)
    holidays: list[date] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_buckets(self) -> 'WorkingDaysCalculation':
        """Every day of the interval lands in exactly one bucket."""
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        if self.total_days != (self.end_date - self.start_date).days + 1:
            raise ValueError("total_days does not match the interval length")
        if self.total_days != self.working_days + len(self.weekends) + len(self.holidays):
            raise ValueError("total_days must equal working_days + weekends + holidays")
        if set(self.weekends) & set(self.holidays):
            raise ValueError("a date cannot be both weekend and holiday")
        return self


# ==========================================
# COMPLIANCE CONTEXT
# ==========================================

class ComplianceContext(BaseModel):
    """
    Compliance state of one tracked case.

    trigger_date and legal_deadline never change after registration.
    days_remaining and compliance_status are snapshots taken at read time.
    """
    case_id: str = Field(..., min_length=1, max_length=100)
    trigger_date: date
    legal_deadline: date
    required_working_days: int = Field(..., ge=1)
    days_remaining: int
    compliance_status: ComplianceStatus = ComplianceStatus.PENDING
    emergency_protocol_active: bool = False
    emergency_triggered_at: Optional[datetime] = None
    jurisdiction_code: Optional[str] = Field(None, max_length=10)
    identity_verified: bool = False
    is_closed: bool = False
    last_checked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    working_days_calculation: Optional[WorkingDaysCalculation] = None

    @model_validator(mode='after')
    def validate_deadline(self) -> 'ComplianceContext':
        """The legal deadline always lies strictly after the trigger date."""
        if self.legal_deadline <= self.trigger_date:
            raise ValueError("legal_deadline must be after trigger_date")
        return self

    @property
    def is_overdue(self) -> bool:
        return self.days_remaining < 0


# ==========================================
# TIMELINE EVENTS (append-only audit)
# ==========================================

class TimelineEvent(BaseModel):
    """Immutable audit record for a tracked case."""
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    case_id: str = Field(..., min_length=1)
    event_type: TimelineEventType
    timestamp: datetime = Field(default_factory=_utcnow)
    description: str = Field(..., min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


# ==========================================
# ALERTS
# ==========================================

class DeadlineAlert(BaseModel):
    """Regenerable alert derived from a case's current status tier."""
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    case_id: str
    status: ComplianceStatus
    alert_type: AlertType
    hours_remaining: int = Field(..., ge=0)
    message: str = Field(..., min_length=1)
    actions_required: list[str] = Field(..., min_length=1)
    stakeholders: list[StakeholderRole] = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=_utcnow)


class EmergencyResponse(BaseModel):
    """Outcome of invoking the emergency protocol for a case."""
    model_config = ConfigDict(frozen=True)

    case_id: str
    alerts_sent: int = Field(0, ge=0)
    emergency_protocol_active: bool = True
    newly_triggered: bool
    days_overdue: int = Field(0, ge=0)
    next_review_time: datetime
    escalation_level: EscalationLevel


# ==========================================
# DASHBOARD
# ==========================================

class ComplianceOverviewEntry(BaseModel):
    """One active case as shown on the operator dashboard."""
    case_id: str
    trigger_date: date
    legal_deadline: date
    days_remaining: int
    compliance_status: ComplianceStatus
    emergency_protocol_active: bool
    jurisdiction_code: Optional[str] = None


class ComplianceOverview(BaseModel):
    """Summary of all active cases."""
    generated_at: datetime
    total_active: int
    overdue_count: int
    status_counts: dict[ComplianceStatus, int]
    cases: list[ComplianceOverviewEntry]
