"""
Deadline Alert Generator.

Builds the single alert that belongs to a case's current status tier:
message, stakeholders to notify and an action checklist. Stakeholder
lists grow with severity; the regulating authority (municipality) and
management only come in at emergency.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from app.models.enums import AlertType, ComplianceStatus, StakeholderRole
from app.models.schemas import ComplianceContext, DeadlineAlert


@dataclass(frozen=True)
class AlertTemplate:
    alert_type: AlertType
    message: str
    actions: tuple[str, ...]
    stakeholders: tuple[StakeholderRole, ...]


_BASE_STAKEHOLDERS = (StakeholderRole.FAMILY, StakeholderRole.DIRECTOR)

ALERT_TEMPLATES: dict[ComplianceStatus, AlertTemplate] = {
    ComplianceStatus.PENDING: AlertTemplate(
        alert_type=AlertType.INFO,
        message="Timeline on track. Continue with funeral planning.",
        actions=(
            "Gather family preferences",
            "Explore venue options",
            "Review service options",
        ),
        stakeholders=_BASE_STAKEHOLDERS,
    ),
    ComplianceStatus.IN_PROGRESS: AlertTemplate(
        alert_type=AlertType.WARNING,
        message="WARNING: 2 days or less remaining. Ensure progress is being made.",
        actions=(
            "Confirm all major decisions",
            "Book venue if not done",
            "Order required services",
            "Prepare documentation",
        ),
        stakeholders=_BASE_STAKEHOLDERS,
    ),
    ComplianceStatus.AT_RISK: AlertTemplate(
        alert_type=AlertType.CRITICAL,
        message="CRITICAL: 1 day or less remaining until the legal deadline!",
        actions=(
            "Finalize all arrangements immediately",
            "Confirm venue and time",
            "Complete all required documents",
            "Send final confirmations",
        ),
        stakeholders=_BASE_STAKEHOLDERS + (StakeholderRole.VENUE,),
    ),
    ComplianceStatus.EMERGENCY: AlertTemplate(
        alert_type=AlertType.EMERGENCY,
        message="EMERGENCY: Legal deadline reached or passed! Immediate action required.",
        actions=(
            "Contact the regulating authority immediately",
            "Request an emergency extension",
            "Activate the emergency protocol",
            "Notify all stakeholders",
        ),
        stakeholders=_BASE_STAKEHOLDERS + (
            StakeholderRole.VENUE,
            StakeholderRole.MUNICIPALITY,
            StakeholderRole.MANAGEMENT,
        ),
    ),
}


def hours_remaining(days_remaining: int) -> int:
    """Display value: never negative, even when the deadline has passed."""
    return max(0, days_remaining) * 24


def build_alert(
    case_id: str,
    status: ComplianceStatus,
    days_remaining: int,
    created_at: Optional[datetime] = None
) -> DeadlineAlert:
    """Build the alert for one status tier."""
    template = ALERT_TEMPLATES[status]
    return DeadlineAlert(
        case_id=case_id,
        status=status,
        alert_type=template.alert_type,
        hours_remaining=hours_remaining(days_remaining),
        message=template.message,
        actions_required=list(template.actions),
        stakeholders=list(template.stakeholders),
        created_at=created_at or datetime.now(timezone.utc),
    )


def generate_alerts(
    context: ComplianceContext,
    created_at: Optional[datetime] = None
) -> list[DeadlineAlert]:
    """
    Derive the alerts for a context's current status.

    Always exactly one alert, matching context.compliance_status.
    """
    return [
        build_alert(
            context.case_id,
            context.compliance_status,
            context.days_remaining,
            created_at=created_at,
        )
    ]
