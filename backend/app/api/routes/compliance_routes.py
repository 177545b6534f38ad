"""
Compliance API Routes.

Case-facing endpoints of the compliance engine:
- Case registration (called by the case registry)
- Current compliance view, timeline and alerts per case
- Operator dashboard
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, status
from pydantic import BaseModel, Field

from app.api.deps import get_service
from app.models.schemas import (
    ComplianceContext,
    ComplianceOverview,
    DeadlineAlert,
    TimelineEvent,
)
from app.services.business_days import format_deadline_message
from app.services.timeline_enforcement import TimelineEnforcementService


router = APIRouter(prefix="/api/compliance", tags=["Compliance"])


# ==========================================
# PYDANTIC MODELS
# ==========================================

class CaseRegistrationRequest(BaseModel):
    """Request body for registering a case."""
    case_id: str = Field(..., description="Case identifier from the case registry", min_length=1, max_length=100)
    trigger_date: date = Field(..., description="Date the statutory clock starts (e.g. death registration)")
    jurisdiction_code: Optional[str] = Field(None, description="Jurisdiction code, defaults to the engine's", max_length=10)
    identity_verified: bool = Field(False, description="Whether the subject's identity has been verified")


class CaseComplianceResponse(BaseModel):
    """Compliance view of one case."""
    context: ComplianceContext
    deadline_display: str


# ==========================================
# CASE ENDPOINTS
# ==========================================
# Reads are plain def: their store calls block, so they run in the threadpool

@router.post(
    "/cases",
    status_code=status.HTTP_201_CREATED,
    summary="Register Case",
    description="Start compliance tracking for a case; 409 if the case is already tracked"
)
async def register_case(
    body: CaseRegistrationRequest,
    service: TimelineEnforcementService = Depends(get_service)
) -> CaseComplianceResponse:
    context = await service.initialize_compliance(
        body.case_id,
        body.trigger_date,
        jurisdiction_code=body.jurisdiction_code,
        identity_verified=body.identity_verified,
    )
    return CaseComplianceResponse(
        context=context,
        deadline_display=format_deadline_message(context.legal_deadline, service.today()),
    )


@router.get(
    "/cases/{case_id}",
    summary="Get Case Compliance",
    description="Current deadline, days remaining and status tier of a case"
)
def get_case(
    case_id: str = Path(..., description="Case identifier"),
    service: TimelineEnforcementService = Depends(get_service)
) -> CaseComplianceResponse:
    context = service.get_context(case_id)
    return CaseComplianceResponse(
        context=context,
        deadline_display=format_deadline_message(context.legal_deadline, service.today()),
    )


@router.get(
    "/cases/{case_id}/timeline",
    summary="Get Case Timeline",
    description="Audit events of a case in timestamp order"
)
def get_case_timeline(
    case_id: str = Path(..., description="Case identifier"),
    service: TimelineEnforcementService = Depends(get_service)
) -> dict:
    events: list[TimelineEvent] = service.get_timeline(case_id)
    return {
        "case_id": case_id,
        "events": [event.model_dump(mode="json") for event in events],
        "count": len(events)
    }


@router.get(
    "/cases/{case_id}/alerts",
    summary="Get Case Alerts",
    description="Alert for the case's current status tier (not delivered)"
)
def get_case_alerts(
    case_id: str = Path(..., description="Case identifier"),
    service: TimelineEnforcementService = Depends(get_service)
) -> dict:
    alerts: list[DeadlineAlert] = service.get_alerts(case_id)
    return {
        "case_id": case_id,
        "alerts": [alert.model_dump(mode="json") for alert in alerts]
    }


# ==========================================
# DASHBOARD
# ==========================================

@router.get(
    "/dashboard",
    summary="Compliance Dashboard",
    description="Every active case with days remaining, status counts and overdue count"
)
def get_dashboard(
    service: TimelineEnforcementService = Depends(get_service)
) -> ComplianceOverview:
    return service.get_overview()
