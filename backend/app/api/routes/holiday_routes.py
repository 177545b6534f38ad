"""
Holiday Calendar API Routes.

Read-only views over the engine's loaded holiday calendar and the
working-day calculator it feeds.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_engine
from app.models.enums import DayType
from app.services.business_days import (
    calculate_deadline,
    calculate_working_days,
    classify_day,
)
from app.services.engine import ComplianceEngine


router = APIRouter(prefix="/api/holidays", tags=["Holidays"])


@router.get(
    "",
    summary="List Holidays",
    description="Holidays in the loaded calendar, optionally for one year"
)
async def list_holidays(
    year: Optional[int] = Query(None, description="Filter by year"),
    engine: ComplianceEngine = Depends(get_engine)
) -> dict:
    calendar = engine.calendar
    years = [year] if year else sorted(calendar.covered_years)

    holidays = []
    for y in years:
        for day, name in calendar.holidays_between(date(y, 1, 1), date(y, 12, 31)):
            holidays.append({
                "holiday_date": day.isoformat(),
                "name": name,
                "day_of_week": day.strftime("%A"),
            })

    return {
        "jurisdiction": calendar.jurisdiction,
        "covered_years": sorted(calendar.covered_years),
        "holidays": holidays,
        "count": len(holidays)
    }


@router.get(
    "/check-working-day",
    summary="Check Working Day",
    description="Check if a date is a working day"
)
async def check_working_day(
    check_date: date = Query(..., description="Date to check"),
    engine: ComplianceEngine = Depends(get_engine)
) -> dict:
    day_type = classify_day(check_date, engine.calendar)
    return {
        "date": check_date.isoformat(),
        "day_of_week": check_date.strftime("%A"),
        "day_type": day_type.value,
        "is_working_day": day_type is DayType.WORKING,
        "holiday_name": engine.calendar.holiday_name(check_date)
    }


@router.get(
    "/working-days",
    summary="Count Working Days",
    description="Working-day breakdown of the inclusive range [start_date, end_date]"
)
async def count_working_days(
    start_date: date = Query(..., description="First day (inclusive)"),
    end_date: date = Query(..., description="Last day (inclusive)"),
    engine: ComplianceEngine = Depends(get_engine)
) -> dict:
    calculation = calculate_working_days(start_date, end_date, engine.calendar)
    return calculation.model_dump(mode="json")


@router.get(
    "/deadline",
    summary="Preview Deadline",
    description="Legal deadline for a trigger date without registering a case"
)
async def preview_deadline(
    trigger_date: date = Query(..., description="Date the statutory clock starts"),
    working_days: Optional[int] = Query(None, ge=1, le=365, description="Defaults to the configured rule"),
    engine: ComplianceEngine = Depends(get_engine)
) -> dict:
    required = working_days or engine.settings.required_working_days
    deadline = calculate_deadline(trigger_date, required, engine.calendar)
    return {
        "trigger_date": trigger_date.isoformat(),
        "required_working_days": required,
        "legal_deadline": deadline.isoformat(),
        "day_of_week": deadline.strftime("%A"),
    }
