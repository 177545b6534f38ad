"""
Working Day Calculator for the compliance engine.

Pure calendar arithmetic over dates and a HolidayCalendar. Nothing here
reads the wall clock; callers pass "today" explicitly.

Key Rules:
- Working day = not Saturday/Sunday AND not a listed public holiday
- Weekend is checked first: a holiday on a Saturday counts as weekend
- The legal deadline is N working days AFTER the trigger date; the trigger
  date itself never counts
- Days remaining is a calendar-day countdown, not a working-day projection
"""
from datetime import date, timedelta

from app.core.exceptions import ValidationError
from app.models.enums import DayType
from app.models.schemas import WorkingDaysCalculation
from app.services.holiday_calendar import HolidayCalendar, normalize_date


def is_weekend(check_date: date) -> bool:
    """Check if date is a weekend (Saturday=5, Sunday=6)."""
    return check_date.weekday() >= 5


def classify_day(check_date: date, calendar: HolidayCalendar) -> DayType:
    """
    Classify a single calendar day.

    Weekend wins over holiday so a day is never counted twice.
    """
    if is_weekend(check_date):
        return DayType.WEEKEND
    if calendar.is_holiday(check_date):
        return DayType.HOLIDAY
    return DayType.WORKING


def is_working_day(check_date: date, calendar: HolidayCalendar) -> bool:
    """Working day = not weekend AND not holiday."""
    return classify_day(check_date, calendar) is DayType.WORKING


def calculate_working_days(
    start_date: date,
    end_date: date,
    calendar: HolidayCalendar
) -> WorkingDaysCalculation:
    """
    Walk the inclusive range [start_date, end_date] one day at a time.

    Example:
        start = Monday Jan 8, end = Monday Jan 15 (no holidays)
        → total 8, working 6, weekends [Sat 13, Sun 14]

    Args:
        start_date: First day of the interval (inclusive)
        end_date: Last day of the interval (inclusive)
        calendar: Holiday calendar covering every year in the range

    Returns:
        WorkingDaysCalculation with each day in exactly one bucket
    """
    start_date = normalize_date(start_date)
    end_date = normalize_date(end_date)

    if end_date < start_date:
        raise ValidationError(
            "end_date cannot be before start_date",
            field="end_date",
            value=end_date.isoformat()
        )

    working_days = 0
    total_days = 0
    weekends: list[date] = []
    holidays: list[date] = []

    current = start_date
    while current <= end_date:
        total_days += 1

        day_type = classify_day(current, calendar)
        if day_type is DayType.WEEKEND:
            weekends.append(current)
        elif day_type is DayType.HOLIDAY:
            holidays.append(current)
        else:
            working_days += 1

        current += timedelta(days=1)

    return WorkingDaysCalculation(
        start_date=start_date,
        end_date=end_date,
        total_days=total_days,
        working_days=working_days,
        weekends=weekends,
        holidays=holidays,
    )


def calculate_deadline(
    trigger_date: date,
    required_working_days: int,
    calendar: HolidayCalendar
) -> date:
    """
    Calculate the legal deadline: N working days after the trigger date.

    Example:
        trigger_date = Monday Jan 8, required_working_days = 6
        result = Tuesday Jan 16 (Tue..Fri, Mon, Tue; weekend skipped)

    Args:
        trigger_date: Date the statutory clock starts (not counted)
        required_working_days: Working days the law allows
        calendar: Holiday calendar covering the projected range

    Returns:
        The date on which the N-th working day is reached
    """
    if required_working_days < 1:
        raise ValidationError(
            "required_working_days must be at least 1",
            field="required_working_days",
            value=required_working_days
        )

    current = normalize_date(trigger_date)
    days_counted = 0

    while days_counted < required_working_days:
        current += timedelta(days=1)
        if is_working_day(current, calendar):
            days_counted += 1

    return current


def days_remaining(deadline: date, today: date) -> int:
    """
    Calendar days from today until the deadline.

    Both sides are calendar days; negative once the deadline has
    passed.
    """
    return (normalize_date(deadline) - normalize_date(today)).days


def format_deadline_message(deadline: date, today: date) -> str:
    """
    Format deadline for user-friendly display.

    Examples:
        "Today (Apr 15)"
        "Tomorrow (Apr 16)"
        "Wednesday, Apr 17"
        "Overdue by 2 days (Apr 13)"
    """
    remaining = days_remaining(deadline, today)

    if remaining == 0:
        return f"Today ({deadline.strftime('%b %d')})"
    elif remaining == 1:
        return f"Tomorrow ({deadline.strftime('%b %d')})"
    elif remaining < 0:
        overdue = abs(remaining)
        unit = "day" if overdue == 1 else "days"
        return f"Overdue by {overdue} {unit} ({deadline.strftime('%b %d')})"
    else:
        return deadline.strftime("%A, %b %d")
