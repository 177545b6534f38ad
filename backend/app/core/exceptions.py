"""
Custom exceptions for the compliance engine.
Provides meaningful error types for different failure scenarios.
"""
from typing import Any, Optional


class ComplianceEngineException(Exception):
    """Base exception for all compliance engine errors."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500
    ):
        self.message = message
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ComplianceEngineException):
    """Raised when data validation fails."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details, status_code=422)


class ConfigurationError(ComplianceEngineException):
    """Raised when required configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        config_key: str,
        expected_type: Optional[str] = None,
        actual_value: Optional[str] = None
    ):
        details = {
            "config_key": config_key
        }
        if expected_type:
            details["expected_type"] = expected_type
        if actual_value:
            actual_value = str(actual_value)
            details["actual_value"] = actual_value[:50] if len(actual_value) > 50 else actual_value

        super().__init__(message, details, status_code=500)


class HolidayCalendarNotLoadedError(ConfigurationError):
    """
    Raised when a date falls outside the years the holiday calendar covers.

    Treating an unloaded year as "no holidays" would under-count the
    working days lost and report a deadline that is too early.
    """

    def __init__(self, jurisdiction: str, year: int):
        super().__init__(
            f"No holiday calendar loaded for {jurisdiction} {year}",
            config_key="holiday_years",
            actual_value=str(year)
        )
        self.details["jurisdiction"] = jurisdiction
        self.details["year"] = year


class CaseNotFoundError(ComplianceEngineException):
    """Raised when no compliance context exists for a case."""

    def __init__(self, case_id: str):
        super().__init__(
            f"No compliance tracking found for case {case_id}",
            {"case_id": case_id},
            status_code=404
        )


class DuplicateCaseError(ComplianceEngineException):
    """Raised when registering a case that is already tracked."""

    def __init__(self, case_id: str):
        super().__init__(
            f"Case {case_id} is already tracked; use monitoring instead",
            {"case_id": case_id},
            status_code=409
        )


class DatabaseError(ComplianceEngineException):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[str] = None
    ):
        details = {}
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = original_error

        super().__init__(message, details, status_code=500)


class NotificationError(ComplianceEngineException):
    """Raised by a notifier when delivery to a stakeholder fails."""

    def __init__(
        self,
        message: str,
        stakeholder: Optional[str] = None,
        channel: Optional[str] = None
    ):
        details = {}
        if stakeholder:
            details["stakeholder"] = stakeholder
        if channel:
            details["channel"] = channel

        super().__init__(message, details, status_code=502)


class EmergencyProtocolError(ComplianceEngineException):
    """Raised when the emergency protocol is invoked for a case that is not in emergency."""

    def __init__(self, case_id: str, current_status: str):
        super().__init__(
            f"Emergency protocol requires emergency status, case {case_id} is {current_status}",
            {"case_id": case_id, "current_status": current_status},
            status_code=409
        )


class SchedulerJobError(ComplianceEngineException):
    """Raised when a scheduler job fails."""

    def __init__(
        self,
        message: str,
        job_id: str,
        failure_count: int,
        last_error: Optional[str] = None
    ):
        details = {
            "job_id": job_id,
            "failure_count": failure_count,
        }
        if last_error:
            details["last_error"] = last_error

        super().__init__(message, details, status_code=500)
