# Core modules - Config, Exceptions, Clock, Database
from .config import settings
from .clock import Clock, SystemClock, local_today
from .exceptions import (
    ComplianceEngineException,
    ValidationError,
    ConfigurationError,
    HolidayCalendarNotLoadedError,
    CaseNotFoundError,
    DuplicateCaseError,
    DatabaseError,
    NotificationError,
    EmergencyProtocolError,
)

__all__ = [
    "settings",
    "Clock",
    "SystemClock",
    "local_today",
    "ComplianceEngineException",
    "ValidationError",
    "ConfigurationError",
    "HolidayCalendarNotLoadedError",
    "CaseNotFoundError",
    "DuplicateCaseError",
    "DatabaseError",
    "NotificationError",
    "EmergencyProtocolError",
]
