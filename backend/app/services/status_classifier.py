"""
Compliance status classification.

Maps days remaining until the legal deadline onto the four status tiers.
Thresholds are configuration, validated once when the classifier is built.
"""
from dataclasses import dataclass

from app.core.exceptions import ConfigurationError
from app.models.enums import ComplianceStatus


@dataclass(frozen=True)
class StatusThresholds:
    """Inclusive upper bounds (in days remaining) for each urgent tier."""
    emergency: int = 0
    at_risk: int = 1
    in_progress: int = 2

    def __post_init__(self):
        if not (self.emergency < self.at_risk < self.in_progress):
            raise ConfigurationError(
                "Status thresholds must be strictly increasing: emergency < at_risk < in_progress",
                config_key="status_thresholds",
                actual_value=f"{self.emergency},{self.at_risk},{self.in_progress}"
            )

    @classmethod
    def from_settings(cls, settings) -> "StatusThresholds":
        emergency, at_risk, in_progress = settings.status_thresholds
        return cls(emergency=emergency, at_risk=at_risk, in_progress=in_progress)


DEFAULT_THRESHOLDS = StatusThresholds()


def classify(
    days_remaining: int,
    thresholds: StatusThresholds = DEFAULT_THRESHOLDS
) -> ComplianceStatus:
    """
    Determine the status tier for a number of days remaining.

    With default thresholds:
        <= 0 → emergency
        <= 1 → at_risk
        <= 2 → in_progress
        else → pending
    """
    if days_remaining <= thresholds.emergency:
        return ComplianceStatus.EMERGENCY
    if days_remaining <= thresholds.at_risk:
        return ComplianceStatus.AT_RISK
    if days_remaining <= thresholds.in_progress:
        return ComplianceStatus.IN_PROGRESS
    return ComplianceStatus.PENDING


def most_severe(first: ComplianceStatus, second: ComplianceStatus) -> ComplianceStatus:
    """Pick the more severe of two tiers."""
    return first if first.severity >= second.severity else second
