"""
Configuration management using Pydantic Settings.
Loads environment variables from .env file.
"""
from datetime import date
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Deadline Compliance Engine"
    app_version: str = "0.1.0"
    debug: bool = False

    # CORS Settings (for operator dashboard)
    cors_origins: str = "http://localhost:3000"

    # Jurisdiction
    jurisdiction_code: str = "NL"
    jurisdiction_timezone: str = "Europe/Amsterdam"
    holiday_years: str = ""  # Comma-separated, empty = current + next year
    holiday_source: str = "builtin"  # builtin | database

    # Statutory timeline rule
    required_working_days: int = 6

    # Status tier thresholds (days remaining, inclusive upper bounds)
    emergency_threshold_days: int = 0
    at_risk_threshold_days: int = 1
    in_progress_threshold_days: int = 2

    # Persistence
    persistence_backend: str = "memory"  # memory | supabase
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: Optional[str] = None  # For admin operations
    persistence_timeout_seconds: float = 10.0

    # Scheduler Settings
    enable_scheduler: bool = True

    # Only ONE worker should run the monitor in multi-worker deployments
    run_scheduler: bool = False
    monitor_interval_minutes: int = 60
    monitor_max_concurrency: int = 5
    job_failure_alert_threshold: int = 2

    # Emergency protocol
    emergency_review_interval_hours: int = 1

    # Notifications
    notifier_timeout_seconds: float = 10.0
    notifications_dry_run: bool = False
    stakeholder_emails: dict[str, str] = {}  # role -> address, JSON in env
    max_notification_retries: int = 3
    notification_retry_backoff_base: float = 2.0

    # Email Configuration (SMTP)
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from_email: str = "noreply@uitvaart-compliance.nl"
    smtp_use_tls: bool = True

    # SendGrid Configuration (alternative to SMTP)
    sendgrid_api_key: Optional[str] = None
    sendgrid_from_email: str = "noreply@uitvaart-compliance.nl"

    # Slack Configuration
    slack_webhook_url: Optional[str] = None

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def holiday_year_list(self) -> list[int]:
        """Years the holiday calendar must cover."""
        if not self.holiday_years.strip():
            this_year = date.today().year
            return [this_year, this_year + 1]
        return sorted({int(year.strip()) for year in self.holiday_years.split(",") if year.strip()})

    @property
    def email_enabled(self) -> bool:
        """Check if email is configured."""
        return bool(self.smtp_host or self.sendgrid_api_key)

    @property
    def slack_enabled(self) -> bool:
        """Check if Slack is configured."""
        return bool(self.slack_webhook_url)

    @property
    def status_thresholds(self) -> tuple[int, int, int]:
        """(emergency, at_risk, in_progress) thresholds in days."""
        return (
            self.emergency_threshold_days,
            self.at_risk_threshold_days,
            self.in_progress_threshold_days,
        )


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance.
    Call this function to get application settings.
    """
    return Settings()


# Global settings instance
settings = get_settings()
