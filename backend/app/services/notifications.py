"""
Notification Service for the compliance engine.

Handles all outbound stakeholder notifications:
- Email (via SendGrid/SMTP)
- Slack (via webhook, operations/management channel)

Provides:
- Plain-text alert rendering
- Retry logic with exponential backoff
- Bounded fan-out (deliver_alert): a slow or failing notifier never stalls
  the evaluation that produced the alert
"""
import asyncio
import hashlib
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import Optional, Protocol

import httpx

from app.core.exceptions import NotificationError
from app.models.enums import AlertType, StakeholderRole
from app.models.schemas import DeadlineAlert


# Configure logging
logger = logging.getLogger(__name__)


class NotificationChannel(Enum):
    """Supported notification channels."""
    EMAIL = "EMAIL"
    SLACK = "SLACK"
    LOG = "LOG"


@dataclass
class NotificationResult:
    """Result of a notification attempt."""
    success: bool
    channel: NotificationChannel
    message_id: Optional[str] = None
    error: Optional[str] = None
    retry_after: Optional[datetime] = None


@dataclass
class EmailMessage:
    """Email message structure."""
    to_email: str
    to_name: str
    subject: str
    text_body: str
    tracking_id: Optional[str] = None


class Notifier(Protocol):
    """Outbound notification collaborator."""

    async def notify(
        self,
        stakeholder: StakeholderRole,
        case_id: str,
        alert: DeadlineAlert
    ) -> NotificationResult:
        ...


# ==========================================
# ALERT RENDERING
# ==========================================

_SUBJECT_PREFIX = {
    AlertType.INFO: "",
    AlertType.WARNING: "⚠️ ",
    AlertType.CRITICAL: "🔴 ",
    AlertType.EMERGENCY: "🚨 ",
}


def render_alert(case_id: str, alert: DeadlineAlert) -> tuple[str, str]:
    """Render (subject, plain-text body) for an alert."""
    subject = (
        f"{_SUBJECT_PREFIX[alert.alert_type]}[{alert.alert_type.value.upper()}] "
        f"Case {case_id}: {alert.hours_remaining}h remaining"
    )
    actions = "\n".join(f"  - {action}" for action in alert.actions_required)
    body = f"""
{alert.message}

Case: {case_id}
Status: {alert.status.value}
Hours remaining: {alert.hours_remaining}

Actions required:
{actions}

---
Automated message from the deadline compliance engine.
"""
    return subject, body.strip()


# ==========================================
# NOTIFIERS
# ==========================================

class LoggingNotifier:
    """Dry-run notifier: logs what would be sent and reports success."""

    async def notify(
        self,
        stakeholder: StakeholderRole,
        case_id: str,
        alert: DeadlineAlert
    ) -> NotificationResult:
        subject, _ = render_alert(case_id, alert)
        logger.info(f"[dry-run] Would notify {stakeholder.value} for case {case_id}: {subject}")
        return NotificationResult(
            success=True,
            channel=NotificationChannel.LOG,
            message_id=f"dry-{alert.id.hex[:8]}-{stakeholder.value}"
        )


class NotificationService:
    """
    Notification service supporting email and Slack.

    Features:
    - Email via SMTP or SendGrid, addressed by stakeholder role
    - Slack webhook for the management role
    - Retry with exponential backoff
    """

    def __init__(self, settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.email_enabled = settings.email_enabled
        self.slack_enabled = settings.slack_enabled
        self.max_retries = max(1, settings.max_notification_retries)
        self.base_delay = settings.notification_retry_backoff_base
        self._http_client = http_client

    async def notify(
        self,
        stakeholder: StakeholderRole,
        case_id: str,
        alert: DeadlineAlert
    ) -> NotificationResult:
        """
        Deliver an alert to one stakeholder role.

        Raises:
            NotificationError: the role has no configured channel
        """
        subject, body = render_alert(case_id, alert)

        if stakeholder is StakeholderRole.MANAGEMENT and self.slack_enabled:
            return await self._retry_with_backoff(self._send_slack_once, f"*{subject}*\n{body}")

        address = self.settings.stakeholder_emails.get(stakeholder.value)
        if not address:
            if self.settings.notifications_dry_run:
                return await LoggingNotifier().notify(stakeholder, case_id, alert)
            raise NotificationError(
                f"No contact configured for stakeholder '{stakeholder.value}'",
                stakeholder=stakeholder.value,
                channel=NotificationChannel.EMAIL.value
            )

        message = EmailMessage(
            to_email=address,
            to_name=stakeholder.value.capitalize(),
            subject=subject,
            text_body=body,
            tracking_id=str(alert.id)
        )
        return await self._send_email(message)

    async def _retry_with_backoff(self, operation, *args, **kwargs) -> NotificationResult:
        """
        Execute operation with exponential backoff retry.

        Returns:
            NotificationResult from the last attempt
        """
        last_result = None

        for attempt in range(self.max_retries):
            last_result = await operation(*args, **kwargs)

            if last_result.success:
                return last_result

            # Don't retry on the last attempt
            if attempt < self.max_retries - 1:
                # Exponential backoff, capped at 60 seconds
                delay = min(self.base_delay * (2 ** attempt), 60)
                logger.warning(
                    f"Notification failed (attempt {attempt + 1}/{self.max_retries}): {last_result.error}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)

        logger.error(f"Notification failed after {self.max_retries} attempts: {last_result.error}")
        return NotificationResult(
            success=False,
            channel=last_result.channel,
            error=f"Failed after {self.max_retries} attempts: {last_result.error}",
            retry_after=datetime.now(timezone.utc) + timedelta(minutes=15)
        )

    async def _send_email(self, message: EmailMessage) -> NotificationResult:
        """
        Send email via configured provider.

        Supports:
        - SendGrid (if configured)
        - SMTP
        """
        if self.settings.sendgrid_api_key:
            send_func = self._send_via_sendgrid_once
        elif self.settings.smtp_host:
            send_func = self._send_via_smtp_once
        else:
            # No provider configured: development mode
            logger.warning(f"Email not configured. Would send to: {message.to_email}")
            logger.info(f"Subject: {message.subject}")
            return NotificationResult(
                success=True,
                channel=NotificationChannel.EMAIL,
                message_id=f"dev-{hashlib.md5(message.subject.encode()).hexdigest()[:8]}"
            )

        return await self._retry_with_backoff(send_func, message)

    async def _send_via_smtp_once(self, message: EmailMessage) -> NotificationResult:
        """Send email via SMTP (single attempt)."""
        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = message.subject
            msg['From'] = f"{self.settings.app_name} <{self.settings.smtp_from_email}>"
            msg['To'] = f"{message.to_name} <{message.to_email}>"
            msg.attach(MIMEText(message.text_body, 'plain'))

            # Run in executor to avoid blocking the event loop
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._smtp_send_sync, msg)

            return NotificationResult(
                success=True,
                channel=NotificationChannel.EMAIL,
                message_id=f"smtp-{datetime.now(timezone.utc).timestamp()}"
            )

        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP send failed: {e}")
            return NotificationResult(
                success=False,
                channel=NotificationChannel.EMAIL,
                error=str(e),
                retry_after=datetime.now(timezone.utc) + timedelta(minutes=5)
            )

    def _smtp_send_sync(self, msg) -> None:
        """Synchronous SMTP send for executor."""
        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port) as server:
            if self.settings.smtp_use_tls:
                server.starttls()
            if self.settings.smtp_user and self.settings.smtp_password:
                server.login(self.settings.smtp_user, self.settings.smtp_password)
            server.send_message(msg)

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(url, **kwargs)
        async with httpx.AsyncClient(timeout=10.0) as client:
            return await client.post(url, **kwargs)

    async def _send_via_sendgrid_once(self, message: EmailMessage) -> NotificationResult:
        """Send email via SendGrid API (single attempt)."""
        payload = {
            "personalizations": [{
                "to": [{"email": message.to_email, "name": message.to_name}]
            }],
            "from": {"email": self.settings.sendgrid_from_email, "name": self.settings.app_name},
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.text_body},
            ]
        }

        try:
            response = await self._post(
                "https://api.sendgrid.com/v3/mail/send",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.settings.sendgrid_api_key}",
                    "Content-Type": "application/json"
                }
            )
        except httpx.HTTPError as e:
            logger.error(f"SendGrid send failed: {e}")
            return NotificationResult(
                success=False,
                channel=NotificationChannel.EMAIL,
                error=str(e),
                retry_after=datetime.now(timezone.utc) + timedelta(minutes=5)
            )

        if response.status_code in [200, 202]:
            message_id = response.headers.get("X-Message-Id", f"sg-{datetime.now(timezone.utc).timestamp()}")
            return NotificationResult(
                success=True,
                channel=NotificationChannel.EMAIL,
                message_id=message_id
            )

        return NotificationResult(
            success=False,
            channel=NotificationChannel.EMAIL,
            error=f"SendGrid error: {response.status_code} - {response.text}",
            retry_after=datetime.now(timezone.utc) + timedelta(minutes=5)
        )

    async def _send_slack_once(self, text: str) -> NotificationResult:
        """Post a message to the Slack webhook (single attempt)."""
        try:
            response = await self._post(self.settings.slack_webhook_url, json={"text": text})
        except httpx.HTTPError as e:
            logger.error(f"Slack webhook failed: {e}")
            return NotificationResult(success=False, channel=NotificationChannel.SLACK, error=str(e))

        if response.status_code == 200:
            return NotificationResult(
                success=True,
                channel=NotificationChannel.SLACK,
                message_id=f"slack-{datetime.now(timezone.utc).timestamp()}"
            )
        return NotificationResult(
            success=False,
            channel=NotificationChannel.SLACK,
            error=f"Slack error: {response.status_code} - {response.text}"
        )


def build_notifier(settings) -> Notifier:
    """Pick the notifier for the current configuration."""
    if settings.notifications_dry_run:
        return LoggingNotifier()
    return NotificationService(settings)


# ==========================================
# BOUNDED FAN-OUT
# ==========================================

async def deliver_alert(
    notifier: Notifier,
    case_id: str,
    alert: DeadlineAlert,
    timeout_seconds: float = 10.0
) -> int:
    """
    Send an alert to every stakeholder on it.

    Each call is bounded by timeout_seconds. Failures and timeouts are
    logged and counted as undelivered; nothing is raised.

    Returns:
        Number of stakeholders the alert was delivered to
    """
    async def _deliver(stakeholder: StakeholderRole) -> bool:
        try:
            result = await asyncio.wait_for(
                notifier.notify(stakeholder, case_id, alert),
                timeout=timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Notifier timed out after {timeout_seconds}s for {stakeholder.value} on case {case_id}"
            )
            return False
        except Exception as e:
            logger.error(f"Failed to notify {stakeholder.value} on case {case_id}: {e}")
            return False

        if not result.success:
            logger.warning(f"Notification to {stakeholder.value} on case {case_id} failed: {result.error}")
        return result.success

    delivered = await asyncio.gather(*(_deliver(role) for role in alert.stakeholders))
    return sum(1 for ok in delivered if ok)
