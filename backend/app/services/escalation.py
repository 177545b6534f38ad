"""
Emergency Protocol Handler.

Handles the one-time escalation of a case whose legal
deadline has been reached or passed.

Key Features:
- Compare-and-set activation: only the first call flips the flag
- Audit event recording days overdue, written before any notification;
  if it cannot be written the activation is released so a later call retries
- Notifications to every emergency stakeholder, bounded by a timeout
- Fixed review cadence once a case is in emergency
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from app.core.clock import Clock, SystemClock
from app.core.exceptions import EmergencyProtocolError
from app.models.enums import ComplianceStatus, EscalationLevel, TimelineEventType
from app.models.schemas import ComplianceContext, EmergencyResponse, TimelineEvent
from app.services.alerts import build_alert
from app.services.compliance_store import ComplianceStore, call_store
from app.services.notifications import Notifier, deliver_alert


logger = logging.getLogger(__name__)


DEFAULT_REVIEW_INTERVAL = timedelta(hours=1)


def escalation_level_for(days_remaining: int) -> EscalationLevel:
    """
    Escalation level of an emergency case.

    Deadline day itself is critical; once the deadline has passed it is
    a full emergency.
    """
    if days_remaining < 0:
        return EscalationLevel.EMERGENCY
    return EscalationLevel.CRITICAL


class EmergencyProtocolHandler:
    """
    Activates the emergency protocol for a case.

    Safe to call repeatedly: after the first activation further calls
    return a fresh EmergencyResponse without re-firing notifications or
    appending another audit event.
    """

    def __init__(
        self,
        store: ComplianceStore,
        notifier: Notifier,
        clock: Optional[Clock] = None,
        review_interval: timedelta = DEFAULT_REVIEW_INTERVAL,
        notifier_timeout: float = 10.0,
        store_timeout: float = 10.0
    ):
        self.store = store
        self.notifier = notifier
        self.clock = clock or SystemClock()
        self.review_interval = review_interval
        self.notifier_timeout = notifier_timeout
        self.store_timeout = store_timeout

    async def trigger_emergency_response(
        self,
        case_id: str,
        context: ComplianceContext
    ) -> EmergencyResponse:
        """
        Trigger the emergency protocol for a case.

        Args:
            case_id: Tracked case
            context: Freshly evaluated context for the case

        Returns:
            EmergencyResponse with the number of stakeholders reached

        Raises:
            EmergencyProtocolError: context is not in emergency status
            CaseNotFoundError: case is not tracked
        """
        if context.compliance_status is not ComplianceStatus.EMERGENCY:
            raise EmergencyProtocolError(case_id, context.compliance_status.value)

        now = self.clock.now()
        days_overdue = max(0, -context.days_remaining)
        level = escalation_level_for(context.days_remaining)

        newly_triggered = await self._store(self.store.activate_emergency_protocol, case_id, now)
        alerts_sent = 0

        if newly_triggered:
            logger.critical(
                f"🚨 EMERGENCY PROTOCOL TRIGGERED for case {case_id} "
                f"(deadline {context.legal_deadline}, {days_overdue} day(s) overdue)"
            )

            event = TimelineEvent(
                case_id=case_id,
                event_type=TimelineEventType.EMERGENCY_TRIGGERED,
                timestamp=now,
                description="Emergency protocol activated due to deadline breach",
                metadata={
                    "days_overdue": days_overdue,
                    "days_remaining": context.days_remaining,
                    "legal_deadline": context.legal_deadline.isoformat(),
                    "escalation_level": level.value,
                },
            )
            try:
                await self._store(self.store.append_timeline_event, event)
            except Exception:
                await self._release(case_id, now)
                raise

            alert = build_alert(
                case_id,
                ComplianceStatus.EMERGENCY,
                context.days_remaining,
                created_at=now,
            )
            alerts_sent = await deliver_alert(
                self.notifier, case_id, alert, timeout_seconds=self.notifier_timeout
            )
            logger.info(
                f"Emergency notifications for case {case_id}: "
                f"{alerts_sent}/{len(alert.stakeholders)} delivered"
            )
        else:
            logger.info(f"Emergency protocol already active for case {case_id}; not re-notifying")

        return EmergencyResponse(
            case_id=case_id,
            alerts_sent=alerts_sent,
            emergency_protocol_active=True,
            newly_triggered=newly_triggered,
            days_overdue=days_overdue,
            next_review_time=now + self.review_interval,
            escalation_level=level,
        )

    async def _store(self, func, *args):
        return await call_store(func, *args, timeout_seconds=self.store_timeout)

    async def _release(self, case_id: str, triggered_at: datetime) -> None:
        """Undo an activation whose audit event was not written."""
        try:
            released = await self._store(self.store.release_emergency_protocol, case_id, triggered_at)
        except Exception as e:
            logger.error(
                f"Could not release emergency protocol for case {case_id} "
                f"after a failed audit write: {e}",
                exc_info=True
            )
            return
        if released:
            logger.warning(
                f"Emergency audit event for case {case_id} was not written; "
                f"activation released for retry"
            )
