"""
Test helper functions for the compliance engine.

Provides test doubles (clock, notifier, misbehaving stores) and utility
functions for common test operations.
"""
import asyncio
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

from fastapi.testclient import TestClient

from app.core.exceptions import DatabaseError, NotificationError
from app.models.enums import StakeholderRole, TimelineEventType
from app.services.compliance_store import InMemoryComplianceStore
from app.services.notifications import NotificationChannel, NotificationResult


# ==========================================
# TEST DOUBLES
# ==========================================

class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime):
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self.current = moment
        return self.current


class RecordingNotifier:
    """
    Notifier double that records every call.

    Roles in fail_roles get an unsuccessful result, roles in raise_roles
    raise NotificationError, roles in slow_roles sleep for delay seconds.
    """

    def __init__(
        self,
        fail_roles: Iterable[StakeholderRole] = (),
        raise_roles: Iterable[StakeholderRole] = (),
        slow_roles: Iterable[StakeholderRole] = (),
        delay: float = 1.0
    ):
        self.fail_roles = set(fail_roles)
        self.raise_roles = set(raise_roles)
        self.slow_roles = set(slow_roles)
        self.delay = delay
        self.calls: list[tuple[StakeholderRole, str, Any]] = []

    async def notify(self, stakeholder, case_id, alert) -> NotificationResult:
        self.calls.append((stakeholder, case_id, alert))
        if stakeholder in self.slow_roles:
            await asyncio.sleep(self.delay)
        if stakeholder in self.raise_roles:
            raise NotificationError("transport down", stakeholder=stakeholder.value)
        if stakeholder in self.fail_roles:
            return NotificationResult(
                success=False,
                channel=NotificationChannel.LOG,
                error="rejected"
            )
        return NotificationResult(
            success=True,
            channel=NotificationChannel.LOG,
            message_id=f"test-{len(self.calls)}"
        )

    def roles_for(self, case_id: str) -> list[StakeholderRole]:
        return [role for role, called_case, _ in self.calls if called_case == case_id]


class FailingEventStore(InMemoryComplianceStore):
    """In-memory store whose first `failures` writes of one event type fail."""

    def __init__(self, event_type: TimelineEventType, failures: int = 1):
        super().__init__()
        self.event_type = event_type
        self.failures = failures

    def append_timeline_event(self, event):
        if event.event_type is self.event_type and self.failures > 0:
            self.failures -= 1
            raise DatabaseError(
                "Failed to insert timeline_events",
                table="timeline_events",
                operation="insert",
                original_error="connection reset"
            )
        return super().append_timeline_event(event)


class BlockingStore(InMemoryComplianceStore):
    """
    In-memory store whose update_context blocks for one case.

    The call holds its worker thread until `release` is set (or
    max_block seconds pass).
    """

    def __init__(self, blocked_case: str, max_block: float = 5.0):
        super().__init__()
        self.blocked_case = blocked_case
        self.max_block = max_block
        self.release = threading.Event()

    def update_context(self, case_id, changes):
        if case_id == self.blocked_case:
            self.release.wait(timeout=self.max_block)
        return super().update_context(case_id, changes)


def utc(year: int, month: int, day: int, hour: int = 8, minute: int = 0) -> datetime:
    """Timezone-aware UTC datetime."""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def run(coro):
    """Drive a coroutine to completion."""
    return asyncio.run(coro)


# ==========================================
# API HELPERS
# ==========================================

def register_case(
    client: TestClient,
    case_id: str = "CASE-001",
    trigger_date: date = date(2025, 1, 6),
    **kwargs
) -> Dict[str, Any]:
    """Register a case via API and return the response body."""
    response = client.post(
        "/api/compliance/cases",
        json={"case_id": case_id, "trigger_date": trigger_date.isoformat(), **kwargs}
    )
    return assert_response_ok(response, expected_status=201)


def assert_response_ok(response, expected_status: int = 200) -> Dict[str, Any]:
    """Assert response is successful and return JSON."""
    assert response.status_code == expected_status, \
        f"Expected {expected_status}, got {response.status_code}: {response.text}"
    return response.json()


def assert_response_error(response, expected_status: int = 400, error: Optional[str] = None) -> Dict[str, Any]:
    """Assert response is an error and return JSON."""
    assert response.status_code == expected_status, \
        f"Expected {expected_status}, got {response.status_code}: {response.text}"
    body = response.json()
    if error is not None:
        assert body["error"] == error
    return body
