"""
Compliance Store - persistence for compliance contexts and timeline events.

Two implementations behind one protocol:
- InMemoryComplianceStore: process-local, thread-safe
- SupabaseComplianceStore: compliance_tracking / timeline_events tables

Write guards (enforced by every implementation):
- compliance_status only ever moves to an equal or more severe tier
- emergency_protocol_active only ever flips False → True; the one
  exception is release_emergency_protocol, which undoes an activation
  whose audit event could not be written
- trigger_date, legal_deadline and required_working_days never change
"""
import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Optional, Protocol

from app.core.exceptions import (
    CaseNotFoundError,
    DatabaseError,
    DuplicateCaseError,
    ValidationError,
)
from app.models.enums import ComplianceStatus, TimelineEventType
from app.models.schemas import ComplianceContext, TimelineEvent


logger = logging.getLogger(__name__)


IMMUTABLE_FIELDS = frozenset({
    "case_id",
    "trigger_date",
    "legal_deadline",
    "required_working_days",
    "created_at",
})

UPDATABLE_FIELDS = frozenset({
    "days_remaining",
    "compliance_status",
    "emergency_protocol_active",
    "emergency_triggered_at",
    "jurisdiction_code",
    "identity_verified",
    "is_closed",
    "last_checked_at",
})


class ComplianceStore(Protocol):
    """Persistence collaborator for the timeline enforcement service."""

    def insert_context(self, context: ComplianceContext) -> ComplianceContext:
        ...

    def get_context(self, case_id: str) -> Optional[ComplianceContext]:
        ...

    def update_context(self, case_id: str, changes: dict[str, Any]) -> ComplianceContext:
        ...

    def activate_emergency_protocol(self, case_id: str, triggered_at: datetime) -> bool:
        ...

    def release_emergency_protocol(self, case_id: str, triggered_at: datetime) -> bool:
        ...

    def list_active_contexts(self) -> list[ComplianceContext]:
        ...

    def append_timeline_event(self, event: TimelineEvent) -> TimelineEvent:
        ...

    def get_timeline_events(self, case_id: str) -> list[TimelineEvent]:
        ...


async def call_store(func, *args, timeout_seconds: float = 10.0):
    """
    Run a blocking store call in a worker thread, bounded by a timeout.

    A slow database call then only holds up the case that made it.

    Raises:
        DatabaseError: the call did not finish within timeout_seconds
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        operation = getattr(func, "__name__", "store call")
        raise DatabaseError(
            f"Store call {operation} timed out after {timeout_seconds}s",
            operation=operation,
            original_error="timeout"
        ) from e


def _check_changes(changes: dict[str, Any]) -> None:
    """Reject writes to immutable or unknown fields."""
    frozen = IMMUTABLE_FIELDS.intersection(changes)
    if frozen:
        field = sorted(frozen)[0]
        raise ValidationError(f"Field '{field}' cannot change after registration", field=field)
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        field = sorted(unknown)[0]
        raise ValidationError(f"Unknown compliance field '{field}'", field=field)


def _guard_changes(current: ComplianceContext, changes: dict[str, Any]) -> dict[str, Any]:
    """Drop changes that would downgrade severity or reset the emergency flag."""
    guarded = dict(changes)

    if "compliance_status" in guarded:
        proposed = ComplianceStatus(guarded["compliance_status"])
        if current.compliance_status.is_more_severe_than(proposed):
            logger.debug(
                f"Ignoring stale status {proposed.value} for case {current.case_id} "
                f"(persisted {current.compliance_status.value})"
            )
            del guarded["compliance_status"]
            # days_remaining from the same stale evaluation is stale too
            guarded.pop("days_remaining", None)
        else:
            guarded["compliance_status"] = proposed

    if current.emergency_protocol_active and guarded.get("emergency_protocol_active") is False:
        del guarded["emergency_protocol_active"]

    return guarded


# ==========================================
# IN-MEMORY STORE
# ==========================================

class InMemoryComplianceStore:
    """
    Thread-safe in-process store.

    Every read-modify-write happens under one lock, so per-case updates
    are atomic.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._contexts: dict[str, ComplianceContext] = {}
        self._events: dict[str, list[TimelineEvent]] = {}

    def insert_context(self, context: ComplianceContext) -> ComplianceContext:
        with self._lock:
            if context.case_id in self._contexts:
                raise DuplicateCaseError(context.case_id)
            stored = context.model_copy(deep=True)
            self._contexts[context.case_id] = stored
            self._events.setdefault(context.case_id, [])
            return stored.model_copy(deep=True)

    def get_context(self, case_id: str) -> Optional[ComplianceContext]:
        with self._lock:
            stored = self._contexts.get(case_id)
            return stored.model_copy(deep=True) if stored else None

    def update_context(self, case_id: str, changes: dict[str, Any]) -> ComplianceContext:
        _check_changes(changes)
        with self._lock:
            current = self._contexts.get(case_id)
            if current is None:
                raise CaseNotFoundError(case_id)
            updated = current.model_copy(update=_guard_changes(current, changes), deep=True)
            self._contexts[case_id] = updated
            return updated.model_copy(deep=True)

    def activate_emergency_protocol(self, case_id: str, triggered_at: datetime) -> bool:
        with self._lock:
            current = self._contexts.get(case_id)
            if current is None:
                raise CaseNotFoundError(case_id)
            if current.emergency_protocol_active:
                return False
            self._contexts[case_id] = current.model_copy(update={
                "emergency_protocol_active": True,
                "emergency_triggered_at": triggered_at,
            })
            return True

    def release_emergency_protocol(self, case_id: str, triggered_at: datetime) -> bool:
        """Undo the activation stamped with triggered_at; False if it no longer holds."""
        with self._lock:
            current = self._contexts.get(case_id)
            if current is None:
                raise CaseNotFoundError(case_id)
            if not current.emergency_protocol_active or current.emergency_triggered_at != triggered_at:
                return False
            self._contexts[case_id] = current.model_copy(update={
                "emergency_protocol_active": False,
                "emergency_triggered_at": None,
            })
            return True

    def list_active_contexts(self) -> list[ComplianceContext]:
        with self._lock:
            active = [ctx.model_copy(deep=True) for ctx in self._contexts.values() if not ctx.is_closed]
        return sorted(active, key=lambda ctx: (ctx.legal_deadline, ctx.case_id))

    def append_timeline_event(self, event: TimelineEvent) -> TimelineEvent:
        with self._lock:
            if event.case_id not in self._contexts:
                raise CaseNotFoundError(event.case_id)
            self._events[event.case_id].append(event)
            return event

    def get_timeline_events(self, case_id: str) -> list[TimelineEvent]:
        with self._lock:
            events = list(self._events.get(case_id, []))
        # sorted() is stable: equal timestamps keep append order
        return sorted(events, key=lambda event: event.timestamp)


# ==========================================
# SUPABASE STORE
# ==========================================

class SupabaseComplianceStore:
    """
    Store backed by the compliance_tracking and timeline_events tables.

    The severity guard is expressed as a conditional update: the status
    write only matches rows whose persisted tier is not more severe.
    """

    CONTEXT_TABLE = "compliance_tracking"
    EVENT_TABLE = "timeline_events"

    def __init__(self, db):
        self.db = db

    # Row mapping

    @staticmethod
    def _to_row(context: ComplianceContext) -> dict[str, Any]:
        return context.model_dump(mode="json", exclude={"working_days_calculation"})

    @staticmethod
    def _from_row(row: dict[str, Any]) -> ComplianceContext:
        fields = {key: value for key, value in row.items() if key in ComplianceContext.model_fields}
        return ComplianceContext.model_validate(fields)

    @staticmethod
    def _event_row(event: TimelineEvent) -> dict[str, Any]:
        return event.model_dump(mode="json")

    @staticmethod
    def _event_from_row(row: dict[str, Any]) -> TimelineEvent:
        return TimelineEvent(
            id=row["id"],
            case_id=row["case_id"],
            event_type=TimelineEventType(row["event_type"]),
            timestamp=row["timestamp"],
            description=row["description"],
            metadata=row.get("metadata") or {},
        )

    def _execute(self, query, table: str, operation: str):
        try:
            return query.execute()
        except Exception as e:
            raise DatabaseError(
                f"Failed to {operation} {table}",
                table=table,
                operation=operation,
                original_error=str(e)
            ) from e

    # Contexts

    def insert_context(self, context: ComplianceContext) -> ComplianceContext:
        table = self.db.client.table(self.CONTEXT_TABLE)
        existing = self._execute(
            table.select("case_id").eq("case_id", context.case_id),
            self.CONTEXT_TABLE, "select"
        )
        if existing.data:
            raise DuplicateCaseError(context.case_id)

        try:
            response = self.db.client.table(self.CONTEXT_TABLE).insert(self._to_row(context)).execute()
        except Exception as e:
            # 23505: unique_violation from a concurrent registration
            if getattr(e, "code", None) == "23505":
                raise DuplicateCaseError(context.case_id) from e
            raise DatabaseError(
                f"Failed to insert {self.CONTEXT_TABLE}",
                table=self.CONTEXT_TABLE,
                operation="insert",
                original_error=str(e)
            ) from e

        if not response.data:
            raise DatabaseError(
                "Insert returned no rows",
                table=self.CONTEXT_TABLE,
                operation="insert"
            )
        return self._from_row(response.data[0])

    def get_context(self, case_id: str) -> Optional[ComplianceContext]:
        response = self._execute(
            self.db.client.table(self.CONTEXT_TABLE).select("*").eq("case_id", case_id),
            self.CONTEXT_TABLE, "select"
        )
        if not response.data:
            return None
        return self._from_row(response.data[0])

    def update_context(self, case_id: str, changes: dict[str, Any]) -> ComplianceContext:
        _check_changes(changes)
        changes = dict(changes)

        status = changes.pop("compliance_status", None)
        days = changes.pop("days_remaining", None)
        if changes.get("emergency_protocol_active") is False:
            # The flag is monotonic; a reset is never written
            del changes["emergency_protocol_active"]

        if status is not None:
            status = ComplianceStatus(status)
            status_write = {"compliance_status": status.value}
            if days is not None:
                status_write["days_remaining"] = days
            self._execute(
                self.db.client.table(self.CONTEXT_TABLE).update(status_write).eq(
                    "case_id", case_id
                ).in_(
                    "compliance_status", [tier.value for tier in ComplianceStatus.at_most(status)]
                ),
                self.CONTEXT_TABLE, "update"
            )
        elif days is not None:
            changes["days_remaining"] = days

        if changes:
            payload = {
                key: (value.isoformat() if isinstance(value, datetime) else value)
                for key, value in changes.items()
            }
            self._execute(
                self.db.client.table(self.CONTEXT_TABLE).update(payload).eq("case_id", case_id),
                self.CONTEXT_TABLE, "update"
            )

        current = self.get_context(case_id)
        if current is None:
            raise CaseNotFoundError(case_id)
        return current

    def activate_emergency_protocol(self, case_id: str, triggered_at: datetime) -> bool:
        response = self._execute(
            self.db.client.table(self.CONTEXT_TABLE).update({
                "emergency_protocol_active": True,
                "emergency_triggered_at": triggered_at.isoformat(),
            }).eq("case_id", case_id).eq("emergency_protocol_active", False),
            self.CONTEXT_TABLE, "update"
        )
        if response.data:
            return True
        if self.get_context(case_id) is None:
            raise CaseNotFoundError(case_id)
        return False

    def release_emergency_protocol(self, case_id: str, triggered_at: datetime) -> bool:
        response = self._execute(
            self.db.client.table(self.CONTEXT_TABLE).update({
                "emergency_protocol_active": False,
                "emergency_triggered_at": None,
            }).eq("case_id", case_id).eq("emergency_protocol_active", True).eq(
                "emergency_triggered_at", triggered_at.isoformat()
            ),
            self.CONTEXT_TABLE, "update"
        )
        return bool(response.data)

    def list_active_contexts(self) -> list[ComplianceContext]:
        response = self._execute(
            self.db.client.table(self.CONTEXT_TABLE).select("*").eq(
                "is_closed", False
            ).order("legal_deadline"),
            self.CONTEXT_TABLE, "select"
        )
        return [self._from_row(row) for row in (response.data or [])]

    # Timeline

    def append_timeline_event(self, event: TimelineEvent) -> TimelineEvent:
        self._execute(
            self.db.client.table(self.EVENT_TABLE).insert(self._event_row(event)),
            self.EVENT_TABLE, "insert"
        )
        return event

    def get_timeline_events(self, case_id: str) -> list[TimelineEvent]:
        response = self._execute(
            self.db.client.table(self.EVENT_TABLE).select("*").eq(
                "case_id", case_id
            ).order("timestamp"),
            self.EVENT_TABLE, "select"
        )
        rows = [(self._event_from_row(row), row.get("sequence") or 0) for row in (response.data or [])]
        # sequence is the table's identity column: insert order breaks timestamp ties
        rows.sort(key=lambda pair: (pair[0].timestamp, pair[1]))
        return [event for event, _ in rows]
