"""
Tests for the Compliance Store implementations.

The write guards are checked against both the in-memory store and the
Supabase store (over the mock client).
"""
import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

from app.core.exceptions import (
    CaseNotFoundError,
    DatabaseError,
    DuplicateCaseError,
    ValidationError,
)
from app.models.enums import ComplianceStatus, TimelineEventType
from app.models.schemas import ComplianceContext, TimelineEvent
from app.services.compliance_store import InMemoryComplianceStore, SupabaseComplianceStore


def make_context(case_id: str = "CASE-001", deadline: date = date(2025, 1, 14), **overrides) -> ComplianceContext:
    fields = dict(
        case_id=case_id,
        trigger_date=date(2025, 1, 6),
        legal_deadline=deadline,
        required_working_days=6,
        days_remaining=8,
        compliance_status=ComplianceStatus.PENDING,
        jurisdiction_code="NL",
    )
    fields.update(overrides)
    return ComplianceContext(**fields)


def make_event(case_id: str, minute: int, event_type=TimelineEventType.STATUS_TIER_CHANGE) -> TimelineEvent:
    return TimelineEvent(
        case_id=case_id,
        event_type=event_type,
        timestamp=datetime(2025, 1, 6, 9, minute, tzinfo=timezone.utc),
        description=f"event at minute {minute}",
        metadata={"minute": minute},
    )


@pytest.fixture(params=["memory", "supabase"])
def any_store(request):
    if request.param == "memory":
        return InMemoryComplianceStore()
    return SupabaseComplianceStore(request.getfixturevalue("fresh_mock_client"))


class TestContextLifecycle:
    """Insert / read / update basics."""

    @pytest.mark.unit
    def test_insert_and_get(self, any_store):
        any_store.insert_context(make_context())

        stored = any_store.get_context("CASE-001")

        assert stored.case_id == "CASE-001"
        assert stored.legal_deadline == date(2025, 1, 14)
        assert stored.compliance_status is ComplianceStatus.PENDING

    @pytest.mark.unit
    def test_get_missing_returns_none(self, any_store):
        assert any_store.get_context("NOPE") is None

    @pytest.mark.unit
    def test_duplicate_insert_rejected(self, any_store):
        any_store.insert_context(make_context())

        with pytest.raises(DuplicateCaseError):
            any_store.insert_context(make_context(days_remaining=5))

    @pytest.mark.unit
    def test_update_missing_case(self, any_store):
        with pytest.raises(CaseNotFoundError):
            any_store.update_context("NOPE", {"days_remaining": 1})

    @pytest.mark.unit
    def test_escalating_update(self, any_store):
        any_store.insert_context(make_context())

        updated = any_store.update_context("CASE-001", {
            "compliance_status": ComplianceStatus.AT_RISK,
            "days_remaining": 1,
        })

        assert updated.compliance_status is ComplianceStatus.AT_RISK
        assert updated.days_remaining == 1


class TestWriteGuards:
    """Severity monotonicity, emergency flag and immutable fields."""

    @pytest.mark.unit
    def test_status_never_downgraded(self, any_store):
        any_store.insert_context(make_context(
            compliance_status=ComplianceStatus.AT_RISK, days_remaining=1
        ))

        result = any_store.update_context("CASE-001", {
            "compliance_status": ComplianceStatus.PENDING,
            "days_remaining": 8,
        })

        assert result.compliance_status is ComplianceStatus.AT_RISK
        # days_remaining from the stale evaluation is dropped with it
        assert result.days_remaining == 1

    @pytest.mark.unit
    def test_other_fields_still_written_on_stale_status(self, any_store):
        any_store.insert_context(make_context(compliance_status=ComplianceStatus.AT_RISK))
        checked = datetime(2025, 1, 13, 8, 0, tzinfo=timezone.utc)

        result = any_store.update_context("CASE-001", {
            "compliance_status": ComplianceStatus.PENDING,
            "last_checked_at": checked,
        })

        assert result.compliance_status is ComplianceStatus.AT_RISK
        assert result.last_checked_at == checked

    @pytest.mark.unit
    def test_emergency_flag_never_reset(self, any_store):
        any_store.insert_context(make_context(
            compliance_status=ComplianceStatus.EMERGENCY, days_remaining=0
        ))
        any_store.activate_emergency_protocol("CASE-001", datetime(2025, 1, 14, 8, tzinfo=timezone.utc))

        result = any_store.update_context("CASE-001", {"emergency_protocol_active": False})

        assert result.emergency_protocol_active is True

    @pytest.mark.unit
    @pytest.mark.parametrize("field, value", [
        ("trigger_date", date(2025, 1, 7)),
        ("legal_deadline", date(2025, 1, 20)),
        ("required_working_days", 5),
    ])
    def test_immutable_fields_rejected(self, any_store, field, value):
        any_store.insert_context(make_context())

        with pytest.raises(ValidationError) as exc_info:
            any_store.update_context("CASE-001", {field: value})

        assert exc_info.value.details["field"] == field
        assert any_store.get_context("CASE-001").legal_deadline == date(2025, 1, 14)

    @pytest.mark.unit
    def test_unknown_field_rejected(self, any_store):
        any_store.insert_context(make_context())

        with pytest.raises(ValidationError):
            any_store.update_context("CASE-001", {"owner": "someone"})


class TestEmergencyActivation:
    """Compare-and-set on the emergency flag."""

    @pytest.mark.unit
    def test_only_first_activation_wins(self, any_store):
        any_store.insert_context(make_context(compliance_status=ComplianceStatus.EMERGENCY, days_remaining=-1))
        first_at = datetime(2025, 1, 15, 8, tzinfo=timezone.utc)

        assert any_store.activate_emergency_protocol("CASE-001", first_at) is True
        assert any_store.activate_emergency_protocol("CASE-001", first_at + timedelta(hours=1)) is False

        stored = any_store.get_context("CASE-001")
        assert stored.emergency_protocol_active is True
        assert stored.emergency_triggered_at == first_at

    @pytest.mark.unit
    def test_missing_case(self, any_store):
        with pytest.raises(CaseNotFoundError):
            any_store.activate_emergency_protocol("NOPE", datetime(2025, 1, 15, tzinfo=timezone.utc))

    @pytest.mark.unit
    def test_release_undoes_matching_activation(self, any_store):
        any_store.insert_context(make_context(compliance_status=ComplianceStatus.EMERGENCY, days_remaining=-1))
        first_at = datetime(2025, 1, 15, 8, tzinfo=timezone.utc)
        any_store.activate_emergency_protocol("CASE-001", first_at)

        assert any_store.release_emergency_protocol("CASE-001", first_at + timedelta(minutes=1)) is False
        assert any_store.release_emergency_protocol("CASE-001", first_at) is True

        released = any_store.get_context("CASE-001")
        assert released.emergency_protocol_active is False
        assert released.emergency_triggered_at is None
        # The next attempt can activate again
        assert any_store.activate_emergency_protocol("CASE-001", first_at + timedelta(hours=1)) is True

    @pytest.mark.unit
    def test_release_when_not_active(self, any_store):
        any_store.insert_context(make_context())

        assert any_store.release_emergency_protocol(
            "CASE-001", datetime(2025, 1, 15, tzinfo=timezone.utc)
        ) is False


class TestListing:
    """Active context listing."""

    @pytest.mark.unit
    def test_ordered_by_deadline_and_excludes_closed(self, any_store):
        any_store.insert_context(make_context("CASE-B", deadline=date(2025, 1, 20)))
        any_store.insert_context(make_context("CASE-A", deadline=date(2025, 1, 14)))
        any_store.insert_context(make_context("CASE-C", deadline=date(2025, 1, 16)))
        any_store.update_context("CASE-C", {"is_closed": True})

        listed = any_store.list_active_contexts()

        assert [ctx.case_id for ctx in listed] == ["CASE-A", "CASE-B"]

    @pytest.mark.unit
    def test_empty(self, any_store):
        assert any_store.list_active_contexts() == []


class TestTimelineEvents:
    """Append-only timeline."""

    @pytest.mark.unit
    def test_events_returned_in_timestamp_order(self, any_store):
        any_store.insert_context(make_context())
        any_store.append_timeline_event(make_event("CASE-001", 30))
        any_store.append_timeline_event(make_event("CASE-001", 5))
        any_store.append_timeline_event(make_event("CASE-001", 15))

        events = any_store.get_timeline_events("CASE-001")

        assert [event.metadata["minute"] for event in events] == [5, 15, 30]
        assert all(event.event_type is TimelineEventType.STATUS_TIER_CHANGE for event in events)

    @pytest.mark.unit
    def test_events_scoped_to_case(self, any_store):
        any_store.insert_context(make_context("CASE-A"))
        any_store.insert_context(make_context("CASE-B"))
        any_store.append_timeline_event(make_event("CASE-A", 1, TimelineEventType.REGISTRATION))
        any_store.append_timeline_event(make_event("CASE-B", 2, TimelineEventType.REGISTRATION))

        events = any_store.get_timeline_events("CASE-A")

        assert len(events) == 1
        assert events[0].case_id == "CASE-A"

    @pytest.mark.unit
    def test_in_memory_equal_timestamps_keep_append_order(self, store):
        store.insert_context(make_context())
        first = make_event("CASE-001", 10)
        second = TimelineEvent(
            case_id="CASE-001",
            event_type=TimelineEventType.ALERT_ISSUED,
            timestamp=first.timestamp,
            description="same instant",
        )
        store.append_timeline_event(first)
        store.append_timeline_event(second)

        assert [event.id for event in store.get_timeline_events("CASE-001")] == [first.id, second.id]

    @pytest.mark.unit
    def test_supabase_equal_timestamps_ordered_by_sequence(self, fresh_mock_client, mock_data):
        store = SupabaseComplianceStore(fresh_mock_client)
        store.insert_context(make_context())
        registered = make_event("CASE-001", 10, TimelineEventType.REGISTRATION)
        triggered = TimelineEvent(
            case_id="CASE-001",
            event_type=TimelineEventType.EMERGENCY_TRIGGERED,
            timestamp=registered.timestamp,
            description="same instant",
        )
        store.append_timeline_event(registered)
        store.append_timeline_event(triggered)
        # Rows come back from the table in arbitrary order
        mock_data["timeline_events"].reverse()

        events = store.get_timeline_events("CASE-001")

        assert [event.event_type for event in events] == [
            TimelineEventType.REGISTRATION,
            TimelineEventType.EMERGENCY_TRIGGERED,
        ]

    @pytest.mark.unit
    def test_in_memory_rejects_unknown_case(self, store):
        with pytest.raises(CaseNotFoundError):
            store.append_timeline_event(make_event("NOPE", 1))


class TestInMemoryIsolation:
    """Callers never hold references into the store."""

    @pytest.mark.unit
    def test_returned_contexts_are_copies(self, store):
        store.insert_context(make_context())

        fetched = store.get_context("CASE-001")
        fetched.days_remaining = -99

        assert store.get_context("CASE-001").days_remaining == 8


class TestSupabaseErrors:
    """Database failures surface as DatabaseError."""

    @pytest.mark.unit
    def test_query_failure_wrapped(self):
        db = MagicMock()
        db.client.table.return_value.select.return_value.eq.return_value.execute.side_effect = (
            RuntimeError("connection reset")
        )
        store = SupabaseComplianceStore(db)

        with pytest.raises(DatabaseError) as exc_info:
            store.get_context("CASE-001")

        assert exc_info.value.details["table"] == "compliance_tracking"
        assert "connection reset" in exc_info.value.details["original_error"]

    @pytest.mark.unit
    def test_unique_violation_is_duplicate(self):
        class UniqueViolation(Exception):
            code = "23505"

        db = MagicMock()
        table = db.client.table.return_value
        table.select.return_value.eq.return_value.execute.return_value = MagicMock(data=[])
        table.insert.return_value.execute.side_effect = UniqueViolation("duplicate key")
        store = SupabaseComplianceStore(db)

        with pytest.raises(DuplicateCaseError):
            store.insert_context(make_context())

    @pytest.mark.unit
    def test_other_insert_failure_is_database_error(self):
        db = MagicMock()
        table = db.client.table.return_value
        table.select.return_value.eq.return_value.execute.return_value = MagicMock(data=[])
        table.insert.return_value.execute.side_effect = RuntimeError("timeout")
        store = SupabaseComplianceStore(db)

        with pytest.raises(DatabaseError):
            store.insert_context(make_context())

    @pytest.mark.unit
    def test_rows_persist_enum_values(self, fresh_mock_client, mock_data):
        store = SupabaseComplianceStore(fresh_mock_client)

        store.insert_context(make_context())

        row = mock_data["compliance_tracking"][0]
        assert row["compliance_status"] == "pending"
        assert row["legal_deadline"] == "2025-01-14"
        assert "working_days_calculation" not in row
