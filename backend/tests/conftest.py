"""
Pytest fixtures and configuration for compliance engine tests.

Provides:
- Mock Supabase client for the Supabase-backed store and holiday loader
- Frozen clock, recording notifier and a fully wired engine
- Test client with the engine placed on app.state
"""
import pytest
from datetime import datetime, timezone
from typing import Any, Dict, Generator
from uuid import uuid4

from fastapi.testclient import TestClient

# Import the FastAPI app
from app.main import app
from app.core.config import Settings
from app.services.compliance_store import InMemoryComplianceStore
from app.services.engine import build_engine
from app.services.holiday_calendar import builtin_holiday_calendar

from helpers import FrozenClock, RecordingNotifier, utc


# ==========================================
# MOCK SUPABASE RESPONSE & TABLE
# ==========================================

class MockSupabaseResponse:
    """Mock response from Supabase operations."""

    def __init__(self, data: list = None, error: dict = None, count: int = None):
        self.data = data or []
        self.error = error
        self.count = count if count is not None else len(self.data)

    def execute(self):
        return self


class MockSupabaseTable:
    """Mock Supabase table operations."""

    def __init__(self, table_name: str, mock_data: Dict[str, list]):
        self.table_name = table_name
        self.mock_data = mock_data
        self._filters = []
        self._select_fields = "*"
        self._order_by = None
        self._order_desc = False
        self._limit = None

    def select(self, fields: str = "*", count: str = None):
        self._select_fields = fields
        return self

    def eq(self, column: str, value: Any):
        self._filters.append(("eq", column, value))
        return self

    def in_(self, column: str, values: list):
        self._filters.append(("in", column, values))
        return self

    def gte(self, column: str, value: Any):
        """Greater than or equal filter."""
        self._filters.append(("gte", column, value))
        return self

    def lte(self, column: str, value: Any):
        """Less than or equal filter."""
        self._filters.append(("lte", column, value))
        return self

    def order(self, column: str, desc: bool = False):
        self._order_by = column
        self._order_desc = desc
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def insert(self, data: Any):
        """Mock insert operation."""
        rows = data if isinstance(data, list) else [data]
        next_sequence = len(self.mock_data.get(self.table_name, [])) + 1
        for offset, item in enumerate(rows):
            item.setdefault("id", str(uuid4()))
            # Identity column
            item.setdefault("sequence", next_sequence + offset)
            item.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self.mock_data.setdefault(self.table_name, []).extend(rows)
        return MockSupabaseResponse([dict(row) for row in rows])

    def update(self, data: dict):
        """Mock update operation - returns self for chaining."""
        self._update_data = data
        return self

    def _apply_filters(self, results: list) -> list:
        """Apply all filters to results."""
        for op, column, value in self._filters:
            if op == "eq":
                results = [r for r in results if r.get(column) == value]
            elif op == "in":
                results = [r for r in results if r.get(column) in value]
            elif op == "gte":
                results = [r for r in results if str(r.get(column)) >= str(value)]
            elif op == "lte":
                results = [r for r in results if str(r.get(column)) <= str(value)]
        return results

    def execute(self):
        """Execute the query and return results."""
        table_data = self.mock_data.get(self.table_name, [])

        # Apply filters
        results = self._apply_filters(list(table_data))

        # Handle update
        if hasattr(self, "_update_data"):
            for result in results:
                result.update(self._update_data)
                result["updated_at"] = datetime.now(timezone.utc).isoformat()
            return MockSupabaseResponse([dict(r) for r in results], count=len(results))

        # Apply ordering
        if self._order_by:
            results.sort(
                key=lambda x: x.get(self._order_by) or "",
                reverse=self._order_desc
            )

        if self._limit:
            results = results[:self._limit]

        return MockSupabaseResponse([dict(r) for r in results])


class MockSupabaseClientInner:
    """Mock inner Supabase client (the actual client with table() method)."""

    def __init__(self, mock_data: Dict[str, list]):
        self.mock_data = mock_data

    def table(self, table_name: str) -> MockSupabaseTable:
        return MockSupabaseTable(table_name, self.mock_data)


class MockSupabaseClient:
    """
    Mock Supabase client wrapper (matches SupabaseClient class structure).
    This has a .client property that provides the actual table operations.
    """

    def __init__(self):
        self.mock_data: Dict[str, list] = {
            "compliance_tracking": [],
            "timeline_events": [],
            "holiday_calendar": [],
        }
        self.client = MockSupabaseClientInner(self.mock_data)


# ==========================================
# FIXTURES
# ==========================================

@pytest.fixture(scope="function")
def fresh_mock_client() -> MockSupabaseClient:
    """Function-scoped fresh mock client (clean for each test)."""
    return MockSupabaseClient()


@pytest.fixture(scope="function")
def mock_data(fresh_mock_client) -> Dict[str, list]:
    """Access to the mock data store for direct manipulation."""
    return fresh_mock_client.mock_data


@pytest.fixture
def nl_calendar():
    """Dutch national holidays, 2024-2027."""
    return builtin_holiday_calendar("NL", [2024, 2025, 2026, 2027])


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen at Monday 6 January 2025, 08:00 UTC (09:00 in Amsterdam)."""
    return FrozenClock(utc(2025, 1, 6))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def store() -> InMemoryComplianceStore:
    return InMemoryComplianceStore()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        holiday_years="2024,2025,2026,2027",
        persistence_backend="memory",
        notifications_dry_run=True,
        enable_scheduler=False,
        run_scheduler=False,
        notifier_timeout_seconds=0.5,
    )


@pytest.fixture
def engine(test_settings, clock, store, notifier, nl_calendar):
    """Fully wired engine over in-memory storage and test doubles."""
    built = build_engine(
        test_settings,
        clock=clock,
        store=store,
        notifier=notifier,
        calendar=nl_calendar,
    )
    built.monitor.run_on_start = False
    return built


@pytest.fixture
def service(engine):
    return engine.service


@pytest.fixture
def monitor(engine):
    return engine.monitor


@pytest.fixture(scope="function")
def client(engine) -> Generator[TestClient, None, None]:
    """
    Create test client over the test engine.

    The lifespan keeps an engine already present on app.state.
    """
    app.state.engine = engine
    with TestClient(app) as test_client:
        yield test_client
    app.state.engine = None


# ==========================================
# MARKERS
# ==========================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (isolated, fast)")
    config.addinivalue_line("markers", "integration: Integration tests (several components together)")
