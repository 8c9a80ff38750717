"""
Shared test fixtures.

The mock Supabase client keeps rows per table, applies eq/gte/lte/order/
range filters, assigns ids on insert and can be told to fail a given
call with a PostgREST or transport error.
"""

import os
import sys
from pathlib import Path

# Settings are read at import time
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

import pytest
from unittest.mock import patch
from datetime import datetime
from typing import Generator


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods."""

    def __init__(self, client: "MockSupabaseClient", table_name: str):
        self._client = client
        self._table_name = table_name
        self._operation = "select"
        self._payload = None
        self._filters = []
        self._orders = []
        self._range = None
        self._limit = None
        self._count = None

    def select(self, *args, **kwargs):
        self._count = kwargs.get("count")
        return self

    def insert(self, data):
        self._operation = "insert"
        self._payload = [data] if isinstance(data, dict) else list(data)
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def gte(self, column, value):
        self._filters.append(lambda row: str(row.get(column)) >= str(value))
        return self

    def lte(self, column, value):
        self._filters.append(lambda row: str(row.get(column)) <= str(value))
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._orders.append((column, desc))
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def execute(self) -> MockSupabaseResponse:
        self._client.record_call(self._table_name, self._operation, self._payload)

        error = self._client.next_error(self._table_name, self._operation)
        if error is not None:
            raise error

        if self._operation == "insert":
            return MockSupabaseResponse(data=self._client.store(self._table_name, self._payload))

        rows = [row for row in self._client.rows(self._table_name)
                if all(f(row) for f in self._filters)]
        total = len(rows)

        # Apply the last order key first so earlier keys take precedence
        for column, desc in reversed(self._orders):
            rows.sort(key=lambda row: str(row.get(column) or ""), reverse=desc)

        if self._range is not None:
            start, end = self._range
            rows = rows[start:end + 1]
        if self._limit is not None:
            rows = rows[:self._limit]

        return MockSupabaseResponse(data=rows, count=total)


class MockSupabaseClient:
    """Mock Supabase client with per-table rows and injectable failures."""

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._errors: dict[tuple[str, str], dict[int, Exception]] = {}
        self._call_counts: dict[tuple[str, str], int] = {}
        self._next_id = 0
        self.calls: list[tuple[str, str, object]] = []
        self.inserted: dict[str, list[dict]] = {}

    def set_table_data(self, table_name: str, data: list):
        """Configure stored rows for a table."""
        self._tables[table_name] = [dict(row) for row in data]

    def rows(self, table_name: str) -> list[dict]:
        return [dict(row) for row in self._tables.get(table_name, [])]

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self, name)

    def fail_call(self, table_name: str, operation: str, error: Exception, on_call: int = 1):
        """Raise error on the n-th execute() of operation against table_name."""
        self._errors.setdefault((table_name, operation), {})[on_call] = error

    def record_call(self, table_name: str, operation: str, payload):
        key = (table_name, operation)
        self._call_counts[key] = self._call_counts.get(key, 0) + 1
        self.calls.append((table_name, operation, payload))

    def next_error(self, table_name: str, operation: str):
        key = (table_name, operation)
        return self._errors.get(key, {}).pop(self._call_counts.get(key, 0), None)

    def call_count(self, table_name: str, operation: str) -> int:
        return self._call_counts.get((table_name, operation), 0)

    def store(self, table_name: str, payload: list[dict]) -> list[dict]:
        stored = []
        for item in payload:
            self._next_id += 1
            row = {
                **item,
                "id": f"{table_name}-{self._next_id}",
                "created_at": datetime.utcnow().isoformat() + "Z",
            }
            stored.append(row)
        self._tables.setdefault(table_name, []).extend(stored)
        self.inserted.setdefault(table_name, []).extend(stored)
        return [dict(row) for row in stored]


# ===================
# FIXTURES
# ===================

def _reset_singletons():
    import services.import_repository as repository_module
    import services.duplicate_service as duplicate_module
    import services.lead_matcher_service as matcher_module
    import services.import_service as service_module

    repository_module._import_repository = None
    duplicate_module._duplicate_service = None
    matcher_module._lead_matcher_service = None
    service_module._import_service = None


@pytest.fixture(autouse=True)
def clear_import_sessions() -> Generator:
    """Every test starts with an empty session store."""
    from services.import_session_store import clear_sessions

    clear_sessions()
    yield
    clear_sessions()


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("leads", [
                {"id": "lead-1", "workspace_id": "ws-1", "name": "Acme Corp", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("transactions", [...])
            # Now any code using get_supabase_client() gets the mock
    """
    _reset_singletons()
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.import_repository.get_supabase_client", return_value=mock_supabase):
            yield mock_supabase
    _reset_singletons()


@pytest.fixture
def import_service(mock_db):
    """ImportService wired to the mock database."""
    from services.import_service import ImportService
    from services.import_repository import ImportRepository

    return ImportService(repository=ImportRepository())


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with mocked database.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_supabase):
            mock_supabase.set_table_data("leads", [...])
            response = test_client_with_mock_db.post("/api/imports/sessions", headers=TENANT_HEADERS)
    """
    from fastapi.testclient import TestClient
    from main import app

    yield TestClient(app)
