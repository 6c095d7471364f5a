"""
Pytest configuration and fixtures for the dashboard metrics tests.
"""
import os
from datetime import datetime, timezone

import pytest

# Settings are read at import time; give them a database before anything
# from metrics_api is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from metrics_api.core.store import StoreError


NOW = datetime(2026, 10, 19, 12, 30, tzinfo=timezone.utc)

THIS_MONTH = datetime(2026, 10, 5, tzinfo=timezone.utc)
LAST_MONTH = datetime(2026, 9, 15, tzinfo=timezone.utc)
OLDER = datetime(2026, 7, 1, tzinfo=timezone.utc)

SCHEMA = {
    "tournament": {"id", "name", "status", "created_at"},
    "team": {"id", "name", "status", "created_at"},
    "team_member": {"id", "team_id", "created_at"},
    "ai_tournament_planning": {"id", "tournament_id", "status", "created_at"},
}


class FakeQuery:
    """In-memory stand-in for TableQuery: same filter chain, list-backed rows."""

    def __init__(self, store, name, predicates=()):
        self._store = store
        self._name = name
        self._predicates = tuple(predicates)

    def _check(self, column):
        if column not in SCHEMA[self._name]:
            raise StoreError(f"column '{column}' does not exist on table '{self._name}'")

    def _where(self, column, predicate):
        self._check(column)
        return FakeQuery(self._store, self._name, self._predicates + ((column, predicate),))

    def eq(self, column, value):
        return self._where(column, lambda v: v == value)

    def gte(self, column, value):
        return self._where(column, lambda v: v is not None and v >= value)

    def lte(self, column, value):
        return self._where(column, lambda v: v is not None and v <= value)

    def not_null(self, column):
        return self._where(column, lambda v: v is not None)

    def match(self, filters):
        query = self
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        return query

    def _rows(self):
        self._store.queries.append(self._name)
        if self._name in self._store.failing:
            raise StoreError(f"relation '{self._name}' is unavailable", code="08006")
        return [
            row for row in self._store.rows.get(self._name, [])
            if all(predicate(row.get(column)) for column, predicate in self._predicates)
        ]

    async def count(self):
        return len(self._rows())

    async def values(self, column):
        self._check(column)
        return [row.get(column) for row in self._rows()]


class FakeStore:
    """MetricsStore replacement holding rows per table."""

    def __init__(self, rows=None, failing=(), broken=()):
        self.rows = rows or {}
        self.failing = set(failing)
        self.broken = set(broken)
        self.queries = []

    async def ping(self):
        if self.failing:
            raise StoreError("connection refused", code="08001")
        return 1

    def table(self, name):
        if name in self.broken:
            raise RuntimeError(f"bug while querying {name}")
        if name not in SCHEMA:
            raise StoreError(f"table '{name}' is not known to the store", code="unknown_table")
        return FakeQuery(self, name)


def build_dashboard_rows():
    """Sample platform data, dated relative to NOW (October 2026).

    - tournaments: 3 ready this month, 1 ready last month, 1 draft this month
    - teams: 1-4 created this month, 5-6 last month, 7-10 earlier; 9-10 pending
    - members: teams {1, 2, 3} this month (team 1 twice, plus one without a
      team), teams {1, 4} last month
    - schedules: 1 generated this month, 2 last month, 1 failed this month
    """
    tournaments = [
        {"id": 1, "name": "Autumn Cup", "status": "ready", "created_at": THIS_MONTH},
        {"id": 2, "name": "Night League", "status": "ready", "created_at": THIS_MONTH},
        {"id": 3, "name": "Rookie Open", "status": "ready", "created_at": THIS_MONTH},
        {"id": 4, "name": "Summer Finals", "status": "ready", "created_at": LAST_MONTH},
        {"id": 5, "name": "Winter Draft", "status": "draft", "created_at": THIS_MONTH},
    ]

    teams = []
    for team_id in range(1, 11):
        if team_id <= 4:
            created_at = THIS_MONTH
        elif team_id <= 6:
            created_at = LAST_MONTH
        else:
            created_at = OLDER
        teams.append({
            "id": team_id,
            "name": f"Team {team_id}",
            "status": "registered" if team_id <= 8 else "pending",
            "created_at": created_at,
        })

    members = [
        {"id": 1, "team_id": 1, "created_at": THIS_MONTH},
        {"id": 2, "team_id": 1, "created_at": THIS_MONTH},
        {"id": 3, "team_id": 2, "created_at": THIS_MONTH},
        {"id": 4, "team_id": 3, "created_at": THIS_MONTH},
        {"id": 5, "team_id": None, "created_at": THIS_MONTH},
        {"id": 6, "team_id": 1, "created_at": LAST_MONTH},
        {"id": 7, "team_id": 4, "created_at": LAST_MONTH},
    ]

    schedules = [
        {"id": 1, "tournament_id": 1, "status": "generated", "created_at": THIS_MONTH},
        {"id": 2, "tournament_id": 4, "status": "generated", "created_at": LAST_MONTH},
        {"id": 3, "tournament_id": 4, "status": "generated", "created_at": LAST_MONTH},
        {"id": 4, "tournament_id": 2, "status": "failed", "created_at": THIS_MONTH},
    ]

    return {
        "tournament": tournaments,
        "team": teams,
        "team_member": members,
        "ai_tournament_planning": schedules,
    }


@pytest.fixture
def dashboard_rows():
    return build_dashboard_rows()


@pytest.fixture
def fake_store(dashboard_rows):
    return FakeStore(dashboard_rows)


@pytest.fixture
def make_store(dashboard_rows):
    """Factory for stores with failing (StoreError) or broken (RuntimeError) tables."""
    def _make(rows=None, failing=(), broken=()):
        return FakeStore(dashboard_rows if rows is None else rows, failing=failing, broken=broken)
    return _make


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def service(fake_store, clock):
    from metrics_api.core.metrics_service import MetricsService
    return MetricsService(fake_store, clock=clock)
