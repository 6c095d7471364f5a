"""
Integration tests for MetricsStore against a SQLite database (aiosqlite).
Tests the query builder, error wrapping and the full service on real SQL.
"""
import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import insert

from metrics_api.core.database import Base, build_engine, build_session_factory
from metrics_api.core.metrics_service import MetricsService
from metrics_api.core.store import MetricsStore, StoreError
from metrics_api.models.schemas import Trend


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'dashboard.db'}", echo=False)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def store(engine, dashboard_rows):
    """Store over a database seeded with the sample dashboard rows."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        # Parents first so foreign keys resolve
        for name in ("tournament", "team", "team_member", "ai_tournament_planning"):
            await conn.execute(insert(Base.metadata.tables[name]), dashboard_rows[name])
    return MetricsStore(build_session_factory(engine))


class TestTableQuery:
    """Tests for the query builder."""

    @pytest.mark.asyncio
    async def test_count_all_rows(self, store):
        assert await store.table("team").count() == 10

    @pytest.mark.asyncio
    async def test_eq_filter(self, store):
        assert await store.table("team").eq("status", "registered").count() == 8
        assert await store.table("team").eq("status", "disbanded").count() == 0

    @pytest.mark.asyncio
    async def test_filters_are_anded(self, store):
        query = store.table("tournament").match({"status": "ready", "id": 4})
        assert await query.count() == 1

    @pytest.mark.asyncio
    async def test_date_range(self, store, dashboard_rows):
        last_month = dashboard_rows["team"][4]["created_at"]
        query = (
            store.table("team")
            .gte("created_at", last_month)
            .lte("created_at", last_month)
        )
        assert await query.count() == 2

    @pytest.mark.asyncio
    async def test_builder_is_immutable(self, store):
        base = store.table("team")
        base.eq("status", "pending")
        assert await base.count() == 10

    @pytest.mark.asyncio
    async def test_not_null_values(self, store):
        values = await store.table("team_member").not_null("team_id").values("team_id")
        assert sorted(values) == [1, 1, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_concurrent_queries(self, store):
        teams, members = await asyncio.gather(
            store.table("team").count(),
            store.table("team_member").count(),
        )
        assert (teams, members) == (10, 7)

    @pytest.mark.asyncio
    async def test_ping(self, store):
        assert await store.ping() == 1


class TestStoreErrors:
    """Tests for StoreError wrapping."""

    @pytest.mark.asyncio
    async def test_unknown_table(self, engine):
        store = MetricsStore(build_session_factory(engine))
        with pytest.raises(StoreError) as exc_info:
            store.table("players")
        assert exc_info.value.code == "unknown_table"

    @pytest.mark.asyncio
    async def test_unknown_column(self, engine):
        store = MetricsStore(build_session_factory(engine))
        with pytest.raises(StoreError) as exc_info:
            store.table("team").eq("captain", "Ada")
        assert exc_info.value.code == "unknown_column"

    @pytest.mark.asyncio
    async def test_database_error_is_wrapped(self, engine):
        """Tables declared but missing from the database raise StoreError."""
        store = MetricsStore(build_session_factory(engine))
        with pytest.raises(StoreError) as exc_info:
            await store.table("team").count()
        assert "team" in str(exc_info.value)
        assert exc_info.value.__cause__ is not None


class TestServiceOnSQLite:
    """MetricsService end to end over real SQL."""

    @pytest.mark.asyncio
    async def test_this_month_participation(self, store, clock):
        service = MetricsService(store, clock=clock)
        snapshot = await service.participation_in_window(service.windows().this_month_start)
        assert (snapshot.participating, snapshot.total, snapshot.rate) == (3, 4, 75)

    @pytest.mark.asyncio
    async def test_full_report(self, store, clock):
        report = await MetricsService(store, clock=clock).get_all_metrics()

        assert report.active_tournaments.value == 4
        assert report.active_tournaments.change.value == "+2 this month"
        assert report.registered_teams.value == 8
        assert report.generated_schedules.value == 3
        assert report.generated_schedules.change.trend is Trend.DOWN
        assert report.participation_rate.value == "40%"
        assert report.participation_rate.change.value == "-25% vs. last month"

    @pytest.mark.asyncio
    async def test_unreachable_tables_fall_back(self, engine, clock):
        service = MetricsService(MetricsStore(build_session_factory(engine)), clock=clock)
        report = await service.get_all_metrics()
        assert report.registered_teams.value == "N/A"
        assert report.participation_rate.change.value == "N/A"
