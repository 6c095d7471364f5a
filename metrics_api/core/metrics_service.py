"""
Dashboard metrics with month-over-month deltas.

Responsibilities:
- Count active tournaments, registered teams and generated schedules.
- Compute the team participation rate (teams with at least one member).
- Compare the current calendar month with the previous one for each metric.

Store failures never break the dashboard: a failing metric or delta is
logged and replaced by a neutral fallback. Only unexpected errors escape
and fail the report.
"""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

from fastapi import Request

from metrics_api.core.config import settings
from metrics_api.core.store import MetricsStore, StoreError
from metrics_api.models.schemas import (
    ChangeResult,
    MetricResult,
    MetricsReport,
    MetricValue,
    MonthlyChange,
    Trend,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNAVAILABLE = "N/A"
NO_CHANGE = "No change"
NO_CHANGE_VS_LAST_MONTH = "No change vs. last month"

TITLES = {
    "active_tournaments": "Active tournaments",
    "registered_teams": "Registered teams",
    "generated_schedules": "Generated schedules",
    "participation_rate": "Participation rate",
}

# Shown when a metric's own query fails.
FALLBACK_METRIC = MetricResult(
    value=UNAVAILABLE,
    change=ChangeResult(value=UNAVAILABLE, trend=Trend.STABLE),
)


# ---------------------------------------------------------------------------
# Calendar windows and formatting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MonthWindows:
    this_month_start: datetime
    last_month_start: datetime
    last_month_end: datetime


def month_windows(now: datetime) -> MonthWindows:
    """Return the current and previous calendar month boundaries for ``now``.

    The current month runs from its first instant up to ``now``; the previous
    month covers its first to its last instant, inclusive. January rolls back
    to December of the previous year.
    """
    this_month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if this_month_start.month == 1:
        last_month_start = this_month_start.replace(year=this_month_start.year - 1, month=12)
    else:
        last_month_start = this_month_start.replace(month=this_month_start.month - 1)
    return MonthWindows(
        this_month_start=this_month_start,
        last_month_start=last_month_start,
        last_month_end=this_month_start - timedelta(microseconds=1),
    )


def format_monthly_label(difference: int) -> str:
    if difference > 0:
        return f"+{difference} this month"
    if difference < 0:
        return f"{difference} this month"
    return NO_CHANGE


def format_participation_label(difference: int) -> str:
    if difference > 0:
        return f"+{difference}% vs. last month"
    if difference < 0:
        return f"{difference}% vs. last month"
    return NO_CHANGE_VS_LAST_MONTH


def participation_rate(participating: int, total: int) -> int:
    """Whole percentage of ``participating`` over ``total``, rounding halves up."""
    if total <= 0:
        return 0
    return math.floor(participating / total * 100 + 0.5)


@dataclass(frozen=True)
class ParticipationSnapshot:
    participating: int
    total: int

    @property
    def rate(self) -> int:
        return participation_rate(self.participating, self.total)


async def fetch_with_fallback(
    primary: Callable[[], Awaitable[T]],
    fallback: T,
    label: str,
) -> T:
    """Await ``primary()``; on a store failure log it and return ``fallback``."""
    try:
        return await primary()
    except StoreError as exc:
        logger.warning("%s unavailable, using fallback: %s", label, exc)
        return fallback


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class MetricsService:
    def __init__(
        self,
        store: MetricsStore,
        clock: Callable[[], datetime] = _utcnow,
        date_column: str = "created_at",
    ) -> None:
        self._store = store
        self._clock = clock
        self._date_column = date_column

    def windows(self) -> MonthWindows:
        return month_windows(self._clock())

    # -- Monthly change ------------------------------------------------------

    async def calculate_monthly_change(
        self,
        table_name: str,
        filters: dict[str, Any] | None = None,
        date_column: str | None = None,
    ) -> MonthlyChange:
        """Compare matching rows created this month with last month.

        Args:
            table_name: Table to count rows in.
            filters: Column -> value equality filters applied to both months.
            date_column: Timestamp column placing a row in a month.
        """
        return await fetch_with_fallback(
            lambda: self._monthly_change(table_name, filters or {}, date_column or self._date_column),
            MonthlyChange(value=UNAVAILABLE, trend=Trend.STABLE),
            f"Monthly change for '{table_name}'",
        )

    async def _monthly_change(
        self,
        table_name: str,
        filters: dict[str, Any],
        date_column: str,
    ) -> MonthlyChange:
        windows = self.windows()
        query = self._store.table(table_name).match(filters)

        this_month, last_month = await asyncio.gather(
            query.gte(date_column, windows.this_month_start).count(),
            query.gte(date_column, windows.last_month_start)
            .lte(date_column, windows.last_month_end)
            .count(),
        )

        difference = this_month - last_month
        return MonthlyChange(
            value=format_monthly_label(difference),
            trend=Trend.from_difference(difference),
            this_month=this_month,
            last_month=last_month,
            difference=difference,
        )

    # -- Count metrics -------------------------------------------------------

    async def _count_metric(self, table_name: str, filters: dict[str, Any]) -> MetricResult:
        current = await self._store.table(table_name).match(filters).count()
        change = await self.calculate_monthly_change(table_name, filters)
        return MetricResult(value=current, change=change.as_change())

    async def get_active_tournaments(self) -> MetricResult:
        return await fetch_with_fallback(
            lambda: self._count_metric("tournament", {"status": "ready"}),
            FALLBACK_METRIC,
            "Active tournaments",
        )

    async def get_registered_teams(self) -> MetricResult:
        return await fetch_with_fallback(
            lambda: self._count_metric("team", {"status": "registered"}),
            FALLBACK_METRIC,
            "Registered teams",
        )

    async def get_generated_schedules(self) -> MetricResult:
        return await fetch_with_fallback(
            lambda: self._count_metric("ai_tournament_planning", {"status": "generated"}),
            FALLBACK_METRIC,
            "Generated schedules",
        )

    # -- Participation -------------------------------------------------------

    async def participation_in_window(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ParticipationSnapshot:
        """Teams with at least one member among teams, optionally by creation date.

        Both tables are restricted to rows created within ``[start, end]``;
        an open bound is not filtered.
        """
        teams = self._store.table("team")
        members = self._store.table("team_member").not_null("team_id")
        if start is not None:
            teams = teams.gte(self._date_column, start)
            members = members.gte(self._date_column, start)
        if end is not None:
            teams = teams.lte(self._date_column, end)
            members = members.lte(self._date_column, end)

        total, team_ids = await asyncio.gather(teams.count(), members.values("team_id"))
        return ParticipationSnapshot(participating=len(set(team_ids)), total=total)

    async def calculate_participation_change(self) -> ChangeResult:
        return await fetch_with_fallback(
            self._participation_change,
            ChangeResult(value=UNAVAILABLE, trend=Trend.STABLE),
            "Participation change",
        )

    async def _participation_change(self) -> ChangeResult:
        windows = self.windows()
        this_month, last_month = await asyncio.gather(
            self.participation_in_window(windows.this_month_start),
            self.participation_in_window(windows.last_month_start, windows.last_month_end),
        )
        difference = this_month.rate - last_month.rate
        return ChangeResult(
            value=format_participation_label(difference),
            trend=Trend.from_difference(difference),
        )

    async def _participation(self) -> MetricResult:
        snapshot = await self.participation_in_window()
        change = await self.calculate_participation_change()
        return MetricResult(value=f"{snapshot.rate}%", change=change)

    async def get_participation_rate(self) -> MetricResult:
        return await fetch_with_fallback(
            self._participation,
            FALLBACK_METRIC,
            "Participation rate",
        )

    # -- Report --------------------------------------------------------------

    async def get_all_metrics(self) -> MetricsReport:
        """Fetch all four metrics concurrently and title them for the dashboard."""
        tournaments, teams, schedules, participation = await asyncio.gather(
            self.get_active_tournaments(),
            self.get_registered_teams(),
            self.get_generated_schedules(),
            self.get_participation_rate(),
        )
        return MetricsReport(
            active_tournaments=titled("active_tournaments", tournaments),
            registered_teams=titled("registered_teams", teams),
            generated_schedules=titled("generated_schedules", schedules),
            participation_rate=titled("participation_rate", participation),
        )


def titled(key: str, result: MetricResult) -> MetricValue:
    return MetricValue(title=TITLES[key], value=result.value, change=result.change)


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------


def get_metrics_service(request: Request) -> MetricsService:
    """Build a MetricsService around the store created in the app lifespan."""
    return MetricsService(
        request.app.state.store,
        date_column=settings.DEFAULT_DATE_COLUMN,
    )
