"""
Pydantic models for the metrics dashboard responses.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"

    @classmethod
    def from_difference(cls, difference: int) -> "Trend":
        if difference > 0:
            return cls.UP
        if difference < 0:
            return cls.DOWN
        return cls.STABLE


class ChangeResult(BaseModel):
    """Month-over-month delta: a human readable label and its direction."""

    value: str
    trend: Trend


class MonthlyChange(ChangeResult):
    """ChangeResult carrying the raw counts it was derived from."""

    this_month: int = 0
    last_month: int = 0
    difference: int = 0

    def as_change(self) -> ChangeResult:
        return ChangeResult(value=self.value, trend=self.trend)


class MetricResult(BaseModel):
    value: str | int
    change: ChangeResult


class MetricValue(BaseModel):
    """A titled statistic as rendered on the dashboard."""

    title: str
    value: str | int
    change: ChangeResult


class MetricsReport(BaseModel):
    active_tournaments: MetricValue
    registered_teams: MetricValue
    generated_schedules: MetricValue
    participation_rate: MetricValue


class MonthlyChangeProbe(BaseModel):
    table: str
    filters: dict[str, str] = Field(default_factory=dict)
    change: MonthlyChange


class ApiResponse(BaseModel):
    """Envelope shared by every endpoint."""

    success: bool
    data: Any | None = None
    message: str | None = None
    error: str | None = None
    code: str | None = None
