"""
Metrics Endpoint — Tournament Dashboard

GET /api/metrics                              → all four dashboard metrics
GET /api/metrics/tournois                     → active tournaments
GET /api/metrics/equipes                      → registered teams
GET /api/metrics/plannings                    → generated schedules
GET /api/metrics/participation                → team participation rate
GET /api/metrics/monthly-change/{table}       → month-over-month probe for any table

Every response is wrapped in the ``{success, data, message, error}``
envelope. No authentication is required — the data is non-sensitive
aggregate information.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Depends, Path, Query, Request
from fastapi.responses import JSONResponse

from metrics_api.core.config import settings
from metrics_api.core.limiter import limiter
from metrics_api.core.metrics_service import MetricsService, get_metrics_service, titled
from metrics_api.core.store import StoreError
from metrics_api.models.schemas import ApiResponse, MonthlyChangeProbe

logger = logging.getLogger(__name__)

router = APIRouter()

# Table and column names accepted by the monthly-change probe
IDENTIFIER_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]{0,62}$"


async def _respond(fetch: Callable[[], Awaitable[Any]], failure_message: str) -> Any:
    """Wrap a successful result in the envelope, or render a 500 envelope.

    A StoreError reaching this point is left to the app-level handler.
    """
    try:
        data = await fetch()
    except StoreError:
        raise
    except Exception as exc:
        logger.exception(failure_message)
        body = ApiResponse(success=False, message=failure_message, error=str(exc))
        return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))
    return ApiResponse(success=True, data=data)


# ---------------------------------------------------------------------------
# GET /
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Get every dashboard metric",
    description=(
        "Returns active tournaments, registered teams, generated schedules "
        "and participation rate, each with its month-over-month change."
    ),
)
@limiter.limit(settings.METRICS_RATE_LIMIT)
async def get_all_metrics(
    request: Request,
    service: MetricsService = Depends(get_metrics_service),
):
    return await _respond(service.get_all_metrics, "Failed to fetch metrics")


# ---------------------------------------------------------------------------
# GET /monthly-change/{table}
# ---------------------------------------------------------------------------

@router.get(
    "/monthly-change/{table}",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Probe the monthly change of any table",
    description=(
        "Counts rows created this month versus last month, optionally "
        "restricted to a status and measured on another date column."
    ),
)
@limiter.limit(settings.METRICS_RATE_LIMIT)
async def get_monthly_change(
    request: Request,
    table: str = Path(pattern=IDENTIFIER_PATTERN),
    status: str | None = Query(default=None, max_length=64),
    date_column: str | None = Query(default=None, alias="dateColumn", pattern=IDENTIFIER_PATTERN),
    service: MetricsService = Depends(get_metrics_service),
):
    filters = {"status": status} if status else {}

    async def probe() -> MonthlyChangeProbe:
        change = await service.calculate_monthly_change(
            table,
            filters,
            date_column or settings.DEFAULT_DATE_COLUMN,
        )
        return MonthlyChangeProbe(table=table, filters=filters, change=change)

    return await _respond(probe, "Failed to compute the monthly change")


# ---------------------------------------------------------------------------
# Single metrics
# ---------------------------------------------------------------------------

@router.get(
    "/tournois",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Get active tournaments",
)
@limiter.limit(settings.METRICS_RATE_LIMIT)
async def get_active_tournaments(
    request: Request,
    service: MetricsService = Depends(get_metrics_service),
):
    async def fetch():
        return titled("active_tournaments", await service.get_active_tournaments())

    return await _respond(fetch, "Failed to fetch active tournaments")


@router.get(
    "/equipes",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Get registered teams",
)
@limiter.limit(settings.METRICS_RATE_LIMIT)
async def get_registered_teams(
    request: Request,
    service: MetricsService = Depends(get_metrics_service),
):
    async def fetch():
        return titled("registered_teams", await service.get_registered_teams())

    return await _respond(fetch, "Failed to fetch registered teams")


@router.get(
    "/plannings",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Get generated schedules",
)
@limiter.limit(settings.METRICS_RATE_LIMIT)
async def get_generated_schedules(
    request: Request,
    service: MetricsService = Depends(get_metrics_service),
):
    async def fetch():
        return titled("generated_schedules", await service.get_generated_schedules())

    return await _respond(fetch, "Failed to fetch generated schedules")


@router.get(
    "/participation",
    response_model=ApiResponse,
    response_model_exclude_none=True,
    summary="Get the team participation rate",
)
@limiter.limit(settings.METRICS_RATE_LIMIT)
async def get_participation_rate(
    request: Request,
    service: MetricsService = Depends(get_metrics_service),
):
    async def fetch():
        return titled("participation_rate", await service.get_participation_rate())

    return await _respond(fetch, "Failed to compute the participation rate")
