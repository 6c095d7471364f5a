"""
Entry point for the Tournament Dashboard Metrics API.

Run with:
    uvicorn metrics_api.main:app --reload --port 3000
or:
    python -m metrics_api.main
"""

import asyncio
import logging
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

# asyncpg is incompatible with ProactorEventLoop (Windows default in Python 3.8+).
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from metrics_api.core.config import settings

# ---------------------------------------------------------------------------
# Logging configuration — applied once at module load
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Silence noisy third-party loggers
logging.getLogger("asyncpg").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

from metrics_api.core.database import build_engine, build_session_factory  # noqa: E402
from metrics_api.core.limiter import limiter  # noqa: E402
from metrics_api.core.security import SecurityHeadersMiddleware  # noqa: E402
from metrics_api.core.store import MetricsStore, StoreError  # noqa: E402
from metrics_api.models.schemas import ApiResponse  # noqa: E402

# ---------------------------------------------------------------------------
# Lifespan: runs once on startup / shutdown
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)

    engine = build_engine()
    app.state.store = MetricsStore(build_session_factory(engine))

    # Pre-warm the connection pool so the first dashboard load is not slow.
    try:
        await app.state.store.ping()
        logger.info("Database connection pool warmed up.")
    except StoreError as exc:
        logger.warning("Could not pre-warm DB pool: %s", exc)

    logger.info("API available on http://%s:%d/api/metrics", settings.HOST, settings.PORT)

    yield

    await engine.dispose()
    logger.info("Database engine disposed. Shutdown complete.")


# ---------------------------------------------------------------------------
# Application instance
# ---------------------------------------------------------------------------

from metrics_api.api.endpoints import metrics  # noqa: E402

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Read-only dashboard metrics for the tournament platform: active "
        "tournaments, registered teams, generated schedules and team "
        "participation rate, each with its month-over-month change."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Attach limiter state
# ---------------------------------------------------------------------------

app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Exception handlers — every error leaves in the {success, message, error} envelope
# ---------------------------------------------------------------------------

def _envelope(status_code: int, **fields) -> JSONResponse:
    body = ApiResponse(success=False, **fields).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return _envelope(404, message="Route not found")
    return _envelope(exc.status_code, message=str(exc.detail))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit exceeded on %s: %s", request.url.path, exc.detail)
    return _envelope(429, message="Rate limit exceeded", error=str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _envelope(400, message="Validation error", error=str(exc.errors()))


@app.exception_handler(StoreError)
async def store_exception_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return _envelope(500, message="Database error", error=str(exc), code=exc.code)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _envelope(500, message="Internal server error", error=str(exc))


# ---------------------------------------------------------------------------
# Middleware — order matters: request logging wraps everything
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s → %d  (%.1f ms)",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["Content-Type", "Authorization"],
)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(
    metrics.router,
    prefix="/api/metrics",
    tags=["Metrics — Tournament Dashboard"],
)

# ---------------------------------------------------------------------------
# Health / root endpoints
# ---------------------------------------------------------------------------

@app.get("/", tags=["Health"], summary="Root")
async def root() -> dict:
    return {
        "success": True,
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "endpoints": {
            "metrics": "/api/metrics",
            "health": "/health",
            "docs": "/docs",
        },
    }


@app.get("/health", tags=["Health"], summary="Health check")
async def health_check() -> dict:
    return {
        "success": True,
        "message": "Metrics service is up",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health/db", tags=["Health"], summary="Database connectivity check")
async def health_db(request: Request) -> JSONResponse:
    try:
        row = await request.app.state.store.ping()
    except StoreError as exc:
        return _envelope(503, message="Database unreachable", error=str(exc), code=exc.code)
    return JSONResponse({"success": True, "data": {"result": row}})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("metrics_api.main:app", host=settings.HOST, port=settings.PORT)
