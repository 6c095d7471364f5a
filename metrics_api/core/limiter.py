"""
Rate limiter for the metrics routes.

Endpoint modules apply ``@limiter.limit(settings.METRICS_RATE_LIMIT)``; the
instance is attached to app.state in main.py. Clients are keyed by remote
address, so deployments behind a proxy should run uvicorn with
``--proxy-headers``.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from metrics_api.core.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.RATE_LIMIT_ENABLED,
    headers_enabled=False,
)
