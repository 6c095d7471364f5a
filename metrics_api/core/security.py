"""
HTTP security headers applied to every response.

The API is read-only and unauthenticated, so hardening is limited to the
response headers browsers honour.
"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Permitted-Cross-Domain-Policies": "none",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Content-Security-Policy": "default-src 'self'; frame-ancestors 'self'; object-src 'none'",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Set SECURITY_HEADERS on responses, leaving headers a route already set.

    The interactive docs load assets from a CDN and are left untouched.
    """

    def __init__(
        self,
        app,
        headers: dict[str, str] | None = None,
        exclude_paths: set[str] | None = None,
    ):
        super().__init__(app)
        self.headers = headers or SECURITY_HEADERS
        self.exclude_paths = exclude_paths if exclude_paths is not None else {"/docs", "/redoc"}

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        if request.url.path in self.exclude_paths:
            return response
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response
