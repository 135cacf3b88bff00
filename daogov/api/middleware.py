"""
DAO Governance - API Middleware
Custom middleware for cross-cutting concerns.

Provides:
- Correlation ID tracking for request tracing
- Request/response logging
- Security headers
"""

import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from starlette.datastructures import QueryParams
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from daogov.monitoring.logging import bind_context, unbind_context

logger = structlog.get_logger(__name__)

# Query parameter keys whose values are redacted in logs
SENSITIVE_PARAM_KEYS = frozenset({
    'token', 'access_token', 'api_key', 'apikey', 'password',
    'secret', 'auth', 'authorization', 'jwt', 'bearer', 'private',
})

MAX_LOGGED_PARAM_LENGTH = 100


def sanitize_query_params(query_params: QueryParams | None) -> str | None:
    """
    Sanitize query parameters for safe logging.

    Redacts sensitive values while preserving param names for debugging.
    """
    if not query_params:
        return None

    sanitized: dict[str, str] = {}
    for key, value in query_params.items():
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_PARAM_KEYS):
            sanitized[key] = "[REDACTED]"
        elif len(value) > MAX_LOGGED_PARAM_LENGTH:
            sanitized[key] = value[:MAX_LOGGED_PARAM_LENGTH] + "...[truncated]"
        else:
            sanitized[key] = value

    return str(sanitized) if sanitized else None


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Add correlation ID to all requests for distributed tracing.

    The correlation ID is:
    1. Extracted from X-Correlation-ID header if present
    2. Generated as UUID if not present
    3. Added to response headers
    4. Stored in request.state for access in handlers
    """

    HEADER_NAME = "X-Correlation-ID"

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        correlation_id: str | None = request.headers.get(self.HEADER_NAME)
        if not correlation_id:
            correlation_id = str(uuid.uuid4())

        request.state.correlation_id = correlation_id
        bind_context(correlation_id=correlation_id)

        try:
            response: Response = await call_next(request)
        finally:
            unbind_context("correlation_id", "caller_id")

        response.headers[self.HEADER_NAME] = correlation_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log all requests and responses with timing information.

    Logs:
    - Request method, path, and client IP
    - Response status code
    - Request duration in milliseconds
    """

    # Paths to skip logging (health checks, etc.)
    SKIP_PATHS = {"/health", "/ready", "/favicon.ico"}

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.url.path in self.SKIP_PATHS:
            response: Response = await call_next(request)
            return response

        start_time = time.perf_counter()
        client_ip = self._get_client_ip(request)
        correlation_id: str = getattr(request.state, 'correlation_id', 'unknown')

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            query=sanitize_query_params(request.query_params),
            client_ip=client_ip,
            correlation_id=correlation_id,
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
                error=str(e),
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        status_code = response.status_code

        log_level = "info" if status_code < 400 else "warning" if status_code < 500 else "error"
        getattr(logger, log_level)(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
        )

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP, handling proxies."""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # First IP in the list is the client
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    HSTS is only sent when enabled (production).
    """

    def __init__(self, app: Any, enable_hsts: bool = False) -> None:
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response: Response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
