"""
Request logging middleware.

Establishes the correlation ID of every request (taken from the
`X-Correlation-ID` header or generated), stores it in the logging context so
every log line of the request carries it, echoes it back in the response
header and logs one completion line with status and duration.
"""

import time
import uuid
from typing import Callable, Optional, Set

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from backend.app.utils.logging import clear_correlation_id, get_logger, set_correlation_id


class RequestLoggingConfig:
    """Configuration for request logging middleware."""

    def __init__(
        self,
        excluded_paths: Optional[Set[str]] = None,
        slow_request_threshold_ms: float = 1000.0,
        log_user_agent: bool = True
    ):
        self.excluded_paths = excluded_paths or {"/api/health", "/docs", "/openapi.json"}
        self.slow_request_threshold_ms = slow_request_threshold_ms
        self.log_user_agent = log_user_agent


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware to establish request context with correlation IDs and timing.

    This middleware should be applied first to ensure all other middleware
    and route handlers have access to the request context.
    """

    def __init__(self, app: ASGIApp, config: Optional[RequestLoggingConfig] = None):
        super().__init__(app)
        self.config = config or RequestLoggingConfig()
        self.logger = get_logger("middleware.context")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = self._get_or_generate_correlation_id(request)
        set_correlation_id(correlation_id)

        start_time = time.time()
        request.state.correlation_id = correlation_id
        request.state.start_time = start_time

        try:
            response = await call_next(request)
        except Exception as exc:
            self.logger.error(
                "Request processing failed",
                method=request.method,
                path=request.url.path,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise
        finally:
            clear_correlation_id()

        response.headers["X-Correlation-ID"] = correlation_id
        self._log_completion(request, response, correlation_id, start_time)
        return response

    def _log_completion(
        self,
        request: Request,
        response: Response,
        correlation_id: str,
        start_time: float
    ) -> None:
        if request.url.path in self.config.excluded_paths:
            return

        duration_ms = round((time.time() - start_time) * 1000, 2)
        context = {
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "correlation_id": correlation_id,
            "client_ip": self._get_client_ip(request),
        }
        if self.config.log_user_agent:
            context["user_agent"] = request.headers.get("user-agent", "unknown")[:100]

        if response.status_code >= 500:
            self.logger.error("Request completed", **context)
        elif duration_ms > self.config.slow_request_threshold_ms:
            self.logger.warning("Slow request completed", **context)
        else:
            self.logger.info("Request completed", **context)

    def _get_or_generate_correlation_id(self, request: Request) -> str:
        return request.headers.get("x-correlation-id") or str(uuid.uuid4())

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"


def setup_logging_middleware(app: FastAPI, config: Optional[RequestLoggingConfig] = None) -> None:
    app.add_middleware(RequestContextMiddleware, config=config)
    get_logger(__name__).info("Request logging middleware configured")
