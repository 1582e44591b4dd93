"""
Global Error Handler for the DAO tracking backend.

Every failure leaves the API with the same JSON body:

    {"error": "<human message>", "code": "<STABLE_CODE>", "details": [...]}

`details` is only present for request validation failures and lists
`{field, message}` pairs. Clients branch on `code`, never on the message.

Key Features:
- Custom exception mapping to their HTTP status and wire code
- Request validation errors reported as 400 VALIDATION_ERROR with per-field details
- Unexpected exceptions answered with a generic 500 INTERNAL_ERROR
- Error classification by category and severity, logged at the matching level
- Error counters exposed on the error health endpoint
- Correlation ID echoed in the X-Correlation-ID response header
"""

import re
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR
from starlette.types import ASGIApp

from backend.app.core.exceptions import (
    BaseCustomException,
    ErrorCode,
    get_exception_response_data,
)
from backend.app.utils.logging import get_correlation_id, get_logger
from backend.config.settings import get_settings


class ErrorSeverity(str, Enum):
    """Error severity levels for monitoring and alerting."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Error categories for classification and routing."""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    RESOURCE = "resource"
    SYSTEM = "system"


class ErrorMetrics:
    """Error metrics collection for monitoring."""

    def __init__(self):
        self.total_errors = 0
        self.error_counts_by_code: Dict[str, int] = {}
        self.error_counts_by_category: Dict[str, int] = {}
        self.error_counts_by_severity: Dict[str, int] = {}
        self.last_error_time: Optional[datetime] = None
        self.slow_requests = 0

    def record_error(
        self,
        error_code: str,
        category: ErrorCategory,
        severity: ErrorSeverity
    ) -> None:
        """Record error occurrence for metrics."""
        self.total_errors += 1
        self.error_counts_by_code[error_code] = self.error_counts_by_code.get(error_code, 0) + 1
        self.error_counts_by_category[category.value] = self.error_counts_by_category.get(category.value, 0) + 1
        self.error_counts_by_severity[severity.value] = self.error_counts_by_severity.get(severity.value, 0) + 1
        self.last_error_time = datetime.now(timezone.utc)

    def get_summary(self) -> Dict[str, Any]:
        """Get error metrics summary."""
        return {
            "total_errors": self.total_errors,
            "error_counts_by_code": self.error_counts_by_code,
            "error_counts_by_category": self.error_counts_by_category,
            "error_counts_by_severity": self.error_counts_by_severity,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "slow_requests": self.slow_requests,
        }


_ERROR_CATEGORIES: Dict[str, ErrorCategory] = {
    ErrorCode.VALIDATION_ERROR.value: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_ID.value: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_TASK_ID.value: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_TASK_IDS.value: ErrorCategory.VALIDATION,
    ErrorCode.INCOMPLETE_TASK_LIST.value: ErrorCategory.VALIDATION,
    ErrorCode.DUPLICATE_NUMBER.value: ErrorCategory.VALIDATION,
    ErrorCode.UNAUTHORIZED.value: ErrorCategory.AUTHENTICATION,
    ErrorCode.FORBIDDEN.value: ErrorCategory.AUTHORIZATION,
    ErrorCode.DAO_DELETE_DISABLED.value: ErrorCategory.AUTHORIZATION,
    ErrorCode.DAO_NOT_FOUND.value: ErrorCategory.RESOURCE,
    ErrorCode.TASK_NOT_FOUND.value: ErrorCategory.RESOURCE,
    ErrorCode.NOTIFICATION_NOT_FOUND.value: ErrorCategory.RESOURCE,
}

_ERROR_SEVERITIES: Dict[str, ErrorSeverity] = {
    ErrorCode.DATABASE_ERROR.value: ErrorSeverity.CRITICAL,
    ErrorCode.INTERNAL_ERROR.value: ErrorSeverity.CRITICAL,
    ErrorCode.FETCH_ERROR.value: ErrorSeverity.HIGH,
    ErrorCode.GENERATION_ERROR.value: ErrorSeverity.HIGH,
    ErrorCode.FORBIDDEN.value: ErrorSeverity.MEDIUM,
    ErrorCode.UNAUTHORIZED.value: ErrorSeverity.MEDIUM,
}

# Codes used for plain HTTP exceptions raised by the framework
_STATUS_CODES: Dict[int, ErrorCode] = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.DAO_NOT_FOUND,
    422: ErrorCode.VALIDATION_ERROR,
}

_SENSITIVE_PATTERNS: List[Tuple[str, str]] = [
    (r"mongodb(\+srv)?://[^\s]*", "[connection_string]"),
    (r"[Tt]oken[:\s=]+[^\s]+", "token=[redacted]"),
    (r"[Pp]assword[:\s=]+[^\s]+", "password=[redacted]"),
]


class ErrorHandler:
    """Centralized error handling with classification and formatting."""

    def __init__(self):
        self.settings = get_settings()
        self.logger = get_logger(__name__)
        self.metrics = ErrorMetrics()
        self.is_development = self.settings.is_development

    def classify_error(self, error_code: str) -> Tuple[ErrorCategory, ErrorSeverity]:
        category = _ERROR_CATEGORIES.get(error_code, ErrorCategory.SYSTEM)
        severity = _ERROR_SEVERITIES.get(error_code, ErrorSeverity.LOW)
        return category, severity

    def handle_custom_exception(
        self,
        request: Request,
        exc: BaseCustomException
    ) -> JSONResponse:
        """
        Handle custom application exceptions.

        Args:
            request: HTTP request object
            exc: Custom exception to handle

        Returns:
            JSON error response with the exception's status code
        """
        correlation_id = self._get_correlation_id(request, exc)
        code = exc.error_code.value
        category, severity = self.classify_error(code)
        self.metrics.record_error(code, category, severity)

        content = get_exception_response_data(exc)
        content["error"] = self._sanitize_error_message(content["error"])

        self._log_error(exc, request, correlation_id, category, severity)

        return JSONResponse(
            status_code=exc.http_status_code,
            content=content,
            headers={"X-Correlation-ID": correlation_id}
        )

    def handle_http_exception(
        self,
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        correlation_id = self._get_correlation_id(request)
        code = _STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR).value
        category, severity = self.classify_error(code)
        self.metrics.record_error(code, category, severity)

        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        self.logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            error_code=code,
            detail=str(exc.detail),
            url=str(request.url),
            method=request.method,
            correlation_id=correlation_id
        )

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": self._sanitize_error_message(message), "code": code},
            headers={"X-Correlation-ID": correlation_id}
        )

    def handle_validation_error(
        self,
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """
        Handle request validation errors.

        Field paths drop the leading `body`/`query`/`path` segment and are
        joined with dots, e.g. `equipe.0.email`.
        """
        correlation_id = self._get_correlation_id(request)
        code = ErrorCode.VALIDATION_ERROR.value
        category, severity = self.classify_error(code)
        self.metrics.record_error(code, category, severity)

        details = []
        for error in exc.errors():
            location = list(error.get("loc", ()))
            if location and location[0] in ("body", "query", "path"):
                location = location[1:]
            details.append({
                "field": ".".join(str(part) for part in location),
                "message": error.get("msg", "Invalid value"),
            })

        self.logger.info(
            "Request validation failed",
            error_count=len(details),
            fields=[detail["field"] for detail in details],
            url=str(request.url),
            method=request.method,
            correlation_id=correlation_id
        )

        return JSONResponse(
            status_code=400,
            content={"error": "Validation error", "code": code, "details": details},
            headers={"X-Correlation-ID": correlation_id}
        )

    def handle_unexpected_error(
        self,
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions; the response never leaks the cause."""
        correlation_id = self._get_correlation_id(request)
        code = ErrorCode.INTERNAL_ERROR.value
        category, severity = self.classify_error(code)
        self.metrics.record_error(code, category, severity)

        self.logger.error(
            "Unexpected error",
            exception_type=type(exc).__name__,
            error=str(exc),
            url=str(request.url),
            method=request.method,
            correlation_id=correlation_id,
            exc_info=True
        )

        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "code": code},
            headers={"X-Correlation-ID": correlation_id}
        )

    def _get_correlation_id(
        self,
        request: Request,
        exc: Optional[BaseCustomException] = None
    ) -> str:
        """Get or generate correlation ID for request tracking."""
        if exc is not None and exc.correlation_id:
            return exc.correlation_id

        correlation_id = request.headers.get("X-Correlation-ID")
        if correlation_id:
            return correlation_id

        correlation_id = getattr(request.state, "correlation_id", None) or get_correlation_id()
        if correlation_id:
            return correlation_id

        return str(uuid.uuid4())

    def _sanitize_error_message(self, message: str) -> str:
        """Remove connection strings and credentials from a message."""
        for pattern, replacement in _SENSITIVE_PATTERNS:
            message = re.sub(pattern, replacement, message)
        return message

    def _log_error(
        self,
        exc: BaseCustomException,
        request: Request,
        correlation_id: str,
        category: ErrorCategory,
        severity: ErrorSeverity
    ) -> None:
        """Log error with appropriate level and context."""
        log_data = {
            "correlation_id": correlation_id,
            "category": category.value,
            "severity": severity.value,
            "url": str(request.url),
            "method": request.method,
            "client_ip": request.client.host if request.client else "unknown",
            "error_code": exc.error_code.value,
            "technical_message": exc.message,
            "details": exc.details,
        }

        if severity == ErrorSeverity.CRITICAL:
            self.logger.critical("Critical error", **log_data)
        elif severity == ErrorSeverity.HIGH:
            self.logger.error("High severity error", **log_data)
        elif severity == ErrorSeverity.MEDIUM:
            self.logger.warning("Medium severity error", **log_data)
        else:
            self.logger.info("Low severity error", **log_data)

    def get_metrics(self) -> Dict[str, Any]:
        return self.metrics.get_summary()


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch exceptions that escape the exception handlers and time slow requests."""

    def __init__(self, app: ASGIApp, error_handler: ErrorHandler, slow_request_seconds: float = 5.0):
        super().__init__(app)
        self.error_handler = error_handler
        self.slow_request_seconds = slow_request_seconds
        self.logger = get_logger(__name__)

    async def dispatch(self, request: Request, call_next) -> StarletteResponse:
        start_time = time.time()

        try:
            return await call_next(request)
        except BaseCustomException as exc:
            return self.error_handler.handle_custom_exception(request, exc)
        except Exception as exc:
            return self.error_handler.handle_unexpected_error(request, exc)
        finally:
            duration = time.time() - start_time
            if duration > self.slow_request_seconds:
                self.error_handler.metrics.slow_requests += 1
                self.logger.warning(
                    "Slow request",
                    method=request.method,
                    url=str(request.url),
                    duration_seconds=round(duration, 2)
                )


def setup_error_handlers(app: FastAPI, api_prefix: str = "/api") -> ErrorHandler:
    """
    Setup global error handlers for the FastAPI application.

    Args:
        app: FastAPI application instance
        api_prefix: Prefix of the error health endpoint

    Returns:
        The ErrorHandler whose metrics back the health endpoint
    """
    error_handler = ErrorHandler()

    @app.exception_handler(BaseCustomException)
    async def custom_exception_handler(request: Request, exc: BaseCustomException):
        return error_handler.handle_custom_exception(request, exc)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return error_handler.handle_http_exception(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def starlette_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_handler.handle_http_exception(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_handler.handle_validation_error(request, exc)

    app.add_middleware(ErrorHandlerMiddleware, error_handler=error_handler)

    @app.get(f"{api_prefix}/health/errors")
    async def error_handler_health():
        """Get error handler health and metrics."""
        return {
            "status": "healthy",
            "metrics": error_handler.get_metrics(),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    get_logger(__name__).info("Global error handlers configured")
    return error_handler


__all__ = [
    "ErrorHandler",
    "ErrorHandlerMiddleware",
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorMetrics",
    "setup_error_handlers",
]
