"""
Structured logging system for the DAO tracking backend.

This module provides:
- Structured JSON or rich console logging through structlog
- Correlation IDs shared by every log line of one request
- Performance monitoring of storage calls and mutations
- Specialised loggers for database and notification delivery events
- Business event and route entry/exit helpers for the audit trail
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

from backend.config.settings import get_settings


_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_performance_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar(
    "performance_context", default=None
)

# Rich console for enhanced output
console = Console()


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class CorrelationIDProcessor:
    """Structlog processor to add correlation IDs to log records."""

    def __call__(self, logger, method_name, event_dict):
        correlation_id = get_correlation_id()
        if correlation_id:
            event_dict.setdefault("correlation_id", correlation_id)
        return event_dict


class TimestampProcessor:
    """Structlog processor to add ISO timestamps to log records."""

    def __call__(self, logger, method_name, event_dict):
        event_dict["timestamp"] = _utc_timestamp()
        return event_dict


class PerformanceProcessor:
    """Structlog processor to add the active operation to log records."""

    def __call__(self, logger, method_name, event_dict):
        perf_context = _performance_context.get()
        if perf_context:
            for key, value in perf_context.items():
                event_dict.setdefault(key, value)
        return event_dict


class DaoLogFormatter:
    """
    Final structlog renderer.

    Produces either machine-readable JSON or a colourised single line for
    the development console.
    """

    level_colors = {
        "DEBUG": "dim white",
        "INFO": "blue",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold red",
    }

    def __init__(self, use_json: bool = False):
        self.use_json = use_json

    def __call__(self, _, __, event_dict):
        if self.use_json:
            return json.dumps(event_dict, default=str)
        return self._format_console_output(event_dict)

    def _format_console_output(self, event_dict: Dict[str, Any]) -> str:
        timestamp = event_dict.get("timestamp", "")
        level = event_dict.get("level", "info").upper()
        logger_name = event_dict.get("logger", "")
        correlation_id = event_dict.get("correlation_id", "")
        event = event_dict.get("event", "")

        parts = []
        if timestamp:
            parts.append(f"[dim]{timestamp[:19]}[/dim]")

        level_color = self.level_colors.get(level, "white")
        parts.append(f"[{level_color}]{level:8}[/{level_color}]")

        if logger_name:
            parts.append(f"[cyan]{logger_name}[/cyan]")
        if correlation_id:
            parts.append(f"[magenta]{correlation_id[:8]}[/magenta]")

        parts.append(f"[white]{event}[/white]")

        context_fields = {
            k: v for k, v in event_dict.items()
            if k not in {"timestamp", "level", "logger", "correlation_id", "event"}
        }
        if context_fields:
            context_str = " ".join(f"{k}={v}" for k, v in context_fields.items())
            parts.append(f"[dim]{context_str}[/dim]")

        return " ".join(parts)


def setup_logging(
    level: str = "INFO",
    use_json: bool = False,
    enable_correlation_ids: bool = True
) -> None:
    """
    Setup structured logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Output structured JSON logs
        enable_correlation_ids: Enable correlation ID tracking
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        TimestampProcessor(),
    ]
    if enable_correlation_ids:
        processors.append(CorrelationIDProcessor())
    processors.append(PerformanceProcessor())
    processors.append(structlog.stdlib.ProcessorFormatter.wrap_for_formatter)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=DaoLogFormatter(use_json=use_json),
        foreign_pre_chain=[
            structlog.processors.add_log_level,
            TimestampProcessor(),
        ],
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    if use_json:
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
    else:
        handler = RichHandler(
            console=console,
            show_time=False,
            show_path=False,
            show_level=False,
            rich_tracebacks=True,
            markup=True,
        )
    handler.setLevel(numeric_level)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog bound logger
    """
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set the correlation ID for the current request, generating one if None."""
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def get_correlation_id() -> Optional[str]:
    """Get the correlation ID for the current request."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID for the current request."""
    _correlation_id.set(None)


@contextmanager
def performance_context(operation: str, **context: Any):
    """
    Context manager for performance monitoring.

    Args:
        operation: Name of the operation being measured
        **context: Additional context to include in logs

    Usage:
        with performance_context("dao_service_create", user_id="u1"):
            ...
    """
    start_time = time.time()
    logger = get_logger("performance")

    perf_context = {"operation": operation, **context}
    token = _performance_context.set(perf_context)

    logger.debug("Operation started", **perf_context)

    try:
        yield perf_context
    except Exception as e:
        logger.warning(
            "Operation failed",
            duration=round(time.time() - start_time, 4),
            error=str(e),
            **perf_context
        )
        raise
    else:
        logger.debug(
            "Operation completed",
            duration=round(time.time() - start_time, 4),
            **perf_context
        )
    finally:
        _performance_context.reset(token)


class DatabaseLogger:
    """Specialized logger for database operations."""

    def __init__(self):
        self.logger = get_logger("database")

    def query_executed(
        self,
        database_type: str,
        operation: str,
        collection: Optional[str] = None,
        duration: Optional[float] = None,
        result_count: Optional[int] = None
    ):
        """Log database query execution."""
        self.logger.debug(
            "Database query executed",
            database_type=database_type,
            operation=operation,
            collection=collection,
            duration=duration,
            result_count=result_count,
            event_type="query_executed"
        )

    def connection_established(self, database_type: str, database_name: str):
        """Log database connection establishment."""
        self.logger.info(
            "Database connection established",
            database_type=database_type,
            database_name=database_name,
            event_type="connection_established"
        )

    def connection_failed(self, database_type: str, error: str):
        """Log database connection failures."""
        self.logger.error(
            "Database connection failed",
            database_type=database_type,
            error=error,
            event_type="connection_failed"
        )


class NotificationLogger:
    """Specialized logger for in-app events and email delivery."""

    def __init__(self):
        self.logger = get_logger("notifications")

    def event_published(self, kind: str, event_id: str, dao_id: Optional[str] = None):
        self.logger.info(
            "Notification event published",
            kind=kind,
            event_id=event_id,
            dao_id=dao_id,
            event_type="event_published"
        )

    def email_sent(self, recipient: str, subject: str):
        self.logger.debug(
            "Email delivered",
            recipient=recipient,
            subject=subject,
            event_type="email_sent"
        )

    def delivery_failed(self, channel: str, error: str, recipient: Optional[str] = None):
        self.logger.warning(
            "Notification delivery failed",
            channel=channel,
            recipient=recipient,
            error=error,
            event_type="delivery_failed"
        )


# Global logger instances for common use cases
database_logger = DatabaseLogger()
notification_logger = NotificationLogger()


def initialize_logging_from_settings() -> None:
    """Initialize logging using application settings."""
    settings = get_settings()

    setup_logging(
        level=settings.logging.level,
        use_json=settings.logging.format.lower() == "json",
        enable_correlation_ids=settings.logging.enable_correlation_ids
    )

    logger = get_logger(__name__)
    logger.info(
        "Logging system initialized",
        level=settings.logging.level,
        correlation_ids_enabled=settings.logging.enable_correlation_ids
    )


def log_business_event(
    event_type: str,
    request: Optional[Any] = None,
    user_id: Optional[str] = None,
    dao_id: Optional[str] = None,
    **context: Any
) -> None:
    """
    Log business logic events with structured context.

    Every mutation of a case file is recorded here, which gives the audit
    trail of who changed what.

    Args:
        event_type: Type of business event (e.g., "dao_created", "task_deleted")
        request: Optional FastAPI Request object for automatic context extraction
        user_id: Optional user identifier associated with the event
        dao_id: Optional case-file identifier associated with the event
        **context: Additional context data for the event

    Usage:
        log_business_event("dao_created", request, dao_id="1712345678901")
    """
    business_logger = get_logger("business")

    event_context: Dict[str, Any] = {"event_type": event_type}

    if request is not None:
        url = getattr(request, "url", None)
        if url is not None:
            event_context["request_path"] = str(url.path)
            event_context["request_method"] = getattr(request, "method", "UNKNOWN")
        client = getattr(request, "client", None)
        if client is not None:
            event_context["client_ip"] = getattr(client, "host", "unknown")
        state = getattr(request, "state", None)
        if state is not None and not user_id:
            user_id = getattr(state, "user_id", None)

    if user_id:
        event_context["user_id"] = user_id
    if dao_id:
        event_context["dao_id"] = dao_id

    event_context.update(context)

    business_logger.info(f"Business event: {event_type}", **event_context)


def log_route_entry(
    request: Any,
    endpoint_name: Optional[str] = None,
    **context: Any
) -> None:
    """Log API route entry with request context."""
    route_logger = get_logger("routes")

    route_context: Dict[str, Any] = {"route_event": "entry"}
    url = getattr(request, "url", None)
    if url is not None:
        route_context["path"] = str(url.path)
        route_context["query_params"] = str(url.query) if url.query else None
    if hasattr(request, "method"):
        route_context["method"] = request.method
    if endpoint_name:
        route_context["endpoint"] = endpoint_name

    route_context.update(context)
    route_logger.debug("Route handler entered", **route_context)


def log_route_exit(
    request: Any,
    result: Any = None,
    status_code: Optional[int] = None,
    endpoint_name: Optional[str] = None,
    **context: Any
) -> None:
    """Log API route exit with response context."""
    route_logger = get_logger("routes")

    route_context: Dict[str, Any] = {"route_event": "exit"}
    url = getattr(request, "url", None)
    if url is not None:
        route_context["path"] = str(url.path)
    if hasattr(request, "method"):
        route_context["method"] = request.method
    if endpoint_name:
        route_context["endpoint"] = endpoint_name
    if status_code:
        route_context["status_code"] = status_code
    if result is not None:
        route_context["result_type"] = type(result).__name__
        if isinstance(result, (list, tuple, dict)):
            route_context["result_count"] = len(result)

    route_context.update(context)
    route_logger.debug("Route handler completed", **route_context)
