"""
Custom exception classes for the DAO tracking backend.

This module defines the exception hierarchy that provides:
- Stable machine-readable error codes shared with the web client
- HTTP status code mapping for API responses
- Structured error information with per-field details
- Convenience raisers for the common failure cases
"""

import traceback
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """
    Wire error codes.

    The client branches on these values, so they must never change once
    released.
    """

    # Request validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_ID = "INVALID_ID"
    INVALID_TASK_ID = "INVALID_TASK_ID"
    DUPLICATE_NUMBER = "DUPLICATE_NUMBER"

    # Missing resources
    DAO_NOT_FOUND = "DAO_NOT_FOUND"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    NOTIFICATION_NOT_FOUND = "NOTIFICATION_NOT_FOUND"

    # Reorder bijection
    INVALID_TASK_IDS = "INVALID_TASK_IDS"
    INCOMPLETE_TASK_LIST = "INCOMPLETE_TASK_LIST"

    # Access
    DAO_DELETE_DISABLED = "DAO_DELETE_DISABLED"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Server side
    FETCH_ERROR = "FETCH_ERROR"
    GENERATION_ERROR = "GENERATION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class BaseCustomException(Exception):
    """
    Base exception class for all custom exceptions of the service.

    Provides common functionality for error tracking, context preservation,
    and structured error information.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
        http_status_code: int = 500,
        correlation_id: Optional[str] = None,
        user_message: Optional[str] = None
    ):
        """
        Initialize base exception with structured error information.

        Args:
            message: Technical error message for developers
            error_code: Stable error code for identification
            details: Additional context and debugging information
            http_status_code: HTTP status code for API responses
            correlation_id: Request correlation ID for tracking
            user_message: Message placed in the response body
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.http_status_code = http_status_code
        self.correlation_id = correlation_id
        self.user_message = user_message or message
        self.traceback_info = traceback.format_exc()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "error_code": self.error_code.value,
            "message": self.message,
            "user_message": self.user_message,
            "details": self.details,
            "http_status_code": self.http_status_code,
            "correlation_id": self.correlation_id,
        }

    def add_context(self, key: str, value: Any) -> None:
        """Add additional context to the exception details."""
        self.details[key] = value

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"


class ValidationError(BaseCustomException):
    """Exception raised for malformed or out-of-range input."""

    def __init__(
        self,
        message: str = "Validation error",
        field_errors: Optional[List[Dict[str, str]]] = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        **kwargs
    ):
        details = {
            "field_errors": field_errors or [],
        }
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            http_status_code=400,
            **kwargs
        )

    @property
    def field_errors(self) -> List[Dict[str, str]]:
        return self.details.get("field_errors", [])


class NotFoundError(BaseCustomException):
    """Exception raised when a case file, task or notification is absent."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DAO_NOT_FOUND,
        dao_id: Optional[str] = None,
        task_id: Optional[int] = None,
        **kwargs
    ):
        details = {
            "dao_id": dao_id,
            "task_id": task_id,
        }
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            http_status_code=404,
            **kwargs
        )


class DuplicateIdentifierError(BaseCustomException):
    """Exception raised when a sequence number is already taken."""

    def __init__(
        self,
        message: str = "DAO number already exists",
        numero_liste: Optional[str] = None,
        **kwargs
    ):
        details = {
            "numero_liste": numero_liste,
        }
        super().__init__(
            message=message,
            error_code=ErrorCode.DUPLICATE_NUMBER,
            details=details,
            http_status_code=400,
            **kwargs
        )


class InvalidTaskSetError(BaseCustomException):
    """Exception raised when a reorder request is not a permutation of the task ids."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_TASK_IDS,
        invalid_ids: Optional[List[int]] = None,
        **kwargs
    ):
        details = {}
        if invalid_ids:
            details["invalid_ids"] = invalid_ids
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            http_status_code=400,
            **kwargs
        )


class ForbiddenError(BaseCustomException):
    """Exception raised for operations disabled by policy or denied to the actor."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.FORBIDDEN,
        user_id: Optional[str] = None,
        **kwargs
    ):
        details = {
            "user_id": user_id,
        }
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            http_status_code=403,
            **kwargs
        )


class AuthenticationError(BaseCustomException):
    """Exception raised when no valid access token accompanies a request."""

    def __init__(
        self,
        message: str = "Authentication required",
        **kwargs
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNAUTHORIZED,
            http_status_code=401,
            **kwargs
        )


class InternalError(BaseCustomException):
    """
    Exception raised for storage or backend failures.

    The technical message is logged; the response only carries the generic
    user message.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        user_message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            http_status_code=500,
            user_message=user_message or "Internal server error",
            **kwargs
        )


class DatabaseError(InternalError):
    """Exception raised for database driver failures."""

    def __init__(
        self,
        message: str,
        database_type: Optional[str] = None,
        collection_name: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        details = {
            "database_type": database_type,
            "collection_name": collection_name,
            "operation": operation,
        }
        super().__init__(
            message=message,
            error_code=ErrorCode.DATABASE_ERROR,
            details=details,
            **kwargs
        )


def get_exception_response_data(exception: BaseCustomException) -> Dict[str, Any]:
    """
    Build the JSON error body for a custom exception.

    Args:
        exception: Custom exception instance

    Returns:
        Dictionary with `error`, `code` and, when present, `details`
    """
    body: Dict[str, Any] = {
        "error": exception.user_message,
        "code": exception.error_code.value,
    }
    if isinstance(exception, ValidationError) and exception.field_errors:
        body["details"] = exception.field_errors
    if isinstance(exception, InvalidTaskSetError) and exception.details.get("invalid_ids"):
        body["invalidIds"] = exception.details["invalid_ids"]
    return body


# Convenience functions for common exception patterns

def raise_invalid_id(dao_id: Optional[str]) -> None:
    """Raise the error for a malformed case-file identifier."""
    raise ValidationError(
        message="Invalid DAO ID",
        error_code=ErrorCode.INVALID_ID,
    )


def raise_invalid_task_id(task_id: Any) -> None:
    """Raise the error for a malformed task identifier."""
    raise ValidationError(
        message="Invalid task ID",
        error_code=ErrorCode.INVALID_TASK_ID,
    )


def raise_dao_not_found(dao_id: str) -> None:
    """Raise a case file not found error."""
    raise NotFoundError(
        message="DAO not found",
        error_code=ErrorCode.DAO_NOT_FOUND,
        dao_id=dao_id,
    )


def raise_task_not_found(dao_id: str, task_id: int) -> None:
    """Raise a task not found error."""
    raise NotFoundError(
        message="Task not found",
        error_code=ErrorCode.TASK_NOT_FOUND,
        dao_id=dao_id,
        task_id=task_id,
    )


def raise_database_error(
    message: str,
    database_type: Optional[str] = None,
    collection_name: Optional[str] = None,
    operation: Optional[str] = None
) -> None:
    """Raise a database error with context."""
    raise DatabaseError(
        message=message,
        database_type=database_type,
        collection_name=collection_name,
        operation=operation,
    )
