"""
Dependency injection module for API routes.

This module provides dependency injection functions for FastAPI routes,
ensuring proper service instantiation and dependency management. Services are
process-wide singletons built lazily on first use; tests replace them through
`app.dependency_overrides` or reset them with `reset_services()`.
"""

import threading
from typing import Any, Dict, Optional

from fastapi import Depends, Path, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.app.core.exceptions import (
    AuthenticationError,
    ErrorCode,
    ForbiddenError,
    raise_invalid_task_id,
)
from backend.app.services.dao_service import DaoService
from backend.app.services.mail_service import Mailer, SmtpMailer
from backend.app.services.notification_service import (
    InMemoryNotificationStore,
    NotificationService,
)
from backend.app.services.numbering_service import NumberingAllocator
from backend.app.services.storage_service import DaoStorageService
from backend.app.services.user_directory import InMemoryUserDirectory, UserDirectory
from backend.app.utils.logging import get_logger
from backend.app.utils.security import (
    Actor,
    SecurityEventLogger,
    SecurityEventType,
    TokenManager,
    input_sanitizer,
)

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# Global instances for dependency injection
_instances: Dict[str, Any] = {}
_instances_lock = threading.Lock()


def _singleton(name: str, factory):
    instance = _instances.get(name)
    if instance is not None:
        return instance
    with _instances_lock:
        instance = _instances.get(name)
        if instance is None:
            instance = factory()
            _instances[name] = instance
            logger.debug("Service initialized", service=name)
        return instance


def get_storage_service() -> DaoStorageService:
    """
    Get the case-file storage service (FastAPI dependency).

    The backend (MongoDB or in-memory) is chosen on the first storage call,
    not here.
    """
    return _singleton("storage", DaoStorageService)


def get_notification_store() -> InMemoryNotificationStore:
    return _singleton("notification_store", InMemoryNotificationStore)


def get_mailer() -> Mailer:
    return _singleton("mailer", SmtpMailer)


def get_user_directory() -> UserDirectory:
    return _singleton("user_directory", InMemoryUserDirectory.from_settings)


def get_token_manager() -> TokenManager:
    return _singleton("token_manager", TokenManager)


def get_notification_service() -> NotificationService:
    """Get the notification fan-out service."""
    return _singleton(
        "notification_service",
        lambda: NotificationService(
            sink=get_notification_store(),
            mailer=get_mailer(),
            directory=get_user_directory(),
        )
    )


def get_numbering_allocator() -> NumberingAllocator:
    return _singleton("numbering", lambda: NumberingAllocator(get_storage_service()))


def get_dao_service() -> DaoService:
    """
    Get the case-file service with its collaborators (FastAPI dependency).

    Usage:
        @router.get("/dao/{dao_id}")
        async def get_dao(
            dao_id: str,
            dao_service: DaoService = Depends(get_dao_service)
        ):
            return (await dao_service.get_dao(dao_id)).to_dict()
    """
    return _singleton(
        "dao_service",
        lambda: DaoService(
            storage=get_storage_service(),
            numbering=get_numbering_allocator(),
            notifications=get_notification_service(),
        )
    )


def reset_services() -> None:
    """Forget every singleton; the next request rebuilds them."""
    with _instances_lock:
        _instances.clear()


async def cleanup_all_services() -> None:
    """Release resources held by the services (called on shutdown)."""
    storage = _instances.get("storage")
    if storage is not None:
        try:
            await storage.close()
        except Exception as e:
            logger.error("Error closing storage service", error=str(e))
    reset_services()


def get_service_status() -> Dict[str, bool]:
    names = ["storage", "notification_store", "mailer", "user_directory", "dao_service"]
    return {name: name in _instances for name in names}


# Authentication and authorization

async def get_current_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    token_manager: TokenManager = Depends(get_token_manager)
) -> Actor:
    """
    Authenticate the bearer token of the request.

    Raises:
        AuthenticationError: If the token is missing, expired or invalid
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()

    try:
        actor = token_manager.authenticate(credentials.credentials)
    except AuthenticationError:
        SecurityEventLogger.log_event(
            SecurityEventType.TOKEN_REJECTED,
            ip_address=request.client.host if request.client else None,
            details={"path": request.url.path},
            risk_level="medium"
        )
        raise

    request.state.user_id = actor.id
    return actor


async def require_admin(
    request: Request,
    actor: Actor = Depends(get_current_actor)
) -> Actor:
    if not actor.is_admin:
        SecurityEventLogger.log_event(
            SecurityEventType.ACCESS_DENIED,
            user_id=actor.id,
            details={"path": request.url.path, "required_role": "admin"}
        )
        raise ForbiddenError(message="Admin access required", user_id=actor.id)
    return actor


async def require_dao_leader_or_admin(
    request: Request,
    dao_id: str = Path(..., description="Case-file identifier"),
    actor: Actor = Depends(get_current_actor),
    storage: DaoStorageService = Depends(get_storage_service)
) -> Actor:
    """
    Allow admins and the team lead of the case file in the path.

    A malformed or unknown identifier is let through so the service reports
    it with the proper error code.
    """
    if actor.is_admin:
        return actor
    if not input_sanitizer.is_valid_dao_id(dao_id):
        return actor

    dao = await storage.get_by_id(dao_id)
    if dao is None or dao.is_led_by(actor.id):
        return actor

    SecurityEventLogger.log_event(
        SecurityEventType.ACCESS_DENIED,
        user_id=actor.id,
        details={"path": request.url.path, "dao_id": dao_id, "required_role": "chef_equipe"}
    )
    raise ForbiddenError(
        message="Only the team lead or an admin can modify this DAO",
        error_code=ErrorCode.FORBIDDEN,
        user_id=actor.id,
    )


def get_task_id(task_id: str = Path(..., description="Task identifier")) -> int:
    """Parse a task identifier from the path; it must be an integer >= 1."""
    try:
        value = int(task_id)
    except ValueError:
        value = 0
    if value < 1:
        raise_invalid_task_id(task_id)
    return value
