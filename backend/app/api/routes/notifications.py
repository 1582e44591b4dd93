"""
Notification API Routes

In-app notification feed: listing, marking one event read and marking every
event read.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Path, Query, Request

from backend.app.api.deps import get_current_actor, get_notification_store
from backend.app.core.exceptions import ErrorCode, NotFoundError
from backend.app.services.notification_service import InMemoryNotificationStore
from backend.app.utils.logging import get_logger, log_route_entry, log_route_exit
from backend.app.utils.security import Actor

logger = get_logger(__name__)
router = APIRouter()


@router.get("", summary="List Notifications")
async def list_notifications(
    request: Request,
    unread_only: bool = Query(False, description="Only return unread events"),
    actor: Actor = Depends(get_current_actor),
    store: InMemoryNotificationStore = Depends(get_notification_store)
) -> List[Dict[str, Any]]:
    log_route_entry(request, unread_only=unread_only)

    response = [event.to_dict() for event in store.list(unread_only=unread_only)]

    log_route_exit(request, response)
    return response


@router.put("/read-all", summary="Mark All Notifications Read")
async def mark_all_read(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    store: InMemoryNotificationStore = Depends(get_notification_store)
) -> Dict[str, int]:
    log_route_entry(request)

    updated = store.mark_all_read()
    logger.info("Notifications marked read", updated=updated, user_id=actor.id)

    response = {"updated": updated}
    log_route_exit(request, response)
    return response


@router.put("/{notification_id}/read", summary="Mark Notification Read")
async def mark_read(
    request: Request,
    notification_id: str = Path(..., description="Notification identifier"),
    actor: Actor = Depends(get_current_actor),
    store: InMemoryNotificationStore = Depends(get_notification_store)
) -> Dict[str, Any]:
    log_route_entry(request, notification_id=notification_id)

    event = store.mark_read(notification_id)
    if event is None:
        raise NotFoundError(
            message="Notification not found",
            error_code=ErrorCode.NOTIFICATION_NOT_FOUND,
        )

    response = event.to_dict()
    log_route_exit(request, response)
    return response
