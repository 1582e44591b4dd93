"""
Checklist Task API Routes

REST endpoints for the tasks of a case file. Every route requires the team
lead of the case file or an admin. The reorder route is declared before the
per-task routes so `reorder` is never parsed as a task identifier.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path, Request, status

from backend.app.api.deps import (
    get_dao_service,
    get_task_id,
    require_dao_leader_or_admin,
)
from backend.app.models.api.dao_schemas import (
    TaskCreateRequest,
    TaskRenameRequest,
    TaskReorderRequest,
    TaskUpdateRequest,
)
from backend.app.services.dao_service import DaoService
from backend.app.utils.logging import (
    get_logger,
    log_business_event,
    log_route_entry,
    log_route_exit,
)
from backend.app.utils.security import Actor

logger = get_logger(__name__)
router = APIRouter()


@router.put(
    "/{dao_id}/tasks/reorder",
    summary="Reorder Tasks",
    description="Replace the checklist order with the given permutation of task ids"
)
async def reorder_tasks(
    request: Request,
    reorder_request: TaskReorderRequest,
    dao_id: str = Path(..., description="Case-file identifier"),
    actor: Actor = Depends(require_dao_leader_or_admin),
    dao_service: DaoService = Depends(get_dao_service)
) -> Dict[str, Any]:
    log_route_entry(request, dao_id=dao_id, task_count=len(reorder_request.task_ids))

    result = await dao_service.reorder_tasks(dao_id, reorder_request.task_ids, actor)
    log_business_event(
        "tasks_reordered",
        request,
        user_id=actor.id,
        dao_id=dao_id,
        task_ids=reorder_request.task_ids
    )

    response = result.dao.to_dict()
    log_route_exit(request, response)
    return response


@router.post(
    "/{dao_id}/tasks",
    status_code=status.HTTP_201_CREATED,
    summary="Add Task",
    description="Append a task to the checklist"
)
async def add_task(
    request: Request,
    task_request: TaskCreateRequest,
    dao_id: str = Path(..., description="Case-file identifier"),
    actor: Actor = Depends(require_dao_leader_or_admin),
    dao_service: DaoService = Depends(get_dao_service)
) -> Dict[str, Any]:
    log_route_entry(request, dao_id=dao_id)

    result = await dao_service.add_task(dao_id, task_request, actor)
    new_task = result.dao.tasks[-1]
    log_business_event(
        "task_created",
        request,
        user_id=actor.id,
        dao_id=dao_id,
        task_id=new_task.id,
        task_name=new_task.name
    )

    response = result.dao.to_dict()
    log_route_exit(request, response, status_code=status.HTTP_201_CREATED)
    return response


@router.put(
    "/{dao_id}/tasks/{task_id}/name",
    summary="Rename Task"
)
async def rename_task(
    request: Request,
    rename_request: TaskRenameRequest,
    dao_id: str = Path(..., description="Case-file identifier"),
    task_id: int = Depends(get_task_id),
    actor: Actor = Depends(require_dao_leader_or_admin),
    dao_service: DaoService = Depends(get_dao_service)
) -> Dict[str, Any]:
    log_route_entry(request, dao_id=dao_id, task_id=task_id)

    result = await dao_service.rename_task(dao_id, task_id, rename_request, actor)
    log_business_event(
        "task_renamed",
        request,
        user_id=actor.id,
        dao_id=dao_id,
        task_id=task_id,
        new_name=rename_request.name
    )

    response = result.dao.to_dict()
    log_route_exit(request, response)
    return response


@router.put(
    "/{dao_id}/tasks/{task_id}",
    summary="Update Task",
    description="Update progress, comment, applicability or assignee of a task"
)
async def update_task(
    request: Request,
    task_request: TaskUpdateRequest,
    dao_id: str = Path(..., description="Case-file identifier"),
    task_id: int = Depends(get_task_id),
    actor: Actor = Depends(require_dao_leader_or_admin),
    dao_service: DaoService = Depends(get_dao_service)
) -> Dict[str, Any]:
    log_route_entry(request, dao_id=dao_id, task_id=task_id)

    result = await dao_service.update_task(dao_id, task_id, task_request, actor)
    log_business_event(
        "task_updated",
        request,
        user_id=actor.id,
        dao_id=dao_id,
        task_id=task_id,
        fields=sorted(task_request.model_fields_set),
        notifications=result.notification_kinds
    )

    response = result.dao.to_dict()
    log_route_exit(request, response)
    return response


@router.delete(
    "/{dao_id}/tasks/{task_id}",
    summary="Delete Task",
    description="Remove a task; its id is never reused"
)
async def delete_task(
    request: Request,
    dao_id: str = Path(..., description="Case-file identifier"),
    task_id: int = Depends(get_task_id),
    actor: Actor = Depends(require_dao_leader_or_admin),
    dao_service: DaoService = Depends(get_dao_service)
) -> Dict[str, Any]:
    log_route_entry(request, dao_id=dao_id, task_id=task_id)

    result = await dao_service.delete_task(dao_id, task_id, actor)
    deleted = result.deleted_task
    log_business_event(
        "task_deleted",
        request,
        user_id=actor.id,
        dao_id=dao_id,
        task_id=deleted.id,
        task_name=deleted.name
    )

    response = {
        "message": "Task deleted successfully",
        "deletedTask": {"id": deleted.id, "name": deleted.name},
        "dao": result.dao.to_dict(),
    }
    log_route_exit(request, response)
    return response
