"""
Case-File API Routes

REST endpoints for procurement case files (DAO):
- List, fetch and create case files
- Allocate the next sequence number
- Partial update with team and checklist replacement
- Integrity report of the active store (admin)

Deletion of a case file is disabled by policy and always answers 403.

Every mutation is recorded with `log_business_event`; notification fan-out
happens inside the service and never fails a request.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Path, Request, status

from backend.app.api.deps import (
    get_current_actor,
    get_dao_service,
    require_admin,
    require_dao_leader_or_admin,
)
from backend.app.models.api.dao_schemas import DaoCreateRequest, DaoUpdateRequest
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


@router.get(
    "",
    summary="List Case Files",
    description="List every case file, most recently updated first"
)
async def list_daos(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    dao_service: DaoService = Depends(get_dao_service)
) -> List[Dict[str, Any]]:
    log_route_entry(request, endpoint_name="list_daos")

    daos = await dao_service.list_daos()
    response = [dao.to_dict() for dao in daos]

    log_route_exit(request, response, endpoint_name="list_daos")
    return response


@router.get(
    "/next-number",
    summary="Next Sequence Number",
    description="Return the next free sequence number of the current year"
)
async def next_number(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    dao_service: DaoService = Depends(get_dao_service)
) -> Dict[str, str]:
    log_route_entry(request, endpoint_name="next_number")

    numero = await dao_service.next_number()
    response = {"nextNumber": numero}

    log_route_exit(request, response, endpoint_name="next_number")
    return response


@router.get(
    "/admin/verify-integrity",
    summary="Verify Storage Integrity",
    description="Check identifier uniqueness of the active store (admin only)"
)
async def verify_integrity(
    request: Request,
    actor: Actor = Depends(require_admin),
    dao_service: DaoService = Depends(get_dao_service)
) -> Dict[str, Any]:
    log_route_entry(request, endpoint_name="verify_integrity")

    report = await dao_service.integrity_report()
    log_business_event(
        "dao_integrity_checked",
        request,
        user_id=actor.id,
        result=report["integrityCheck"],
        total_daos=report["totalDaos"]
    )

    log_route_exit(request, report, endpoint_name="verify_integrity")
    return report


@router.get(
    "/{dao_id}",
    summary="Get Case File",
    description="Retrieve one case file with its team and checklist"
)
async def get_dao(
    request: Request,
    dao_id: str = Path(..., description="Case-file identifier"),
    actor: Actor = Depends(get_current_actor),
    dao_service: DaoService = Depends(get_dao_service)
) -> Dict[str, Any]:
    log_route_entry(request, dao_id=dao_id)

    dao = await dao_service.get_dao(dao_id)
    response = dao.to_dict()

    log_route_exit(request, response)
    return response


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create Case File",
    description="Create a case file, allocating its sequence number when needed (admin only)"
)
async def create_dao(
    request: Request,
    dao_request: DaoCreateRequest,
    actor: Actor = Depends(require_admin),
    dao_service: DaoService = Depends(get_dao_service)
) -> Dict[str, Any]:
    log_route_entry(request, numero_liste=dao_request.numero_liste)

    result = await dao_service.create_dao(dao_request, actor)
    log_business_event(
        "dao_created",
        request,
        user_id=actor.id,
        dao_id=result.dao.id,
        numero_liste=result.dao.numero_liste,
        failed_deliveries=result.failed_deliveries
    )

    response = result.dao.to_dict()
    log_route_exit(request, response, status_code=status.HTTP_201_CREATED)
    return response


@router.put(
    "/{dao_id}",
    summary="Update Case File",
    description="Merge the sent fields into a case file"
)
async def update_dao(
    request: Request,
    dao_request: DaoUpdateRequest,
    dao_id: str = Path(..., description="Case-file identifier"),
    actor: Actor = Depends(require_dao_leader_or_admin),
    dao_service: DaoService = Depends(get_dao_service)
) -> Dict[str, Any]:
    log_route_entry(request, dao_id=dao_id, fields=sorted(dao_request.model_fields_set))

    result = await dao_service.update_dao(dao_id, dao_request, actor)
    log_business_event(
        "dao_updated",
        request,
        user_id=actor.id,
        dao_id=dao_id,
        fields=sorted(dao_request.model_fields_set),
        notifications=result.notification_kinds,
        failed_deliveries=result.failed_deliveries
    )

    response = result.dao.to_dict()
    log_route_exit(request, response)
    return response


@router.delete(
    "/{dao_id}",
    summary="Delete Case File",
    description="Disabled: case files are never deleted, whatever the caller's role"
)
async def delete_dao(
    request: Request,
    dao_id: str = Path(..., description="Case-file identifier"),
    actor: Actor = Depends(get_current_actor),
    dao_service: DaoService = Depends(get_dao_service)
) -> None:
    log_route_entry(request, dao_id=dao_id)
    await dao_service.delete_dao(dao_id, actor)
