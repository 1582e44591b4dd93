"""
DAO Service - Business Logic Layer

This module orchestrates every mutation of a case file and its checklist.
Each operation follows the same steps:
1. Load the current case file (404 when absent)
2. Sanitize free-text input and apply the operation rules
3. Persist the new state through the storage service
4. Diff the previous and new state and fan the result out as notifications
5. Return the updated case file

Notification failures are logged and counted in the operation result; they
never undo or fail a mutation that reached storage.

Authorization is checked by the API layer before any of these methods run.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from backend.app.core.exceptions import (
    ErrorCode,
    ForbiddenError,
    InternalError,
    InvalidTaskSetError,
    raise_dao_not_found,
    raise_invalid_id,
    raise_task_not_found,
)
from backend.app.models.api.dao_schemas import (
    DaoCreateRequest,
    DaoUpdateRequest,
    TaskCreateRequest,
    TaskRenameRequest,
    TaskSchema,
    TaskUpdateRequest,
    TeamMemberSchema,
)
from backend.app.models.domain.changes import ChangeKind, TaskRenamed
from backend.app.models.domain.dao import (
    DEFAULT_TASKS,
    Dao,
    DaoTask,
    TeamMember,
    utc_now_iso,
)
from backend.app.services.change_detector import (
    assignee_change,
    diff_dao,
    diff_task,
    diff_tasks,
    diff_team,
)
from backend.app.services.notification_service import (
    Audience,
    NotificationOutcome,
    NotificationService,
)
from backend.app.services.notification_templates import (
    GENERIC_TASK_CHANGE,
    TemplateKey,
    describe_changes,
    render,
)
from backend.app.services.numbering_service import NumberingAllocator
from backend.app.services.storage_service import DaoStorageService
from backend.app.utils.logging import get_logger, performance_context
from backend.app.utils.security import Actor, input_sanitizer

logger = get_logger(__name__)


class DaoOperation(str, Enum):
    """Types of case-file operations for audit tracking."""
    CREATE = "create"
    UPDATE = "update"
    REORDER_TASKS = "reorder_tasks"
    ADD_TASK = "add_task"
    RENAME_TASK = "rename_task"
    UPDATE_TASK = "update_task"
    DELETE_TASK = "delete_task"


@dataclass
class DaoOperationResult:
    """Result of a case-file mutation with the notifications it produced."""
    dao: Dao
    operation: DaoOperation
    notifications: List[NotificationOutcome] = field(default_factory=list)
    deleted_task: Optional[DaoTask] = None

    @property
    def failed_deliveries(self) -> int:
        return sum(outcome.failed_deliveries for outcome in self.notifications)

    @property
    def notification_kinds(self) -> List[str]:
        return [outcome.event.kind.value for outcome in self.notifications]


class DaoService:
    """
    Business logic service for case files and their tasks.

    Collaborators are injected so the service depends on the storage,
    numbering and notification abstractions only.
    """

    def __init__(
        self,
        storage: DaoStorageService,
        numbering: NumberingAllocator,
        notifications: NotificationService
    ):
        self.storage = storage
        self.numbering = numbering
        self.notifications = notifications
        self.sanitizer = input_sanitizer

    # Queries

    async def list_daos(self) -> List[Dao]:
        try:
            return await self.storage.list()
        except Exception as e:
            logger.error("Failed to fetch DAOs", error=str(e))
            raise InternalError(
                message=f"Failed to fetch DAOs: {e}",
                error_code=ErrorCode.FETCH_ERROR,
                user_message="Failed to fetch DAOs",
            ) from e

    async def next_number(self, year: Optional[int] = None) -> str:
        try:
            return await self.numbering.next_number(year)
        except Exception as e:
            logger.error("Failed to generate next DAO number", error=str(e))
            raise InternalError(
                message=f"Failed to generate next DAO number: {e}",
                error_code=ErrorCode.GENERATION_ERROR,
                user_message="Failed to generate next DAO number",
            ) from e

    async def get_dao(self, dao_id: str) -> Dao:
        """
        Load a case file.

        Raises:
            ValidationError: If the identifier is malformed (INVALID_ID)
            NotFoundError: If no case file has this identifier
        """
        if not self.sanitizer.is_valid_dao_id(dao_id):
            raise_invalid_id(dao_id)
        dao = await self.storage.get_by_id(dao_id)
        if dao is None:
            raise_dao_not_found(dao_id)
        return dao

    async def integrity_report(self) -> Dict[str, Any]:
        """Check identifier uniqueness of the active store and list its case files."""
        with performance_context("dao_integrity_report"):
            passed = await self.storage.verify_integrity()
            daos = await self.storage.list()
            return {
                "integrityCheck": "PASSED" if passed else "FAILED",
                "totalDaos": len(daos),
                "daos": [
                    {
                        "id": dao.id,
                        "numeroListe": dao.numero_liste,
                        "objetDossier": dao.objet_dossier[:50],
                    }
                    for dao in daos
                ],
                "timestamp": utc_now_iso(),
                "storageMode": self.storage.mode.value,
            }

    # Case-file mutations

    async def create_dao(self, request: DaoCreateRequest, actor: Actor) -> DaoOperationResult:
        """
        Create a case file.

        A missing or placeholder sequence number is replaced by the next free
        number of the current year; without tasks the default checklist is
        seeded.

        Raises:
            DuplicateIdentifierError: If the sequence number is already used
        """
        with performance_context("create_dao", user_id=actor.id):
            numero = self.sanitizer.strip_optional(request.numero_liste)
            if self.numbering.is_placeholder(numero):
                numero = await self.next_number()

            now = utc_now_iso()
            if request.tasks:
                tasks = [self._task_from_schema(schema) for schema in request.tasks]
            else:
                tasks = [
                    DaoTask(
                        id=template["id"],
                        name=template["name"],
                        is_applicable=template["isApplicable"],
                        progress=None,
                        comment="",
                    )
                    for template in DEFAULT_TASKS
                ]
            for task in tasks:
                task.stamp(actor.id, now)

            draft = Dao(
                id="",
                numero_liste=numero,
                objet_dossier=self.sanitizer.strip_markup(request.objet_dossier),
                reference=self.sanitizer.strip_markup(request.reference),
                autorite_contractante=self.sanitizer.strip_markup(request.autorite_contractante),
                date_depot=self.sanitizer.strip_markup(request.date_depot),
                equipe=[self._member_from_schema(member) for member in request.equipe],
                tasks=tasks,
            )
            draft.last_task_id = max(draft.task_ids(), default=0)

            dao = await self.storage.create(draft)
            logger.info(
                "DAO created",
                dao_id=dao.id,
                numero_liste=dao.numero_liste,
                task_count=len(dao.tasks),
                user_id=actor.id
            )

            result = DaoOperationResult(dao=dao, operation=DaoOperation.CREATE)
            await self._fan_out(
                result,
                TemplateKey.DAO_CREATED,
                {"numero": dao.numero_liste, "objet": dao.objet_dossier},
                {"daoId": dao.id},
                Audience.all_users(),
            )
            return result

    async def update_dao(
        self,
        dao_id: str,
        request: DaoUpdateRequest,
        actor: Actor
    ) -> DaoOperationResult:
        """
        Apply a partial update to a case file.

        Only the fields present in the request are merged. A task list
        replaces the checklist wholesale; tasks whose content changed are
        restamped with the actor.
        """
        with performance_context("update_dao", dao_id=dao_id, user_id=actor.id):
            before = await self.get_dao(dao_id)

            fields: Dict[str, Any] = {}
            for name in Dao.HEADER_FIELDS:
                if request.sent(name):
                    fields[name] = self.sanitizer.strip_markup(getattr(request, name))
            if request.sent("equipe"):
                fields["equipe"] = [self._member_from_schema(member) for member in request.equipe]
            if request.sent("tasks"):
                tasks = self._merge_tasks(before, request.tasks, actor)
                fields["tasks"] = tasks
                fields["last_task_id"] = max([task.id for task in tasks] + [before.last_task_id])

            after = await self._persist(dao_id, fields)
            logger.info(
                "DAO updated",
                dao_id=dao_id,
                fields=sorted(fields),
                user_id=actor.id
            )

            result = DaoOperationResult(dao=after, operation=DaoOperation.UPDATE)
            await self._notify_dao_update(result, before, after)
            return result

    async def delete_dao(self, dao_id: str, actor: Actor) -> None:
        logger.warning("DAO deletion refused", dao_id=dao_id, user_id=actor.id)
        raise ForbiddenError(
            message="DAO deletion is disabled",
            error_code=ErrorCode.DAO_DELETE_DISABLED,
            user_id=actor.id,
        )

    # Task mutations

    async def reorder_tasks(
        self,
        dao_id: str,
        task_ids: List[int],
        actor: Actor
    ) -> DaoOperationResult:
        """
        Reorder the checklist.

        `task_ids` must be a permutation of the current task ids; anything
        else is rejected without touching the case file.
        """
        with performance_context("reorder_tasks", dao_id=dao_id, user_id=actor.id):
            dao = await self.get_dao(dao_id)

            if not task_ids:
                raise InvalidTaskSetError(message="Invalid task IDs array")

            existing = set(dao.task_ids())
            invalid = [task_id for task_id in task_ids if task_id not in existing]
            if invalid:
                raise InvalidTaskSetError(
                    message="Some task IDs do not exist",
                    invalid_ids=invalid,
                )
            if len(task_ids) != len(dao.tasks) or set(task_ids) != existing:
                raise InvalidTaskSetError(
                    message="Task IDs must include all existing tasks",
                    error_code=ErrorCode.INCOMPLETE_TASK_LIST,
                )

            reordered = [dao.find_task(task_id) for task_id in task_ids]
            updated = await self._persist(dao_id, {"tasks": reordered})
            logger.info("DAO tasks reordered", dao_id=dao_id, user_id=actor.id)

            result = DaoOperationResult(dao=updated, operation=DaoOperation.REORDER_TASKS)
            await self._fan_out(
                result,
                TemplateKey.TASK_REORDERED,
                {"numero": updated.numero_liste},
                {"daoId": updated.id},
                Audience.all_users(),
            )
            return result

    async def add_task(
        self,
        dao_id: str,
        request: TaskCreateRequest,
        actor: Actor
    ) -> DaoOperationResult:
        with performance_context("add_task", dao_id=dao_id, user_id=actor.id):
            dao = await self.get_dao(dao_id)

            task = DaoTask(
                id=dao.next_task_id(),
                name=self.sanitizer.strip_markup(request.name),
                is_applicable=request.is_applicable,
                progress=request.progress,
                comment=self.sanitizer.strip_optional(request.comment),
                assigned_to=self.sanitizer.strip_optional(request.assigned_to) or None,
            )
            task.stamp(actor.id)

            updated = await self._persist(dao_id, {
                "tasks": dao.tasks + [task],
                "last_task_id": task.id,
            })
            logger.info("Task added", dao_id=dao_id, task_id=task.id, user_id=actor.id)

            result = DaoOperationResult(dao=updated, operation=DaoOperation.ADD_TASK)
            await self._fan_out(
                result,
                TemplateKey.TASK_CREATED,
                {"numero": updated.numero_liste, "task_id": task.id, "task_name": task.name},
                {"daoId": updated.id, "taskId": task.id},
                Audience.all_users(),
            )
            return result

    async def rename_task(
        self,
        dao_id: str,
        task_id: int,
        request: TaskRenameRequest,
        actor: Actor
    ) -> DaoOperationResult:
        with performance_context("rename_task", dao_id=dao_id, task_id=task_id, user_id=actor.id):
            dao = await self.get_dao(dao_id)
            task = dao.find_task(task_id)
            if task is None:
                raise_task_not_found(dao_id, task_id)

            old_name = task.name
            task.name = self.sanitizer.strip_markup(request.name)
            task.stamp(actor.id)

            updated = await self._persist(dao_id, {"tasks": dao.tasks})
            logger.info("Task renamed", dao_id=dao_id, task_id=task_id, user_id=actor.id)

            change = TaskRenamed(before=old_name, after=task.name)
            result = DaoOperationResult(dao=updated, operation=DaoOperation.RENAME_TASK)
            await self._fan_out(
                result,
                TemplateKey.TASK_RENAMED,
                {
                    "numero": updated.numero_liste,
                    "task_id": task_id,
                    "task_name": task.name,
                    "old_name": old_name,
                },
                {"daoId": updated.id, "taskId": task_id, "changes": [change.to_dict()]},
                Audience.all_users(),
            )
            return result

    async def update_task(
        self,
        dao_id: str,
        task_id: int,
        request: TaskUpdateRequest,
        actor: Actor
    ) -> DaoOperationResult:
        """
        Update progress, comment, applicability or assignee of one task.

        Absent fields are left untouched. Marking the task not applicable
        clears its progress, even when a progress is sent in the same request.
        An assignment transfer produces a single assignment notification
        emailed to the new assignee only.
        """
        with performance_context("update_task", dao_id=dao_id, task_id=task_id, user_id=actor.id):
            dao = await self.get_dao(dao_id)
            task = dao.find_task(task_id)
            if task is None:
                raise_task_not_found(dao_id, task_id)

            previous = replace(task)

            if request.sent("progress") and request.progress is not None:
                task.progress = request.progress
            if request.sent("comment") and request.comment is not None:
                task.comment = self.sanitizer.strip_markup(request.comment)
            if request.sent("is_applicable") and request.is_applicable is not None:
                task.set_applicable(request.is_applicable)
            if request.sent("assigned_to"):
                task.assigned_to = self.sanitizer.strip_optional(request.assigned_to) or None
            if not task.is_applicable:
                task.progress = None
            task.stamp(actor.id)

            updated = await self._persist(dao_id, {"tasks": dao.tasks})
            logger.info("Task updated", dao_id=dao_id, task_id=task_id, user_id=actor.id)

            changes = diff_task(previous, task)
            context = {
                "numero": updated.numero_liste,
                "task_id": task_id,
                "task_name": task.name,
                "changes": describe_changes(changes, empty=GENERIC_TASK_CHANGE),
            }
            data = {
                "daoId": updated.id,
                "taskId": task_id,
                "changes": [change.to_dict() for change in changes],
            }

            result = DaoOperationResult(dao=updated, operation=DaoOperation.UPDATE_TASK)
            assignment = assignee_change(changes)
            if assignment is not None:
                if assignment.kind == ChangeKind.TASK_UNASSIGNED:
                    key = TemplateKey.TASK_UNASSIGNED
                else:
                    key = TemplateKey.TASK_ASSIGNED
                assignee = updated.find_member(assignment.after)
                if assignee is not None and assignee.email:
                    audience = Audience.addresses_of([assignee.email])
                else:
                    audience = Audience.nobody()
                await self._fan_out(result, key, context, data, audience)
            else:
                await self._fan_out(result, TemplateKey.TASK_UPDATED, context, data, Audience.all_users())
            return result

    async def delete_task(self, dao_id: str, task_id: int, actor: Actor) -> DaoOperationResult:
        with performance_context("delete_task", dao_id=dao_id, task_id=task_id, user_id=actor.id):
            dao = await self.get_dao(dao_id)
            index = dao.task_index(task_id)
            if index < 0:
                raise_task_not_found(dao_id, task_id)

            removed = dao.tasks.pop(index)
            updated = await self._persist(dao_id, {
                "tasks": dao.tasks,
                "last_task_id": max(dao.task_ids() + [dao.last_task_id, removed.id]),
            })
            logger.info("Task deleted", dao_id=dao_id, task_id=task_id, user_id=actor.id)

            result = DaoOperationResult(
                dao=updated,
                operation=DaoOperation.DELETE_TASK,
                deleted_task=removed,
            )
            await self._fan_out(
                result,
                TemplateKey.TASK_DELETED,
                {"numero": updated.numero_liste, "task_id": task_id, "task_name": removed.name},
                {"daoId": updated.id, "taskId": task_id},
                Audience.all_users(),
            )
            return result

    # Helpers

    async def _persist(self, dao_id: str, fields: Dict[str, Any]) -> Dao:
        updated = await self.storage.update(dao_id, fields)
        if updated is None:
            raise_dao_not_found(dao_id)
        return updated

    def _member_from_schema(self, schema: TeamMemberSchema) -> TeamMember:
        return TeamMember(
            id=schema.id,
            name=self.sanitizer.strip_markup(schema.name),
            role=schema.role,
            email=schema.email or None,
        )

    def _task_from_schema(self, schema: TaskSchema) -> DaoTask:
        return DaoTask(
            id=schema.id,
            name=self.sanitizer.strip_markup(schema.name),
            is_applicable=schema.is_applicable,
            progress=schema.progress,
            comment=self.sanitizer.strip_optional(schema.comment),
            assigned_to=self.sanitizer.strip_optional(schema.assigned_to) or None,
        )

    def _merge_tasks(self, before: Dao, schemas: List[TaskSchema], actor: Actor) -> List[DaoTask]:
        """Build a replacement checklist, restamping only new or changed tasks."""
        now = utc_now_iso()
        tasks = []
        for schema in schemas:
            task = self._task_from_schema(schema)
            previous = before.find_task(task.id)
            if previous is None or previous.name != task.name or diff_task(previous, task):
                task.stamp(actor.id, now)
            else:
                task.last_updated_by = previous.last_updated_by
                task.last_updated_at = previous.last_updated_at
            tasks.append(task)
        return tasks

    async def _notify_dao_update(self, result: DaoOperationResult, before: Dao, after: Dao) -> None:
        """
        Notify a case-file update.

        Team changes go to the members before and after the update. Each
        changed task gets its own event. The generic update event is only
        sent when header fields changed or no task event explains the update.
        """
        team_changes = diff_team(before.equipe, after.equipe)
        if team_changes:
            await self._fan_out(
                result,
                TemplateKey.TEAM_UPDATED,
                {"numero": after.numero_liste, "changes": describe_changes(team_changes)},
                {"daoId": after.id, "changes": [change.to_dict() for change in team_changes]},
                Audience.addresses_of(
                    before.team_emails() + after.team_emails(),
                    cap=self.notifications.team_email_cap,
                ),
            )

        task_changes = diff_tasks(before.tasks, after.tasks)
        for task_id, changes in task_changes.items():
            task = after.find_task(task_id)
            await self._fan_out(
                result,
                TemplateKey.TASK_UPDATED,
                {
                    "numero": after.numero_liste,
                    "task_id": task_id,
                    "task_name": task.name,
                    "changes": describe_changes(changes),
                },
                {
                    "daoId": after.id,
                    "taskId": task_id,
                    "changes": [change.to_dict() for change in changes],
                },
                Audience.all_users(),
            )

        field_changes = diff_dao(before, after)
        if field_changes:
            await self._fan_out(
                result,
                TemplateKey.DAO_FIELDS_UPDATED,
                {"numero": after.numero_liste, "changes": describe_changes(field_changes)},
                {"daoId": after.id, "changes": [change.to_dict() for change in field_changes]},
                Audience.all_users(),
            )
        elif not task_changes:
            await self._fan_out(
                result,
                TemplateKey.DAO_MODIFIED,
                {"numero": after.numero_liste},
                {"daoId": after.id},
                Audience.all_users(),
            )

    async def _fan_out(
        self,
        result: DaoOperationResult,
        key: TemplateKey,
        context: Dict[str, Any],
        data: Dict[str, Any],
        audience: Audience
    ) -> None:
        """Render and send one notification; failures are logged, never raised."""
        try:
            rendered = render(key, **context)
            outcome = await self.notifications.notify(rendered, data, audience)
        except Exception as e:
            logger.error(
                "Notification fan-out failed",
                template=key.value,
                dao_id=data.get("daoId"),
                error=str(e)
            )
            return
        result.notifications.append(outcome)
