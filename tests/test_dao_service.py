"""
Tests for the case-file business logic and its notification fan-out.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pydantic
import pytest
import pytest_asyncio

from backend.app.core.exceptions import (
    DuplicateIdentifierError,
    ErrorCode,
    ForbiddenError,
    InternalError,
    InvalidTaskSetError,
    NotFoundError,
    ValidationError,
)
from backend.app.models.api.dao_schemas import (
    DaoCreateRequest,
    DaoUpdateRequest,
    TaskCreateRequest,
    TaskRenameRequest,
    TaskUpdateRequest,
)
from backend.app.models.domain.dao import DEFAULT_TASKS
from backend.app.utils.security import Actor, UserRole

from conftest import make_dao

ADMIN = Actor(id="admin", email="admin@example.com", role=UserRole.ADMIN)
LEAD = Actor(id="lead", email="awa@example.com", role=UserRole.USER)

ALL_USERS = ["admin@example.com", "awa@example.com", "Moussa@Example.com"]


def create_payload(**overrides):
    payload = {
        "objetDossier": "Travaux de voirie",
        "reference": "AO/2025/020",
        "autoriteContractante": "Mairie de Dakar",
        "dateDepot": "2025-05-02",
        "equipe": [
            {"id": "lead", "name": "Awa Diop", "role": "chef_equipe", "email": "awa@example.com"},
        ],
    }
    payload.update(overrides)
    return DaoCreateRequest.model_validate(payload)


@pytest_asyncio.fixture
async def stored_dao(storage):
    return await storage.create(make_dao())


class TestCreateDao:
    """Test suite for case-file creation."""

    @pytest.mark.asyncio
    async def test_missing_number_is_allocated(self, dao_service):
        year = datetime.now(timezone.utc).year

        result = await dao_service.create_dao(create_payload(), ADMIN)

        assert result.dao.numero_liste == f"DAO-{year}-001"
        assert result.dao.id

    @pytest.mark.asyncio
    async def test_placeholder_number_is_replaced(self, dao_service, storage):
        year = datetime.now(timezone.utc).year
        await storage.create(make_dao(numero_liste=f"DAO-{year}-004"))

        result = await dao_service.create_dao(create_payload(numeroListe=f"DAO-{year}-001"), ADMIN)

        assert result.dao.numero_liste == f"DAO-{year}-005"

    @pytest.mark.asyncio
    async def test_explicit_number_is_kept(self, dao_service):
        result = await dao_service.create_dao(create_payload(numeroListe="DAO-2024-042"), ADMIN)

        assert result.dao.numero_liste == "DAO-2024-042"

    @pytest.mark.parametrize("date_depot", ["2025-07-01", "2025/07/01", "July 1, 2025", "1 Jul 2025"])
    def test_common_date_formats_accepted(self, date_depot):
        assert create_payload(dateDepot=date_depot).date_depot == date_depot

    def test_unparseable_date_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            create_payload(dateDepot="not a date")

        with pytest.raises(pydantic.ValidationError):
            DaoUpdateRequest.model_validate({"dateDepot": "2025-13-45"})

    @pytest.mark.asyncio
    async def test_duplicate_number_rejected(self, dao_service):
        await dao_service.create_dao(create_payload(numeroListe="DAO-2024-042"), ADMIN)

        with pytest.raises(DuplicateIdentifierError):
            await dao_service.create_dao(create_payload(numeroListe="DAO-2024-042"), ADMIN)

    @pytest.mark.asyncio
    async def test_default_checklist_seeded_and_stamped(self, dao_service):
        result = await dao_service.create_dao(create_payload(), ADMIN)
        tasks = result.dao.tasks

        assert [task.id for task in tasks] == [template["id"] for template in DEFAULT_TASKS]
        assert all(task.progress is None and task.comment == "" for task in tasks)
        assert {task.last_updated_by for task in tasks} == {"admin"}
        assert len({task.last_updated_at for task in tasks}) == 1
        assert result.dao.last_task_id == len(DEFAULT_TASKS)

    @pytest.mark.asyncio
    async def test_explicit_tasks_used(self, dao_service):
        tasks = [{"id": 4, "name": "<b>Dépôt</b>", "isApplicable": False, "progress": 30}]

        result = await dao_service.create_dao(create_payload(tasks=tasks), ADMIN)

        assert len(result.dao.tasks) == 1
        assert result.dao.tasks[0].name == "Dépôt"
        assert result.dao.tasks[0].progress is None

    @pytest.mark.asyncio
    async def test_markup_stripped_from_text(self, dao_service):
        result = await dao_service.create_dao(
            create_payload(objetDossier="<script>x</script>Travaux"), ADMIN
        )

        assert result.dao.objet_dossier == "xTravaux"

    @pytest.mark.asyncio
    async def test_creation_notifies_all_users(self, dao_service, notification_store, mailer):
        result = await dao_service.create_dao(create_payload(), ADMIN)

        assert result.notification_kinds == ["dao_created"]
        assert notification_store.list()[0].data == {"daoId": result.dao.id}
        assert mailer.recipients == ALL_USERS


class TestQueries:
    """Test suite for reads."""

    @pytest.mark.asyncio
    async def test_get_dao_invalid_id(self, dao_service):
        with pytest.raises(ValidationError) as exc_info:
            await dao_service.get_dao("")

        assert exc_info.value.error_code == ErrorCode.INVALID_ID

    @pytest.mark.asyncio
    async def test_get_dao_not_found(self, dao_service):
        with pytest.raises(NotFoundError) as exc_info:
            await dao_service.get_dao("123")

        assert exc_info.value.error_code == ErrorCode.DAO_NOT_FOUND

    @pytest.mark.asyncio
    async def test_list_failure_is_wrapped(self, dao_service, storage):
        storage.list = AsyncMock(side_effect=RuntimeError("db down"))

        with pytest.raises(InternalError) as exc_info:
            await dao_service.list_daos()

        assert exc_info.value.error_code == ErrorCode.FETCH_ERROR
        assert exc_info.value.user_message == "Failed to fetch DAOs"

    @pytest.mark.asyncio
    async def test_next_number_failure_is_wrapped(self, dao_service, storage):
        storage.list_numbers = AsyncMock(side_effect=RuntimeError("db down"))

        with pytest.raises(InternalError) as exc_info:
            await dao_service.next_number()

        assert exc_info.value.error_code == ErrorCode.GENERATION_ERROR

    @pytest.mark.asyncio
    async def test_integrity_report(self, dao_service, stored_dao):
        report = await dao_service.integrity_report()

        assert report["integrityCheck"] == "PASSED"
        assert report["totalDaos"] == 1
        assert report["storageMode"] == "memory"
        assert report["daos"][0]["numeroListe"] == stored_dao.numero_liste


class TestUpdateDao:
    """Test suite for partial updates and their notifications."""

    @pytest.mark.asyncio
    async def test_header_change_sends_field_update_only(self, dao_service, stored_dao, notification_store):
        request = DaoUpdateRequest.model_validate({"reference": "AO/2025/099"})

        result = await dao_service.update_dao(stored_dao.id, request, LEAD)

        assert result.dao.reference == "AO/2025/099"
        assert result.notification_kinds == ["dao_updated"]
        assert "référence" in notification_store.list()[0].message

    @pytest.mark.asyncio
    async def test_no_change_sends_generic_update(self, dao_service, stored_dao, notification_store):
        request = DaoUpdateRequest.model_validate({"reference": stored_dao.reference})

        result = await dao_service.update_dao(stored_dao.id, request, LEAD)

        assert result.notification_kinds == ["dao_updated"]
        assert notification_store.list()[0].message == f"DAO {stored_dao.numero_liste} modifié"

    @pytest.mark.asyncio
    async def test_absent_fields_untouched(self, dao_service, stored_dao):
        request = DaoUpdateRequest.model_validate({"objetDossier": "Nouvel objet"})

        result = await dao_service.update_dao(stored_dao.id, request, LEAD)

        assert result.dao.reference == stored_dao.reference
        assert len(result.dao.equipe) == len(stored_dao.equipe)
        assert result.dao.tasks == stored_dao.tasks

    @pytest.mark.asyncio
    async def test_team_change_emails_old_and_new_members(self, dao_service, stored_dao, mailer):
        equipe = [member.to_dict() for member in stored_dao.equipe if member.id != "m1"]
        equipe.append({"id": "m3", "name": "Ibou Ndiaye", "role": "membre_equipe", "email": "ibou@example.com"})
        request = DaoUpdateRequest.model_validate({"equipe": equipe})

        result = await dao_service.update_dao(stored_dao.id, request, LEAD)

        assert result.notification_kinds[0] == "role_update"
        team_event = result.notifications[0]
        assert team_event.recipients == ["awa@example.com", "moussa@example.com", "ibou@example.com"]
        assert "Ibou Ndiaye ajouté" in team_event.event.message
        assert "Moussa Ba retiré" in team_event.event.message

    @pytest.mark.asyncio
    async def test_team_emails_capped(self, dao_service, stored_dao, notification_service):
        notification_service.settings.team_email_cap = 1
        equipe = [member.to_dict() for member in stored_dao.equipe]
        equipe.append({"id": "m3", "name": "Ibou", "role": "membre_equipe", "email": "ibou@example.com"})

        result = await dao_service.update_dao(
            stored_dao.id, DaoUpdateRequest.model_validate({"equipe": equipe}), LEAD
        )

        assert result.notifications[0].recipients == ["awa@example.com"]

    @pytest.mark.asyncio
    async def test_task_change_sends_task_event_and_keeps_other_stamps(self, dao_service, stored_dao):
        tasks = [task.to_dict() for task in stored_dao.tasks]
        tasks[0]["progress"] = 80

        result = await dao_service.update_dao(
            stored_dao.id, DaoUpdateRequest.model_validate({"tasks": tasks}), LEAD
        )

        assert result.notification_kinds == ["task_updated"]
        assert result.notifications[0].event.data["taskId"] == 1
        assert result.dao.tasks[0].last_updated_by == "lead"
        assert result.dao.tasks[1].last_updated_by is None

    @pytest.mark.asyncio
    async def test_task_and_header_change_sends_both(self, dao_service, stored_dao):
        tasks = [task.to_dict() for task in stored_dao.tasks]
        tasks[2]["comment"] = "Pièces reçues"

        result = await dao_service.update_dao(
            stored_dao.id,
            DaoUpdateRequest.model_validate({"tasks": tasks, "dateDepot": "2025-06-01"}),
            LEAD,
        )

        assert result.notification_kinds == ["task_updated", "dao_updated"]

    @pytest.mark.asyncio
    async def test_update_unknown_dao(self, dao_service):
        with pytest.raises(NotFoundError):
            await dao_service.update_dao("999", DaoUpdateRequest(), LEAD)

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_update(self, dao_service, stored_dao, mailer):
        mailer.failing = set(ALL_USERS)
        request = DaoUpdateRequest.model_validate({"reference": "AO/2025/100"})

        result = await dao_service.update_dao(stored_dao.id, request, LEAD)

        assert result.dao.reference == "AO/2025/100"
        assert result.failed_deliveries == 3

    @pytest.mark.asyncio
    async def test_delete_dao_is_disabled(self, dao_service, stored_dao):
        with pytest.raises(ForbiddenError) as exc_info:
            await dao_service.delete_dao(stored_dao.id, ADMIN)

        assert exc_info.value.error_code == ErrorCode.DAO_DELETE_DISABLED
        assert await dao_service.get_dao(stored_dao.id)


class TestReorderTasks:
    """Test suite for checklist reordering."""

    @pytest.mark.asyncio
    async def test_permutation_applied(self, dao_service, stored_dao, mailer):
        result = await dao_service.reorder_tasks(stored_dao.id, [3, 1, 2], LEAD)

        assert result.dao.task_ids() == [3, 1, 2]
        assert result.notification_kinds == ["task_reordered"]
        assert mailer.recipients == ALL_USERS

    @pytest.mark.asyncio
    async def test_empty_list_rejected(self, dao_service, stored_dao):
        with pytest.raises(InvalidTaskSetError) as exc_info:
            await dao_service.reorder_tasks(stored_dao.id, [], LEAD)

        assert exc_info.value.error_code == ErrorCode.INVALID_TASK_IDS

    @pytest.mark.asyncio
    async def test_unknown_ids_rejected(self, dao_service, stored_dao):
        with pytest.raises(InvalidTaskSetError) as exc_info:
            await dao_service.reorder_tasks(stored_dao.id, [1, 2, 3, 9], LEAD)

        assert exc_info.value.details["invalid_ids"] == [9]

    @pytest.mark.asyncio
    async def test_incomplete_or_repeated_ids_rejected(self, dao_service, stored_dao):
        for task_ids in ([1, 2], [1, 1, 2]):
            with pytest.raises(InvalidTaskSetError) as exc_info:
                await dao_service.reorder_tasks(stored_dao.id, task_ids, LEAD)
            assert exc_info.value.error_code == ErrorCode.INCOMPLETE_TASK_LIST

        dao = await dao_service.get_dao(stored_dao.id)
        assert dao.task_ids() == [1, 2, 3]


class TestTaskMutations:
    """Test suite for single-task operations."""

    @pytest.mark.asyncio
    async def test_add_task_appends_with_next_id(self, dao_service, stored_dao):
        request = TaskCreateRequest.model_validate({"name": "Relecture", "isApplicable": True})

        result = await dao_service.add_task(stored_dao.id, request, LEAD)

        added = result.dao.tasks[-1]
        assert added.id == 4
        assert added.last_updated_by == "lead"
        assert result.notification_kinds == ["task_created"]
        assert result.notifications[0].event.data == {"daoId": stored_dao.id, "taskId": 4}

    @pytest.mark.asyncio
    async def test_deleted_task_id_never_reused(self, dao_service, stored_dao):
        await dao_service.delete_task(stored_dao.id, 3, LEAD)
        request = TaskCreateRequest.model_validate({"name": "Relecture", "isApplicable": True})

        result = await dao_service.add_task(stored_dao.id, request, LEAD)

        assert result.dao.task_ids() == [1, 2, 4]

    @pytest.mark.asyncio
    async def test_rename_task(self, dao_service, stored_dao):
        result = await dao_service.rename_task(
            stored_dao.id, 1, TaskRenameRequest(name="Synthèse"), LEAD
        )

        assert result.dao.find_task(1).name == "Synthèse"
        event = result.notifications[0].event
        assert event.kind.value == "task_updated"
        assert '"Résumé sommaire" → "Synthèse"' in event.message

    @pytest.mark.asyncio
    async def test_rename_unknown_task(self, dao_service, stored_dao):
        with pytest.raises(NotFoundError) as exc_info:
            await dao_service.rename_task(stored_dao.id, 42, TaskRenameRequest(name="x"), LEAD)

        assert exc_info.value.error_code == ErrorCode.TASK_NOT_FOUND

    @pytest.mark.asyncio
    async def test_update_progress_notifies_all_users(self, dao_service, stored_dao, mailer):
        request = TaskUpdateRequest.model_validate({"progress": 75})

        result = await dao_service.update_task(stored_dao.id, 1, request, LEAD)

        assert result.dao.find_task(1).progress == 75
        assert result.notification_kinds == ["task_updated"]
        assert "progression 10% → 75%" in result.notifications[0].event.message
        assert mailer.recipients == ALL_USERS

    @pytest.mark.asyncio
    async def test_not_applicable_clears_progress(self, dao_service, stored_dao):
        request = TaskUpdateRequest.model_validate({"isApplicable": False, "progress": 60})

        result = await dao_service.update_task(stored_dao.id, 3, request, LEAD)

        task = result.dao.find_task(3)
        assert task.is_applicable is False
        assert task.progress is None

    @pytest.mark.asyncio
    async def test_no_op_update_uses_generic_wording(self, dao_service, stored_dao):
        result = await dao_service.update_task(stored_dao.id, 1, TaskUpdateRequest(), LEAD)

        assert result.notifications[0].event.message.endswith("modification")
        assert result.dao.find_task(1).last_updated_by == "lead"

    @pytest.mark.asyncio
    async def test_reassignment_emails_new_assignee_only(self, dao_service, stored_dao, mailer):
        request = TaskUpdateRequest.model_validate({"assignedTo": "lead"})

        result = await dao_service.update_task(stored_dao.id, 3, request, LEAD)

        assert result.notification_kinds == ["task_assigned"]
        assert result.notifications[0].event.data["taskId"] == 3
        assert result.notifications[0].event.data["changes"] == [
            {"before": "m1", "after": "lead", "kind": "task_reassigned"}
        ]
        assert mailer.recipients == ["awa@example.com"]

    @pytest.mark.asyncio
    async def test_assignee_without_email_gets_no_mail(self, dao_service, stored_dao, mailer, notification_store):
        request = TaskUpdateRequest.model_validate({"assignedTo": "m2"})

        result = await dao_service.update_task(stored_dao.id, 1, request, LEAD)

        assert result.notification_kinds == ["task_assigned"]
        assert mailer.sent == []
        assert len(notification_store.list()) == 1

    @pytest.mark.asyncio
    async def test_unassignment(self, dao_service, stored_dao, mailer):
        request = TaskUpdateRequest.model_validate({"assignedTo": None})

        result = await dao_service.update_task(stored_dao.id, 2, request, LEAD)

        assert result.dao.find_task(2).assigned_to is None
        assert result.notification_kinds == ["task_unassigned"]
        assert mailer.sent == []

    @pytest.mark.asyncio
    async def test_delete_task(self, dao_service, stored_dao):
        result = await dao_service.delete_task(stored_dao.id, 2, LEAD)

        assert result.deleted_task.name == "Demande de caution"
        assert result.dao.task_ids() == [1, 3]
        assert result.notification_kinds == ["task_deleted"]

    @pytest.mark.asyncio
    async def test_delete_unknown_task(self, dao_service, stored_dao):
        with pytest.raises(NotFoundError):
            await dao_service.delete_task(stored_dao.id, 99, LEAD)
