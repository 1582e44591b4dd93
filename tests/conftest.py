"""
Shared fixtures for the DAO tracker test suite.

Services are wired against the in-memory storage backend, a recording mailer
and a static user directory, so no MongoDB or SMTP server is needed.
"""

from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from backend.app.api import deps
from backend.app.models.domain.dao import Dao, DaoTask, MemberRole, TeamMember
from backend.app.repositories.memory.dao_repository import InMemoryDaoRepository
from backend.app.services.dao_service import DaoService
from backend.app.services.mail_service import MailMessage, Mailer
from backend.app.services.notification_service import (
    InMemoryNotificationStore,
    NotificationService,
)
from backend.app.services.numbering_service import NumberingAllocator
from backend.app.services.storage_service import DaoStorageService
from backend.app.services.user_directory import InMemoryUserDirectory, UserRecord
from backend.app.utils.security import TokenManager, UserRole
from backend.config.settings import DatabaseSettings, MailSettings, NumberingSettings

TEST_SECRET = "test-secret-key"


class RecordingMailer(Mailer):
    """Mailer keeping sent messages in memory; addresses in `failing` raise."""

    def __init__(self, failing: Optional[List[str]] = None):
        self.sent: List[MailMessage] = []
        self.failing = set(failing or [])

    async def send(self, message: MailMessage) -> None:
        if message.to in self.failing:
            raise ConnectionError(f"SMTP refused {message.to}")
        self.sent.append(message)

    async def verify(self) -> None:
        return None

    @property
    def recipients(self) -> List[str]:
        return [message.to for message in self.sent]


def make_team() -> List[TeamMember]:
    return [
        TeamMember(id="lead", name="Awa Diop", role=MemberRole.LEAD, email="awa@example.com"),
        TeamMember(id="m1", name="Moussa Ba", role=MemberRole.MEMBER, email="moussa@example.com"),
        TeamMember(id="m2", name="Fatou Sall", role=MemberRole.MEMBER),
    ]


def make_dao(
    dao_id: str = "1000",
    numero_liste: str = "DAO-2025-001",
    tasks: Optional[List[DaoTask]] = None,
    updated_at: str = "2025-01-01T00:00:00.000Z"
) -> Dao:
    return Dao(
        id=dao_id,
        numero_liste=numero_liste,
        objet_dossier="Fourniture de matériel informatique",
        reference="AO/2025/014",
        autorite_contractante="Ministère de l'Économie",
        date_depot="2025-03-15",
        equipe=make_team(),
        tasks=tasks if tasks is not None else [
            DaoTask(id=1, name="Résumé sommaire", progress=10, comment=""),
            DaoTask(id=2, name="Demande de caution", progress=0, assigned_to="m1"),
            DaoTask(id=3, name="Planification", progress=50, assigned_to="m1"),
        ],
        created_at=updated_at,
        updated_at=updated_at,
        last_task_id=3 if tasks is None else max([t.id for t in tasks], default=0),
    )


@pytest.fixture
def user_directory() -> InMemoryUserDirectory:
    return InMemoryUserDirectory([
        UserRecord(id="admin", email="admin@example.com", name="Admin", role="admin"),
        UserRecord(id="lead", email="awa@example.com", name="Awa Diop"),
        UserRecord(id="m1", email="Moussa@Example.com", name="Moussa Ba"),
    ])


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def notification_store() -> InMemoryNotificationStore:
    return InMemoryNotificationStore()


@pytest.fixture
def memory_repository() -> InMemoryDaoRepository:
    return InMemoryDaoRepository()


@pytest.fixture
def storage(memory_repository) -> DaoStorageService:
    return DaoStorageService(
        settings=DatabaseSettings(enabled=False),
        fallback=memory_repository,
    )


@pytest.fixture
def notification_service(notification_store, mailer, user_directory) -> NotificationService:
    return NotificationService(
        sink=notification_store,
        mailer=mailer,
        directory=user_directory,
        settings=MailSettings(team_email_cap=50),
    )


@pytest.fixture
def dao_service(storage, notification_service) -> DaoService:
    numbering = NumberingAllocator(storage, NumberingSettings(prefix="DAO", sequence_width=3))
    return DaoService(storage=storage, numbering=numbering, notifications=notification_service)


@pytest.fixture
def token_manager() -> TokenManager:
    return TokenManager(secret_key=TEST_SECRET, algorithm="HS256", expiry_hours=1)


@pytest.fixture
def auth_headers(token_manager):
    """Build Authorization headers for a user id and role."""

    def _headers(user_id: str = "admin", role: UserRole = UserRole.ADMIN):
        token = token_manager.create_access_token(user_id, role, email=f"{user_id}@example.com")
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def app(storage, dao_service, notification_store, token_manager, mailer):
    from backend.main import create_application

    application = create_application()
    application.dependency_overrides[deps.get_storage_service] = lambda: storage
    application.dependency_overrides[deps.get_dao_service] = lambda: dao_service
    application.dependency_overrides[deps.get_notification_store] = lambda: notification_store
    application.dependency_overrides[deps.get_token_manager] = lambda: token_manager
    application.dependency_overrides[deps.get_mailer] = lambda: mailer
    yield application
    application.dependency_overrides.clear()
    deps.reset_services()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
