"""
Directory of known platform users.

Platform-wide emails go to every user returned by `get_all_users()`. The
default implementation is seeded from settings; account management itself
lives outside this service.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional

from backend.app.utils.logging import get_logger
from backend.config.settings import DirectorySettings, get_settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class UserRecord:
    id: str
    email: str
    name: str = ""
    role: str = "user"


class UserDirectory(ABC):
    """Source of the audience of platform-wide emails."""

    @abstractmethod
    async def get_all_users(self) -> List[UserRecord]:
        """Return every known user."""


class InMemoryUserDirectory(UserDirectory):
    def __init__(self, users: Optional[Iterable[UserRecord]] = None):
        self._users = list(users or [])

    @classmethod
    def from_settings(cls, settings: Optional[DirectorySettings] = None) -> "InMemoryUserDirectory":
        settings = settings or get_settings().directory
        users = [
            UserRecord(id=user.id, email=user.email, name=user.name, role=user.role)
            for user in settings.users
        ]
        logger.info("User directory loaded", user_count=len(users))
        return cls(users)

    def add(self, user: UserRecord) -> None:
        self._users.append(user)

    async def get_all_users(self) -> List[UserRecord]:
        return list(self._users)
