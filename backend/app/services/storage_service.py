"""
Storage service for case files.

Chooses its backend once, lazily, on first use: it pings MongoDB and, on any
failure (or when the database is disabled in settings), switches to the
in-memory store for the rest of the process lifetime. There is no retry; a
transient outage during the first call downgrades the process permanently.

The service also owns the identity and timestamps of case files:
- ids are milliseconds since the epoch, strictly increasing within the process
- `createdAt`/`updatedAt` are ISO-8601 strings, `updatedAt` never moves back
"""

import asyncio
import time
from enum import Enum
from typing import Any, Dict, List, Optional

from backend.app.core.database import MongoDBManager
from backend.app.models.domain.dao import Dao, utc_now_iso
from backend.app.repositories.base import DaoRepository
from backend.app.repositories.memory.dao_repository import InMemoryDaoRepository
from backend.app.repositories.mongodb.dao_repository import MongoDaoRepository
from backend.app.utils.logging import get_logger, performance_context
from backend.config.settings import DatabaseSettings, get_settings

logger = get_logger(__name__)

# Case-file attributes a partial update may carry
UPDATABLE_FIELDS = frozenset({
    "numero_liste",
    "objet_dossier",
    "reference",
    "autorite_contractante",
    "date_depot",
    "equipe",
    "tasks",
    "last_task_id",
})


class StorageMode(str, Enum):
    UNINITIALIZED = "uninitialized"
    BACKEND = "mongodb"
    FALLBACK = "memory"


class DaoStorageService:
    """Uniform access to case files over MongoDB or the in-memory fallback."""

    def __init__(
        self,
        settings: Optional[DatabaseSettings] = None,
        mongo_manager: Optional[MongoDBManager] = None,
        fallback: Optional[InMemoryDaoRepository] = None
    ):
        self.settings = settings or get_settings().database
        self._mongo_manager = mongo_manager
        self._fallback = fallback
        self._repository: Optional[DaoRepository] = None
        self._mode = StorageMode.UNINITIALIZED
        self._init_lock = asyncio.Lock()
        self._last_id_ms = 0

    @property
    def mode(self) -> StorageMode:
        return self._mode

    async def _get_repository(self) -> DaoRepository:
        if self._repository is not None:
            return self._repository

        async with self._init_lock:
            if self._repository is not None:
                return self._repository

            if not self.settings.enabled:
                logger.info("MongoDB disabled, using in-memory DAO storage")
                self._use_fallback()
                return self._repository

            manager = self._mongo_manager or MongoDBManager(self.settings)
            try:
                await manager.connect()
            except Exception as e:
                logger.warning(
                    "MongoDB not available, falling back to in-memory storage",
                    error=str(e)
                )
                self._use_fallback()
                return self._repository

            self._mongo_manager = manager
            self._repository = MongoDaoRepository(manager, self.settings.dao_collection)
            self._mode = StorageMode.BACKEND
            logger.info("DAO storage using MongoDB", database=self.settings.mongodb_database)
            return self._repository

    def _use_fallback(self) -> None:
        self._repository = self._fallback or InMemoryDaoRepository()
        self._mode = StorageMode.FALLBACK

    def _next_id(self) -> str:
        now_ms = int(time.time() * 1000)
        self._last_id_ms = max(now_ms, self._last_id_ms + 1)
        return str(self._last_id_ms)

    async def list(self) -> List[Dao]:
        repository = await self._get_repository()
        return await repository.list_all()

    async def get_by_id(self, dao_id: str) -> Optional[Dao]:
        repository = await self._get_repository()
        return await repository.get_by_id(dao_id)

    async def create(self, draft: Dao) -> Dao:
        """
        Persist a new case file, assigning its id and timestamps.

        Raises:
            DuplicateIdentifierError: If the sequence number is already used
        """
        repository = await self._get_repository()
        with performance_context("storage_create_dao", numero_liste=draft.numero_liste):
            dao = draft.copy()
            dao.id = self._next_id()
            now = utc_now_iso()
            dao.created_at = now
            dao.updated_at = now
            return await repository.insert(dao)

    async def update(self, dao_id: str, fields: Dict[str, Any]) -> Optional[Dao]:
        """
        Merge the given attributes into a stored case file.

        Returns:
            The updated case file, or None if no case file has this id
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")

        repository = await self._get_repository()
        with performance_context("storage_update_dao", dao_id=dao_id, fields=sorted(fields)):
            current = await repository.get_by_id(dao_id)
            if current is None:
                return None

            for name, value in fields.items():
                setattr(current, name, value)
            current.updated_at = max(utc_now_iso(), current.updated_at or "")
            return await repository.replace(current)

    async def delete(self, dao_id: str) -> bool:
        repository = await self._get_repository()
        return await repository.delete(dao_id)

    async def list_numbers(self, prefix: str) -> List[str]:
        repository = await self._get_repository()
        return await repository.list_numbers(prefix)

    async def verify_integrity(self) -> bool:
        repository = await self._get_repository()
        return await repository.verify_integrity()

    async def health(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {"mode": self._mode.value}
        if self._mode == StorageMode.BACKEND and self._mongo_manager is not None:
            status["mongodb"] = await self._mongo_manager.health_check()
        return status

    async def close(self) -> None:
        if self._mongo_manager is not None:
            await self._mongo_manager.disconnect()
