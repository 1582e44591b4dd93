"""
In-memory case-file storage.

Used as the fallback backend when MongoDB cannot be reached. The store is a
single shared list; `add`, `update_at_index` and `delete_by_id` are its only
write paths, and every read or write goes through a copy so callers never
hold a reference into the stored state.
"""

from typing import List, Optional

from backend.app.core.exceptions import DuplicateIdentifierError
from backend.app.models.domain.dao import Dao
from backend.app.repositories.base import DaoRepository
from backend.app.utils.logging import database_logger, get_logger, performance_context

logger = get_logger(__name__)


class InMemoryDaoStore:
    """Process-local collection of case files."""

    def __init__(self, initial: Optional[List[Dao]] = None):
        self._daos: List[Dao] = []
        for dao in initial or []:
            self.add(dao)

    def __len__(self) -> int:
        return len(self._daos)

    def get_all(self) -> List[Dao]:
        return [dao.copy() for dao in self._daos]

    def find_by_id(self, dao_id: str) -> Optional[Dao]:
        index = self.find_index_by_id(dao_id)
        return self._daos[index].copy() if index != -1 else None

    def find_index_by_id(self, dao_id: str) -> int:
        for index, dao in enumerate(self._daos):
            if dao.id == dao_id:
                return index
        return -1

    def add(self, dao: Dao) -> None:
        if self.find_index_by_id(dao.id) != -1:
            raise DuplicateIdentifierError(
                message=f"DAO id {dao.id} already exists",
                numero_liste=dao.numero_liste
            )
        self._check_number_free(dao.numero_liste, exclude_index=-1)
        self._daos.append(dao.copy())

    def update_at_index(self, index: int, dao: Dao) -> None:
        if index < 0 or index >= len(self._daos):
            raise IndexError(f"No DAO stored at index {index}")
        self._check_number_free(dao.numero_liste, exclude_index=index)
        self._daos[index] = dao.copy()

    def delete_by_id(self, dao_id: str) -> bool:
        index = self.find_index_by_id(dao_id)
        if index == -1:
            return False
        del self._daos[index]
        return True

    def verify_integrity(self) -> bool:
        ids = [dao.id for dao in self._daos]
        numbers = [dao.numero_liste for dao in self._daos]
        ok = len(ids) == len(set(ids)) and len(numbers) == len(set(numbers))
        if not ok:
            logger.warning("In-memory DAO store integrity check failed", total=len(ids))
        return ok

    def _check_number_free(self, numero_liste: str, exclude_index: int) -> None:
        for index, stored in enumerate(self._daos):
            if index != exclude_index and stored.numero_liste == numero_liste:
                raise DuplicateIdentifierError(numero_liste=numero_liste)


class InMemoryDaoRepository(DaoRepository):
    """DaoRepository over an InMemoryDaoStore."""

    name = "memory"

    def __init__(self, store: Optional[InMemoryDaoStore] = None):
        self.store = store if store is not None else InMemoryDaoStore()

    async def list_all(self) -> List[Dao]:
        with performance_context("memory_list_daos"):
            daos = sorted(self.store.get_all(), key=lambda d: d.updated_at, reverse=True)
            database_logger.query_executed(
                database_type="memory",
                operation="get_all",
                result_count=len(daos)
            )
            return daos

    async def get_by_id(self, dao_id: str) -> Optional[Dao]:
        return self.store.find_by_id(dao_id)

    async def insert(self, dao: Dao) -> Dao:
        with performance_context("memory_insert_dao", dao_id=dao.id):
            self.store.add(dao)
            logger.info("DAO inserted", dao_id=dao.id, numero_liste=dao.numero_liste)
            return dao.copy()

    async def replace(self, dao: Dao) -> Optional[Dao]:
        with performance_context("memory_replace_dao", dao_id=dao.id):
            index = self.store.find_index_by_id(dao.id)
            if index == -1:
                return None
            self.store.update_at_index(index, dao)
            return dao.copy()

    async def delete(self, dao_id: str) -> bool:
        return self.store.delete_by_id(dao_id)

    async def list_numbers(self, prefix: str) -> List[str]:
        return [
            dao.numero_liste for dao in self.store.get_all()
            if dao.numero_liste.startswith(prefix)
        ]

    async def verify_integrity(self) -> bool:
        return self.store.verify_integrity()
