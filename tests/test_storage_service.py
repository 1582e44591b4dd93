"""
Tests for the case-file storage service and its in-memory backend.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from backend.app.core.exceptions import DuplicateIdentifierError
from backend.app.repositories.memory.dao_repository import (
    InMemoryDaoRepository,
    InMemoryDaoStore,
)
from backend.app.repositories.mongodb.dao_repository import MongoDaoRepository
from backend.app.services.storage_service import DaoStorageService, StorageMode
from backend.config.settings import DatabaseSettings

from conftest import make_dao


class TestInMemoryDaoStore:
    """Test suite for the in-memory collection."""

    def setup_method(self):
        self.store = InMemoryDaoStore([make_dao("1", "DAO-2025-001")])

    def test_reads_return_copies(self):
        dao = self.store.find_by_id("1")
        dao.objet_dossier = "changed"

        assert self.store.find_by_id("1").objet_dossier != "changed"

    def test_duplicate_number_rejected(self):
        with pytest.raises(DuplicateIdentifierError):
            self.store.add(make_dao("2", "DAO-2025-001"))

    def test_duplicate_id_rejected(self):
        with pytest.raises(DuplicateIdentifierError):
            self.store.add(make_dao("1", "DAO-2025-002"))

    def test_update_cannot_take_another_number(self):
        self.store.add(make_dao("2", "DAO-2025-002"))
        dao = self.store.find_by_id("2")
        dao.numero_liste = "DAO-2025-001"

        with pytest.raises(DuplicateIdentifierError):
            self.store.update_at_index(1, dao)

    def test_delete_by_id(self):
        assert self.store.delete_by_id("1") is True
        assert self.store.delete_by_id("1") is False
        assert len(self.store) == 0

    def test_integrity_passes_for_unique_values(self):
        assert self.store.verify_integrity() is True


class TestDaoStorageServiceMemory:
    """Test suite for the storage service over the in-memory backend."""

    def setup_method(self):
        self.repository = InMemoryDaoRepository()
        self.storage = DaoStorageService(
            settings=DatabaseSettings(enabled=False),
            fallback=self.repository,
        )

    @pytest.mark.asyncio
    async def test_disabled_database_uses_memory(self):
        assert self.storage.mode == StorageMode.UNINITIALIZED

        await self.storage.list()

        assert self.storage.mode == StorageMode.FALLBACK
        assert (await self.storage.health()) == {"mode": "memory"}

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_timestamps(self):
        draft = make_dao(dao_id="", updated_at="")

        created = await self.storage.create(draft)

        assert created.id.isdigit()
        assert created.created_at == created.updated_at
        assert created.created_at.endswith("Z")
        assert draft.id == ""

    @pytest.mark.asyncio
    async def test_ids_strictly_increase(self):
        first = await self.storage.create(make_dao(numero_liste="DAO-2025-001"))
        second = await self.storage.create(make_dao(numero_liste="DAO-2025-002"))

        assert int(second.id) > int(first.id)

    @pytest.mark.asyncio
    async def test_create_duplicate_number_fails(self):
        await self.storage.create(make_dao(numero_liste="DAO-2025-001"))

        with pytest.raises(DuplicateIdentifierError):
            await self.storage.create(make_dao(numero_liste="DAO-2025-001"))

    @pytest.mark.asyncio
    async def test_update_merges_fields(self):
        created = await self.storage.create(make_dao())

        updated = await self.storage.update(created.id, {"reference": "REF-2"})

        assert updated.reference == "REF-2"
        assert updated.objet_dossier == created.objet_dossier
        assert updated.updated_at >= created.updated_at

    @pytest.mark.asyncio
    async def test_update_unknown_id_returns_none(self):
        assert await self.storage.update("404", {"reference": "x"}) is None

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self):
        created = await self.storage.create(make_dao())

        with pytest.raises(ValueError):
            await self.storage.update(created.id, {"id": "other"})

    @pytest.mark.asyncio
    async def test_list_most_recent_first(self):
        self.repository.store.add(make_dao("1", "DAO-2025-001", updated_at="2025-01-01T00:00:00.000Z"))
        self.repository.store.add(make_dao("2", "DAO-2025-002", updated_at="2025-02-01T00:00:00.000Z"))

        daos = await self.storage.list()

        assert [dao.id for dao in daos] == ["2", "1"]

    @pytest.mark.asyncio
    async def test_list_numbers_filters_by_prefix(self):
        self.repository.store.add(make_dao("1", "DAO-2025-001"))
        self.repository.store.add(make_dao("2", "DAO-2024-007"))

        assert await self.storage.list_numbers("DAO-2025-") == ["DAO-2025-001"]

    @pytest.mark.asyncio
    async def test_delete(self):
        created = await self.storage.create(make_dao())

        assert await self.storage.delete(created.id) is True
        assert await self.storage.get_by_id(created.id) is None


class TestDaoStorageServiceSelection:
    """Test suite for backend selection on first use."""

    @pytest.mark.asyncio
    async def test_unreachable_mongodb_falls_back_to_memory(self):
        manager = MagicMock()
        manager.connect = AsyncMock(side_effect=ConnectionError("refused"))
        storage = DaoStorageService(
            settings=DatabaseSettings(enabled=True),
            mongo_manager=manager,
        )

        assert await storage.list() == []
        assert storage.mode == StorageMode.FALLBACK

        await storage.list()
        manager.connect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reachable_mongodb_is_selected(self):
        manager = MagicMock()
        manager.connect = AsyncMock()
        manager.health_check = AsyncMock(return_value={"status": "healthy"})
        storage = DaoStorageService(
            settings=DatabaseSettings(enabled=True),
            mongo_manager=manager,
        )

        repository = await storage._get_repository()

        assert isinstance(repository, MongoDaoRepository)
        assert storage.mode == StorageMode.BACKEND
        assert (await storage.health())["mongodb"] == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_close_disconnects_manager(self):
        manager = MagicMock()
        manager.disconnect = AsyncMock()
        storage = DaoStorageService(settings=DatabaseSettings(enabled=True), mongo_manager=manager)

        await storage.close()

        manager.disconnect.assert_awaited_once()
