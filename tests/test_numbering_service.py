"""
Tests for sequence number allocation.
"""

import pytest

from backend.app.repositories.memory.dao_repository import InMemoryDaoRepository
from backend.app.services.numbering_service import NumberingAllocator, compute_next_number
from backend.app.services.storage_service import DaoStorageService
from backend.config.settings import DatabaseSettings, NumberingSettings

from conftest import make_dao


class TestComputeNextNumber:

    def test_first_number_of_year(self):
        assert compute_next_number([], 2025) == "DAO-2025-001"

    def test_highest_suffix_plus_one(self):
        existing = ["DAO-2025-001", "DAO-2025-007", "DAO-2025-003"]

        assert compute_next_number(existing, 2025) == "DAO-2025-008"

    def test_other_years_and_malformed_values_ignored(self):
        existing = ["DAO-2024-099", "DAO-2025-abc", "", None, "XYZ-2025-050"]

        assert compute_next_number(existing, 2025) == "DAO-2025-001"

    def test_gaps_are_not_filled(self):
        assert compute_next_number(["DAO-2025-005"], 2025) == "DAO-2025-006"

    def test_overflow_widens_suffix(self):
        assert compute_next_number(["DAO-2025-999"], 2025) == "DAO-2025-1000"

    def test_suffixed_variants_are_not_counted(self):
        existing = ["DAO-2025-004-bis", "DAO-2025-007A", "DAO-2025-002"]

        assert compute_next_number(existing, 2025) == "DAO-2025-003"


class TestNumberingAllocator:
    """Test suite for allocation against storage."""

    def setup_method(self):
        self.repository = InMemoryDaoRepository()
        storage = DaoStorageService(settings=DatabaseSettings(enabled=False), fallback=self.repository)
        self.allocator = NumberingAllocator(storage, NumberingSettings(prefix="DAO", sequence_width=3))

    def test_placeholder_detection(self):
        assert self.allocator.is_placeholder(None)
        assert self.allocator.is_placeholder("")
        assert self.allocator.is_placeholder("DAO-2025-001")
        assert not self.allocator.is_placeholder("DAO-2025-004")

    @pytest.mark.asyncio
    async def test_next_number_reads_stored_numbers(self):
        self.repository.store.add(make_dao("1", "DAO-2025-001"))
        self.repository.store.add(make_dao("2", "DAO-2025-002"))
        self.repository.store.add(make_dao("3", "DAO-2024-010"))

        assert await self.allocator.next_number(2025) == "DAO-2025-003"
        assert await self.allocator.next_number(2024) == "DAO-2024-011"

    @pytest.mark.asyncio
    async def test_next_number_does_not_reserve(self):
        first = await self.allocator.next_number(2025)
        second = await self.allocator.next_number(2025)

        assert first == second == "DAO-2025-001"
