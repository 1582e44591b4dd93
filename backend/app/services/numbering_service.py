"""
Sequence number allocation for case files.

Numbers look like `DAO-2025-007`. The allocator scans the numbers already
stored for a year and returns the highest suffix plus one. Nothing is
reserved: two concurrent allocations can return the same number, and the
second creation then fails with a duplicate-number error.
"""

import re
from datetime import datetime, timezone
from typing import Iterable, Optional

from backend.app.services.storage_service import DaoStorageService
from backend.app.utils.logging import get_logger, performance_context
from backend.config.settings import NumberingSettings, get_settings

logger = get_logger(__name__)


def compute_next_number(
    existing: Iterable[str],
    year: int,
    prefix: str = "DAO",
    width: int = 3
) -> str:
    """
    Derive the next sequence number of `year` from existing numbers.

    Values that do not match `PREFIX-YYYY-NNN` for that year are ignored.
    """
    pattern = re.compile(rf"^{re.escape(prefix)}-{year}-(\d{{{width},}})$")
    suffixes = []
    for numero in existing:
        match = pattern.match(numero or "")
        if match:
            suffixes.append(int(match.group(1)))

    next_suffix = max(suffixes) + 1 if suffixes else 1
    return f"{prefix}-{year}-{next_suffix:0{width}d}"


class NumberingAllocator:
    """Allocates sequence numbers from the numbers currently in storage."""

    def __init__(self, storage: DaoStorageService, settings: Optional[NumberingSettings] = None):
        self.storage = storage
        self.settings = settings or get_settings().numbering

    @property
    def prefix(self) -> str:
        return self.settings.prefix

    def is_placeholder(self, numero_liste: Optional[str]) -> bool:
        """
        True for a number the client sends as a placeholder.

        The form pre-fills the first number of the year (`...-001`); such a
        value, like an empty one, is replaced by a freshly allocated number.
        """
        if not numero_liste:
            return True
        return numero_liste.endswith("-" + "1".zfill(self.settings.sequence_width))

    async def next_number(self, year: Optional[int] = None) -> str:
        year = year or datetime.now(timezone.utc).year
        with performance_context("allocate_dao_number", year=year):
            existing = await self.storage.list_numbers(f"{self.settings.prefix}-{year}-")
            numero = compute_next_number(
                existing, year, self.settings.prefix, self.settings.sequence_width
            )
            logger.debug("Allocated DAO number", numero_liste=numero, existing=len(existing))
            return numero
