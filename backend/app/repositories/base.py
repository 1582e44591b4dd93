"""
Repository interface shared by the MongoDB and in-memory case-file stores.

Both implementations must behave identically: listings are ordered by most
recent update first, ids and sequence numbers are unique, and updates against
an unknown id report "not found" instead of raising.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from backend.app.models.domain.dao import Dao


class DaoRepository(ABC):
    """Abstract base class for case-file persistence."""

    name: str = "abstract"

    @abstractmethod
    async def list_all(self) -> List[Dao]:
        """Return every case file, most recently updated first."""

    @abstractmethod
    async def get_by_id(self, dao_id: str) -> Optional[Dao]:
        """Return the case file with this id, or None."""

    @abstractmethod
    async def insert(self, dao: Dao) -> Dao:
        """
        Persist a new case file.

        Raises:
            DuplicateIdentifierError: If the id or sequence number is taken
        """

    @abstractmethod
    async def replace(self, dao: Dao) -> Optional[Dao]:
        """
        Overwrite a stored case file.

        Returns:
            The stored case file, or None if no case file has this id

        Raises:
            DuplicateIdentifierError: If the new sequence number belongs to
                another case file
        """

    @abstractmethod
    async def delete(self, dao_id: str) -> bool:
        """Remove a case file; False when it did not exist."""

    @abstractmethod
    async def list_numbers(self, prefix: str) -> List[str]:
        """Return every sequence number starting with `prefix`."""

    @abstractmethod
    async def verify_integrity(self) -> bool:
        """Check that ids and sequence numbers are unique across the store."""
