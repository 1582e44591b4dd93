"""
MongoDB repository for procurement case files.

This module provides the document-database backend of the storage service:
- CRUD operations on case-file documents
- Unique indexes on the id and the sequence number
- Listing ordered by last update
- Mapping of driver errors onto the service exception hierarchy
"""

import re
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from backend.app.core.database import MongoDBManager
from backend.app.core.exceptions import (
    DuplicateIdentifierError,
    raise_database_error
)
from backend.app.models.domain.dao import Dao, DaoTask, MemberRole, TeamMember
from backend.app.repositories.base import DaoRepository
from backend.app.utils.logging import (
    database_logger,
    get_logger,
    performance_context
)

logger = get_logger(__name__)


class MongoDaoRepository(DaoRepository):
    """
    MongoDB repository for case-file data operations.

    Documents use snake_case keys; the Mongo `_id` is never exposed.
    """

    name = "mongodb"

    def __init__(self, manager: MongoDBManager, collection_name: str = "daos"):
        self._manager = manager
        self._collection: Optional[AsyncIOMotorCollection] = None
        self._collection_name = collection_name

    async def _get_collection(self) -> AsyncIOMotorCollection:
        """Get MongoDB collection with lazy initialization."""
        if self._collection is None:
            database = self._manager.get_database()
            self._collection = database[self._collection_name]
            await self._ensure_indexes()
        return self._collection

    async def _ensure_indexes(self) -> None:
        """Create the indexes of the case-file collection."""
        if self._collection is None:
            return

        try:
            await self._collection.create_index(
                [("id", ASCENDING)], unique=True, name="dao_id_unique"
            )
            await self._collection.create_index(
                [("numero_liste", ASCENDING)], unique=True, name="numero_liste_unique"
            )
            await self._collection.create_index(
                [("updated_at", DESCENDING)], name="updated_at_desc"
            )
            logger.debug("DAO collection indexes ensured")
        except PyMongoError as e:
            logger.warning("Failed to create DAO indexes", error=str(e))

    async def list_all(self) -> List[Dao]:
        collection = await self._get_collection()

        try:
            with performance_context("mongodb_list_daos"):
                cursor = collection.find({}, {"_id": 0}).sort("updated_at", DESCENDING)
                documents = await cursor.to_list(length=None)

                database_logger.query_executed(
                    database_type="mongodb",
                    operation="find",
                    collection=self._collection_name,
                    result_count=len(documents)
                )
                return [self._document_to_dao(doc) for doc in documents]
        except PyMongoError as e:
            raise_database_error(
                f"Failed to list DAOs: {e}",
                database_type="mongodb",
                collection_name=self._collection_name,
                operation="list_all"
            )

    async def get_by_id(self, dao_id: str) -> Optional[Dao]:
        collection = await self._get_collection()

        try:
            with performance_context("mongodb_get_dao", dao_id=dao_id):
                document = await collection.find_one({"id": dao_id}, {"_id": 0})

                database_logger.query_executed(
                    database_type="mongodb",
                    operation="find_one",
                    collection=self._collection_name,
                    result_count=1 if document else 0
                )
                if not document:
                    return None
                return self._document_to_dao(document)
        except PyMongoError as e:
            raise_database_error(
                f"Failed to get DAO {dao_id}: {e}",
                database_type="mongodb",
                collection_name=self._collection_name,
                operation="get_by_id"
            )

    async def insert(self, dao: Dao) -> Dao:
        collection = await self._get_collection()

        try:
            with performance_context("mongodb_insert_dao", dao_id=dao.id):
                await collection.insert_one(self._dao_to_document(dao))

                database_logger.query_executed(
                    database_type="mongodb",
                    operation="insert_one",
                    collection=self._collection_name,
                    result_count=1
                )
                logger.info(
                    "DAO inserted",
                    dao_id=dao.id,
                    numero_liste=dao.numero_liste
                )
                return dao.copy()
        except DuplicateKeyError:
            raise DuplicateIdentifierError(numero_liste=dao.numero_liste)
        except PyMongoError as e:
            raise_database_error(
                f"Failed to insert DAO {dao.id}: {e}",
                database_type="mongodb",
                collection_name=self._collection_name,
                operation="insert"
            )

    async def replace(self, dao: Dao) -> Optional[Dao]:
        collection = await self._get_collection()

        try:
            with performance_context("mongodb_replace_dao", dao_id=dao.id):
                result = await collection.replace_one(
                    {"id": dao.id},
                    self._dao_to_document(dao)
                )

                database_logger.query_executed(
                    database_type="mongodb",
                    operation="replace_one",
                    collection=self._collection_name,
                    result_count=result.matched_count
                )
                if result.matched_count == 0:
                    return None
                return dao.copy()
        except DuplicateKeyError:
            raise DuplicateIdentifierError(numero_liste=dao.numero_liste)
        except PyMongoError as e:
            raise_database_error(
                f"Failed to replace DAO {dao.id}: {e}",
                database_type="mongodb",
                collection_name=self._collection_name,
                operation="replace"
            )

    async def delete(self, dao_id: str) -> bool:
        collection = await self._get_collection()

        try:
            with performance_context("mongodb_delete_dao", dao_id=dao_id):
                result = await collection.delete_one({"id": dao_id})

                database_logger.query_executed(
                    database_type="mongodb",
                    operation="delete_one",
                    collection=self._collection_name,
                    result_count=result.deleted_count
                )
                return result.deleted_count > 0
        except PyMongoError as e:
            raise_database_error(
                f"Failed to delete DAO {dao_id}: {e}",
                database_type="mongodb",
                collection_name=self._collection_name,
                operation="delete"
            )

    async def list_numbers(self, prefix: str) -> List[str]:
        collection = await self._get_collection()

        try:
            with performance_context("mongodb_list_numbers", prefix=prefix):
                cursor = collection.find(
                    {"numero_liste": {"$regex": f"^{re.escape(prefix)}"}},
                    {"_id": 0, "numero_liste": 1}
                )
                documents = await cursor.to_list(length=None)

                database_logger.query_executed(
                    database_type="mongodb",
                    operation="find",
                    collection=self._collection_name,
                    result_count=len(documents)
                )
                return [doc["numero_liste"] for doc in documents if doc.get("numero_liste")]
        except PyMongoError as e:
            raise_database_error(
                f"Failed to list DAO numbers: {e}",
                database_type="mongodb",
                collection_name=self._collection_name,
                operation="list_numbers"
            )

    async def verify_integrity(self) -> bool:
        collection = await self._get_collection()

        try:
            with performance_context("mongodb_verify_integrity"):
                pipeline = [
                    {"$group": {"_id": "$numero_liste", "count": {"$sum": 1}}},
                    {"$match": {"count": {"$gt": 1}}},
                ]
                duplicates = await collection.aggregate(pipeline).to_list(length=None)
                id_pipeline = [
                    {"$group": {"_id": "$id", "count": {"$sum": 1}}},
                    {"$match": {"count": {"$gt": 1}}},
                ]
                duplicates += await collection.aggregate(id_pipeline).to_list(length=None)

                if duplicates:
                    logger.warning(
                        "DAO integrity check failed",
                        duplicate_keys=[doc["_id"] for doc in duplicates]
                    )
                return not duplicates
        except PyMongoError as e:
            raise_database_error(
                f"Failed to verify DAO integrity: {e}",
                database_type="mongodb",
                collection_name=self._collection_name,
                operation="verify_integrity"
            )

    def _dao_to_document(self, dao: Dao) -> Dict[str, Any]:
        """Convert a case file to its MongoDB document."""
        return {
            "id": dao.id,
            "numero_liste": dao.numero_liste,
            "objet_dossier": dao.objet_dossier,
            "reference": dao.reference,
            "autorite_contractante": dao.autorite_contractante,
            "date_depot": dao.date_depot,
            "equipe": [
                {
                    "id": member.id,
                    "name": member.name,
                    "role": member.role.value,
                    "email": member.email,
                }
                for member in dao.equipe
            ],
            "tasks": [
                {
                    "id": task.id,
                    "name": task.name,
                    "is_applicable": task.is_applicable,
                    "progress": task.progress,
                    "comment": task.comment,
                    "assigned_to": task.assigned_to,
                    "last_updated_by": task.last_updated_by,
                    "last_updated_at": task.last_updated_at,
                }
                for task in dao.tasks
            ],
            "last_task_id": dao.last_task_id,
            "created_at": dao.created_at,
            "updated_at": dao.updated_at,
        }

    def _document_to_dao(self, document: Dict[str, Any]) -> Dao:
        """Convert a MongoDB document back to a case file."""
        return Dao(
            id=document["id"],
            numero_liste=document.get("numero_liste", ""),
            objet_dossier=document.get("objet_dossier", ""),
            reference=document.get("reference", ""),
            autorite_contractante=document.get("autorite_contractante", ""),
            date_depot=document.get("date_depot", ""),
            equipe=[
                TeamMember(
                    id=member["id"],
                    name=member.get("name", ""),
                    role=MemberRole(member.get("role", MemberRole.MEMBER.value)),
                    email=member.get("email"),
                )
                for member in document.get("equipe", [])
            ],
            tasks=[
                DaoTask(
                    id=task["id"],
                    name=task.get("name", ""),
                    is_applicable=task.get("is_applicable", True),
                    progress=task.get("progress"),
                    comment=task.get("comment"),
                    assigned_to=task.get("assigned_to"),
                    last_updated_by=task.get("last_updated_by"),
                    last_updated_at=task.get("last_updated_at"),
                )
                for task in document.get("tasks", [])
            ],
            last_task_id=document.get("last_task_id", 0),
            created_at=document.get("created_at", ""),
            updated_at=document.get("updated_at", ""),
        )
