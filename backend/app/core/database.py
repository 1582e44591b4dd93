"""
Database connection management for the DAO tracking backend.

This module provides:
- MongoDB connection management with async support (motor)
- A connection check used once by the storage service to pick its backend
- Database health checking
- Graceful shutdown
"""

import asyncio
import time
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from backend.app.core.exceptions import raise_database_error
from backend.app.utils.logging import (
    database_logger,
    get_logger,
    performance_context
)
from backend.config.settings import DatabaseSettings, get_settings

logger = get_logger(__name__)


class MongoDBManager:
    """
    MongoDB connection and lifecycle management.

    `connect()` doubles as the connection check: it pings the server and
    raises `DatabaseError` when the server cannot be reached within the
    configured selection timeout.
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None):
        self.settings = settings or get_settings().database
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.is_connected: bool = False
        self._connection_lock = asyncio.Lock()

    async def connect(self) -> None:
        """
        Establish connection to MongoDB.

        Raises:
            DatabaseError: If connection fails
        """
        if self.is_connected:
            return

        async with self._connection_lock:
            if self.is_connected:
                return

            try:
                with performance_context("mongodb_connection"):
                    self.client = AsyncIOMotorClient(
                        self.settings.mongodb_url,
                        serverSelectionTimeoutMS=self.settings.server_selection_timeout_ms,
                        connectTimeoutMS=self.settings.server_selection_timeout_ms,
                        retryWrites=True,
                        retryReads=True
                    )
                    self.database = self.client[self.settings.mongodb_database]

                    await self.client.admin.command('ping')

                    self.is_connected = True

                    database_logger.connection_established(
                        database_type="mongodb",
                        database_name=self.settings.mongodb_database
                    )
                    logger.info(
                        "MongoDB connection established",
                        database=self.settings.mongodb_database,
                        uri=self.settings.mongodb_url.split('@')[-1]
                    )

            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                database_logger.connection_failed("mongodb", str(e))
                self._release_client()
                raise_database_error(
                    f"Failed to connect to MongoDB: {e}",
                    database_type="mongodb",
                    operation="connect"
                )
            except Exception as e:
                database_logger.connection_failed("mongodb", str(e))
                self._release_client()
                raise_database_error(
                    f"Unexpected error connecting to MongoDB: {e}",
                    database_type="mongodb",
                    operation="connect"
                )

    def _release_client(self) -> None:
        if self.client is not None:
            self.client.close()
        self.client = None
        self.database = None

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client and self.is_connected:
            self.client.close()
            self.is_connected = False
            logger.info("MongoDB connection closed")

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform MongoDB health check.

        Returns:
            Health status information
        """
        if not self.is_connected or not self.client:
            return {
                "status": "disconnected",
                "error": "Not connected to MongoDB"
            }

        try:
            start_time = time.time()
            await self.client.admin.command('ping')
            latency = (time.time() - start_time) * 1000
            return {
                "status": "healthy",
                "latency_ms": round(latency, 2),
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e)
            }

    def get_database(self) -> AsyncIOMotorDatabase:
        """Get the connected database handle."""
        if not self.is_connected or self.database is None:
            raise_database_error(
                "MongoDB not connected",
                database_type="mongodb",
                operation="get_database"
            )
        return self.database
