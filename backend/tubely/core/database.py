"""
MongoDB access for Tubely video records.

A single Motor client is opened in the application lifespan and shared by
every request. Startup retries with exponential backoff so the API can come
up alongside a database container; once running, repository calls fail fast
and never retry.
"""

import asyncio
import logging

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from tubely.config import Settings


logger = logging.getLogger(__name__)

VIDEOS_COLLECTION = "videos"

# Milliseconds Motor waits for a usable server before giving up on a command
SERVER_SELECTION_TIMEOUT_MS = 5000


class DatabaseClient:
    """
    Owns the Motor client and hands out the videos collection.

    Usage:
        ```python
        db = DatabaseClient(settings)
        if await db.connect():
            videos = db.get_videos_collection()
        await db.close()
        ```
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._client: AsyncIOMotorClient | None = None
        self._database: AsyncIOMotorDatabase | None = None

    @property
    def connected(self) -> bool:
        return self._database is not None

    async def connect(self, attempts: int = 3, backoff: float = 1.0) -> bool:
        """
        Open the client and confirm the server answers a ping.

        Args:
            attempts: How many times to try before reporting failure.
            backoff: Seconds to wait after the first failure; doubled each time.

        Returns:
            bool: Whether a connection was established.
        """
        db_name = self._settings.mongodb_db_name
        for attempt in range(1, attempts + 1):
            client = AsyncIOMotorClient(
                self._settings.mongodb_uri,
                minPoolSize=self._settings.mongodb_min_pool_size,
                maxPoolSize=self._settings.mongodb_max_pool_size,
                serverSelectionTimeoutMS=SERVER_SELECTION_TIMEOUT_MS,
                tz_aware=True,
            )
            try:
                await client.admin.command("ping")
            except (ServerSelectionTimeoutError, ConnectionFailure):
                client.close()
                logger.warning(
                    "MongoDB %s unreachable (attempt %d/%d)",
                    db_name,
                    attempt,
                    attempts,
                    exc_info=True,
                )
                if attempt < attempts:
                    await asyncio.sleep(backoff)
                    backoff *= 2
                continue

            self._client = client
            self._database = client[db_name]
            logger.info(
                "Connected to MongoDB %s (pool %d-%d)",
                db_name,
                self._settings.mongodb_min_pool_size,
                self._settings.mongodb_max_pool_size,
            )
            return True

        logger.error("Giving up on MongoDB %s after %d attempts", db_name, attempts)
        return False

    async def close(self) -> None:
        if self._client is None:
            return
        self._client.close()
        self._client = None
        self._database = None
        logger.info("MongoDB connection closed")

    async def ping(self) -> bool:
        """Readiness probe; False when disconnected or the server stops answering."""
        if self._client is None:
            return False
        try:
            await self._client.admin.command("ping")
        except (ConnectionFailure, ServerSelectionTimeoutError):
            logger.warning("MongoDB ping failed", exc_info=True)
            return False
        return True

    def get_videos_collection(self) -> AsyncIOMotorCollection:
        """Collection of video documents keyed by the string form of the video id."""
        if self._database is None:
            raise RuntimeError("DatabaseClient.connect() has not succeeded")
        return self._database[VIDEOS_COLLECTION]

    async def create_indexes(self) -> None:
        # Serves list_for_user: filter on owner, newest first
        await self.get_videos_collection().create_index([("user_id", 1), ("created_at", -1)])


class _DatabaseClientContainer:
    client: DatabaseClient | None = None


_container = _DatabaseClientContainer()


async def init_db(settings: Settings) -> DatabaseClient:
    """
    Connect the process-wide client. Called once from the lifespan.

    Raises:
        RuntimeError: If MongoDB cannot be reached.
    """
    if _container.client is not None:
        return _container.client

    client = DatabaseClient(settings)
    if not await client.connect():
        raise RuntimeError(f"Could not connect to MongoDB database {settings.mongodb_db_name!r}")
    await client.create_indexes()
    _container.client = client
    return client


async def close_db() -> None:
    if _container.client is not None:
        await _container.client.close()
        _container.client = None


def get_db_client() -> DatabaseClient:
    if _container.client is None:
        raise RuntimeError("Database client not initialized; init_db() runs at startup")
    return _container.client
