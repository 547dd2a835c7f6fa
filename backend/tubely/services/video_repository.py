"""
Video record persistence.

VideoRepository is the capability the upload pipeline commits through.
MongoVideoRepository implements it over the Motor ``videos`` collection.
Atomicity of individual writes is MongoDB's contract; the repository adds no
locking of its own and never retries.
"""

import abc
import logging

from datetime import UTC, datetime
from uuid import UUID

from pymongo.errors import PyMongoError

from tubely.core.exceptions import RepositoryFailure, VideoNotFound
from tubely.models.video import VideoRecord


logger = logging.getLogger(__name__)


class VideoRepository(abc.ABC):
    """Storage of VideoRecords."""

    @abc.abstractmethod
    async def create(self, user_id: UUID, title: str, description: str = "") -> VideoRecord:
        """Create a draft video owned by ``user_id``."""

    @abc.abstractmethod
    async def get(self, video_id: UUID) -> VideoRecord:
        """
        Fetch a video.

        Raises:
            VideoNotFound: If no video has this id.
            RepositoryFailure: If the store cannot be read.
        """

    @abc.abstractmethod
    async def list_for_user(self, user_id: UUID) -> list[VideoRecord]:
        """All videos owned by ``user_id``, newest first."""

    @abc.abstractmethod
    async def update(self, record: VideoRecord) -> VideoRecord:
        """
        Persist a mutated record and return it with a fresh ``updated_at``.

        Raises:
            VideoNotFound: If the record no longer exists.
            RepositoryFailure: If the write fails.
        """


class MongoVideoRepository(VideoRepository):
    """VideoRepository backed by a Motor collection."""

    def __init__(self, collection) -> None:
        self.collection = collection

    async def create(self, user_id: UUID, title: str, description: str = "") -> VideoRecord:
        record = VideoRecord(user_id=user_id, title=title, description=description)
        try:
            await self.collection.insert_one(record.to_document())
        except PyMongoError as e:
            logger.exception("Unable to create video for user %s", user_id)
            raise RepositoryFailure("Unable to create video") from e
        logger.info("Created video %s for user %s", record.id, user_id)
        return record

    async def get(self, video_id: UUID) -> VideoRecord:
        try:
            doc = await self.collection.find_one({"_id": str(video_id)})
        except PyMongoError as e:
            logger.exception("Unable to retrieve video %s", video_id)
            raise RepositoryFailure("Unable to retrieve the video") from e
        if doc is None:
            raise VideoNotFound(f"Video {video_id} not found")
        return VideoRecord.from_document(doc)

    async def list_for_user(self, user_id: UUID) -> list[VideoRecord]:
        try:
            cursor = self.collection.find({"user_id": str(user_id)}).sort("created_at", -1)
            return [VideoRecord.from_document(doc) async for doc in cursor]
        except PyMongoError as e:
            logger.exception("Unable to list videos for user %s", user_id)
            raise RepositoryFailure("Unable to list videos") from e

    async def update(self, record: VideoRecord) -> VideoRecord:
        updated = record.model_copy(update={"updated_at": datetime.now(UTC)})
        doc = updated.to_document()
        doc.pop("_id")
        try:
            result = await self.collection.update_one({"_id": str(record.id)}, {"$set": doc})
        except PyMongoError as e:
            logger.exception("Unable to update video %s", record.id)
            raise RepositoryFailure("Unable to update video") from e
        if result.matched_count == 0:
            raise VideoNotFound(f"Video {record.id} not found")
        return updated
