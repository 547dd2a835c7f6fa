"""
Blob storage for Tubely media.

This module provides the two places processed media can land:

- S3BlobStore: an S3-compatible bucket (AWS S3 in production, MinIO in
  development) behind an optional CDN distribution. Used for videos, and for
  thumbnails when ``thumbnail_storage = "s3"``.
- LocalBlobStore: a directory served by this application under ``/assets``.
  Used for thumbnails by default.

Both expose ``put(key, content_type, body)``, ``delete(key)`` and
``url_for(key)``. boto3 calls are blocking, so they run in a worker thread.
"""

import abc
import asyncio
import logging

from functools import wraps
from pathlib import Path
from typing import Any, BinaryIO, Callable, TypeVar

import aiofiles
import boto3

from botocore.exceptions import BotoCoreError, ClientError

from tubely.config import Settings
from tubely.core.exceptions import StorageFailure


# Set up module-level logger for tracking storage operations
logger = logging.getLogger(__name__)

T = TypeVar("T")

# Chunk size for local copies (1 MB)
LOCAL_COPY_CHUNK_SIZE = 1024 * 1024


def async_wrap(func: Callable[..., T]) -> Callable[..., "asyncio.Future[T]"]:
    """
    Decorator to wrap synchronous boto3 operations for async execution.

    Uses asyncio.to_thread to run blocking boto3 operations in a separate
    thread pool, preventing event loop blocking during S3 operations.
    """
    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(func, *args, **kwargs)
    return wrapper


class BlobStore(abc.ABC):
    """Addressable storage keyed by string identifiers."""

    @abc.abstractmethod
    async def put(self, key: str, content_type: str, body: BinaryIO) -> None:
        """
        Store ``body`` under ``key`` with the given content type.

        Raises:
            StorageFailure: If the write fails.
        """

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the object stored under ``key``."""

    @abc.abstractmethod
    def url_for(self, key: str) -> str:
        """Public address of the object stored under ``key``."""


class S3BlobStore(BlobStore):
    """
    S3-compatible blob store.

    Attributes:
        bucket_name: Bucket holding all media objects
        public_base_url: Base URL objects are served from (CDN or bucket URL)

    Example:
        >>> store = S3BlobStore.from_settings(settings)
        >>> with staged.open() as body:
        ...     await store.put("landscape/abc.mp4", "video/mp4", body)
        >>> store.url_for("landscape/abc.mp4")
        'https://d111111abcdef8.cloudfront.net/landscape/abc.mp4'
    """

    def __init__(self, client: Any, bucket_name: str, public_base_url: str) -> None:
        self._client = client
        self.bucket_name = bucket_name
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3BlobStore":
        """
        Build the store and its boto3 client from configuration.

        Credentials fall back to the default AWS chain (environment, profile,
        IAM role) when no access key is configured.
        """
        client_config: dict[str, Any] = {
            "service_name": "s3",
            "region_name": settings.s3_region,
        }
        if settings.s3_endpoint_url:
            client_config["endpoint_url"] = settings.s3_endpoint_url
        if settings.s3_access_key_id and settings.s3_secret_access_key:
            client_config["aws_access_key_id"] = settings.s3_access_key_id
            client_config["aws_secret_access_key"] = settings.s3_secret_access_key

        try:
            client = boto3.client(**client_config)
        except BotoCoreError as e:
            logger.exception("Failed to initialize S3 client")
            raise StorageFailure(f"Failed to initialize S3 client: {e!s}") from e

        logger.info(
            "S3BlobStore initialized with bucket=%s, endpoint=%s",
            settings.s3_bucket_name,
            settings.s3_endpoint_url or "AWS S3 default",
        )
        return cls(client, settings.s3_bucket_name, settings.video_base_url)

    async def put(self, key: str, content_type: str, body: BinaryIO) -> None:
        logger.info("Uploading object_key=%s, bucket=%s", key, self.bucket_name)

        @async_wrap
        def _put_object() -> dict[str, Any]:
            return self._client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=body,
                ContentType=content_type,
            )

        try:
            await _put_object()
        except ClientError as e:
            error_msg = f"Failed to put object: {e.response.get('Error', {}).get('Message', e)}"
            logger.error(error_msg)
            raise StorageFailure(error_msg, key=key) from e
        except (BotoCoreError, OSError) as e:
            error_msg = f"Storage operation error during put: {e!s}"
            logger.error(error_msg)
            raise StorageFailure(error_msg, key=key) from e

    async def delete(self, key: str) -> None:
        logger.info("Deleting object_key=%s, bucket=%s", key, self.bucket_name)

        @async_wrap
        def _delete() -> dict[str, Any]:
            return self._client.delete_object(Bucket=self.bucket_name, Key=key)

        try:
            await _delete()
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to delete object %s: %s", key, str(e))
            raise StorageFailure(f"Failed to delete object {key}", key=key) from e

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"


class LocalBlobStore(BlobStore):
    """
    Blob store rooted at a local directory served under ``/assets``.

    Keys must stay inside the root; ``..`` segments and absolute keys are
    rejected.
    """

    def __init__(self, root: str | Path, public_base_url: str) -> None:
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalBlobStore":
        return cls(settings.assets_root, f"{settings.base_url}/assets")

    def path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root) or path == self.root:
            raise StorageFailure(f"Key escapes the assets root: {key}", key=key)
        return path

    async def put(self, key: str, content_type: str, body: BinaryIO) -> None:
        path = self.path_for(key)
        logger.info("Writing %s asset to %s", content_type, path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as out:
                while chunk := body.read(LOCAL_COPY_CHUNK_SIZE):
                    await out.write(chunk)
        except OSError as e:
            logger.exception("Unable to write local asset %s", path)
            path.unlink(missing_ok=True)
            raise StorageFailure("Unable to create file", key=key) from e

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageFailure(f"Unable to delete {key}", key=key) from e

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"
