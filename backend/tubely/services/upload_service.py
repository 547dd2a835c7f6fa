"""
Tubely Upload Pipeline

This module orchestrates a single upload request from bearer token to
committed VideoRecord. Each request walks the states of UploadState:

    AUTHENTICATING → VALIDATING → STAGING → PROCESSING → CLASSIFYING
    → PLACING → COMMITTING_METADATA → DONE

PROCESSING and CLASSIFYING apply to videos only. Any failure moves the
request to FAILED: the raised TubelyError carries the state it failed in
(``failed_state``) and is re-raised unchanged; anything else is wrapped in
UploadPipelineError.

Guarantees:
- The upload source is not opened until the token is verified and the caller
  owns the video.
- Nothing is written to disk until ownership and the declared content type
  have been validated.
- Every staged and processed file is released when the request ends, on
  every exit path.
- Placement keys are derived from a fresh random identifier per upload.
- Nothing is retried.

A blob written before a failed metadata commit is orphaned. Its key is logged
at ERROR, and when ``delete_orphaned_blobs`` is enabled one best-effort
delete is attempted before the original error is surfaced.
"""

import logging

from collections.abc import Callable
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Any, Protocol
from uuid import UUID

from tubely.config import Settings
from tubely.core.auth import Authenticator
from tubely.core.exceptions import (
    StorageFailure,
    TubelyError,
    Unauthorized,
    UploadPipelineError,
)
from tubely.models.video import MediaKind, UploadState, VideoRecord
from tubely.services.media_tools import MediaToolRunner
from tubely.services.placement import thumbnail_key, video_key
from tubely.services.staging import AsyncByteStream, StagedFile, stage_stream
from tubely.services.storage_service import BlobStore
from tubely.services.video_processing import AspectRatioClassifier, FastStartNormalizer
from tubely.services.video_repository import VideoRepository
from tubely.utils.logger import ContextLoggerAdapter, add_log_context
from tubely.utils.media_types import (
    THUMBNAIL_MEDIA_TYPES,
    VIDEO_MEDIA_TYPES,
    MediaType,
    classify_media_type,
)
from tubely.utils.security import generate_asset_id


# Configure module logger
logger = logging.getLogger(__name__)

ALLOWED_MEDIA_TYPES: dict[MediaKind, frozenset[str]] = {
    MediaKind.THUMBNAIL: THUMBNAIL_MEDIA_TYPES,
    MediaKind.VIDEO: VIDEO_MEDIA_TYPES,
}

# VideoRecord field each media kind commits its location to
LOCATION_FIELDS: dict[MediaKind, str] = {
    MediaKind.THUMBNAIL: "thumbnail_url",
    MediaKind.VIDEO: "video_url",
}


class UploadSource(Protocol):
    """
    Where an upload's bytes come from.

    ``open`` is awaited only after the caller is authenticated and owns the
    target video, so a source that parses a request body defers that work
    until then.
    """

    async def open(self) -> tuple[str | None, AsyncByteStream]:
        """Return the declared content type and the byte stream."""
        ...


class _ReceivedUpload:
    """An upload whose content type and stream are already in hand."""

    def __init__(self, content_type: str | None, stream: AsyncByteStream) -> None:
        self.content_type = content_type
        self.stream = stream

    async def open(self) -> tuple[str | None, AsyncByteStream]:
        return self.content_type, self.stream


class _UploadRun:
    """State tracking and logging for one request."""

    def __init__(self, log: ContextLoggerAdapter) -> None:
        self.log = log
        self.state = UploadState.AUTHENTICATING
        self.history: list[UploadState] = [self.state]

    @property
    def path(self) -> list[str]:
        return [state.value for state in self.history]

    def advance(self, state: UploadState) -> None:
        self.log.info("Upload state %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def finish(self) -> None:
        self.advance(UploadState.DONE)
        self.log.info("Upload complete", extra={"states": self.path})

    def fail(self, error: TubelyError) -> None:
        error.failed_state = self.state
        self.history.append(UploadState.FAILED)
        extra = {
            "failed_state": self.state.value,
            "status_code": error.status_code,
            "states": self.path,
        }
        if error.is_client_error:
            self.log.warning("Upload rejected while %s: %s", self.state.value, error, extra=extra)
        else:
            self.log.error(
                "Upload failed while %s: %s", self.state.value, error, extra=extra, exc_info=True
            )
        self.state = UploadState.FAILED


class UploadPipeline:
    """
    End-to-end thumbnail and video upload flow.

    Attributes:
        settings: Frozen configuration supplied at construction
        authenticator: Resolves bearer tokens to user ids
        repository: Source and sink of VideoRecords
        video_store: Destination of processed videos
        thumbnail_store: Destination of thumbnails (local assets or S3)
        normalizer: Fast-start remux step
        classifier: Orientation classification step

    Example:
        >>> pipeline = UploadPipeline(settings, authenticator, repository,
        ...                           video_store, thumbnail_store, runner)
        >>> record = await pipeline.upload_video(token, video_id, "video/mp4", upload)
        >>> record.video_url
        'https://cdn.example.com/landscape/4yq...Q.mp4'
    """

    def __init__(
        self,
        settings: Settings,
        authenticator: Authenticator,
        repository: VideoRepository,
        video_store: BlobStore,
        thumbnail_store: BlobStore,
        runner: MediaToolRunner,
        id_generator: Callable[[], str] = generate_asset_id,
    ) -> None:
        self.settings = settings
        self.authenticator = authenticator
        self.repository = repository
        self.video_store = video_store
        self.thumbnail_store = thumbnail_store
        self.normalizer = FastStartNormalizer(runner)
        self.classifier = AspectRatioClassifier(runner, settings.aspect_ratio_tolerance)
        self.id_generator = id_generator

    async def upload(
        self,
        kind: MediaKind,
        token: str | None,
        video_id: UUID,
        source: UploadSource,
        request_id: str | None = None,
    ) -> VideoRecord:
        """
        Run one upload of ``kind`` from ``source``.

        The source is opened in the validating state, after the token has
        been verified and the video's ownership checked.

        Returns:
            VideoRecord: The record with the location field for ``kind`` set.

        Raises:
            TubelyError: With ``failed_state`` set to the failing state.
        """
        run = _UploadRun(
            add_log_context(
                logger,
                request_id=request_id,
                video_id=str(video_id),
                media_kind=kind.value,
            )
        )
        try:
            return await self._execute(run, kind, token, video_id, source)
        except TubelyError as e:
            run.fail(e)
            raise
        except Exception as e:
            wrapped = UploadPipelineError(
                f"Unexpected failure while {run.state.value}: {e!s}",
                video_id=str(video_id),
            )
            run.fail(wrapped)
            raise wrapped from e

    async def upload_thumbnail(
        self,
        token: str | None,
        video_id: UUID,
        content_type: str | None,
        stream: AsyncByteStream,
        request_id: str | None = None,
    ) -> VideoRecord:
        """
        Validate, stage and place a thumbnail, then record its URL.

        Returns:
            VideoRecord: The record with ``thumbnail_url`` set.
        """
        return await self.upload(
            MediaKind.THUMBNAIL,
            token,
            video_id,
            _ReceivedUpload(content_type, stream),
            request_id=request_id,
        )

    async def upload_video(
        self,
        token: str | None,
        video_id: UUID,
        content_type: str | None,
        stream: AsyncByteStream,
        request_id: str | None = None,
    ) -> VideoRecord:
        """
        Validate, stage, fast-start, classify and place a video, then record
        its URL.

        Returns:
            VideoRecord: The record with ``video_url`` set.
        """
        return await self.upload(
            MediaKind.VIDEO,
            token,
            video_id,
            _ReceivedUpload(content_type, stream),
            request_id=request_id,
        )

    async def _execute(
        self,
        run: _UploadRun,
        kind: MediaKind,
        token: str | None,
        video_id: UUID,
        source: UploadSource,
    ) -> VideoRecord:
        user_id = self.authenticator.validate(token)
        run.log = add_log_context(logger, **run.log.extra, user_id=str(user_id))

        run.advance(UploadState.VALIDATING)
        record = await self.repository.get(video_id)
        if not record.is_owned_by(user_id):
            raise Unauthorized("Unauthorized user", video_id=str(video_id))
        content_type, stream = await source.open()
        media_type = classify_media_type(content_type, ALLOWED_MEDIA_TYPES[kind])

        async with AsyncExitStack() as stack:
            run.advance(UploadState.STAGING)
            staged = await stack.enter_async_context(
                stage_stream(
                    stream,
                    directory=self.settings.staging_dir,
                    suffix=f".{media_type.extension}",
                    chunk_size=self.settings.stream_chunk_size,
                )
            )
            run.log.info("Staged %d bytes", staged.size)

            if kind is MediaKind.VIDEO:
                run.advance(UploadState.PROCESSING)
                processed = StagedFile.adopt(await self.normalizer.normalize(staged.path))
                stack.callback(processed.release)

                run.advance(UploadState.CLASSIFYING)
                aspect_ratio = await self.classifier.classify(processed.path)

                run.advance(UploadState.PLACING)
                store = self.video_store
                key = video_key(aspect_ratio, self.id_generator())
                payload = processed.path
            else:
                run.advance(UploadState.PLACING)
                store = self.thumbnail_store
                key = thumbnail_key(media_type, self.id_generator())
                payload = staged.path

            location = await self._place(store, key, media_type, payload)
            run.log.info("Placed %s at %s", key, location)

            run.advance(UploadState.COMMITTING_METADATA)
            updated = record.model_copy(update={LOCATION_FIELDS[kind]: location})
            try:
                saved = await self.repository.update(updated)
            except Exception:
                await self._handle_orphan(run, store, key)
                raise

        run.finish()
        return saved

    @staticmethod
    async def _place(store: BlobStore, key: str, media_type: MediaType, path: Path) -> str:
        with path.open("rb") as body:
            await store.put(key, media_type.essence, body)
        return store.url_for(key)

    async def _handle_orphan(self, run: _UploadRun, store: BlobStore, key: str) -> None:
        extra: dict[str, Any] = {"orphaned_key": key}
        run.log.error("Metadata commit failed after storing %s; blob is orphaned", key, extra=extra)
        if not self.settings.delete_orphaned_blobs:
            return
        try:
            await store.delete(key)
        except StorageFailure as e:
            run.log.warning("Best-effort delete of orphaned %s failed: %s", key, e, extra=extra)
        else:
            run.log.info("Deleted orphaned blob %s", key, extra=extra)
