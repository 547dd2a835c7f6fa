"""
Video API Endpoints for Tubely.

This module implements the video router:
- POST /videos - Create a draft video owned by the caller
- GET /videos - List the caller's videos, newest first
- GET /videos/{video_id} - Retrieve one of the caller's videos
- POST /thumbnail_upload/{video_id} - Upload a thumbnail (multipart field "thumbnail")
- POST /video_upload/{video_id} - Upload a video (multipart field "video")

The upload endpoints only translate HTTP into an UploadPipeline call: they
parse the video id and hand the raw bearer token plus a FormUpload to the
pipeline, which owns authentication, ownership and content type validation.
The pipeline opens the FormUpload only once the caller owns the video; that
is when the body size limit is enforced and the multipart field extracted.

Errors are raised as TubelyError subclasses and rendered by the application
exception handler as ``{"error": message}``.
"""

import logging

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from starlette.datastructures import UploadFile
from starlette.types import Message

from tubely.config import Settings, get_settings
from tubely.core.auth import Authenticator, JWTAuthenticator, get_bearer_token
from tubely.core.database import get_db_client
from tubely.core.exceptions import InvalidInput, PayloadTooLarge, Unauthorized
from tubely.models.video import ErrorResponse, MediaKind, VideoCreateRequest, VideoResponse
from tubely.services.upload_service import UploadPipeline
from tubely.services.video_repository import MongoVideoRepository, VideoRepository


# Configure module logger
logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

THUMBNAIL_FIELD = "thumbnail"
VIDEO_FIELD = "video"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid id, missing file or media type"},
    401: {"model": ErrorResponse, "description": "Missing or invalid credentials"},
    404: {"model": ErrorResponse, "description": "Video not found"},
    413: {"model": ErrorResponse, "description": "Request body too large"},
    500: {"model": ErrorResponse, "description": "Processing or storage failure"},
}


# =============================================================================
# Dependencies
# =============================================================================


def get_authenticator(settings: Settings = Depends(get_settings)) -> Authenticator:
    """Dependency injection for the bearer token Authenticator."""
    return JWTAuthenticator(settings)


def get_video_repository() -> VideoRepository:
    """Dependency injection for the MongoDB-backed VideoRepository."""
    return MongoVideoRepository(get_db_client().get_videos_collection())


def get_upload_pipeline(
    request: Request,
    settings: Settings = Depends(get_settings),
    authenticator: Authenticator = Depends(get_authenticator),
    repository: VideoRepository = Depends(get_video_repository),
) -> UploadPipeline:
    """
    Dependency injection for UploadPipeline.

    Blob stores and the media tool runner are created once at startup and
    kept on ``app.state``.
    """
    state = request.app.state
    return UploadPipeline(
        settings=settings,
        authenticator=authenticator,
        repository=repository,
        video_store=state.video_store,
        thumbnail_store=state.thumbnail_store,
        runner=state.media_runner,
    )


async def get_current_user_id(
    token: str | None = Depends(get_bearer_token),
    authenticator: Authenticator = Depends(get_authenticator),
) -> UUID:
    """Resolve the caller of a non-upload endpoint."""
    return authenticator.validate(token)


# =============================================================================
# Helpers
# =============================================================================


def parse_video_id(video_id: str) -> UUID:
    try:
        return UUID(video_id)
    except ValueError:
        raise InvalidInput("Invalid ID", video_id=video_id) from None


def enforce_body_limit(request: Request, limit: int) -> None:
    """Reject a request whose declared Content-Length exceeds ``limit`` bytes."""
    declared = request.headers.get("content-length")
    if declared is None:
        return
    try:
        size = int(declared)
    except ValueError:
        raise InvalidInput("Invalid Content-Length header") from None
    if size > limit:
        logger.warning("Rejected %d byte body on %s (limit %d)", size, request.url.path, limit)
        raise body_too_large(limit)


def body_too_large(limit: int) -> PayloadTooLarge:
    return PayloadTooLarge(f"Request body exceeds the {limit // (1024 * 1024)}MB upload limit")


def limit_body(request: Request, limit: int) -> Request:
    """
    Return a view of ``request`` whose body stops being read past ``limit`` bytes.

    Counts what actually arrives, so chunked bodies without a Content-Length
    are held to the same limit.
    """
    upstream = request.receive
    received = 0

    async def receive() -> Message:
        nonlocal received
        message = await upstream()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > limit:
                logger.warning(
                    "Stopped reading body on %s after %d bytes (limit %d)",
                    request.url.path,
                    received,
                    limit,
                )
                raise body_too_large(limit)
        return message

    return Request(request.scope, receive)


class FormUpload:
    """
    The file under one multipart field, read lazily.

    The form is parsed when the pipeline opens the source, so nothing is read
    from the body before the caller has been authenticated.
    """

    def __init__(self, request: Request, field: str, limit: int) -> None:
        self.request = request
        self.field = field
        self.limit = limit
        self.upload: UploadFile | None = None

    async def open(self) -> tuple[str | None, UploadFile]:
        """
        Raises:
            PayloadTooLarge: If the body is over ``limit``, declared or received.
            InvalidInput: If the form has no file under ``field``.
        """
        enforce_body_limit(self.request, self.limit)
        form = await limit_body(self.request, self.limit).form()
        upload = form.get(self.field)
        if not isinstance(upload, UploadFile):
            raise InvalidInput("Unable to parse form file", field=self.field)
        self.upload = upload
        return upload.content_type, upload

    async def close(self) -> None:
        if self.upload is not None:
            await self.upload.close()


def request_id_of(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


# =============================================================================
# Video Endpoints
# =============================================================================


@router.post(
    "/videos",
    response_model=VideoResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create video",
    description="Create a draft video record to upload media against.",
    responses={401: ERROR_RESPONSES[401], 500: ERROR_RESPONSES[500]},
)
async def create_video(
    body: VideoCreateRequest,
    user_id: UUID = Depends(get_current_user_id),
    repository: VideoRepository = Depends(get_video_repository),
) -> VideoResponse:
    record = await repository.create(user_id, body.title, body.description)
    return VideoResponse.from_record(record)


@router.get(
    "/videos",
    response_model=list[VideoResponse],
    summary="List videos",
    description="List the caller's videos, newest first.",
    responses={401: ERROR_RESPONSES[401], 500: ERROR_RESPONSES[500]},
)
async def list_videos(
    user_id: UUID = Depends(get_current_user_id),
    repository: VideoRepository = Depends(get_video_repository),
) -> list[VideoResponse]:
    records = await repository.list_for_user(user_id)
    return [VideoResponse.from_record(record) for record in records]


@router.get(
    "/videos/{video_id}",
    response_model=VideoResponse,
    summary="Get video",
    responses=ERROR_RESPONSES,
)
async def get_video(
    video_id: str,
    user_id: UUID = Depends(get_current_user_id),
    repository: VideoRepository = Depends(get_video_repository),
) -> VideoResponse:
    """
    Retrieve a single video.

    Only the owner may read a video; anyone else gets 401, the same answer
    the upload endpoints give.
    """
    record = await repository.get(parse_video_id(video_id))
    if not record.is_owned_by(user_id):
        raise Unauthorized("Unauthorized user", video_id=video_id)
    return VideoResponse.from_record(record)


# =============================================================================
# Upload Endpoints
# =============================================================================


@router.post(
    "/thumbnail_upload/{video_id}",
    response_model=VideoResponse,
    summary="Upload thumbnail",
    description="Upload a JPEG or PNG thumbnail for a video (multipart field 'thumbnail').",
    responses=ERROR_RESPONSES,
)
async def upload_thumbnail(
    video_id: str,
    request: Request,
    token: str | None = Depends(get_bearer_token),
    settings: Settings = Depends(get_settings),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
) -> VideoResponse:
    parsed_id = parse_video_id(video_id)
    source = FormUpload(request, THUMBNAIL_FIELD, settings.max_thumbnail_upload_bytes)
    try:
        record = await pipeline.upload(
            MediaKind.THUMBNAIL, token, parsed_id, source, request_id=request_id_of(request)
        )
    finally:
        await source.close()
    return VideoResponse.from_record(record)


@router.post(
    "/video_upload/{video_id}",
    response_model=VideoResponse,
    summary="Upload video",
    description=(
        "Upload an MP4 for a video (multipart field 'video'). The file is re-muxed "
        "for fast start and stored under a prefix chosen by its aspect ratio."
    ),
    responses=ERROR_RESPONSES,
)
async def upload_video(
    video_id: str,
    request: Request,
    token: str | None = Depends(get_bearer_token),
    settings: Settings = Depends(get_settings),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
) -> VideoResponse:
    parsed_id = parse_video_id(video_id)
    source = FormUpload(request, VIDEO_FIELD, settings.max_video_upload_bytes)
    try:
        record = await pipeline.upload(
            MediaKind.VIDEO, token, parsed_id, source, request_id=request_id_of(request)
        )
    finally:
        await source.close()
    return VideoResponse.from_record(record)
