"""
Video Pydantic models for Tubely.

This module defines the VideoRecord stored in MongoDB, the request/response
schemas used by the HTTP layer, and the enumerations shared by the upload
pipeline (media kind, aspect ratio classification and pipeline state).
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================


class MediaKind(str, Enum):
    """Kind of media accepted by an upload endpoint."""

    THUMBNAIL = "thumbnail"
    VIDEO = "video"


class AspectRatio(str, Enum):
    """
    Orientation taxonomy for uploaded videos.

    - LANDSCAPE: width:height within tolerance of 16:9
    - PORTRAIT: width:height within tolerance of 9:16
    - OTHER: anything else
    """

    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    OTHER = "other"


class UploadState(str, Enum):
    """
    States of a single upload request.

    Flow: AUTHENTICATING → VALIDATING → STAGING → PROCESSING → CLASSIFYING
    → PLACING → COMMITTING_METADATA → DONE. PROCESSING and CLASSIFYING only
    apply to videos. FAILED is reachable from every non-terminal state.
    """

    AUTHENTICATING = "authenticating"
    VALIDATING = "validating"
    STAGING = "staging"
    PROCESSING = "processing"
    CLASSIFYING = "classifying"
    PLACING = "placing"
    COMMITTING_METADATA = "committing_metadata"
    DONE = "done"
    FAILED = "failed"


# =============================================================================
# RECORDS
# =============================================================================


class VideoRecord(BaseModel):
    """
    A video owned by a single user.

    Created before any upload happens; the upload pipeline only ever mutates
    thumbnail_url and video_url, and only for the owning user.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: UUID = Field(default_factory=uuid4, alias="_id", description="Video identifier")
    user_id: UUID = Field(..., description="Owning user")
    title: str = Field(default="", max_length=200)
    description: str = Field(default="", max_length=5000)
    thumbnail_url: str | None = Field(default=None, description="Thumbnail location")
    video_url: str | None = Field(default=None, description="Video location")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def is_owned_by(self, user_id: UUID) -> bool:
        return self.user_id == user_id

    def to_document(self) -> dict[str, Any]:
        """Serialize for MongoDB, keyed by string ids."""
        doc = self.model_dump(by_alias=True)
        doc["_id"] = str(self.id)
        doc["user_id"] = str(self.user_id)
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "VideoRecord":
        return cls.model_validate(doc)


# =============================================================================
# API SCHEMAS
# =============================================================================


class VideoCreateRequest(BaseModel):
    """Body of POST /videos."""

    title: str = Field(..., min_length=1, max_length=200, examples=["My first upload"])
    description: str = Field(default="", max_length=5000)


class VideoResponse(BaseModel):
    """VideoRecord as returned to clients."""

    id: UUID
    user_id: UUID
    title: str
    description: str
    thumbnail_url: str | None = None
    video_url: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: VideoRecord) -> "VideoResponse":
        return cls(**record.model_dump())


class ErrorResponse(BaseModel):
    """Standard error body."""

    error: str = Field(..., description="Human-readable error message")
