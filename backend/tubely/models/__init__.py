"""
Models Package for Tubely.

This package provides the Pydantic models and enumerations shared by the
HTTP layer, the repository and the upload pipeline.

Models Overview:
    - VideoRecord: A video owned by one user, with its media locations
    - VideoCreateRequest / VideoResponse / ErrorResponse: API schemas
    - MediaKind, AspectRatio, UploadState: Pipeline enumerations

Example Usage:
    ```python
    from tubely.models import VideoRecord

    record = VideoRecord(user_id=user_id, title="Boots demo")
    collection.insert_one(record.to_document())
    ```
"""

from tubely.models.video import (
    AspectRatio,
    ErrorResponse,
    MediaKind,
    UploadState,
    VideoCreateRequest,
    VideoRecord,
    VideoResponse,
)


__all__ = [
    "AspectRatio",
    "ErrorResponse",
    "MediaKind",
    "UploadState",
    "VideoCreateRequest",
    "VideoRecord",
    "VideoResponse",
]
