"""
Tubely error taxonomy.

Every failure the upload pipeline can surface is a TubelyError subclass that
carries the HTTP status it maps to and a short message that is safe to return
to the client. Operator-facing failures (status 500) keep their details in
the logs and the exception chain, not in the response body.
"""

from typing import Any


class TubelyError(Exception):
    """Base exception for all Tubely errors."""

    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: str | None = None, **context: Any) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.context = context
        # Set by the upload pipeline to the state the request failed in
        self.failed_state: Any = None

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500

    def response_message(self) -> str:
        """Message returned in the HTTP response body."""
        if self.is_client_error:
            return self.message
        return self.public_message


# =============================================================================
# Client errors
# =============================================================================


class Unauthorized(TubelyError):
    """Missing or invalid credential, or the caller does not own the video."""

    status_code = 401
    public_message = "Unauthorized"


class InvalidInput(TubelyError):
    """Bad identifier, missing file field or otherwise malformed request."""

    status_code = 400
    public_message = "Invalid input"


class UnsupportedMediaType(InvalidInput):
    """Declared content type is absent, malformed or not allowed."""

    public_message = "Unsupported media type"


class NoStreamsFound(InvalidInput):
    """The inspected file reports no usable video stream."""

    public_message = "No video stream found in upload"


class VideoNotFound(TubelyError):
    status_code = 404
    public_message = "Video not found"


class PayloadTooLarge(TubelyError):
    status_code = 413
    public_message = "Request body exceeds the upload limit"


# =============================================================================
# Operator errors
# =============================================================================


class ExternalToolFailure(TubelyError):
    """ffmpeg/ffprobe failed, timed out, or produced unreadable output."""

    public_message = "Media processing failed"


class EntropyUnavailable(TubelyError):
    """The secure random source could not be read. Never retried."""

    public_message = "Unable to generate storage key"


class WriteFailure(TubelyError):
    """Writing a staged file failed (disk full, permissions)."""

    public_message = "Unable to stage upload"


class ShortRead(TubelyError):
    """The inbound stream errored before it was fully copied."""

    public_message = "Unable to read upload"


class StorageFailure(TubelyError):
    """The blob store rejected or failed a write or delete."""

    public_message = "Unable to store media"


class RepositoryFailure(TubelyError):
    """The video repository failed to read or persist a record."""

    public_message = "Unable to access video metadata"


class UploadPipelineError(TubelyError):
    """Unexpected failure inside the upload pipeline."""

    public_message = "Upload failed"
