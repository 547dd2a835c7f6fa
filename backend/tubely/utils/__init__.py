"""
Utilities Package for the Tubely Backend Application.

Modules:
--------
logger:
    Structured logging configuration including:
    - JSONFormatter for structured log output
    - StandardFormatter for human-readable development logs
    - setup_logging for application-wide configuration
    - add_log_context for request-scoped log fields

media_types:
    Content-Type parsing and per-endpoint allow-lists.

security:
    Random, URL-safe asset identifiers for storage keys.
"""

from tubely.utils.logger import add_log_context, setup_logging
from tubely.utils.media_types import (
    THUMBNAIL_MEDIA_TYPES,
    VIDEO_MEDIA_TYPES,
    MediaType,
    classify_media_type,
    parse_media_type,
)
from tubely.utils.security import generate_asset_id


__all__ = [
    "THUMBNAIL_MEDIA_TYPES",
    "VIDEO_MEDIA_TYPES",
    "MediaType",
    "add_log_context",
    "classify_media_type",
    "generate_asset_id",
    "parse_media_type",
    "setup_logging",
]
