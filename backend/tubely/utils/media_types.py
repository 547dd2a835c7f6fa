"""
Media type validation for Tubely uploads.

Parses a declared Content-Type header into its base media type (parameters
such as charset are ignored), and checks it against a per-endpoint allow-list.
The canonical subtype of an accepted type is what storage keys use as their
file extension.

The declared type is only trusted for this allow-list check. Video placement
is decided by inspecting the staged content, never by the header.
"""

import logging
import re

from dataclasses import dataclass

from tubely.core.exceptions import UnsupportedMediaType


logger = logging.getLogger(__name__)

# RFC 2045 token: any CHAR except SPACE, CTLs, or tspecials
_TOKEN = r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+"
_MEDIA_TYPE_RE = re.compile(rf"^\s*({_TOKEN})/({_TOKEN})\s*$")
_PARAMETER_RE = re.compile(rf"^\s*{_TOKEN}\s*=\s*(?:{_TOKEN}|\"(?:[^\"\\]|\\.)*\")\s*$")

THUMBNAIL_MEDIA_TYPES: frozenset[str] = frozenset({"image/jpeg", "image/png"})
VIDEO_MEDIA_TYPES: frozenset[str] = frozenset({"video/mp4"})


@dataclass(frozen=True)
class MediaType:
    """An allow-listed media type, e.g. ``image/png``."""

    type: str
    subtype: str

    @property
    def essence(self) -> str:
        return f"{self.type}/{self.subtype}"

    @property
    def extension(self) -> str:
        """File extension derived from the subtype (``jpeg``, ``png``, ``mp4``)."""
        return self.subtype

    def __str__(self) -> str:
        return self.essence


def parse_media_type(content_type: str | None) -> MediaType:
    """
    Parse a Content-Type header value into its lower-cased base type.

    Args:
        content_type: Raw header value, e.g. ``"image/PNG; charset=binary"``.

    Returns:
        MediaType: The parsed base type without parameters.

    Raises:
        UnsupportedMediaType: If the value is empty or malformed.
    """
    if content_type is None or not content_type.strip():
        raise UnsupportedMediaType("Empty Content-Type")

    base, *params = content_type.split(";")
    match = _MEDIA_TYPE_RE.match(base)
    if match is None:
        raise UnsupportedMediaType("Unable to parse Content-Type")

    for param in params:
        # A trailing ";" is tolerated, a malformed parameter is not
        if param.strip() and _PARAMETER_RE.match(param) is None:
            raise UnsupportedMediaType("Unable to parse Content-Type")

    return MediaType(type=match.group(1).lower(), subtype=match.group(2).lower())


def classify_media_type(content_type: str | None, allowed: frozenset[str]) -> MediaType:
    """
    Validate a declared content type against an allow-list.

    Args:
        content_type: Raw Content-Type header value of the uploaded part.
        allowed: Set of accepted base types, e.g. THUMBNAIL_MEDIA_TYPES.

    Returns:
        MediaType: The accepted type; its subtype is the storage extension.

    Raises:
        UnsupportedMediaType: If the type is absent, malformed or not allowed.
    """
    media_type = parse_media_type(content_type)
    if media_type.essence not in allowed:
        logger.info(
            "Rejected media type %s (allowed: %s)",
            media_type.essence,
            ", ".join(sorted(allowed)),
        )
        raise UnsupportedMediaType(f"Invalid file type: {media_type.essence}")
    return media_type
