"""
Storage key routing for uploaded media.

Pure functions, no I/O. Videos are routed by orientation into a prefix;
thumbnails are not routed and keep the extension of their validated subtype.

Keys have the form ``<prefix>/<asset-id>.<extension>`` (the prefix is empty
for thumbnails).
"""

from tubely.models.video import AspectRatio
from tubely.utils.media_types import MediaType


VIDEO_EXTENSION = "mp4"

VIDEO_PREFIXES: dict[AspectRatio, str] = {
    AspectRatio.LANDSCAPE: "landscape",
    AspectRatio.PORTRAIT: "portrait",
    AspectRatio.OTHER: "other",
}

THUMBNAIL_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpeg",
    "image/png": "png",
}


def video_key(aspect_ratio: AspectRatio, asset_id: str) -> str:
    """
    >>> video_key(AspectRatio.PORTRAIT, "abc")
    'portrait/abc.mp4'
    """
    return f"{VIDEO_PREFIXES[aspect_ratio]}/{asset_id}.{VIDEO_EXTENSION}"


def thumbnail_key(media_type: MediaType, asset_id: str) -> str:
    """
    >>> thumbnail_key(MediaType("image", "png"), "abc")
    'abc.png'
    """
    try:
        extension = THUMBNAIL_EXTENSIONS[media_type.essence]
    except KeyError:
        raise ValueError(f"No thumbnail extension for {media_type.essence}") from None
    return f"{asset_id}.{extension}"
