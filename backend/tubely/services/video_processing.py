"""
Video processing steps of the upload pipeline.

- FastStartNormalizer: re-muxes a staged MP4 so its metadata precedes the
  sample data, letting playback start before the whole file is downloaded.
  Streams are copied, never re-encoded.
- AspectRatioClassifier: inspects the first video stream's geometry and
  buckets it into landscape (16:9), portrait (9:16) or other.

Neither step retries. A failure is terminal for the upload.
"""

import logging

from pathlib import Path
from typing import Any

from tubely.core.exceptions import ExternalToolFailure, NoStreamsFound
from tubely.models.video import AspectRatio
from tubely.services.media_tools import MediaToolRunner


logger = logging.getLogger(__name__)

PROCESSING_SUFFIX = ".processing"

LANDSCAPE_RATIO = 16 / 9
PORTRAIT_RATIO = 9 / 16


class FastStartNormalizer:
    """Produces a fast-start copy of a staged video next to the original."""

    def __init__(self, runner: MediaToolRunner) -> None:
        self.runner = runner

    @staticmethod
    def output_path_for(source: Path) -> Path:
        return source.with_name(source.name + PROCESSING_SUFFIX)

    async def normalize(self, source: Path) -> Path:
        """
        Write a fast-start copy of ``source`` to ``<source>.processing``.

        Args:
            source: Path of the staged upload.

        Returns:
            Path: The processed file. The caller owns its removal.

        Raises:
            ExternalToolFailure: If the remux fails. Partial output is removed.
        """
        destination = self.output_path_for(source)
        logger.info("Processing %s for fast start", source.name)
        try:
            await self.runner.remux(source, destination)
        except BaseException:
            destination.unlink(missing_ok=True)
            raise
        return destination


def ratio_matches(width: int, height: int, target: float, tolerance: float) -> bool:
    """True if width/height is within ``tolerance`` (relative) of ``target``."""
    return abs(width / height - target) <= target * tolerance


def classify_dimensions(width: int, height: int, tolerance: float = 0.01) -> AspectRatio:
    """
    Bucket stream geometry into the orientation taxonomy.

    >>> classify_dimensions(1920, 1080)
    <AspectRatio.LANDSCAPE: 'landscape'>
    >>> classify_dimensions(1000, 1000)
    <AspectRatio.OTHER: 'other'>
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid video dimensions {width}x{height}")
    if ratio_matches(width, height, LANDSCAPE_RATIO, tolerance):
        return AspectRatio.LANDSCAPE
    if ratio_matches(width, height, PORTRAIT_RATIO, tolerance):
        return AspectRatio.PORTRAIT
    return AspectRatio.OTHER


class AspectRatioClassifier:
    """Classifies a video file by the geometry of its first video stream."""

    def __init__(self, runner: MediaToolRunner, tolerance: float = 0.01) -> None:
        self.runner = runner
        self.tolerance = tolerance

    async def classify(self, path: Path) -> AspectRatio:
        """
        Inspect ``path`` and classify its orientation.

        Raises:
            NoStreamsFound: The file reports no streams, or none of them is video.
            ExternalToolFailure: The tool failed or its output is malformed.
        """
        probe = await self.runner.inspect(path)
        width, height = self._first_video_dimensions(probe)
        try:
            aspect_ratio = classify_dimensions(width, height, self.tolerance)
        except ValueError as e:
            raise ExternalToolFailure(str(e)) from e

        logger.info("Classified %s (%dx%d) as %s", path.name, width, height, aspect_ratio.value)
        return aspect_ratio

    @staticmethod
    def _first_video_dimensions(probe: dict[str, Any]) -> tuple[int, int]:
        streams = probe.get("streams")
        if streams is None or not isinstance(streams, list):
            raise ExternalToolFailure("Probe output has no stream list")
        if not streams:
            raise NoStreamsFound("No streams found in upload")

        video_streams = [
            s for s in streams
            if isinstance(s, dict) and s.get("codec_type", "video") == "video"
        ]
        if not video_streams:
            raise NoStreamsFound("No video stream found in upload")

        first = video_streams[0]
        try:
            return int(first["width"]), int(first["height"])
        except (KeyError, TypeError, ValueError) as e:
            raise ExternalToolFailure("Probe output is missing stream dimensions") from e
