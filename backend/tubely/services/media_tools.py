"""
External media tool invocation for Tubely.

The upload pipeline never shells out directly. It talks to a MediaToolRunner
with two operations:

- remux: rewrite a container without re-encoding (ffmpeg)
- inspect: report per-stream metadata as JSON (ffprobe)

FFmpegToolRunner runs the binaries with asyncio subprocesses, so a request
yields its event loop worker while the tool runs, and bounds every run with
a timeout. Tests substitute an in-process runner.
"""

import abc
import asyncio
import contextlib
import json
import logging

from pathlib import Path
from typing import Any

from tubely.config import Settings
from tubely.core.exceptions import ExternalToolFailure


logger = logging.getLogger(__name__)

# Number of stderr characters kept in logs for a failed tool run
STDERR_TAIL_CHARS = 2000


class MediaToolRunner(abc.ABC):
    """Interface to the container remux and stream inspection tools."""

    @abc.abstractmethod
    async def remux(self, source: Path, destination: Path) -> None:
        """
        Copy all streams of ``source`` into an MP4 at ``destination``, with
        the metadata ("moov") atom placed before the sample data.

        Raises:
            ExternalToolFailure: If the tool fails or produces no output.
        """

    @abc.abstractmethod
    async def inspect(self, path: Path) -> dict[str, Any]:
        """
        Return structured stream metadata for ``path``.

        The result follows ffprobe's ``-show_streams`` JSON layout: a
        ``streams`` list whose entries carry ``codec_type``, ``width`` and
        ``height``.

        Raises:
            ExternalToolFailure: If the tool fails or emits non-JSON output.
        """


class FFmpegToolRunner(MediaToolRunner):
    """
    MediaToolRunner backed by the ffmpeg and ffprobe binaries.

    Attributes:
        ffmpeg_path: ffmpeg executable name or path
        ffprobe_path: ffprobe executable name or path
        timeout: Upper bound in seconds for a single tool run

    Example:
        >>> runner = FFmpegToolRunner(timeout=120)
        >>> probe = await runner.inspect(Path("/tmp/upload.mp4"))
        >>> probe["streams"][0]["width"]
        1920
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        timeout: float = 300.0,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "FFmpegToolRunner":
        return cls(
            ffmpeg_path=settings.ffmpeg_path,
            ffprobe_path=settings.ffprobe_path,
            timeout=settings.media_tool_timeout_seconds,
        )

    async def remux(self, source: Path, destination: Path) -> None:
        await self._run(
            self.ffmpeg_path,
            "-v", "error",
            "-i", str(source),
            "-c", "copy",
            "-movflags", "faststart",
            "-f", "mp4",
            str(destination),
        )
        if not destination.exists():
            raise ExternalToolFailure(
                f"{self.ffmpeg_path} exited cleanly but wrote no output", path=str(destination)
            )

    async def inspect(self, path: Path) -> dict[str, Any]:
        stdout = await self._run(
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            str(path),
        )
        try:
            probe = json.loads(stdout)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("Unparsable %s output for %s", self.ffprobe_path, path)
            raise ExternalToolFailure("Error unmarshalling probe output") from e
        if not isinstance(probe, dict):
            raise ExternalToolFailure("Probe output is not a JSON object")
        return probe

    async def _run(self, program: str, *args: str) -> bytes:
        """
        Run one tool to completion and return its stdout.

        Raises:
            ExternalToolFailure: On a missing binary, timeout or non-zero exit.
        """
        logger.debug("Running %s %s", program, " ".join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                program,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Unable to start %s: %s", program, str(e))
            raise ExternalToolFailure(f"Unable to start {program}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except TimeoutError as e:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            logger.error("%s timed out after %.0f seconds", program, self.timeout)
            raise ExternalToolFailure(f"{program} timed out") from e

        if process.returncode != 0:
            logger.error(
                "%s exited with status %s: %s",
                program,
                process.returncode,
                stderr.decode("utf-8", errors="replace")[-STDERR_TAIL_CHARS:],
            )
            raise ExternalToolFailure(
                f"Error running {program} command", returncode=process.returncode
            )

        return stdout
