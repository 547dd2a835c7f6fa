"""
Stream staging for Tubely uploads.

Uploaded bodies are copied into a uniquely named temporary file before any
processing: the media tools need a real path, and S3 puts need a seekable
body. A staged file belongs to the request that created it and is removed
when that request finishes, on every exit path.

Body size limits are enforced at the HTTP boundary before a stream reaches
this module.
"""

import logging
import os
import tempfile

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol

import aiofiles

from tubely.core.exceptions import ShortRead, WriteFailure


logger = logging.getLogger(__name__)

STAGED_FILE_PREFIX = "tubely-upload-"
DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1 MB


class AsyncByteStream(Protocol):
    """Anything with an awaitable ``read``, such as FastAPI's UploadFile."""

    async def read(self, size: int = -1) -> bytes: ...


@dataclass
class StagedFile:
    """
    A filesystem-backed scratch copy of an inbound stream.

    Attributes:
        path: Location of the staged bytes.
        size: Number of bytes staged.
    """

    path: Path
    size: int
    _released: bool = False

    def open(self) -> BinaryIO:
        """Open the staged bytes for reading from the start."""
        return self.path.open("rb")

    def release(self) -> None:
        """Remove the staged file. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        try:
            self.path.unlink(missing_ok=True)
            logger.debug("Removed staged file: %s", self.path)
        except OSError as cleanup_error:
            logger.warning(
                "Failed to remove staged file '%s': %s",
                self.path,
                str(cleanup_error),
            )

    @classmethod
    def adopt(cls, path: Path) -> "StagedFile":
        """Wrap a file produced by a processing step so it is released with the request."""
        size = path.stat().st_size if path.exists() else 0
        return cls(path=path, size=size)


def _create_temp_path(directory: str | os.PathLike[str] | None, suffix: str) -> Path:
    try:
        fd, name = tempfile.mkstemp(prefix=STAGED_FILE_PREFIX, suffix=suffix, dir=directory)
    except OSError as e:
        logger.exception("Unable to create staged file in %s", directory or tempfile.gettempdir())
        raise WriteFailure("Unable to create the temp file") from e
    os.close(fd)
    return Path(name)


@asynccontextmanager
async def stage_stream(
    source: AsyncByteStream,
    *,
    directory: str | os.PathLike[str] | None = None,
    suffix: str = "",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> AsyncIterator[StagedFile]:
    """
    Copy an inbound stream into a temporary file and release it on exit.

    Args:
        source: Stream to copy from.
        directory: Where to create the file (None uses the system temp dir).
        suffix: File name suffix, e.g. ``".mp4"``.
        chunk_size: Bytes read from the source per iteration.

    Yields:
        StagedFile: The staged copy, readable from the start.

    Raises:
        ShortRead: If the source stream errors mid-copy.
        WriteFailure: If the temporary file cannot be created or written.
    """
    path = _create_temp_path(directory, suffix)
    staged = StagedFile(path=path, size=0)

    try:
        async with aiofiles.open(path, "wb") as out:
            while True:
                try:
                    chunk = await source.read(chunk_size)
                except Exception as e:
                    logger.warning(
                        "Upload stream failed after %d bytes: %s", staged.size, str(e)
                    )
                    raise ShortRead("Unable to read upload stream") from e
                if not chunk:
                    break
                try:
                    await out.write(chunk)
                except OSError as e:
                    logger.exception("Unable to write staged file %s", path)
                    raise WriteFailure("Unable to copy file") from e
                staged.size += len(chunk)
    except OSError as e:
        # Raised by open/flush/close of the staged file
        staged.release()
        logger.exception("Unable to stage upload at %s", path)
        raise WriteFailure("Unable to copy file") from e
    except BaseException:
        staged.release()
        raise

    logger.debug("Staged %d bytes at %s", staged.size, path)
    try:
        yield staged
    finally:
        staged.release()
