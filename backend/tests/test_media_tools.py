"""
Tests for FFmpegToolRunner subprocess handling.

The subprocess factory is patched, so no binaries are needed.
"""

import asyncio
import json

from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest

from tubely.core.exceptions import ExternalToolFailure
from tubely.services.media_tools import FFmpegToolRunner


pytestmark = pytest.mark.unit

SUBPROCESS_EXEC = "tubely.services.media_tools.asyncio.create_subprocess_exec"


def make_process(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> Mock:
    process = Mock()
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.returncode = returncode
    process.wait = AsyncMock(return_value=returncode)
    return process


class TestRemux:
    """Test suite for FFmpegToolRunner.remux."""

    @pytest.mark.asyncio
    async def test_invokes_ffmpeg_with_faststart_copy(self, tmp_path: Path) -> None:
        source = tmp_path / "in.mp4"
        destination = tmp_path / "in.mp4.processing"
        destination.write_bytes(b"moov")
        runner = FFmpegToolRunner(ffmpeg_path="/opt/ffmpeg")

        with patch(SUBPROCESS_EXEC, AsyncMock(return_value=make_process())) as exec_mock:
            await runner.remux(source, destination)

        args = exec_mock.call_args.args
        assert args[0] == "/opt/ffmpeg"
        assert args[args.index("-i") + 1] == str(source)
        assert args[args.index("-c") + 1] == "copy"
        assert args[args.index("-movflags") + 1] == "faststart"
        assert args[args.index("-f") + 1] == "mp4"
        assert args[-1] == str(destination)

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_tool_failure(self, tmp_path: Path) -> None:
        runner = FFmpegToolRunner()
        process = make_process(stderr=b"moov atom not found", returncode=1)

        with patch(SUBPROCESS_EXEC, AsyncMock(return_value=process)):
            with pytest.raises(ExternalToolFailure, match="Error running ffmpeg command"):
                await runner.remux(tmp_path / "in.mp4", tmp_path / "out.mp4")

    @pytest.mark.asyncio
    async def test_missing_output_is_tool_failure(self, tmp_path: Path) -> None:
        runner = FFmpegToolRunner()

        with patch(SUBPROCESS_EXEC, AsyncMock(return_value=make_process())):
            with pytest.raises(ExternalToolFailure):
                await runner.remux(tmp_path / "in.mp4", tmp_path / "never-written.mp4")

    @pytest.mark.asyncio
    async def test_missing_binary_is_tool_failure(self, tmp_path: Path) -> None:
        runner = FFmpegToolRunner(ffmpeg_path="/nonexistent/ffmpeg")

        with patch(SUBPROCESS_EXEC, AsyncMock(side_effect=FileNotFoundError("ffmpeg"))):
            with pytest.raises(ExternalToolFailure, match="Unable to start"):
                await runner.remux(tmp_path / "in.mp4", tmp_path / "out.mp4")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path: Path) -> None:
        async def never_finishes() -> tuple[bytes, bytes]:
            await asyncio.sleep(10)
            return b"", b""

        process = make_process()
        process.communicate = never_finishes
        runner = FFmpegToolRunner(timeout=0.01)

        with patch(SUBPROCESS_EXEC, AsyncMock(return_value=process)):
            with pytest.raises(ExternalToolFailure, match="timed out"):
                await runner.remux(tmp_path / "in.mp4", tmp_path / "out.mp4")

        process.kill.assert_called_once()
        process.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_after_process_exited(self, tmp_path: Path) -> None:
        async def never_finishes() -> tuple[bytes, bytes]:
            await asyncio.sleep(10)
            return b"", b""

        process = make_process()
        process.communicate = never_finishes
        process.kill.side_effect = ProcessLookupError()
        runner = FFmpegToolRunner(timeout=0.01)

        with patch(SUBPROCESS_EXEC, AsyncMock(return_value=process)):
            with pytest.raises(ExternalToolFailure, match="timed out"):
                await runner.remux(tmp_path / "in.mp4", tmp_path / "out.mp4")

        process.wait.assert_awaited_once()


class TestInspect:
    """Test suite for FFmpegToolRunner.inspect."""

    @pytest.mark.asyncio
    async def test_returns_parsed_streams(self, tmp_path: Path) -> None:
        probe = {"streams": [{"codec_type": "video", "width": 1280, "height": 720}]}
        runner = FFmpegToolRunner(ffprobe_path="ffprobe")

        with patch(
            SUBPROCESS_EXEC,
            AsyncMock(return_value=make_process(stdout=json.dumps(probe).encode())),
        ) as exec_mock:
            result = await runner.inspect(tmp_path / "clip.mp4")

        assert result == probe
        args = exec_mock.call_args.args
        assert args[0] == "ffprobe"
        assert "-show_streams" in args
        assert args[args.index("-print_format") + 1] == "json"

    @pytest.mark.asyncio
    async def test_unparsable_output_is_tool_failure(self, tmp_path: Path) -> None:
        runner = FFmpegToolRunner()

        with patch(SUBPROCESS_EXEC, AsyncMock(return_value=make_process(stdout=b"not json"))):
            with pytest.raises(ExternalToolFailure, match="unmarshalling"):
                await runner.inspect(tmp_path / "clip.mp4")

    @pytest.mark.asyncio
    async def test_non_object_output_is_tool_failure(self, tmp_path: Path) -> None:
        runner = FFmpegToolRunner()

        with patch(SUBPROCESS_EXEC, AsyncMock(return_value=make_process(stdout=b"[1, 2]"))):
            with pytest.raises(ExternalToolFailure):
                await runner.inspect(tmp_path / "clip.mp4")


class TestFromSettings:
    def test_uses_configured_binaries(self, test_settings) -> None:
        runner = FFmpegToolRunner.from_settings(test_settings)

        assert runner.ffmpeg_path == test_settings.ffmpeg_path
        assert runner.ffprobe_path == test_settings.ffprobe_path
        assert runner.timeout == test_settings.media_tool_timeout_seconds
