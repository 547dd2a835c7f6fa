"""
Tests for fast-start normalization and aspect ratio classification.

Unit tests use the in-memory runner; the integration tests at the bottom run
the real ffmpeg/ffprobe and are skipped when they are not installed.
"""

import shutil
import struct
import subprocess

from pathlib import Path

import pytest

from fakes import FakeMediaToolRunner
from tubely.core.exceptions import ExternalToolFailure, InvalidInput, NoStreamsFound
from tubely.models.video import AspectRatio
from tubely.services.media_tools import FFmpegToolRunner
from tubely.services.video_processing import (
    AspectRatioClassifier,
    FastStartNormalizer,
    classify_dimensions,
    ratio_matches,
)


def probe_of(*streams: dict) -> dict:
    return {"streams": list(streams)}


# =============================================================================
# Classification
# =============================================================================


@pytest.mark.unit
class TestClassifyDimensions:
    """Test suite for the pure classification rule."""

    @pytest.mark.parametrize(
        ("width", "height", "expected"),
        [
            (1920, 1080, AspectRatio.LANDSCAPE),
            (1280, 720, AspectRatio.LANDSCAPE),
            (1080, 1920, AspectRatio.PORTRAIT),
            (720, 1280, AspectRatio.PORTRAIT),
            (1000, 1000, AspectRatio.OTHER),
            (640, 480, AspectRatio.OTHER),
        ],
    )
    def test_known_geometries(self, width: int, height: int, expected: AspectRatio) -> None:
        assert classify_dimensions(width, height) is expected

    def test_tolerates_rounding(self) -> None:
        # 854x480 is the usual rounding of 16:9 at 480 lines
        assert classify_dimensions(854, 480) is AspectRatio.LANDSCAPE
        assert classify_dimensions(480, 854) is AspectRatio.PORTRAIT

    def test_tolerance_is_relative(self) -> None:
        assert ratio_matches(1920, 1080, 16 / 9, 0.0)
        assert not ratio_matches(1900, 1080, 16 / 9, 0.001)
        assert ratio_matches(1900, 1080, 16 / 9, 0.02)

    @pytest.mark.parametrize(("width", "height"), [(0, 1080), (1920, 0), (-1, 10)])
    def test_rejects_non_positive_dimensions(self, width: int, height: int) -> None:
        with pytest.raises(ValueError):
            classify_dimensions(width, height)


@pytest.mark.unit
class TestAspectRatioClassifier:
    """Test suite for AspectRatioClassifier over a MediaToolRunner."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("width", "height", "expected"),
        [
            (1920, 1080, AspectRatio.LANDSCAPE),
            (1080, 1920, AspectRatio.PORTRAIT),
            (1000, 1000, AspectRatio.OTHER),
        ],
    )
    async def test_classifies_first_video_stream(
        self, tmp_path: Path, width: int, height: int, expected: AspectRatio
    ) -> None:
        runner = FakeMediaToolRunner(
            probe_of(
                {"codec_type": "audio"},
                {"codec_type": "video", "width": width, "height": height},
                {"codec_type": "video", "width": 10, "height": 10},
            )
        )

        result = await AspectRatioClassifier(runner).classify(tmp_path / "clip.mp4")

        assert result is expected
        assert runner.inspect_calls == [tmp_path / "clip.mp4"]

    @pytest.mark.asyncio
    async def test_classification_is_deterministic(self, tmp_path: Path) -> None:
        classifier = AspectRatioClassifier(
            FakeMediaToolRunner(probe_of({"codec_type": "video", "width": 1080, "height": 1920}))
        )

        first = await classifier.classify(tmp_path / "clip.mp4")
        second = await classifier.classify(tmp_path / "clip.mp4")

        assert first is second is AspectRatio.PORTRAIT

    @pytest.mark.asyncio
    async def test_stream_without_codec_type_counts_as_video(self, tmp_path: Path) -> None:
        classifier = AspectRatioClassifier(FakeMediaToolRunner(probe_of({"width": 1920, "height": 1080})))
        assert await classifier.classify(tmp_path / "clip.mp4") is AspectRatio.LANDSCAPE

    @pytest.mark.asyncio
    async def test_zero_streams_is_no_streams_found(self, tmp_path: Path) -> None:
        classifier = AspectRatioClassifier(FakeMediaToolRunner(probe_of()))

        with pytest.raises(NoStreamsFound) as exc_info:
            await classifier.classify(tmp_path / "clip.mp4")

        assert isinstance(exc_info.value, InvalidInput)
        assert not isinstance(exc_info.value, ExternalToolFailure)

    @pytest.mark.asyncio
    async def test_audio_only_is_no_streams_found(self, tmp_path: Path) -> None:
        classifier = AspectRatioClassifier(FakeMediaToolRunner(probe_of({"codec_type": "audio"})))

        with pytest.raises(NoStreamsFound):
            await classifier.classify(tmp_path / "clip.mp4")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "probe",
        [
            {},
            {"streams": "nope"},
            probe_of({"codec_type": "video"}),
            probe_of({"codec_type": "video", "width": "wide", "height": 1080}),
            probe_of({"codec_type": "video", "width": 0, "height": 1080}),
        ],
    )
    async def test_malformed_output_is_tool_failure(self, tmp_path: Path, probe: dict) -> None:
        classifier = AspectRatioClassifier(FakeMediaToolRunner(probe))

        with pytest.raises(ExternalToolFailure):
            await classifier.classify(tmp_path / "clip.mp4")

    @pytest.mark.asyncio
    async def test_tool_error_propagates(self, tmp_path: Path) -> None:
        runner = FakeMediaToolRunner()
        runner.inspect_error = ExternalToolFailure("Error running ffprobe command")

        with pytest.raises(ExternalToolFailure):
            await AspectRatioClassifier(runner).classify(tmp_path / "clip.mp4")


# =============================================================================
# Normalization
# =============================================================================


@pytest.mark.unit
class TestFastStartNormalizer:
    """Test suite for FastStartNormalizer."""

    def test_output_is_sibling_processing_path(self, tmp_path: Path) -> None:
        source = tmp_path / "tubely-upload-abc.mp4"
        assert FastStartNormalizer.output_path_for(source) == tmp_path / "tubely-upload-abc.mp4.processing"

    @pytest.mark.asyncio
    async def test_returns_processed_path(self, tmp_path: Path) -> None:
        source = tmp_path / "clip.mp4"
        source.write_bytes(b"video")
        runner = FakeMediaToolRunner()

        output = await FastStartNormalizer(runner).normalize(source)

        assert output == tmp_path / "clip.mp4.processing"
        assert output.read_bytes() == b"video"
        assert runner.remux_calls == [(source, output)]

    @pytest.mark.asyncio
    async def test_failure_removes_partial_output(self, tmp_path: Path) -> None:
        source = tmp_path / "clip.mp4"
        source.write_bytes(b"video")
        runner = FakeMediaToolRunner()
        runner.remux_error = ExternalToolFailure("Error running ffmpeg command")

        with pytest.raises(ExternalToolFailure):
            await FastStartNormalizer(runner).normalize(source)

        assert not (tmp_path / "clip.mp4.processing").exists()
        assert source.exists()


# =============================================================================
# Integration with the real tools
# =============================================================================

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg/ffprobe not installed",
)


def top_level_boxes(path: Path) -> list[str]:
    """Return the types of the top-level ISO-BMFF boxes in file order."""
    boxes = []
    with path.open("rb") as f:
        file_size = path.stat().st_size
        offset = 0
        while offset + 8 <= file_size:
            f.seek(offset)
            size, box_type = struct.unpack(">I4s", f.read(8))
            if size == 1:
                (size,) = struct.unpack(">Q", f.read(8))
            elif size == 0:
                size = file_size - offset
            boxes.append(box_type.decode("latin-1"))
            if size < 8:
                break
            offset += size
    return boxes


def make_mp4(path: Path, width: int, height: int) -> None:
    """Encode a one second clip with the metadata written at the end."""
    subprocess.run(
        [
            "ffmpeg", "-v", "error", "-y",
            "-f", "lavfi", "-i", f"testsrc=duration=1:size={width}x{height}:rate=10",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=1",
            "-c:v", "mpeg4", "-c:a", "aac", "-shortest",
            "-f", "mp4", str(path),
        ],
        check=True,
        capture_output=True,
        timeout=60,
    )


@pytest.mark.integration
@pytest.mark.slow
@requires_ffmpeg
class TestWithFFmpeg:
    """Fast start and classification against files produced by ffmpeg."""

    @pytest.mark.asyncio
    async def test_moov_precedes_mdat_and_streams_are_preserved(self, tmp_path: Path) -> None:
        source = tmp_path / "clip.mp4"
        make_mp4(source, 320, 180)
        boxes_before = top_level_boxes(source)
        assert boxes_before.index("mdat") < boxes_before.index("moov")

        runner = FFmpegToolRunner(timeout=60)
        output = await FastStartNormalizer(runner).normalize(source)

        boxes_after = top_level_boxes(output)
        assert boxes_after.index("moov") < boxes_after.index("mdat")

        streams_before = (await runner.inspect(source))["streams"]
        streams_after = (await runner.inspect(output))["streams"]
        assert len(streams_after) == len(streams_before)
        for before, after in zip(streams_before, streams_after):
            assert after["codec_type"] == before["codec_type"]
            assert float(after["duration"]) == pytest.approx(float(before["duration"]), abs=0.05)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("width", "height", "expected"),
        [
            (320, 180, AspectRatio.LANDSCAPE),
            (180, 320, AspectRatio.PORTRAIT),
            (200, 200, AspectRatio.OTHER),
        ],
    )
    async def test_classifies_real_files(
        self, tmp_path: Path, width: int, height: int, expected: AspectRatio
    ) -> None:
        source = tmp_path / "clip.mp4"
        make_mp4(source, width, height)

        classifier = AspectRatioClassifier(FFmpegToolRunner(timeout=60))

        assert await classifier.classify(source) is expected
