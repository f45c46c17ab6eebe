import pytest

from derivative_media.derivatives.frames import FrameExtractor, filter_chain
from derivative_media.errors import DerivativeError, FailureKind
from derivative_media.models import ThumbnailSizeSpec, ThumbnailStrategy

SQUARE = ThumbnailSizeSpec(name="square", constraint_pixels=200, strategy=ThumbnailStrategy.SQUARE_CROP)
LARGE = ThumbnailSizeSpec(name="large", constraint_pixels=800, strategy=ThumbnailStrategy.SCALE)


def test_filter_chains():
    assert filter_chain(SQUARE) == "scale=200:200:force_original_aspect_ratio=increase,crop=200:200"
    assert filter_chain(LARGE) == "scale='min(800,iw)':'min(800,ih)':force_original_aspect_ratio=decrease"


def test_extract_runs_ffmpeg_with_seek_and_filter(stub_tools, work_dir):
    extractor = FrameExtractor(stub_tools.path("ffmpeg"), temp_dir=str(work_dir))

    still = extractor.extract("/media/clip one.mp4", 3.456, SQUARE)

    assert still.exists() and still.stat().st_size > 0
    [argv] = stub_tools.work_calls("ffmpeg")
    assert argv == [
        "-y", "-i", "/media/clip one.mp4", "-ss", "3.46", "-vframes", "1",
        "-vf", "scale=200:200:force_original_aspect_ratio=increase,crop=200:200",
        "-f", "image2", "-q:v", "2", str(still),
    ]
    still.unlink()


def test_extract_last_frame_seeks_from_end(stub_tools, work_dir):
    extractor = FrameExtractor(stub_tools.path("ffmpeg"), temp_dir=str(work_dir))

    still = extractor.extract_last_frame("clip.mp4", LARGE)

    [argv] = stub_tools.work_calls("ffmpeg")
    assert argv[:5] == ["-y", "-sseof", "-1", "-i", "clip.mp4"]
    still.unlink()


def test_extract_empty_output(stub_tools, work_dir):
    stub_tools.ffmpeg(': > "$last"')
    extractor = FrameExtractor(stub_tools.path("ffmpeg"), temp_dir=str(work_dir))

    with pytest.raises(DerivativeError) as excinfo:
        extractor.extract("clip.mp4", 1.0, LARGE)
    assert excinfo.value.kind == FailureKind.EMPTY_OUTPUT
    assert list(work_dir.iterdir()) == []


def test_extract_tool_failure_keeps_output(stub_tools, work_dir):
    stub_tools.ffmpeg('echo "clip.mp4: Invalid data found when processing input" >&2\nexit 1')
    extractor = FrameExtractor(stub_tools.path("ffmpeg"), temp_dir=str(work_dir))

    with pytest.raises(DerivativeError) as excinfo:
        extractor.extract("clip.mp4", 1.0, LARGE)
    error = excinfo.value
    assert error.kind == FailureKind.TOOL_EXECUTION_FAILED
    assert error.exit_code == 1
    assert "Invalid data" in error.output
    assert list(work_dir.iterdir()) == []


def test_extract_missing_ffmpeg(tmp_path, work_dir):
    extractor = FrameExtractor(str(tmp_path / "no-ffmpeg"), temp_dir=str(work_dir))

    with pytest.raises(DerivativeError) as excinfo:
        extractor.extract("clip.mp4", 1.0, LARGE)
    assert excinfo.value.kind == FailureKind.TOOL_MISSING
