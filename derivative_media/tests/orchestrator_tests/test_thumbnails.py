import shlex

import pytest

from derivative_media.config.settings import Config
from derivative_media.derivatives.orchestrator import DerivativeOrchestrator
from derivative_media.errors import FailureKind
from derivative_media.models import MediaDescriptor, OperationStatus


@pytest.fixture
def orchestrator(stub_config, work_dir):
    return DerivativeOrchestrator(config=stub_config, temp_dir=str(work_dir))


@pytest.fixture
def video(make_original):
    path = make_original("215/abc.mp4")
    return MediaDescriptor(id=215, storage_id="215/abc", media_type="video/mp4",
                           source_path=str(path), filename="holiday.mp4")


@pytest.fixture
def image(make_image):
    path = make_image("216/pic.png", fmt="PNG")
    return MediaDescriptor(id=216, storage_id="216/pic", media_type="image/png",
                           source_path=str(path), filename="pic.png")


def _seek(argv):
    return argv[argv.index("-ss") + 1]


def test_video_thumbnails_from_one_still(orchestrator, video, stub_tools, base_path, work_dir):
    result = orchestrator.generate_thumbnails(video)

    assert result.status == OperationStatus.READY
    assert not result.partial
    assert set(result.artifacts) == {"large", "medium", "square"}
    for name in ("large", "medium", "square"):
        assert (base_path / name / "215" / "abc.jpg").stat().st_size > 0
    assert result.correlation_id

    assert len(stub_tools.work_calls("ffprobe")) == 1
    [extract] = stub_tools.work_calls("ffmpeg")
    assert _seek(extract) == "5.00"
    assert extract[extract.index("-vf") + 1] == "scale='min(800,iw)':'min(800,ih)':force_original_aspect_ratio=decrease"
    assert len(stub_tools.work_calls("convert")) == 3
    assert list(work_dir.iterdir()) == []


def test_capture_position_percentage(orchestrator, video, stub_tools):
    orchestrator.generate_thumbnails(video, position_percentage=50)

    [extract] = stub_tools.work_calls("ffmpeg")
    assert _seek(extract) == "10.00"


def test_position_out_of_range_is_rejected(orchestrator, video):
    with pytest.raises(ValueError):
        orchestrator.generate_thumbnails(video, position_percentage=101)


def test_unknown_duration_uses_fallback_offset(orchestrator, video, stub_tools):
    stub_tools.ffprobe("N/A")

    result = orchestrator.generate_thumbnails(video)

    assert result.status == OperationStatus.READY
    [extract] = stub_tools.work_calls("ffmpeg")
    assert _seek(extract) == "10.00"


def test_unparseable_duration_fails_before_extraction(orchestrator, video, stub_tools):
    stub_tools.ffprobe("twelve seconds")

    result = orchestrator.generate_thumbnails(video)

    assert result.status == OperationStatus.FAILED
    assert result.failure_kind == FailureKind.UNPARSEABLE
    assert "probe" in result.failures
    assert stub_tools.work_calls("ffmpeg") == []


def test_seek_past_end_clamps_to_last_frame(orchestrator, video, stub_tools, sample_jpeg):
    stub_tools.ffprobe("N/A")
    stub_tools.ffmpeg(
        f'case " $* " in *" -sseof "*) cp {shlex.quote(str(sample_jpeg))} "$last" ;; '
        f'*) : > "$last" ;; esac'
    )

    result = orchestrator.generate_thumbnails(video)

    assert result.status == OperationStatus.READY
    first, second = stub_tools.work_calls("ffmpeg")
    assert "-ss" in first
    assert second[:3] == ["-y", "-sseof", "-1"]


def test_extraction_failure_reports_tool_output(orchestrator, video, stub_tools, work_dir):
    stub_tools.ffmpeg('echo "moov atom not found" >&2\nexit 1')

    result = orchestrator.generate_thumbnails(video)

    assert result.status == OperationStatus.FAILED
    failure = result.failures["extract"]
    assert failure.kind == FailureKind.TOOL_EXECUTION_FAILED
    assert failure.exit_code == 1
    assert "moov atom" in failure.output
    assert stub_tools.work_calls("convert") == []
    assert list(work_dir.iterdir()) == []


def test_second_run_is_skipped(orchestrator, image, stub_tools):
    first = orchestrator.generate_thumbnails(image)
    calls = len(stub_tools.work_calls("convert"))

    second = orchestrator.generate_thumbnails(image)

    assert first.status == OperationStatus.READY
    assert second.status == OperationStatus.SKIPPED
    assert second.artifacts == {}
    assert len(stub_tools.work_calls("convert")) == calls

    forced = orchestrator.generate_thumbnails(image, force_regenerate=True)
    assert forced.status == OperationStatus.READY
    assert len(stub_tools.work_calls("convert")) == calls * 2


def test_missing_size_is_regenerated(orchestrator, image, base_path):
    orchestrator.generate_thumbnails(image)
    (base_path / "medium" / "216" / "pic.jpg").unlink()

    result = orchestrator.generate_thumbnails(image)

    assert result.status == OperationStatus.READY
    assert (base_path / "medium" / "216" / "pic.jpg").exists()


def test_image_source_skips_probe_and_extraction(orchestrator, image, stub_tools):
    result = orchestrator.generate_thumbnails(image)

    assert result.status == OperationStatus.READY
    assert stub_tools.work_calls("ffprobe") == []
    assert stub_tools.work_calls("ffmpeg") == []
    assert all(argv[0] == image.source_path for argv in stub_tools.work_calls("convert"))


def test_partial_failure_keeps_other_sizes(orchestrator, image, stub_tools, base_path):
    stub_tools.convert(fail_on="400x400")

    result = orchestrator.generate_thumbnails(image)

    assert result.status == OperationStatus.READY
    assert result.partial
    assert set(result.artifacts) == {"large", "square"}
    assert set(result.failures) == {"medium"}
    assert result.failures["medium"].kind == FailureKind.TOOL_EXECUTION_FAILED
    assert not (base_path / "medium" / "216" / "pic.jpg").exists()


def test_all_sizes_failing_fails_the_operation(orchestrator, image, stub_tools):
    stub_tools.install("convert", "exit 1")

    result = orchestrator.generate_thumbnails(image)

    assert result.status == OperationStatus.FAILED
    assert set(result.failures) == {"large", "medium", "square"}


@pytest.mark.parametrize("media_type", ["application/pdf", "audio/mpeg", "video/x-flv", ""])
def test_unsupported_types(orchestrator, make_original, stub_tools, media_type):
    path = make_original("300/x.bin")
    descriptor = MediaDescriptor(storage_id="300/x", media_type=media_type,
                                 source_path=str(path), filename="x.bin")

    result = orchestrator.generate_thumbnails(descriptor)

    assert result.status == OperationStatus.FAILED
    assert result.failure_kind == FailureKind.UNSUPPORTED_TYPE
    assert stub_tools.work_calls("convert") == []
    assert stub_tools.work_calls("ffprobe") == []


def test_missing_source(orchestrator, base_path):
    descriptor = MediaDescriptor(storage_id="404/gone", media_type="video/mp4",
                                 source_path=str(base_path / "original" / "404" / "gone.mp4"),
                                 filename="gone.mp4")

    result = orchestrator.generate_thumbnails(descriptor)

    assert result.failure_kind == FailureKind.SOURCE_MISSING


@pytest.mark.parametrize("storage_id", ["../../etc", "217/abc; rm -rf x", "300/holiday photo"])
def test_invalid_storage_id(orchestrator, image, stub_tools, storage_id):
    descriptor = image.model_copy(update={"storage_id": storage_id})

    result = orchestrator.generate_thumbnails(descriptor)

    assert result.failure_kind == FailureKind.INVALID_STORAGE_ID
    assert stub_tools.work_calls("convert") == []


def test_unexecutable_tool_is_a_failed_result(orchestrator, image, stub_tools, work_dir):
    stub_tools.unexecutable("convert")

    result = orchestrator.generate_thumbnails(image)

    assert result.status == OperationStatus.FAILED
    assert {f.kind for f in result.failures.values()} == {FailureKind.TOOL_MISSING}
    assert list(work_dir.iterdir()) == []


def test_disabled_thumbnails(stub_tools, base_path, image, work_dir):
    config = Config({'base_path': str(base_path), 'tools': stub_tools.tool_settings(),
                     'thumbnails': {'enabled': False}})
    orchestrator = DerivativeOrchestrator(config=config, temp_dir=str(work_dir))

    result = orchestrator.generate_thumbnails(image)

    assert result.status == OperationStatus.FAILED
    assert result.failure_kind == FailureKind.UNSUPPORTED_TYPE
    assert stub_tools.work_calls("convert") == []


def test_shell_metacharacters_stay_single_arguments(orchestrator, make_original, stub_tools, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = make_original("217/clip $(touch PWNED); echo hi.mp4")
    descriptor = MediaDescriptor(storage_id="217/abc", media_type="video/mp4",
                                 source_path=str(path), filename=path.name)

    result = orchestrator.generate_thumbnails(descriptor)

    assert result.status == OperationStatus.READY
    assert not (tmp_path / "PWNED").exists()
    [probe] = stub_tools.work_calls("ffprobe")
    [extract] = stub_tools.work_calls("ffmpeg")
    assert probe[-1] == str(path)
    assert extract[extract.index("-i") + 1] == str(path)
    assert result.artifacts["large"].relative_path == "large/217/abc.jpg"


def test_ffmpeg_resize_tool(stub_tools, base_path, make_image, work_dir):
    config = Config({'base_path': str(base_path), 'tools': stub_tools.tool_settings(),
                     'thumbnails': {'resize_tool': 'ffmpeg'}})
    orchestrator = DerivativeOrchestrator(config=config, temp_dir=str(work_dir))
    path = make_image("218/frame.jpg")
    descriptor = MediaDescriptor(storage_id="218/frame", media_type="image/jpeg",
                                 source_path=str(path), filename="frame.jpg")

    result = orchestrator.generate_thumbnails(descriptor)

    assert result.status == OperationStatus.READY
    assert stub_tools.work_calls("convert") == []
    filters = [argv[argv.index("-vf") + 1] for argv in stub_tools.work_calls("ffmpeg")]
    assert "scale=200:200:force_original_aspect_ratio=increase,crop=200:200" in filters
