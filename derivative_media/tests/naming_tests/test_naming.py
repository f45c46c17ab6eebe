import pytest

from derivative_media.derivatives.naming import (
    has_extension,
    original_path,
    path_for,
    stem_of,
    validate_storage_id,
)
from derivative_media.models import DerivativeKind


def test_thumbnail_path_uses_size_folder_and_jpg():
    assert path_for("215/abcdef", DerivativeKind.THUMBNAIL, "square") == "square/215/abcdef.jpg"
    assert path_for("215/abcdef", "thumbnail", "large") == "large/215/abcdef.jpg"


def test_transcode_path_fills_output_template():
    assert path_for("215/abcdef", DerivativeKind.TRANSCODE, "mp4/{filename}.mp4") == "mp4/215/abcdef.mp4"
    assert path_for("215/abcdef.mov", DerivativeKind.TRANSCODE, "webm/{filename}.webm") == "webm/215/abcdef.webm"


def test_path_for_is_deterministic():
    first = [path_for("a/b", DerivativeKind.THUMBNAIL, name) for name in ("large", "medium", "square")]
    second = [path_for("a/b", DerivativeKind.THUMBNAIL, name) for name in ("large", "medium", "square")]
    assert first == second


def test_path_for_rejects_unknown_kind():
    with pytest.raises(ValueError):
        path_for("a", "poster", "large")


def test_stem_keeps_sub_path():
    assert stem_of("215/abcdef.mp4") == "215/abcdef"
    assert stem_of("abcdef") == "abcdef"
    assert stem_of("archive.tar.gz") == "archive.tar"


def test_valid_storage_ids_are_kept_verbatim():
    assert validate_storage_id("215/abcdef") == "215/abcdef"
    assert validate_storage_id("2024/06/clip-01_final.mp4") == "2024/06/clip-01_final.mp4"


@pytest.mark.parametrize("storage_id", [
    "", "   ", "../etc/passwd", "a/../b", "a//b", ";;",
    "/215/abc", "215/abc/", "ab\x00cd", "215/ab cd", "215/abc;rm -rf x",
])
def test_invalid_storage_ids_are_rejected(storage_id):
    with pytest.raises(ValueError):
        validate_storage_id(storage_id)


def test_original_path_appends_missing_extension():
    assert original_path("files", "215/abc", "holiday.MP4") == "files/original/215/abc.MP4"
    assert original_path("files", "215/abc.mp4", "holiday.mov") == "files/original/215/abc.mp4"
    assert original_path("files", "215/abc", "noext") == "files/original/215/abc"


def test_has_extension_ignores_directories():
    assert has_extension("215/abc.jpg")
    assert not has_extension("2.15/abc")


def test_distinct_ids_never_share_a_thumbnail_path():
    with pytest.raises(ValueError):
        validate_storage_id("a b")
    assert path_for(validate_storage_id("ab"), DerivativeKind.THUMBNAIL, "large") == "large/ab.jpg"
