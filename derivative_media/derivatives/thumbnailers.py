"""
Thumbnailers: one still (or video) in, one sized JPEG out.

Each thumbnailer states which StillSourceKind it handles; the registry picks
one per source kind instead of chaining overrides.
"""

import os
import shutil
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import structlog

from ..config.constants import IMAGE_EXTENSIONS, STILL_IMAGE_EXTENSIONS
from ..errors import DerivativeError, FailureKind
from ..models import StillSourceKind, ThumbnailSizeSpec, ThumbnailStrategy
from .frames import FrameExtractor, allocate_temp_path, check_output, filter_chain
from .probe import Probe
from .runner import ToolRunner


def detect_source_kind(path: str, media_type: Optional[str]) -> Optional[StillSourceKind]:
    """
    Classify a thumbnail source once, at entry.

    A recognised still extension wins over the MIME type: such inputs are
    frames produced earlier and only need resizing.
    """
    if os.path.splitext(str(path))[1].lower() in STILL_IMAGE_EXTENSIONS:
        return StillSourceKind.ALREADY_EXTRACTED_IMAGE
    media_type = (media_type or '').lower()
    if media_type.startswith('video/'):
        return StillSourceKind.RAW_VIDEO
    if media_type.startswith('image/'):
        return StillSourceKind.GENERIC_IMAGE
    return None


def convert_geometry(size_spec: ThumbnailSizeSpec) -> List[str]:
    n = size_spec.constraint_pixels
    if size_spec.strategy == ThumbnailStrategy.SQUARE_CROP:
        return ["-resize", f"{n}x{n}^", "-gravity", "center", "-crop", f"{n}x{n}+0+0", "+repage"]
    return ["-thumbnail", f"{n}x{n}>"]


class Thumbnailer(Protocol):
    name: str

    def supports(self, kind: StillSourceKind) -> bool: ...

    def create(self, source: str, size_spec: ThumbnailSizeSpec,
               media_type: Optional[str] = None, options: Optional[dict] = None) -> Path: ...


class ImageMagickThumbnailer:
    """Resizes stills and generic images with ImageMagick convert."""

    name = "imagemagick"

    def __init__(self, convert_path: str = "convert", timeout: float = 60,
                 runner: ToolRunner = None, logger=None, temp_dir: Optional[str] = None):
        self.convert_path = convert_path
        self.timeout = timeout
        self.temp_dir = temp_dir
        self.logger = logger or structlog.get_logger(__name__)
        self.runner = runner or ToolRunner(self.logger)

    def supports(self, kind: StillSourceKind) -> bool:
        return kind in (StillSourceKind.ALREADY_EXTRACTED_IMAGE, StillSourceKind.GENERIC_IMAGE)

    def command(self, source: str, size_spec: ThumbnailSizeSpec, output: str) -> List[str]:
        return [
            self.convert_path, str(source),
            "-auto-orient", "-background", "white", "+repage", "-alpha", "remove",
            *convert_geometry(size_spec),
            str(output),
        ]

    def fallback_commands(self, source: str, size_spec: ThumbnailSizeSpec, output: str) -> List[List[str]]:
        """Simpler invocations tried when the main command fails."""
        geometry = convert_geometry(size_spec)
        if size_spec.strategy == ThumbnailStrategy.SCALE:
            n = size_spec.constraint_pixels
            geometry = ["-resize", f"{n}x{n}>"]
        return [
            [self.convert_path, str(source), *geometry, str(output)],
            [self.convert_path, f"jpeg:{source}", *geometry, f"jpeg:{output}"],
        ]

    def create(self, source: str, size_spec: ThumbnailSizeSpec,
               media_type: Optional[str] = None, options: Optional[dict] = None) -> Path:
        source_path = Path(source)
        if not source_path.exists():
            raise DerivativeError(FailureKind.SOURCE_MISSING, f"Source file does not exist: {source}")
        if source_path.stat().st_size == 0:
            raise DerivativeError(FailureKind.EMPTY_OUTPUT, f"Source file is empty: {source}")

        # convert guesses the decoder from the extension
        with_extension = None
        if not source_path.suffix and media_type:
            extension = IMAGE_EXTENSIONS.get(media_type, 'jpg')
            with_extension = allocate_temp_path(f".{extension}", self.temp_dir)
            try:
                shutil.copyfile(source_path, with_extension)
            except OSError as e:
                with_extension.unlink(missing_ok=True)
                raise DerivativeError(FailureKind.WRITE_ERROR, f"Cannot copy {source} for convert: {e}")
            source = str(with_extension)

        try:
            output = allocate_temp_path(".jpg", self.temp_dir)
            try:
                result = self.runner.run(self.command(source, size_spec, output), timeout=self.timeout)
                return check_output(output, result, "convert")
            except DerivativeError:
                output.unlink(missing_ok=True)
                raise
        finally:
            if with_extension is not None:
                with_extension.unlink(missing_ok=True)

    def create_with_fallbacks(self, source: str, size_spec: ThumbnailSizeSpec) -> Path:
        """
        Manual fallback chain; returns the first non-empty output.

        Raises:
            DerivativeError: from the last attempt when all of them fail
        """
        last_error = None
        attempts = len(self.fallback_commands(source, size_spec, ""))
        for attempt in range(attempts):
            output = allocate_temp_path(".jpg", self.temp_dir)
            argv = self.fallback_commands(source, size_spec, str(output))[attempt]
            try:
                result = self.runner.run(argv, timeout=self.timeout)
                return check_output(output, result, "convert")
            except DerivativeError as e:
                output.unlink(missing_ok=True)
                if e.kind == FailureKind.TOOL_MISSING:
                    raise
                last_error = e
                self.logger.debug("Fallback resize failed", size=size_spec.name, argv=argv, reason=e.reason)
        raise last_error


class FfmpegStillThumbnailer:
    """Resizes an extracted still with the same filter chain as frame extraction."""

    name = "ffmpeg-still"

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = 60,
                 runner: ToolRunner = None, logger=None, temp_dir: Optional[str] = None):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.temp_dir = temp_dir
        self.logger = logger or structlog.get_logger(__name__)
        self.runner = runner or ToolRunner(self.logger)

    def supports(self, kind: StillSourceKind) -> bool:
        return kind == StillSourceKind.ALREADY_EXTRACTED_IMAGE

    def command(self, source: str, size_spec: ThumbnailSizeSpec, output: str) -> List[str]:
        return [
            self.ffmpeg_path, "-y",
            "-i", str(source),
            "-vf", filter_chain(size_spec),
            "-f", "image2",
            "-q:v", "2",
            str(output),
        ]

    def create(self, source: str, size_spec: ThumbnailSizeSpec,
               media_type: Optional[str] = None, options: Optional[dict] = None) -> Path:
        output = allocate_temp_path(".jpg", self.temp_dir)
        try:
            result = self.runner.run(self.command(source, size_spec, output), timeout=self.timeout)
            return check_output(output, result, "ffmpeg")
        except DerivativeError:
            output.unlink(missing_ok=True)
            raise


class VideoThumbnailer:
    """Extracts each size straight from the video."""

    name = "video"

    def __init__(self, probe: Probe, extractor: FrameExtractor,
                 default_percentage: int = 25, fallback_offset: float = 10.0, logger=None):
        self.probe = probe
        self.extractor = extractor
        self.default_percentage = default_percentage
        self.fallback_offset = fallback_offset
        self.logger = logger or structlog.get_logger(__name__)

    def supports(self, kind: StillSourceKind) -> bool:
        return kind == StillSourceKind.RAW_VIDEO

    def position(self, source: str, percentage: Optional[int] = None) -> float:
        """
        Capture position in seconds.

        Raises:
            DerivativeError: PROBE_TIMEOUT or UNPARSEABLE; an unavailable
                duration falls back to the fixed offset instead
        """
        percentage = self.default_percentage if percentage is None else percentage
        try:
            duration = self.probe.duration(source)
        except DerivativeError as e:
            if e.kind != FailureKind.PROBE_UNAVAILABLE:
                raise
            self.logger.warning("Duration unavailable, using fallback offset",
                                source=str(source), offset=self.fallback_offset, reason=e.reason)
            return self.fallback_offset
        return duration * percentage / 100

    def create(self, source: str, size_spec: ThumbnailSizeSpec,
               media_type: Optional[str] = None, options: Optional[dict] = None) -> Path:
        options = options or {}
        position = options.get('position')
        if position is None:
            position = self.position(source, options.get('percentage'))
        return self.extractor.extract(source, position, size_spec)


class ThumbnailerRegistry:
    """Ordered thumbnailers; the first one supporting a kind is used."""

    def __init__(self, thumbnailers: Sequence[Thumbnailer] = ()):
        self._thumbnailers: List[Thumbnailer] = list(thumbnailers)

    def register(self, thumbnailer: Thumbnailer, first: bool = False) -> None:
        if first:
            self._thumbnailers.insert(0, thumbnailer)
        else:
            self._thumbnailers.append(thumbnailer)

    def for_kind(self, kind: StillSourceKind) -> Thumbnailer:
        for thumbnailer in self._thumbnailers:
            if thumbnailer.supports(kind):
                return thumbnailer
        raise DerivativeError(FailureKind.UNSUPPORTED_TYPE, f"No thumbnailer for {kind.value}")
