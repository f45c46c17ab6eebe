"""
Single-frame extraction with ffmpeg.
"""

import os
import tempfile
from pathlib import Path
from typing import List, Optional

import structlog

from ..errors import DerivativeError, FailureKind
from ..models import ThumbnailSizeSpec, ThumbnailStrategy
from .runner import ToolRunner


def filter_chain(size_spec: ThumbnailSizeSpec) -> str:
    """
    ffmpeg video filter for a size.

    Square-crop overshoots the longer side then center-crops to NxN; scale
    bounds the longer side to N and keeps the aspect ratio, never enlarging,
    like convert's `NxN>` geometry.
    """
    n = size_spec.constraint_pixels
    if size_spec.strategy == ThumbnailStrategy.SQUARE_CROP:
        return f"scale={n}:{n}:force_original_aspect_ratio=increase,crop={n}:{n}"
    return f"scale='min({n},iw)':'min({n},ih)':force_original_aspect_ratio=decrease"


def allocate_temp_path(suffix: str = ".jpg", temp_dir: Optional[str] = None) -> Path:
    fd, path = tempfile.mkstemp(prefix="derivative_", suffix=suffix, dir=temp_dir)
    os.close(fd)
    return Path(path)


def check_output(path: Path, result, tool: str) -> Path:
    """Turn a finished tool run into the output path or a DerivativeError."""
    if not result.ok:
        raise DerivativeError(
            FailureKind.TOOL_EXECUTION_FAILED,
            f"{tool} exited with code {result.returncode}",
            exit_code=result.returncode,
            output=result.output,
        )
    if not path.exists() or path.stat().st_size == 0:
        raise DerivativeError(
            FailureKind.EMPTY_OUTPUT,
            f"{tool} produced no output at {path}",
            exit_code=result.returncode,
            output=result.output,
        )
    return path


class FrameExtractor:
    """Extracts one still image from a video."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = 120,
                 runner: ToolRunner = None, logger=None, temp_dir: Optional[str] = None):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.temp_dir = temp_dir
        self.logger = logger or structlog.get_logger(__name__)
        self.runner = runner or ToolRunner(self.logger)

    def command(self, source: str, timestamp: float, size_spec: ThumbnailSizeSpec, output: str) -> List[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-i", str(source),
            "-ss", f"{timestamp:.2f}",
            "-vframes", "1",
            "-vf", filter_chain(size_spec),
            "-f", "image2",
            "-q:v", "2",
            str(output),
        ]

    def last_frame_command(self, source: str, size_spec: ThumbnailSizeSpec, output: str) -> List[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-sseof", "-1",
            "-i", str(source),
            "-vframes", "1",
            "-vf", filter_chain(size_spec),
            "-f", "image2",
            "-q:v", "2",
            str(output),
        ]

    def extract(self, source: str, timestamp: float, size_spec: ThumbnailSizeSpec) -> Path:
        """
        Extract the frame at `timestamp` into a fresh temporary JPEG.

        Args:
            source: Video file
            timestamp: Seconds from the start
            size_spec: Output size and strategy

        Returns:
            Path: The still image; the caller owns and removes it

        Raises:
            DerivativeError: TOOL_MISSING, TOOL_EXECUTION_FAILED or EMPTY_OUTPUT
        """
        output = allocate_temp_path(".jpg", self.temp_dir)
        return self._run(self.command(source, timestamp, size_spec, output), output,
                         source=source, position=timestamp, size=size_spec.name)

    def extract_last_frame(self, source: str, size_spec: ThumbnailSizeSpec) -> Path:
        """Extract a frame from the last second of the stream."""
        output = allocate_temp_path(".jpg", self.temp_dir)
        return self._run(self.last_frame_command(source, size_spec, output), output,
                         source=source, position="eof", size=size_spec.name)

    def _run(self, argv: List[str], output: Path, **log_fields) -> Path:
        self.logger.info("Extracting frame", **log_fields)
        try:
            result = self.runner.run(argv, timeout=self.timeout)
            return check_output(output, result, "ffmpeg")
        except DerivativeError as e:
            output.unlink(missing_ok=True)
            self.logger.warning("Frame extraction failed", kind=e.kind.value, reason=e.reason,
                                exit_code=e.exit_code, output=e.output, **log_fields)
            raise
