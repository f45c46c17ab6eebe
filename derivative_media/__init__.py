"""
Derivative media generation.

This package produces derived files from stored originals:
- Thumbnails in several sizes, from images or from a frame of a video
- Transcodes of audio, video and PDF originals through converter profiles

External tools (ffprobe, ffmpeg, ImageMagick convert, ghostscript) do the
media work; the package decides what to run, where results go and how
failures are reported.
"""

__version__ = "0.1.0"

from .errors import DerivativeError, FailureKind
from .models import (
    DerivativeArtifact,
    DerivativeKind,
    MediaDescriptor,
    OperationResult,
    OperationStatus,
    ThumbnailSizeSpec,
    ThumbnailStrategy,
)
from .derivatives import DerivativeOrchestrator, LocalArtifactStore, path_for
