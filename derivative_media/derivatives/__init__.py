"""
Derivative generation components.

Re-exports the tool wrappers, thumbnailers, storage and the orchestrator.
"""

from .runner import ToolRunner, ToolResult
from .probe import Probe
from .frames import FrameExtractor, filter_chain
from .thumbnailers import (
    FfmpegStillThumbnailer,
    ImageMagickThumbnailer,
    Thumbnailer,
    ThumbnailerRegistry,
    VideoThumbnailer,
    detect_source_kind,
)
from .fanout import ThumbnailFanout, image_dimensions
from .naming import original_path, path_for, stem_of, validate_storage_id
from .store import ArtifactStore, LocalArtifactStore
from .transcode import Transcoder
from .orchestrator import DerivativeOrchestrator

__all__ = [
    # Tools
    'ToolRunner',
    'ToolResult',
    'Probe',
    'FrameExtractor',
    'filter_chain',
    'Transcoder',

    # Thumbnails
    'Thumbnailer',
    'ThumbnailerRegistry',
    'ImageMagickThumbnailer',
    'FfmpegStillThumbnailer',
    'VideoThumbnailer',
    'ThumbnailFanout',
    'detect_source_kind',
    'image_dimensions',

    # Naming and storage
    'path_for',
    'stem_of',
    'validate_storage_id',
    'original_path',
    'ArtifactStore',
    'LocalArtifactStore',

    'DerivativeOrchestrator',
]
