"""
Thumbnail fan-out: every configured size from one source.

Each size is attempted on its own; one size failing never stops the others.
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

import structlog
from PIL import Image, UnidentifiedImageError

from ..config.constants import MAX_FANOUT_WORKERS
from ..errors import DerivativeError, FailureKind
from ..models import DerivativeArtifact, DerivativeKind, Failure, StillSourceKind, ThumbnailSizeSpec
from .naming import path_for
from .store import ArtifactStore
from .thumbnailers import ImageMagickThumbnailer, ThumbnailerRegistry

SizeOutcome = Union[DerivativeArtifact, Failure]


def image_dimensions(path: Union[str, Path]):
    """(width, height) of an image, or (None, None) if Pillow cannot read it."""
    try:
        with Image.open(path) as img:
            return img.size
    except (UnidentifiedImageError, OSError):
        return None, None


class ThumbnailFanout:
    """Produces and stores one thumbnail per configured size."""

    def __init__(self, registry: ThumbnailerRegistry, store: ArtifactStore,
                 fallback: Optional[ImageMagickThumbnailer] = None,
                 workers: int = 1, logger=None):
        self.registry = registry
        self.store = store
        self.fallback = fallback
        self.workers = max(1, min(int(workers), MAX_FANOUT_WORKERS))
        self.logger = logger or structlog.get_logger(__name__)

    def fanout(self, still_path: str, size_specs: Sequence[ThumbnailSizeSpec], storage_id: str,
               source_kind: StillSourceKind = StillSourceKind.ALREADY_EXTRACTED_IMAGE,
               media_type: Optional[str] = None,
               options: Optional[dict] = None) -> Dict[str, SizeOutcome]:
        """
        Create, then store, every size.

        Args:
            still_path: Source still (or video for RAW_VIDEO)
            size_specs: Sizes, in the order results are reported
            storage_id: Storage id used for the derivative paths
            source_kind: How to treat still_path
            media_type: MIME type of still_path, if known
            options: Passed to the thumbnailer (e.g. capture position)

        Returns:
            Dict mapping size name to DerivativeArtifact or Failure
        """
        thumbnailer = self.registry.for_kind(source_kind)
        self.logger.info("Creating thumbnails", source=str(still_path), thumbnailer=thumbnailer.name,
                         sizes=[s.name for s in size_specs], workers=self.workers)

        def _one(size_spec: ThumbnailSizeSpec) -> SizeOutcome:
            return self._create_size(thumbnailer, still_path, size_spec, storage_id,
                                     source_kind, media_type, options)

        if self.workers == 1 or len(size_specs) <= 1:
            outcomes = [_one(spec) for spec in size_specs]
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                outcomes = list(pool.map(_one, size_specs))

        return {spec.name: outcome for spec, outcome in zip(size_specs, outcomes)}

    def _create_size(self, thumbnailer, source, size_spec, storage_id,
                     source_kind, media_type, options) -> SizeOutcome:
        relative_path = path_for(storage_id, DerivativeKind.THUMBNAIL, size_spec.name)
        created = None
        try:
            try:
                created = thumbnailer.create(source, size_spec, media_type=media_type, options=options)
            except DerivativeError as e:
                if self.fallback is None or source_kind == StillSourceKind.RAW_VIDEO \
                        or e.kind == FailureKind.SOURCE_MISSING:
                    raise
                self.logger.warning("Thumbnailer failed, trying manual fallback",
                                    size=size_spec.name, kind=e.kind.value, reason=e.reason)
                try:
                    created = self.fallback.create_with_fallbacks(source, size_spec)
                except DerivativeError as fallback_error:
                    # Report the primary failure, it carries the useful diagnostics
                    raise DerivativeError(
                        e.kind,
                        f"{e.reason}; fallback: {fallback_error.reason}",
                        exit_code=e.exit_code,
                        output=e.output,
                    )

            artifact = self.store.put(created, relative_path)
            width, height = image_dimensions(created)
            artifact = artifact.model_copy(update={'width': width, 'height': height})
            self.logger.info("Stored thumbnail", size=size_spec.name, path=relative_path,
                             bytes=artifact.byte_size, width=width, height=height)
            return artifact
        except DerivativeError as e:
            self.logger.error("Thumbnail size failed", size=size_spec.name, kind=e.kind.value,
                              reason=e.reason, exit_code=e.exit_code, output=e.output)
            return e.to_failure()
        finally:
            if created is not None:
                Path(created).unlink(missing_ok=True)
