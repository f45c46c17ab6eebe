"""
Derivative orchestration.

Entry points used by the host job and request layers: thumbnails for one
media item or a whole selection, transcodes through converter profiles, the
ingest hook, and listing/removal of a media item's derivatives.
"""

import os
import shutil
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import structlog
from pydantic import ValidationError

from ..config.settings import Config
from ..errors import DerivativeError, FailureKind
from ..lookup import MediaLookup
from ..models import (
    BulkItemReport,
    BulkSummary,
    ConverterProfile,
    DerivativeArtifact,
    DerivativeKind,
    DerivativeListing,
    DerivativeRequest,
    Failure,
    IngestOutcome,
    MediaClass,
    MediaDescriptor,
    OperationResult,
    OperationStatus,
    StillSourceKind,
    ThumbnailSizeSpec,
    ThumbnailStrategy,
)
from .fanout import ThumbnailFanout
from .frames import FrameExtractor
from .naming import path_for, validate_storage_id
from .probe import Probe
from .runner import ToolRunner
from .store import ArtifactStore, LocalArtifactStore
from .thumbnailers import (
    FfmpegStillThumbnailer,
    ImageMagickThumbnailer,
    ThumbnailerRegistry,
    VideoThumbnailer,
    detect_source_kind,
)
from .transcode import Transcoder


def _new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


def _failed(kind: DerivativeKind, descriptor: MediaDescriptor, stage: str, failure: Failure,
            correlation_id: Optional[str] = None) -> OperationResult:
    return OperationResult(
        status=OperationStatus.FAILED,
        kind=kind,
        media_id=descriptor.id,
        storage_id=descriptor.storage_id,
        failures={stage: failure},
        reason=failure.reason,
        correlation_id=correlation_id,
    )


class DerivativeOrchestrator:
    """
    Sequences probe, extraction, fan-out, transcoding and storage.

    Args:
        config: Settings; defaults apply when omitted
        store: Artifact store; a LocalArtifactStore on config.base_path when omitted
        lookup: Media lookup used by bulk runs
        runner: Tool runner shared by every component
        logger: structlog logger shared by every component
        temp_dir: Directory for intermediate files (system default when omitted)
    """

    def __init__(self, config: Optional[Config] = None, store: Optional[ArtifactStore] = None,
                 lookup: Optional[MediaLookup] = None, runner: Optional[ToolRunner] = None,
                 logger=None, temp_dir: Optional[str] = None):
        self.config = config or Config()
        self.logger = logger or structlog.get_logger(__name__)
        self.runner = runner or ToolRunner(self.logger)
        self.store = store if store is not None else LocalArtifactStore(self.config.base_path, logger=self.logger)
        self.lookup = lookup

        cfg = self.config
        self.probe = Probe(cfg.tool_path('ffprobe'), cfg.timeout('probe'), self.runner, self.logger)
        self.extractor = FrameExtractor(cfg.tool_path('ffmpeg'), cfg.timeout('extract'),
                                        self.runner, self.logger, temp_dir)
        self.image_thumbnailer = ImageMagickThumbnailer(cfg.tool_path('convert'), cfg.timeout('resize'),
                                                        self.runner, self.logger, temp_dir)

        self.registry = ThumbnailerRegistry()
        if cfg.get_setting('thumbnails.resize_tool') == 'ffmpeg':
            self.registry.register(FfmpegStillThumbnailer(cfg.tool_path('ffmpeg'), cfg.timeout('resize'),
                                                          self.runner, self.logger, temp_dir))
        self.registry.register(self.image_thumbnailer)
        self.video_thumbnailer = VideoThumbnailer(self.probe, self.extractor, cfg.thumbnail_percentage,
                                                  cfg.fallback_offset, self.logger)
        self.registry.register(self.video_thumbnailer)

        self.fanout = ThumbnailFanout(self.registry, self.store, fallback=self.image_thumbnailer,
                                      workers=cfg.fanout_workers, logger=self.logger)
        self.transcoder = Transcoder(cfg.tool_path('ffmpeg'), cfg.tool_path('gs'), cfg.timeout('transcode'),
                                     self.runner, self.logger, temp_dir)

    # ===== Support checks =====

    def thumbnail_source_kind(self, descriptor: MediaDescriptor) -> Optional[StillSourceKind]:
        """StillSourceKind of a media item, or None if it cannot be thumbnailed."""
        media_type = (descriptor.media_type or '').lower()
        if media_type.startswith('video/') and media_type not in self.config.video_types:
            return None
        if not (media_type.startswith('video/') or media_type.startswith('image/')):
            return None
        return detect_source_kind(descriptor.source_path, media_type)

    def profiles_for(self, media_type: str) -> List[ConverterProfile]:
        """Enabled converter profiles applicable to a MIME type."""
        media_type = (media_type or '').lower()
        main_type = media_type.split('/', 1)[0]
        if main_type == 'audio':
            return self.config.converter_profiles(MediaClass.AUDIO)
        if main_type == 'video':
            return self.config.converter_profiles(MediaClass.VIDEO)
        if media_type == 'application/pdf':
            return self.config.converter_profiles(MediaClass.PDF)
        return []

    def is_live_eligible(self, descriptor: MediaDescriptor) -> bool:
        """True when the source is small enough to convert within a request."""
        try:
            size = os.path.getsize(descriptor.source_path)
        except OSError:
            return False
        return size <= self.config.max_size_live * 1024 * 1024

    def thumbnail_paths(self, storage_id: str, sizes: Optional[List[ThumbnailSizeSpec]] = None) -> Dict[str, str]:
        sizes = sizes if sizes is not None else self.config.size_specs()
        return {spec.name: path_for(storage_id, DerivativeKind.THUMBNAIL, spec.name) for spec in sizes}

    def _all_ready(self, paths) -> bool:
        for relative_path in paths:
            size = self.store.readable_size(relative_path)
            if not size:
                return False
        return True

    # ===== Thumbnails =====

    def generate_thumbnails(self, descriptor: MediaDescriptor, position_percentage: Optional[int] = None,
                            force_regenerate: bool = False) -> OperationResult:
        """
        Generate every configured thumbnail size for one media item.

        Args:
            descriptor: The media item
            position_percentage: Capture position (0-100) for videos;
                configuration default when None
            force_regenerate: Regenerate even if every size already exists

        Returns:
            OperationResult: ready (some or all sizes stored), skipped, or failed
        """
        correlation_id = _new_correlation_id()
        with structlog.contextvars.bound_contextvars(correlation_id=correlation_id, media_id=descriptor.id):
            result = self._generate_thumbnails(descriptor, position_percentage, force_regenerate, correlation_id)
        return result

    def _generate_thumbnails(self, descriptor, position_percentage, force_regenerate, correlation_id) -> OperationResult:
        kind = DerivativeKind.THUMBNAIL

        def fail(stage: str, error: DerivativeError) -> OperationResult:
            self.logger.error("Thumbnail generation failed", stage=stage, kind=error.kind.value,
                              reason=error.reason, exit_code=error.exit_code, output=error.output)
            return _failed(kind, descriptor, stage, error.to_failure(), correlation_id)

        if not self.config.get_setting('thumbnails.enabled', True):
            return fail('config', DerivativeError(FailureKind.UNSUPPORTED_TYPE, "Thumbnail generation is disabled"))

        if position_percentage is not None and not 0 <= position_percentage <= 100:
            raise ValueError(f"position_percentage must be between 0 and 100, got {position_percentage}")

        source_kind = self.thumbnail_source_kind(descriptor)
        if source_kind is None:
            return fail('validate', DerivativeError(
                FailureKind.UNSUPPORTED_TYPE, f"Unsupported media type for thumbnails: {descriptor.media_type!r}"))

        try:
            storage_id = validate_storage_id(descriptor.storage_id)
        except ValueError as e:
            return fail('validate', DerivativeError(FailureKind.INVALID_STORAGE_ID, str(e)))

        sizes = self.config.size_specs()
        paths = self.thumbnail_paths(storage_id, sizes)
        if not force_regenerate and self._all_ready(paths.values()):
            self.logger.info("Thumbnails already present, skipping", storage_id=storage_id)
            return OperationResult(
                status=OperationStatus.SKIPPED, kind=kind, media_id=descriptor.id, storage_id=storage_id,
                reason="All thumbnails already exist", correlation_id=correlation_id,
            )

        if not os.path.isfile(descriptor.source_path):
            return fail('source', DerivativeError(
                FailureKind.SOURCE_MISSING, f"No original file found at {descriptor.source_path}"))

        self.logger.info("Generating thumbnails", storage_id=storage_id, source=descriptor.source_path,
                         source_kind=source_kind.value, force=force_regenerate)

        if source_kind == StillSourceKind.RAW_VIDEO:
            try:
                still = self._extract_still(descriptor.source_path, position_percentage, sizes)
            except DerivativeError as e:
                return fail('probe' if e.kind in (FailureKind.PROBE_TIMEOUT, FailureKind.UNPARSEABLE) else 'extract', e)
            try:
                outcomes = self.fanout.fanout(str(still), sizes, storage_id,
                                              StillSourceKind.ALREADY_EXTRACTED_IMAGE, media_type='image/jpeg')
            finally:
                still.unlink(missing_ok=True)
        else:
            outcomes = self.fanout.fanout(descriptor.source_path, sizes, storage_id,
                                          source_kind, media_type=descriptor.media_type)

        artifacts = {name: o for name, o in outcomes.items() if isinstance(o, DerivativeArtifact)}
        failures = {name: o for name, o in outcomes.items() if isinstance(o, Failure)}

        if not artifacts:
            self.logger.error("No thumbnail size could be created", storage_id=storage_id,
                              failures={n: f.kind.value for n, f in failures.items()})
            return OperationResult(
                status=OperationStatus.FAILED, kind=kind, media_id=descriptor.id, storage_id=storage_id,
                failures=failures, reason="No thumbnail size could be created", correlation_id=correlation_id,
            )

        reason = None
        if failures:
            reason = f"{len(failures)} of {len(sizes)} sizes failed: {', '.join(failures)}"
            self.logger.warning("Thumbnails partially created", storage_id=storage_id, failed=list(failures))
        else:
            self.logger.info("Thumbnails created", storage_id=storage_id, sizes=list(artifacts))

        return OperationResult(
            status=OperationStatus.READY, kind=kind, media_id=descriptor.id, storage_id=storage_id,
            artifacts=artifacts, failures=failures, reason=reason, correlation_id=correlation_id,
        )

    def _extract_still(self, source: str, position_percentage: Optional[int],
                       sizes: List[ThumbnailSizeSpec]) -> Path:
        """
        Probe, position and extract the frame every size is cut from.

        The still is bounded by the largest configured size. A seek that lands
        past the last frame (fallback offset on a short video, or 100%) is
        clamped to the end of the stream.
        """
        position = self.video_thumbnailer.position(source, position_percentage)

        constraint = max((s.constraint_pixels for s in sizes), default=800)
        master = ThumbnailSizeSpec(name='still', constraint_pixels=constraint, strategy=ThumbnailStrategy.SCALE)
        try:
            return self.extractor.extract(source, position, master)
        except DerivativeError as e:
            # Older ffmpeg exits 0 without a frame, newer ones exit non-zero
            past_end = e.kind == FailureKind.EMPTY_OUTPUT or (
                e.kind == FailureKind.TOOL_EXECUTION_FAILED and not e.timed_out)
            if not past_end or position <= 0:
                raise
            self.logger.info("No frame at position, clamping to end of stream", position=position)
            try:
                return self.extractor.extract_last_frame(source, master)
            except DerivativeError:
                raise e

    def generate_thumbnails_bulk(self, selector: Any = None, force_regenerate: bool = False,
                                 position_percentage: Optional[int] = None,
                                 should_stop: Optional[Callable[[], bool]] = None) -> BulkSummary:
        """
        Generate thumbnails for every media item the lookup returns.

        Items are independent: failures are counted and logged, never raised.
        `should_stop` is polled before each item; already produced artifacts
        stay in place when the run stops early.

        Args:
            selector: Criteria handed to the media lookup
            force_regenerate: Regenerate existing thumbnails
            position_percentage: Capture position for videos
            should_stop: Cancellation signal

        Returns:
            BulkSummary
        """
        if self.lookup is None:
            raise RuntimeError("No media lookup configured for bulk generation")

        bulk_id = f"bulk_{_new_correlation_id()}"
        summary = BulkSummary()
        with structlog.contextvars.bound_contextvars(bulk_id=bulk_id):
            records = self.lookup.search(selector)
            self.logger.info("Starting bulk thumbnail generation", items=len(records),
                             force=force_regenerate, percentage=position_percentage)

            for record in records:
                if should_stop is not None and should_stop():
                    summary.cancelled = True
                    self.logger.info("Bulk generation stopped on request", processed=summary.processed)
                    break

                summary.processed += 1
                try:
                    descriptor = record if isinstance(record, MediaDescriptor) \
                        else MediaDescriptor.from_record(record, self.config.base_path)
                except (ValueError, ValidationError) as e:
                    summary.failed += 1
                    summary.items.append(BulkItemReport(status=OperationStatus.FAILED, reason=f"Invalid record: {e}"))
                    self.logger.error("Invalid media record", error=str(e))
                    continue

                result = self.generate_thumbnails(descriptor, position_percentage, force_regenerate)
                if result.status == OperationStatus.READY:
                    summary.succeeded += 1
                elif result.status == OperationStatus.SKIPPED:
                    summary.skipped += 1
                else:
                    summary.failed += 1
                summary.items.append(BulkItemReport(
                    media_id=descriptor.id, storage_id=descriptor.storage_id,
                    status=result.status, reason=result.reason,
                ))
                self.logger.info("Bulk item done", media_id=descriptor.id, status=result.status.value,
                                 reason=result.reason)

            self.logger.info("Bulk thumbnail generation completed", **summary.counts(),
                             cancelled=summary.cancelled)
        return summary

    # ===== Transcodes =====

    def generate_transcode(self, descriptor: MediaDescriptor, target_format: str,
                           force_regenerate: bool = False) -> OperationResult:
        """
        Convert one media item through a converter profile.

        Args:
            descriptor: The media item
            target_format: Profile key (its folder, e.g. 'webm') or full output template
            force_regenerate: Convert even if the derivative already exists

        Returns:
            OperationResult
        """
        correlation_id = _new_correlation_id()
        with structlog.contextvars.bound_contextvars(correlation_id=correlation_id, media_id=descriptor.id):
            return self._generate_transcode(descriptor, target_format, force_regenerate, correlation_id)

    def _generate_transcode(self, descriptor, target_format, force_regenerate, correlation_id) -> OperationResult:
        kind = DerivativeKind.TRANSCODE

        def fail(stage: str, error: DerivativeError) -> OperationResult:
            self.logger.error("Transcode failed", stage=stage, profile=target_format, kind=error.kind.value,
                              reason=error.reason, exit_code=error.exit_code, output=error.output)
            return _failed(kind, descriptor, stage, error.to_failure(), correlation_id)

        profile = self.config.converter_profile(target_format)
        if profile is None:
            return fail('validate', DerivativeError(
                FailureKind.UNKNOWN_PROFILE, f"Unknown or disabled converter profile {target_format!r}"))

        if profile not in self.profiles_for(descriptor.media_type):
            return fail('validate', DerivativeError(
                FailureKind.UNSUPPORTED_TYPE,
                f"Profile {profile.key!r} does not apply to media type {descriptor.media_type!r}"))

        try:
            storage_id = validate_storage_id(descriptor.storage_id)
        except ValueError as e:
            return fail('validate', DerivativeError(FailureKind.INVALID_STORAGE_ID, str(e)))

        relative_path = path_for(storage_id, kind, profile.output_template)
        if not force_regenerate and self._all_ready([relative_path]):
            self.logger.info("Derivative already present, skipping", path=relative_path)
            return OperationResult(
                status=OperationStatus.SKIPPED, kind=kind, media_id=descriptor.id, storage_id=storage_id,
                reason="Derivative already exists", correlation_id=correlation_id,
            )

        if not os.path.isfile(descriptor.source_path):
            return fail('source', DerivativeError(
                FailureKind.SOURCE_MISSING, f"No original file found at {descriptor.source_path}"))

        try:
            output = self.transcoder.transcode(profile, descriptor.source_path)
        except DerivativeError as e:
            return fail('transcode', e)
        try:
            artifact = self.store.put(output, relative_path)
        except DerivativeError as e:
            return fail('store', e)
        finally:
            shutil.rmtree(output.parent, ignore_errors=True)

        self.logger.info("Derivative created", profile=profile.key, path=relative_path, bytes=artifact.byte_size)
        return OperationResult(
            status=OperationStatus.READY, kind=kind, media_id=descriptor.id, storage_id=storage_id,
            artifacts={profile.key: artifact}, correlation_id=correlation_id,
        )

    def process(self, descriptor: MediaDescriptor, request: DerivativeRequest) -> OperationResult:
        """Run one DerivativeRequest from the host request layer."""
        if request.kind == DerivativeKind.THUMBNAIL:
            return self.generate_thumbnails(descriptor, request.position_percentage, request.force_regenerate)
        if not request.target_format:
            raise ValueError("A transcode request needs a target_format")
        return self.generate_transcode(descriptor, request.target_format, request.force_regenerate)

    # ===== Ingest, listing, removal =====

    def handle_ingest(self, descriptor: MediaDescriptor,
                      enqueue: Optional[Callable[[MediaDescriptor, List[str]], Any]] = None) -> IngestOutcome:
        """
        Create derivatives for a freshly ingested media item.

        Thumbnails are made right away. Transcodes run now when the source is
        below `max_size_live` MB, otherwise their profile keys are handed to
        `enqueue` (the host job system) and reported as deferred.
        """
        outcome = IngestOutcome()
        if self.thumbnail_source_kind(descriptor) is not None:
            outcome.thumbnails = self.generate_thumbnails(descriptor)

        profiles = self.profiles_for(descriptor.media_type)
        if not profiles:
            return outcome

        if self.is_live_eligible(descriptor):
            for profile in profiles:
                outcome.transcodes[profile.key] = self.generate_transcode(descriptor, profile.key)
        else:
            outcome.deferred = [profile.key for profile in profiles]
            if enqueue is not None:
                enqueue(descriptor, outcome.deferred)
                self.logger.info("Transcodes deferred to background", media_id=descriptor.id,
                                 profiles=outcome.deferred)
            else:
                self.logger.warning("Source too large for live conversion and no queue given",
                                    media_id=descriptor.id, profiles=outcome.deferred)
        return outcome

    def list_derivatives(self, descriptor: MediaDescriptor) -> List[DerivativeListing]:
        """Every derivative the media item can have, with readiness."""
        try:
            storage_id = validate_storage_id(descriptor.storage_id)
        except ValueError:
            return []

        listings = []
        if self.thumbnail_source_kind(descriptor) is not None:
            for name, relative_path in self.thumbnail_paths(storage_id).items():
                size = self.store.readable_size(relative_path)
                listings.append(DerivativeListing(
                    key=name, kind=DerivativeKind.THUMBNAIL, relative_path=relative_path,
                    ready=bool(size), byte_size=size, mode='live',
                ))

        mode = 'live' if self.is_live_eligible(descriptor) else 'background'
        for profile in self.profiles_for(descriptor.media_type):
            relative_path = path_for(storage_id, DerivativeKind.TRANSCODE, profile.output_template)
            size = self.store.readable_size(relative_path)
            listings.append(DerivativeListing(
                key=profile.key, kind=DerivativeKind.TRANSCODE, relative_path=relative_path,
                ready=bool(size), byte_size=size, mode=mode,
            ))
        return listings

    def remove_derivatives(self, descriptor: MediaDescriptor) -> List[str]:
        """Delete every stored derivative of a media item; returns the removed paths."""
        removed = []
        for listing in self.list_derivatives(descriptor):
            if listing.ready and self.store.delete(listing.relative_path):
                removed.append(listing.relative_path)
        self.logger.info("Removed derivatives", media_id=descriptor.id, count=len(removed))
        return removed

    # ===== Tools =====

    def tool_status(self) -> Dict[str, bool]:
        """Availability of each configured binary."""
        timeout = self.config.timeout('version')
        return {
            'ffmpeg': self.runner.is_available(self.config.tool_path('ffmpeg'), '-version', timeout),
            'ffprobe': self.runner.is_available(self.config.tool_path('ffprobe'), '-version', timeout),
            'convert': self.runner.is_available(self.config.tool_path('convert'), '-version', timeout),
            'gs': self.runner.is_available(self.config.tool_path('gs'), '--version', timeout),
        }

    def is_tool_available(self) -> bool:
        """True when the probe and frame extraction binaries both run."""
        timeout = self.config.timeout('version')
        return (self.runner.is_available(self.config.tool_path('ffmpeg'), '-version', timeout)
                and self.runner.is_available(self.config.tool_path('ffprobe'), '-version', timeout))
