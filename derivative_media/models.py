"""
Models for derivative media generation.

Contains all Pydantic models used for requests, results and JSON output.
"""

import datetime
import os
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import FailureKind

# ===== Enums =====

class DerivativeKind(str, Enum):
    THUMBNAIL = "thumbnail"
    TRANSCODE = "transcode"

class ThumbnailStrategy(str, Enum):
    SCALE = "scale"
    SQUARE_CROP = "square-crop"

class StillSourceKind(str, Enum):
    """What a thumbnail source is, decided once at entry."""
    RAW_VIDEO = "raw_video"
    ALREADY_EXTRACTED_IMAGE = "already_extracted_image"
    GENERIC_IMAGE = "generic_image"

class MediaClass(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"
    PDF = "pdf"

class OperationStatus(str, Enum):
    READY = "ready"
    FAILED = "failed"
    SKIPPED = "skipped"

# ===== Input Models =====

class MediaDescriptor(BaseModel):
    """One source media item as handed over by the host."""
    model_config = ConfigDict(frozen=True)

    storage_id: str
    media_type: str
    source_path: str
    filename: str
    id: Optional[Any] = None

    @classmethod
    def from_record(cls, record: Any, base_path: Optional[str] = None) -> "MediaDescriptor":
        """
        Build a descriptor from a host media record.

        Args:
            record: Mapping or object exposing id, media_type, storage_id,
                filename and optionally source_path
            base_path: Storage root used to resolve source_path when missing

        Returns:
            MediaDescriptor
        """
        def _field(name: str) -> Any:
            if isinstance(record, dict):
                return record.get(name)
            return getattr(record, name, None)

        storage_id = _field('storage_id') or ''
        filename = _field('filename') or ''
        source_path = _field('source_path')
        if not source_path:
            if base_path is None:
                raise ValueError(f"Record {_field('id')!r} has no source_path and no base_path was given")
            from .derivatives.naming import original_path
            source_path = original_path(base_path, storage_id, filename)

        return cls(
            id=_field('id'),
            storage_id=storage_id,
            media_type=_field('media_type') or '',
            source_path=str(source_path),
            filename=filename,
        )

class DerivativeRequest(BaseModel):
    kind: DerivativeKind
    position_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    force_regenerate: bool = False
    target_format: Optional[str] = None

class ThumbnailSizeSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    constraint_pixels: int = Field(gt=0)
    strategy: ThumbnailStrategy = ThumbnailStrategy.SCALE

class ConverterProfile(BaseModel):
    """An output path template and the tool arguments producing it."""
    model_config = ConfigDict(frozen=True)

    output_template: str
    arguments: str
    media_class: MediaClass

    @property
    def folder(self) -> str:
        return self.output_template.split('/', 1)[0]

    @property
    def key(self) -> str:
        return self.folder

    @property
    def extension(self) -> str:
        return os.path.splitext(self.output_template)[1].lstrip('.')

# ===== Output Models =====

class Failure(BaseModel):
    kind: FailureKind
    reason: str
    exit_code: Optional[int] = None
    output: Optional[str] = None

class DerivativeArtifact(BaseModel):
    relative_path: str
    byte_size: int
    created_at: datetime.datetime = Field(default_factory=datetime.datetime.now)
    local_path: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def ready(self) -> bool:
        return self.byte_size > 0

class OperationResult(BaseModel):
    """Outcome of one single-item operation."""
    status: OperationStatus
    kind: DerivativeKind
    media_id: Optional[Any] = None
    storage_id: Optional[str] = None
    artifacts: Dict[str, DerivativeArtifact] = Field(default_factory=dict)
    failures: Dict[str, Failure] = Field(default_factory=dict)
    reason: Optional[str] = None
    correlation_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status != OperationStatus.FAILED

    @property
    def partial(self) -> bool:
        return self.status == OperationStatus.READY and bool(self.failures)

    @property
    def failure_kind(self) -> Optional[FailureKind]:
        if self.status != OperationStatus.FAILED or not self.failures:
            return None
        return next(iter(self.failures.values())).kind

class BulkItemReport(BaseModel):
    media_id: Optional[Any] = None
    storage_id: Optional[str] = None
    status: OperationStatus
    reason: Optional[str] = None

class BulkSummary(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    items: List[BulkItemReport] = Field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        return {
            'processed': self.processed,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'skipped': self.skipped,
        }

class DerivativeListing(BaseModel):
    """One derivative a media item can have, and whether it is on disk."""
    key: str
    kind: DerivativeKind
    relative_path: str
    ready: bool = False
    byte_size: Optional[int] = None
    mode: str = "live"

class IngestOutcome(BaseModel):
    thumbnails: Optional[OperationResult] = None
    transcodes: Dict[str, OperationResult] = Field(default_factory=dict)
    deferred: List[str] = Field(default_factory=list)
