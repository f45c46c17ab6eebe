"""
Media lookup for bulk runs.

The host normally provides the lookup; DirectoryMediaLookup covers a plain
local store by scanning `{base_path}/original`.
"""

import mimetypes
import os
from typing import Any, Dict, List, Optional, Protocol

import structlog

from .models import MediaDescriptor

logger = structlog.get_logger(__name__)

# Types mimetypes does not know everywhere
EXTRA_TYPES = {
    '.mkv': 'video/x-matroska',
    '.webm': 'video/webm',
    '.m4v': 'video/x-m4v',
    '.opus': 'audio/ogg',
}


class MediaLookup(Protocol):
    def search(self, criteria: Any) -> List[Any]: ...


def guess_media_type(path: str) -> Optional[str]:
    extension = os.path.splitext(path)[1].lower()
    if extension in EXTRA_TYPES:
        return EXTRA_TYPES[extension]
    media_type, _ = mimetypes.guess_type(path)
    return media_type


def _matches(media_type: Optional[str], wanted: List[str]) -> bool:
    if not wanted:
        return True
    if not media_type:
        return False
    for pattern in wanted:
        if pattern.endswith('/*') or pattern.endswith('/'):
            if media_type.startswith(pattern.rstrip('*')):
                return True
        elif media_type == pattern:
            return True
    return False


class DirectoryMediaLookup:
    """Lists originals stored under `{base_path}/original`."""

    def __init__(self, base_path: str, recursive: bool = True):
        self.base_path = base_path
        self.recursive = recursive

    @property
    def original_dir(self) -> str:
        return os.path.join(self.base_path, 'original')

    def search(self, criteria: Optional[Dict[str, Any]] = None) -> List[MediaDescriptor]:
        """
        Scan the original directory.

        Args:
            criteria: Optional dict with 'media_types' (list of MIME types or
                'type/*' patterns) and 'limit'

        Returns:
            List[MediaDescriptor], sorted by storage id
        """
        criteria = criteria or {}
        wanted = list(criteria.get('media_types') or [])
        limit = criteria.get('limit')

        logger.info("Scanning original directory", directory=self.original_dir, recursive=self.recursive)
        if not os.path.isdir(self.original_dir):
            logger.warning("Original directory not found", directory=self.original_dir)
            return []

        found = []
        for root, dirs, files in os.walk(self.original_dir):
            dirs.sort()
            for file in sorted(files):
                if file.startswith('.'):
                    continue
                path = os.path.join(root, file)
                media_type = guess_media_type(path)
                if not _matches(media_type, wanted):
                    continue
                relative = os.path.relpath(path, self.original_dir).replace(os.sep, '/')
                storage_id = os.path.splitext(relative)[0]
                found.append(MediaDescriptor(
                    id=storage_id,
                    storage_id=storage_id,
                    media_type=media_type or 'application/octet-stream',
                    source_path=path,
                    filename=file,
                ))
            if not self.recursive:
                dirs.clear()

        found.sort(key=lambda d: d.storage_id)
        if limit:
            found = found[:int(limit)]
        logger.info("Original directory scan complete", count=len(found))
        return found
