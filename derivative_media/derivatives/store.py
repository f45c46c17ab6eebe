"""
Artifact storage.

LocalArtifactStore mirrors the host's local file store: derivatives live at
`{base_path}/{relative_path}`, world-readable, written atomically.
"""

import datetime
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Protocol, Union, runtime_checkable

import structlog

from ..errors import DerivativeError, FailureKind
from ..models import DerivativeArtifact

FILE_MODE = 0o644
DIR_MODE = 0o755


@runtime_checkable
class ArtifactStore(Protocol):
    """What the orchestrator needs from a byte store."""

    def put(self, source: Union[bytes, str, Path], relative_path: str) -> DerivativeArtifact: ...

    def exists(self, relative_path: str) -> bool: ...

    def readable_size(self, relative_path: str) -> Optional[int]: ...

    def get_local_path(self, relative_path: str) -> Optional[str]: ...

    def delete(self, relative_path: str) -> bool: ...


class LocalArtifactStore:
    """Derivative store on the local filesystem."""

    def __init__(self, base_path: Union[str, Path], logger=None):
        self.base_path = Path(base_path)
        self.logger = logger or structlog.get_logger(__name__)

    def _resolve(self, relative_path: str) -> Path:
        target = (self.base_path / relative_path).resolve()
        root = self.base_path.resolve()
        if root not in target.parents:
            raise DerivativeError(FailureKind.WRITE_ERROR, f"Path {relative_path!r} escapes the store root")
        return target

    def put(self, source: Union[bytes, str, Path], relative_path: str) -> DerivativeArtifact:
        """
        Store bytes or the content of a file at `relative_path`.

        The content is written to a temp file in the target directory and
        renamed over the target, so readers never see a partial file.

        Args:
            source: Raw bytes or a path to copy from
            relative_path: Canonical derivative path

        Returns:
            DerivativeArtifact

        Raises:
            DerivativeError: WRITE_ERROR on any I/O failure
        """
        target = self._resolve(relative_path)
        tmp_path = None
        try:
            self._makedirs(target.parent)
            fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=str(target.parent))
            with os.fdopen(fd, 'wb') as out:
                if isinstance(source, (bytes, bytearray)):
                    out.write(source)
                else:
                    with open(source, 'rb') as src:
                        shutil.copyfileobj(src, out)
            os.chmod(tmp_path, FILE_MODE)
            os.replace(tmp_path, target)
            tmp_path = None
        except OSError as e:
            self.logger.error("Failed to store artifact", path=relative_path, error=str(e))
            raise DerivativeError(FailureKind.WRITE_ERROR, f"Cannot write {relative_path}: {e}")
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        stat = target.stat()
        self.logger.debug("Stored artifact", path=relative_path, size=stat.st_size)
        return DerivativeArtifact(
            relative_path=relative_path,
            byte_size=stat.st_size,
            created_at=datetime.datetime.fromtimestamp(stat.st_mtime),
            local_path=str(target),
        )

    def _makedirs(self, directory: Path) -> None:
        missing = []
        current = directory
        while not current.exists():
            missing.append(current)
            current = current.parent
        for path in reversed(missing):
            path.mkdir(exist_ok=True)
            os.chmod(path, DIR_MODE)

    def exists(self, relative_path: str) -> bool:
        return self._resolve(relative_path).is_file()

    def readable_size(self, relative_path: str) -> Optional[int]:
        path = self._resolve(relative_path)
        if not path.is_file() or not os.access(path, os.R_OK):
            return None
        return path.stat().st_size

    def get_local_path(self, relative_path: str) -> Optional[str]:
        path = self._resolve(relative_path)
        return str(path) if path.is_file() else None

    def delete(self, relative_path: str) -> bool:
        path = self._resolve(relative_path)
        if not path.is_file():
            return False
        path.unlink()
        self.logger.info("Deleted artifact", path=relative_path)
        return True
