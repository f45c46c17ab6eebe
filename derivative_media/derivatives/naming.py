"""
Derivative path naming.

Pure functions only: the same inputs always give the same relative path, so
generation and serving agree on where a derivative lives without a shared
record.
"""

import os
import re
from typing import Union

from ..models import DerivativeKind

_ALLOWED = re.compile(r'[\w\-./]+')


def validate_storage_id(storage_id: str) -> str:
    """
    Check that a storage id can be used verbatim in derivative paths.

    Ids are never rewritten: two different ids must not share a path.

    Raises:
        ValueError: if the id is empty, holds characters outside [\\w-./],
            or has an empty, '.' or '..' segment
    """
    if not storage_id:
        raise ValueError("Storage id is empty")
    if not _ALLOWED.fullmatch(storage_id):
        raise ValueError(f"Storage id {storage_id!r} contains characters outside [\\w-./]")
    if any(part in ('', '.', '..') for part in storage_id.split('/')):
        raise ValueError(f"Storage id {storage_id!r} contains an invalid path segment")
    return storage_id


def has_extension(storage_id: str) -> bool:
    return bool(os.path.splitext(os.path.basename(storage_id))[1])


def stem_of(storage_id: str) -> str:
    """Storage id without its extension, sub-path kept."""
    directory, base = os.path.split(storage_id)
    stem = os.path.splitext(base)[0]
    return f"{directory}/{stem}" if directory else stem


def path_for(storage_id_or_stem: str, kind: Union[DerivativeKind, str], name: str) -> str:
    """
    Canonical relative path of a derivative.

    Args:
        storage_id_or_stem: Storage id (thumbnails) or stem (transcodes)
        kind: DerivativeKind
        name: Size name (thumbnails) or converter output template (transcodes)

    Returns:
        str: e.g. 'square/215/abcdef.jpg' or 'mp4/215/abcdef.mp4'

    Raises:
        ValueError: for an unknown kind
    """
    kind = DerivativeKind(kind)
    if kind == DerivativeKind.THUMBNAIL:
        return f"{name}/{storage_id_or_stem}.jpg"
    # Transcode: the output template carries folder and extension
    return name.replace('{filename}', stem_of(storage_id_or_stem))


def original_path(base_path: str, storage_id: str, filename: str) -> str:
    """Location of the original file under the host storage layout."""
    if has_extension(storage_id):
        return f"{base_path}/original/{storage_id}"
    extension = os.path.splitext(filename or '')[1].lstrip('.')
    if not extension:
        return f"{base_path}/original/{storage_id}"
    return f"{base_path}/original/{storage_id}.{extension}"
