"""
Configuration package for derivative media.

Re-exports all configuration components.
"""

from .constants import (
    DEFAULT_SETTINGS,
    FALLBACK_OFFSET_SECONDS,
    MAX_FANOUT_WORKERS,
    STILL_IMAGE_EXTENSIONS,
    VIDEO_TYPES,
)
from .settings import Config, load_config
from .logging import setup_logging, console

__all__ = [
    # Constants
    'DEFAULT_SETTINGS',
    'FALLBACK_OFFSET_SECONDS',
    'MAX_FANOUT_WORKERS',
    'STILL_IMAGE_EXTENSIONS',
    'VIDEO_TYPES',

    # Classes
    'Config',

    # Functions and objects
    'load_config',
    'setup_logging',
    'console',
]
