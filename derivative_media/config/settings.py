"""
Settings management for derivative media.

Provides configuration handling and typed accessors over it.
"""

import copy
import json
import os
from typing import Any, Dict, List, Optional

from .constants import DEFAULT_SETTINGS, ENV_OVERRIDES, MAX_FANOUT_WORKERS
from ..models import ConverterProfile, MediaClass, ThumbnailSizeSpec, ThumbnailStrategy


class Config:
    """
    A simple configuration class to hold and provide settings.
    """
    def __init__(self, config_data: Dict[str, Any] = None):
        """
        Initialize the configuration.

        Defaults are deep-copied first, so config_data only needs to hold
        overrides.

        Args:
            config_data: Initial configuration data
        """
        self._config = copy.deepcopy(DEFAULT_SETTINGS)
        if config_data:
            self.update_config(config_data)

    def get_setting(self, key: str, default: Any = None) -> Any:
        """
        Retrieves a setting value by key.
        Uses dot notation for nested keys (e.g., 'thumbnails.percentage').

        Args:
            key: The key to retrieve
            default: Default value if key is not found

        Returns:
            The setting value or default
        """
        keys = key.split('.')
        value = self._config
        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set_setting(self, key: str, value: Any) -> None:
        """
        Sets a setting value by key.
        Uses dot notation for nested keys.

        Args:
            key: The key to set
            value: The value to set
        """
        keys = key.split('.')
        d = self._config
        for k in keys[:-1]:
            d = d.setdefault(k, {})
        d[keys[-1]] = value

    def update_config(self, new_config_data: Dict[str, Any]) -> None:
        """
        Merges new configuration data into the existing configuration.

        Converter tables are replaced as a whole rather than merged, since
        their order is significant.

        Args:
            new_config_data: New configuration data to merge
        """
        def _deep_update(source: Dict[str, Any], overrides: Dict[str, Any], path: str = '') -> Dict[str, Any]:
            for key, value in overrides.items():
                full_key = f"{path}.{key}" if path else key
                if (isinstance(value, dict) and key in source and isinstance(source[key], dict)
                        and path != 'converters'):
                    _deep_update(source[key], value, full_key)
                else:
                    source[key] = value
            return source
        self._config = _deep_update(self._config, new_config_data)

    # ----- Typed accessors -----

    @property
    def base_path(self) -> str:
        return str(self.get_setting('base_path'))

    def tool_path(self, name: str) -> str:
        return str(self.get_setting(f'tools.{name}', name))

    def timeout(self, name: str) -> float:
        return float(self.get_setting(f'timeouts.{name}', 60))

    @property
    def thumbnail_percentage(self) -> int:
        return int(self.get_setting('thumbnails.percentage', 25))

    @property
    def fallback_offset(self) -> float:
        return float(self.get_setting('thumbnails.fallback_offset'))

    @property
    def fanout_workers(self) -> int:
        workers = int(self.get_setting('thumbnails.workers', 1) or 1)
        return max(1, min(workers, MAX_FANOUT_WORKERS))

    @property
    def video_types(self) -> List[str]:
        return list(self.get_setting('thumbnails.video_types', []))

    @property
    def max_size_live(self) -> float:
        return float(self.get_setting('max_size_live', 0))

    def size_specs(self) -> List[ThumbnailSizeSpec]:
        """Configured thumbnail sizes, in configuration order."""
        return [
            ThumbnailSizeSpec(
                name=size['name'],
                constraint_pixels=int(size['constraint']),
                strategy=ThumbnailStrategy(size.get('strategy', 'scale')),
            )
            for size in self.get_setting('thumbnails.sizes', [])
        ]

    def is_enabled(self, media_class: MediaClass) -> bool:
        return MediaClass(media_class).value in (self.get_setting('enable') or [])

    def converter_profiles(self, media_class: Optional[MediaClass] = None) -> List[ConverterProfile]:
        """
        Enabled converter profiles, in table order.

        Entries whose template starts with '#' or whose arguments are empty are
        comments and are skipped.

        Args:
            media_class: Restrict to one media class

        Returns:
            List[ConverterProfile]
        """
        classes = [MediaClass(media_class)] if media_class else list(MediaClass)
        profiles = []
        for cls in classes:
            if not self.is_enabled(cls):
                continue
            table = self.get_setting(f'converters.{cls.value}') or {}
            for template, arguments in table.items():
                template = template.strip()
                if not template or template.startswith('#') or not arguments:
                    continue
                profiles.append(ConverterProfile(
                    output_template=template,
                    arguments=arguments,
                    media_class=cls,
                ))
        return profiles

    def converter_profile(self, key: str) -> Optional[ConverterProfile]:
        for profile in self.converter_profiles():
            if key in (profile.key, profile.output_template):
                return profile
        return None

    def __repr__(self) -> str:
        return f"Config(config_data={self._config})"


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Config:
    """
    Build a Config from defaults, an optional JSON file and the environment.

    Args:
        path: Optional JSON settings file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Config
    """
    config = Config()
    if path:
        with open(path, 'r', encoding='utf-8') as f:
            config.update_config(json.load(f))

    environ = os.environ if environ is None else environ
    for env_key, setting_key in ENV_OVERRIDES.items():
        value = environ.get(env_key)
        if value:
            current = config.get_setting(setting_key)
            if isinstance(current, (int, float)) and not isinstance(current, bool):
                value = type(current)(value)
            config.set_setting(setting_key, value)
    return config
