"""Configuration management using XDG Base Directory Specification.

This module provides centralized configuration management following Linux
standards for config, cache, and data directories.
"""

import configparser
import os
from pathlib import Path
from typing import Optional

from playback.exceptions import ConfigurationError


DEFAULT_API_BASE_URL = 'https://spotapi-ten.vercel.app/api'
TRACK_SOURCES = ('api', 'local')


class Config:
    """
    Configuration manager using XDG Base Directory Specification.

    Follows Linux standards:
    - Config: ~/.config/cloudplayer/ (or XDG_CONFIG_HOME)
    - Cache: ~/.cache/cloudplayer/ (or XDG_CACHE_HOME)
    - Data: ~/.local/share/cloudplayer/ (or XDG_DATA_HOME)
    """

    _instance: Optional['Config'] = None

    def __init__(self) -> None:
        """
        Initialize configuration manager.

        Sets up XDG Base Directory paths and loads or creates configuration.
        """
        if Config._instance is not None:
            return

        # XDG Base Directory paths
        self.config_home = Path(os.getenv('XDG_CONFIG_HOME', Path.home() / '.config'))
        self.cache_home = Path(os.getenv('XDG_CACHE_HOME', Path.home() / '.cache'))
        self.data_home = Path(os.getenv('XDG_DATA_HOME', Path.home() / '.local' / 'share'))

        # Application-specific directories
        self.app_name = 'cloudplayer'
        self.config_dir = self.config_home / self.app_name
        self.cache_dir = self.cache_home / self.app_name
        self.data_dir = self.data_home / self.app_name

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.config_file = self.config_dir / 'config.ini'
        self.config = configparser.ConfigParser()

        self._load_config()

        Config._instance = self

    @classmethod
    def get_instance(cls) -> 'Config':
        """Get the singleton config instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _load_config(self) -> None:
        """Load configuration from file or create defaults."""
        self._apply_defaults()
        if self.config_file.exists():
            try:
                self.config.read(self.config_file)
            except configparser.Error as e:
                raise ConfigurationError(f"Invalid config file {self.config_file}: {e}") from e
        else:
            self.save()

    def _apply_defaults(self) -> None:
        """Populate every section with defaults; the file overrides them."""
        # Remote track API (the web app's REST backend)
        self.config['api'] = {
            'base_url': DEFAULT_API_BASE_URL,
            'timeout': '30',
            'page_size': '50',
            'order': 'newest',
        }

        # Local library provider
        self.config['library'] = {
            'music_dirs': str(Path.home() / 'Music'),
        }

        # Playback engine settings
        self.config['playback'] = {
            'source': 'api',
            'volume': '0.7',
            'autoplay': 'true',
            'restart_threshold': '3.0',
            'load_timeout': '15',
        }

        # Desktop integration
        self.config['mpris'] = {
            'enabled': 'true',
        }

    def save(self) -> None:
        """
        Save configuration to file.

        Writes current configuration state to the config file.
        """
        try:
            with open(self.config_file, 'w') as f:
                self.config.write(f)
        except OSError as e:
            from playback.logging import get_logger
            logger = get_logger(__name__)
            logger.error("Failed to save config: %s", e, exc_info=True)

    def get(self, section: str, key: str, fallback: Optional[str] = None) -> Optional[str]:
        """Get a configuration value."""
        return self.config.get(section, key, fallback=fallback)

    def set(self, section: str, key: str, value: str) -> None:
        """
        Set a configuration value.

        Args:
            section: Configuration section name
            key: Configuration key name
            value: Value to set (will be converted to string)
        """
        if section not in self.config:
            self.config.add_section(section)
        self.config.set(section, key, str(value))
        self.save()

    def get_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get a boolean configuration value."""
        try:
            return self.config.getboolean(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_int(self, section: str, key: str, fallback: int = 0) -> int:
        """Get an integer configuration value."""
        try:
            return self.config.getint(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_float(self, section: str, key: str, fallback: float = 0.0) -> float:
        """Get a float configuration value."""
        try:
            return self.config.getfloat(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_path(self, section: str, key: str, fallback: Optional[Path] = None) -> Optional[Path]:
        """Get a path configuration value."""
        value = self.get(section, key)
        if value:
            return Path(value).expanduser()
        return fallback

    def get_list(self, section: str, key: str, separator: str = ':', fallback: Optional[list[str]] = None) -> list[str]:
        """
        Get a list configuration value (colon separated by default).

        Args:
            section: Configuration section name
            key: Configuration key name
            separator: Separator character (default: ':')
            fallback: Default value if not found

        Returns:
            List of strings
        """
        value = self.get(section, key)
        if value:
            return [item.strip() for item in value.split(separator) if item.strip()]
        return fallback or []

    # Convenience properties
    @property
    def api_base_url(self) -> str:
        """Base URL of the track API, without trailing slash."""
        return (self.get('api', 'base_url') or DEFAULT_API_BASE_URL).rstrip('/')

    @property
    def api_timeout(self) -> float:
        return self.get_float('api', 'timeout', 30.0)

    @property
    def page_size(self) -> int:
        return max(1, self.get_int('api', 'page_size', 50))

    @property
    def api_order(self) -> str:
        return self.get('api', 'order', 'newest')

    @property
    def music_directories(self) -> list[Path]:
        """Get list of existing music directories to scan."""
        dirs = self.get_list('library', 'music_dirs')
        return [Path(d).expanduser() for d in dirs if Path(d).expanduser().exists()]

    @property
    def track_source(self) -> str:
        """Which provider feeds the queue: 'api' or 'local'."""
        source = (self.get('playback', 'source') or 'api').strip().lower()
        if source not in TRACK_SOURCES:
            raise ConfigurationError(f"Unknown track source: {source!r}")
        return source

    @property
    def default_volume(self) -> float:
        return max(0.0, min(1.0, self.get_float('playback', 'volume', 0.7)))

    @property
    def autoplay(self) -> bool:
        return self.get_bool('playback', 'autoplay', True)

    @property
    def restart_threshold(self) -> float:
        """Seconds after which 'previous' restarts the current track."""
        return self.get_float('playback', 'restart_threshold', 3.0)

    @property
    def load_timeout(self) -> float:
        """Seconds to wait for a track to report duration; 0 disables."""
        return max(0.0, self.get_float('playback', 'load_timeout', 15.0))

    @property
    def mpris_enabled(self) -> bool:
        return self.get_bool('mpris', 'enabled', True)


# Convenience function
def get_config() -> Config:
    """Get the configuration instance."""
    return Config.get_instance()
