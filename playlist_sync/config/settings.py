"""
Configuration management for playlist-sync

This module loads application settings from YAML files and environment
variables. Settings are organized into dataclass sections:
- Download preferences (output directory, format, quality, pacing)
- Spotify web API constants (endpoint, client version, page size)
- YouTube Music search (cookie jar, query cache)
- Synchronization (playlist list, interval, state directories)
- Metadata tagging, logging and network behaviour

Environment variables (optionally from a .env file) take precedence over the
YAML file, so a deployment can be configured entirely through the environment.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, asdict
from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/141.0.0.0 Safari/537.36"
)


@dataclass
class DownloadConfig:
    """
    Download configuration settings

    Controls where audio files are written, which format yt-dlp transcodes to,
    and how long to pause between consecutive downloads.
    """
    output_directory: str = "mp3s"
    format: str = "mp3"  # mp3, flac, m4a
    quality: str = "0"   # ffmpeg VBR quality, 0 = best
    timeout: int = 60
    retry_attempts: int = 3
    delay_min: float = 2.0
    delay_max: float = 3.0


@dataclass
class SpotifyConfig:
    """
    Spotify web player API constants

    These values mirror what the web player sends. They change when Spotify
    ships a new web player and can be overridden without a code change.
    """
    graphql_endpoint: str = "https://api-partner.spotify.com/pathfinder/v2/query"
    embed_url: str = "https://open.spotify.com/embed/playlist/37i9dQZF1DXcBWIGoYBM5M"
    client_token_url: str = "https://clienttoken.spotify.com/v1/clienttoken"
    client_id: str = "d8a5ed958d274c2e8ee717e6a4b0971d"
    client_version: str = "1.2.77.2.g23d1d0ed"
    page_size: int = 100


@dataclass
class YTMusicConfig:
    """YouTube Music search configuration"""
    cookies_file: str = "cookies.txt"
    accept_language: str = "en-US,en;q=0.9"
    query_cache_size: int = 0  # 0 = unbounded for the lifetime of one run


@dataclass
class SyncConfig:
    """
    Synchronization configuration

    Lists the playlists synchronized by the ``sync`` command and where the
    per-playlist state, export and cover files live.
    """
    playlist_ids: List[str] = field(default_factory=list)
    interval_hours: float = 6.0
    data_directory: str = "data"
    playlists_directory: str = "playlists"
    covers_directory: str = "covers"
    on_corrupt_state: str = "fail"  # fail, resync


@dataclass
class MetadataConfig:
    """Metadata and tag writing configuration"""
    include_cover_art: bool = True
    id3_version: str = "2.3"
    add_comment: bool = True


@dataclass
class LoggingConfig:
    """
    Logging configuration and output settings

    ``file`` is resolved relative to the configuration directory unless it is
    an absolute path. An empty value disables file logging.
    """
    level: str = "INFO"
    file: str = ""
    max_size: str = "50MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


@dataclass
class NetworkConfig:
    """
    Network and HTTP configuration settings

    ``request_timeout`` applies to every HTTP call; timeouts and connection
    errors are retried ``max_retries`` times with exponential backoff starting
    at ``retry_delay`` seconds.
    """
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: int = 30
    max_retries: int = 3
    retry_delay: float = 1.0


class Settings:
    """
    Main settings class that manages all configuration

    Loads settings from the first YAML file found, then applies environment
    variable overrides. Directories are created on demand through
    ``ensure_directories`` rather than at construction time.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize settings from config file and environment variables

        Args:
            config_path: Path to custom config file, if None uses default locations
        """
        self.config_path = config_path
        self.config_dir = Path.home() / ".playlist-sync"

        self.download = DownloadConfig()
        self.spotify = SpotifyConfig()
        self.ytmusic = YTMusicConfig()
        self.sync = SyncConfig()
        self.metadata = MetadataConfig()
        self.logging = LoggingConfig()
        self.network = NetworkConfig()

        self._load_config()
        self._load_environment_variables()

    def _load_config(self) -> None:
        """
        Load configuration from YAML file

        Searches the explicit path first, then the user configuration directory
        and the working directory. The first file found wins.
        """
        config_paths = [
            self.config_path,
            self.config_dir / "config.yaml",
            Path("config/config.yaml"),
            Path("config.yaml")
        ]

        config_data = {}
        for path in config_paths:
            if path and Path(path).exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        config_data = yaml.safe_load(f) or {}
                    break
                except (OSError, yaml.YAMLError) as e:
                    print(f"Warning: Failed to load config from {path}: {e}")

        self._apply_config(config_data)

    def _sections(self) -> Dict[str, Any]:
        return {
            'download': self.download,
            'spotify': self.spotify,
            'ytmusic': self.ytmusic,
            'sync': self.sync,
            'metadata': self.metadata,
            'logging': self.logging,
            'network': self.network,
        }

    def _apply_config(self, config_data: Dict[str, Any]) -> None:
        """
        Apply configuration data to dataclass instances

        Only keys that exist on the target dataclass are applied; unknown
        sections and keys are ignored.

        Args:
            config_data: Dictionary containing configuration sections
        """
        config_mapping = self._sections()

        for section_name, section_data in config_data.items():
            if section_name in config_mapping and isinstance(section_data, dict):
                config_obj = config_mapping[section_name]
                for key, value in section_data.items():
                    if hasattr(config_obj, key):
                        setattr(config_obj, key, value)

        if isinstance(self.sync.playlist_ids, str):
            self.sync.playlist_ids = parse_playlist_ids(self.sync.playlist_ids)

    def _load_environment_variables(self) -> None:
        """
        Load configuration overrides from environment variables

        Environment variables take precedence over file-based configuration.
        """
        env_mappings = {
            'OUTPUT_DIR': lambda v: setattr(self.download, 'output_directory', v),
            'YOUTUBE_MUSIC_COOKIES': lambda v: setattr(self.ytmusic, 'cookies_file', v),
            'PLAYLIST_IDS': lambda v: setattr(self.sync, 'playlist_ids', parse_playlist_ids(v)),
            'SYNC_INTERVAL_HOURS': lambda v: setattr(self.sync, 'interval_hours', float(v)),
            'LOG_LEVEL': lambda v: setattr(self.logging, 'level', v.upper()),
        }

        for env_var, setter in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                try:
                    setter(value)
                except ValueError:
                    print(f"Warning: Ignoring invalid value for {env_var}: {value!r}")

    def ensure_directories(self) -> None:
        """Create the output, state, export and cover directories if missing"""
        for directory in (
            self.get_output_directory(),
            self.get_data_directory(),
            self.get_playlists_directory(),
            self.get_covers_directory(),
        ):
            directory.mkdir(parents=True, exist_ok=True)

    def get_output_directory(self) -> Path:
        """Get the expanded output directory path"""
        return Path(self.download.output_directory).expanduser()

    def get_data_directory(self) -> Path:
        """Get the directory holding per-playlist state files"""
        return Path(self.sync.data_directory).expanduser()

    def get_playlists_directory(self) -> Path:
        """Get the directory holding per-playlist export files"""
        return Path(self.sync.playlists_directory).expanduser()

    def get_covers_directory(self) -> Path:
        """Get the directory holding cached playlist cover images"""
        return Path(self.sync.covers_directory).expanduser()

    def get_cookies_path(self) -> Path:
        """Get the expanded YouTube Music cookie jar path"""
        return Path(self.ytmusic.cookies_file).expanduser()

    def get_config_directory(self) -> Path:
        """Get the expanded config directory path"""
        return self.config_dir

    def save_config(self, path: Optional[str] = None) -> Path:
        """
        Save current configuration to a YAML file

        Args:
            path: Custom path to save config, defaults to user config directory

        Returns:
            Path the configuration was written to
        """
        target = Path(path) if path else self.get_config_directory() / "config.yaml"
        config_data = {name: asdict(section) for name, section in self._sections().items()}

        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            yaml.safe_dump(config_data, f, default_flow_style=False, indent=2)
        return target

    def validate(self) -> List[str]:
        """
        Validate current configuration

        Returns:
            List of human-readable validation errors, empty when valid
        """
        errors = []

        if self.download.format not in ['mp3', 'flac', 'm4a']:
            errors.append(f"Invalid download format: {self.download.format}")

        if self.download.delay_min < 0 or self.download.delay_max < self.download.delay_min:
            errors.append(
                f"Invalid download delay range: {self.download.delay_min}-{self.download.delay_max}"
            )

        if self.sync.interval_hours <= 0:
            errors.append(f"Sync interval must be positive: {self.sync.interval_hours}")

        if self.sync.on_corrupt_state not in ['fail', 'resync']:
            errors.append(f"Invalid on_corrupt_state policy: {self.sync.on_corrupt_state}")

        if self.metadata.id3_version not in ['2.3', '2.4']:
            errors.append(f"Invalid ID3 version: {self.metadata.id3_version}")

        if self.spotify.page_size <= 0:
            errors.append(f"Spotify page size must be positive: {self.spotify.page_size}")

        return errors

    def __str__(self) -> str:
        sections = [
            f"Output: {self.download.output_directory}",
            f"Format: {self.download.format}",
            f"Playlists: {len(self.sync.playlist_ids)}",
            f"Interval: {self.sync.interval_hours}h",
        ]
        return f"Settings({', '.join(sections)})"


def parse_playlist_ids(value: str) -> List[str]:
    """
    Split a comma separated playlist id list

    Args:
        value: Raw value such as ``"id1, id2,,id3"``

    Returns:
        List of non-empty, stripped ids in their original order
    """
    return [item.strip() for item in value.split(',') if item.strip()]


# Global settings instance, created on first access
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings instance

    Returns:
        The global Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Reload settings from configuration files and the environment

    Args:
        config_path: Optional path to specific config file

    Returns:
        New Settings instance with reloaded configuration
    """
    global _settings
    _settings = Settings(config_path)
    return _settings
