"""
Configuration package

Settings are read from a YAML file and overridden by environment variables
(``OUTPUT_DIR``, ``YOUTUBE_MUSIC_COOKIES``, ``PLAYLIST_IDS``,
``SYNC_INTERVAL_HOURS``, ``LOG_LEVEL``), optionally loaded from ``.env``.

Spotify credentials live in ``config.auth`` and are imported from there
directly.
"""

from .settings import get_settings, reload_settings, Settings

__all__ = [
    'get_settings',
    'reload_settings',
    'Settings',
]
