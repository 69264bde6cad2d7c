"""
Input validation utilities
"""
import re
from typing import Optional, Tuple

PLAYLIST_ID_PATTERN = re.compile(r'^[a-zA-Z0-9]{22}$')


def validate_spotify_url(url: str) -> Tuple[bool, Optional[str]]:
    """
    Validate Spotify playlist URL

    Accepts ``https://open.spotify.com/playlist/<id>`` URLs (with or without
    query string) and ``spotify:playlist:<id>`` URIs.

    Args:
        url: URL to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not url:
        return False, "URL cannot be empty"

    if not ('spotify.com' in url or url.startswith('spotify:')):
        return False, "Not a Spotify URL"

    if 'playlist/' not in url and ':playlist:' not in url:
        return False, "Not a playlist URL"

    if 'playlist/' in url:
        playlist_id = url.split('playlist/')[-1].split('?')[0].strip('/')
    else:
        parts = url.split(':')
        if len(parts) < 3 or parts[1] != 'playlist':
            return False, "Invalid Spotify URI format"
        playlist_id = parts[2]

    if not PLAYLIST_ID_PATTERN.match(playlist_id):
        return False, "Invalid playlist ID format"

    return True, None


def validate_playlist_id(playlist_id: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a bare Spotify playlist id

    Args:
        playlist_id: Playlist id to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not playlist_id:
        return False, "Playlist ID cannot be empty"

    if not PLAYLIST_ID_PATTERN.match(playlist_id):
        return False, f"Invalid playlist ID format: {playlist_id}"

    return True, None
