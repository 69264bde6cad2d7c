"""
Spotify integration package

Fetches playlist contents through the web player's GraphQL API and converts
them into ``Snapshot`` objects.

Example:
    client = SpotifyClient()
    snapshot = client.get_full_playlist("37i9dQZF1DXcBWIGoYBM5M")
    for track in snapshot.tracks:
        print(track.position, track.display_name)
"""

from .client import SpotifyClient, parse_playlist_page, extract_playlist_image_url
from .models import (
    Track,
    TrackStatus,
    PlaylistPage,
    Snapshot,
)

__all__ = [
    'SpotifyClient',
    'parse_playlist_page',
    'extract_playlist_image_url',
    'Track',
    'TrackStatus',
    'PlaylistPage',
    'Snapshot',
]
