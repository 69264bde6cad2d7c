"""Test configuration and fixtures"""

import pytest
import tempfile
from pathlib import Path

from playlist_sync.config.settings import Settings
from playlist_sync.spotify.models import Snapshot, Track


ENV_OVERRIDES = (
    'OUTPUT_DIR',
    'YOUTUBE_MUSIC_COOKIES',
    'PLAYLIST_IDS',
    'SYNC_INTERVAL_HOURS',
    'LOG_LEVEL',
)

PLAYLIST_ID = "37i9dQZF1DXcBWIGoYBM5M"


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def isolated_env(temp_dir, monkeypatch):
    """Keep config files and environment overrides of the host out of Settings"""
    monkeypatch.setenv('HOME', str(temp_dir / "home"))
    monkeypatch.chdir(temp_dir)
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    return temp_dir


@pytest.fixture
def settings(isolated_env):
    """Default settings with every directory inside the temp dir"""
    settings = Settings()
    settings.download.output_directory = str(isolated_env / "mp3s")
    settings.download.delay_min = 2.0
    settings.download.delay_max = 3.0
    settings.sync.data_directory = str(isolated_env / "data")
    settings.sync.playlists_directory = str(isolated_env / "playlists")
    settings.sync.covers_directory = str(isolated_env / "covers")
    settings.ytmusic.cookies_file = str(isolated_env / "cookies.txt")
    settings.network.max_retries = 1
    settings.network.retry_delay = 0
    return settings


def make_track(number: int, position: int = None, title: str = None, artists: str = None) -> Track:
    """Track with a deterministic id derived from ``number``"""
    spotify_id = f"track{number:017d}"
    return Track(
        id=f"/track/{spotify_id}",
        title=title or f"Song {number}",
        artists=artists or f"Artist {number}",
        url=f"https://open.spotify.com/track/{spotify_id}",
        position=position if position is not None else number,
    )


def make_snapshot(tracks, playlist_id: str = PLAYLIST_ID, name: str = "Road Trip") -> Snapshot:
    return Snapshot(
        playlist_id=playlist_id,
        name=name,
        tracks=list(tracks),
        image_url="https://i.scdn.co/image/cover",
        captured_at="2025-01-01T10:00:00Z",
    )


@pytest.fixture
def sample_snapshot():
    """Three track playlist snapshot"""
    return make_snapshot([make_track(1), make_track(2), make_track(3)])


def graphql_item(track_id: str, name: str, artists, typename: str = 'Track'):
    """One ``playlistV2.content.items`` entry as the web player returns it"""
    return {
        'itemV2': {
            'data': {
                '__typename': typename,
                'uri': f"spotify:track:{track_id}",
                'name': name,
                'artists': {
                    'items': [{'profile': {'name': artist}} for artist in artists]
                },
            }
        }
    }


def playlist_response(items, name: str = "Road Trip", images=None):
    """fetchPlaylist GraphQL response body"""
    playlist = {
        'name': name,
        'content': {'items': items, 'totalCount': len(items)},
    }
    if images is not None:
        playlist['images'] = {'items': [{'sources': images}]}
    return {'data': {'playlistV2': playlist}}
