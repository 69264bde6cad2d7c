"""
playlist-sync: keep local copies of Spotify playlists

Each configured playlist is fetched from Spotify's web player API, compared
with the last saved snapshot, and every new track is matched on YouTube Music,
downloaded with yt-dlp and tagged with mutagen.

## Packages

**Configuration (`config/`)**
- YAML + environment settings (`settings`)
- Anonymous Spotify web player credentials (`auth`)

**Spotify (`spotify/`)**
- Track and snapshot models
- GraphQL playlist client with pagination

**YouTube Music (`ytmusic/`)**
- Cookie jar loader and InnerTube search
- yt-dlp download with ffmpeg audio extraction

**Audio (`audio/`)**
- Tag writer for MP3, FLAC and M4A
- Playlist cover cache

**Synchronization (`sync/`)**
- Snapshot diff
- Atomic state store
- Orchestrator and scheduler

**Utilities (`utils/`)**
- Logging, file naming, retries and validation

Run ``playlist-sync --help`` for the command line interface.
"""

__version__ = "1.0.0"

__author__ = "playlist-sync contributors"

__description__ = "Mirror Spotify playlists as tagged local audio files via YouTube Music"

__all__ = [
    "__version__",
    "__author__",
    "__description__"
]
