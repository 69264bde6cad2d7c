"""
Data models for playlist snapshots

A Snapshot is the full ordered track list of one playlist plus its display
attributes, captured at one point in time. Snapshots are what the state store
persists and what the diff engine compares.

Track identity:
    ``Track.id`` is ``"/track/<spotify id>"``. It is stable across re-fetches of
    the same playlist and is the only field used to match tracks between two
    snapshots; titles and artist strings are display data.

Serialization:
    ``Snapshot.to_state_dict`` / ``Snapshot.from_state_dict`` define the state
    file format and round-trip losslessly. ``Snapshot.to_export_dict`` is the
    consumer-facing playlist file, which omits track ids.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.helpers import get_current_timestamp


UNKNOWN_TRACK = "Unknown Track"
UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_PLAYLIST = "Unknown Playlist"
TRACK_URL_PREFIX = "https://open.spotify.com/track/"


def as_mapping(value: Any) -> Dict[str, Any]:
    """Return ``value`` if it is a JSON object, else an empty one"""
    return value if isinstance(value, dict) else {}


class TrackStatus(Enum):
    """Outcome of processing one track in a download loop"""
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"      # artifact already on disk
    NOT_FOUND = "not_found"  # no search match
    FAILED = "failed"


@dataclass
class Track:
    """
    Single playlist entry

    Attributes:
        id: Stable identifier, ``"/track/<spotify id>"``
        title: Display title
        artists: Display artist string, names joined with ``", "``
        url: Spotify web URL for the track
        position: 1-based position within the playlist at capture time
    """
    id: str
    title: str
    artists: str
    url: str
    position: int

    @property
    def display_name(self) -> str:
        return f"{self.artists} - {self.title}"

    @classmethod
    def from_graphql_item(cls, item: Dict[str, Any], position: int) -> Optional['Track']:
        """
        Create a Track from one ``playlistV2.content.items`` entry

        Args:
            item: Raw content item from the GraphQL response
            position: Position to assign to the track

        Returns:
            Track, or None if the item is not a track (episodes, unavailable items)
        """
        data = as_mapping(as_mapping(item).get('itemV2')).get('data')
        if not isinstance(data, dict) or data.get('__typename') != 'Track':
            return None

        uri = data.get('uri')
        if not isinstance(uri, str) or not uri.startswith('spotify:track:'):
            return None
        track_id = uri[len('spotify:track:'):]

        artist_items = as_mapping(data.get('artists')).get('items')
        names = [
            as_mapping(as_mapping(artist).get('profile')).get('name')
            for artist in (artist_items if isinstance(artist_items, list) else [])
        ]
        artists = ", ".join(name for name in names if isinstance(name, str) and name) or UNKNOWN_ARTIST

        title = data.get('name')

        return cls(
            id=f"/track/{track_id}",
            title=title if isinstance(title, str) and title else UNKNOWN_TRACK,
            artists=artists,
            url=f"{TRACK_URL_PREFIX}{track_id}",
            position=position,
        )

    def to_state_dict(self) -> Dict[str, Any]:
        return {
            'position': self.position,
            'id': self.id,
            'url': self.url,
            'artists': self.artists,
            'title': self.title,
        }

    def to_export_dict(self) -> Dict[str, Any]:
        return {
            'position': self.position,
            'title': self.title,
            'artists': self.artists,
            'url': self.url,
        }

    @classmethod
    def from_state_dict(cls, data: Dict[str, Any]) -> 'Track':
        """
        Rebuild a Track from its state file entry

        Raises:
            ValueError: If a required field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError(f"Track entry must be an object, got {type(data).__name__}")

        track_id = data.get('id')
        position = data.get('position')
        if not isinstance(track_id, str) or not track_id:
            raise ValueError(f"Track entry has no id: {data!r}")
        if isinstance(position, bool) or not isinstance(position, int):
            raise ValueError(f"Track {track_id} has invalid position: {position!r}")

        return cls(
            id=track_id,
            title=str(data.get('title', '')),
            artists=str(data.get('artists', '')),
            url=str(data.get('url', '')),
            position=position,
        )


@dataclass
class PlaylistPage:
    """One parsed page of a playlist's contents"""
    tracks: List[Track]
    has_more: bool
    name: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class Snapshot:
    """
    Playlist snapshot at one point in time

    Attributes:
        playlist_id: Spotify playlist id
        name: Playlist display name
        tracks: Tracks ordered by position (dense 1..N)
        image_url: Remote cover image URL, if any
        image_path: Locally cached cover image path, if any
        captured_at: ISO timestamp of capture
    """
    playlist_id: str
    name: str
    tracks: List[Track] = field(default_factory=list)
    image_url: Optional[str] = None
    image_path: Optional[str] = None
    captured_at: str = field(default_factory=get_current_timestamp)

    @property
    def track_count(self) -> int:
        return len(self.tracks)

    def to_state_dict(self) -> Dict[str, Any]:
        """Serialize to the state file format"""
        return {
            'playlistId': self.playlist_id,
            'playlistName': self.name,
            'playlistImage': self.image_url,
            'playlistImagePath': self.image_path,
            'lastUpdate': self.captured_at,
            'trackCount': self.track_count,
            'tracks': [track.to_state_dict() for track in self.tracks],
        }

    def to_export_dict(self, export_date: Optional[str] = None) -> Dict[str, Any]:
        """Serialize to the consumer-facing playlist export format"""
        return {
            'playlistId': self.playlist_id,
            'playlistName': self.name,
            'playlistImage': self.image_url,
            'playlistImagePath': self.image_path,
            'exportDate': export_date or get_current_timestamp(),
            'trackCount': self.track_count,
            'tracks': [track.to_export_dict() for track in self.tracks],
        }

    @classmethod
    def from_state_dict(cls, data: Dict[str, Any]) -> 'Snapshot':
        """
        Rebuild a Snapshot from the state file format

        Args:
            data: Parsed JSON document

        Returns:
            Snapshot with tracks sorted by position

        Raises:
            ValueError: If the document is not a valid snapshot
        """
        if not isinstance(data, dict):
            raise ValueError(f"State document must be an object, got {type(data).__name__}")

        playlist_id = data.get('playlistId')
        if not isinstance(playlist_id, str) or not playlist_id:
            raise ValueError("State document has no playlistId")

        raw_tracks = data.get('tracks')
        if not isinstance(raw_tracks, list):
            raise ValueError("State document has no track list")

        tracks = sorted(
            (Track.from_state_dict(entry) for entry in raw_tracks),
            key=lambda track: track.position
        )

        return cls(
            playlist_id=playlist_id,
            name=data.get('playlistName') or UNKNOWN_PLAYLIST,
            tracks=tracks,
            image_url=data.get('playlistImage'),
            image_path=data.get('playlistImagePath'),
            captured_at=data.get('lastUpdate') or '',
        )
