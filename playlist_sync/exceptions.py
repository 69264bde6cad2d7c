"""
Exception classes for playlist-sync.

Each exception distinguishes a failure mode that the synchronizer handles
differently: configuration problems stop the process, metadata failures abort a
single playlist, and download failures are recorded per track.

Exception Hierarchy:
    PlaylistSyncError (base)
        ConfigurationError - missing cookies, playlists or executables
        MetadataFetchError - Spotify catalog failures
            CredentialError - access/client token could not be obtained
            MalformedResponseError - remote JSON did not have the expected shape
        SearchError - YouTube Music search transport failures
        DownloadError - yt-dlp download/transcode failures
            TaggingError - metadata rewrite failures
        StateError - state file could not be read or written
            StateCorruptError - state file exists but is not a valid snapshot
"""

from typing import Any, Dict, Optional


class PlaylistSyncError(Exception):
    """
    Base exception for all playlist-sync errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (playlist id, track, url).
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ConfigurationError(PlaylistSyncError):
    """
    Raised when a prerequisite is missing or a setting is invalid.

    This is a fatal error: the CLI exits with status 1 before any network
    activity takes place.
    """
    pass


class MetadataFetchError(PlaylistSyncError):
    """
    Raised when the playlist track list cannot be fetched from Spotify.

    Aborts the current playlist's cycle only. No snapshot is written for the
    playlist in that cycle.
    """
    pass


class CredentialError(MetadataFetchError):
    """Raised when the access token or client token cannot be obtained."""
    pass


class MalformedResponseError(MetadataFetchError):
    """
    Raised by response parsers when a remote payload is missing the
    structure they require.

    Raised for both catalog and search payloads; the search side catches it as
    a per-track failure.
    """
    pass


class SearchError(PlaylistSyncError):
    """Raised when a YouTube Music search request fails."""
    pass


class DownloadError(PlaylistSyncError):
    """
    Raised when yt-dlp cannot produce an audio file for a match.

    Recorded as a per-track failure. No partial artifact is left at the
    final output path.
    """
    pass


class TaggingError(DownloadError):
    """Raised when tags cannot be written; the untagged original is preserved."""
    pass


class StateError(PlaylistSyncError):
    """Raised when a state file cannot be read from or written to disk."""
    pass


class StateCorruptError(StateError):
    """
    Raised when a state file exists but cannot be parsed into a snapshot.

    Kept distinct from "no state" so that a damaged file never silently
    triggers a full re-download.
    """
    pass
