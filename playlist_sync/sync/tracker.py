"""
Snapshot state store for incremental synchronization

Each playlist has one state file, ``<data_dir>/<playlist_id>.json``, holding
the last persisted snapshot, and one export file,
``<playlists_dir>/<playlist_id>.json``, holding the consumer-facing track list.

Both files are written atomically: the JSON goes to a temporary file in the
same directory which then replaces the target with ``os.replace``. A reader
sees either the previous file or the new one, never a partial write.

A missing state file means "never synchronized" and loads as ``None``. A state
file that exists but cannot be parsed raises ``StateCorruptError`` so the caller
can decide between failing and resynchronizing.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..exceptions import StateCorruptError, StateError
from ..spotify.models import Snapshot
from ..utils.helpers import create_backup_filename
from ..utils.logger import get_logger


class StateStore:
    """Loads and persists playlist snapshots"""

    def __init__(self, data_directory: Union[str, Path], playlists_directory: Union[str, Path]):
        """
        Initialize state store

        Args:
            data_directory: Directory for state files
            playlists_directory: Directory for export files
        """
        self.data_directory = Path(data_directory)
        self.playlists_directory = Path(playlists_directory)
        self.logger = get_logger(__name__)

    def state_path(self, playlist_id: str) -> Path:
        return self.data_directory / f"{playlist_id}.json"

    def export_path(self, playlist_id: str) -> Path:
        return self.playlists_directory / f"{playlist_id}.json"

    def exists(self, playlist_id: str) -> bool:
        return self.state_path(playlist_id).is_file()

    def load(self, playlist_id: str) -> Optional[Snapshot]:
        """
        Load the last persisted snapshot for a playlist

        Args:
            playlist_id: Spotify playlist id

        Returns:
            Snapshot, or None if the playlist has never been persisted

        Raises:
            StateCorruptError: If the state file exists but is not a valid snapshot
        """
        path = self.state_path(playlist_id)
        if not path.exists():
            return None

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            snapshot = Snapshot.from_state_dict(data)
        except (OSError, UnicodeDecodeError, ValueError) as e:
            # json.JSONDecodeError is a ValueError
            raise StateCorruptError(
                f"State file for playlist {playlist_id} is unreadable: {e}",
                details={'playlist_id': playlist_id, 'path': str(path)}
            ) from e

        if snapshot.playlist_id != playlist_id:
            raise StateCorruptError(
                f"State file {path} belongs to playlist {snapshot.playlist_id}",
                details={'playlist_id': playlist_id, 'path': str(path)}
            )

        self.logger.debug(f"Loaded state for {playlist_id}: {snapshot.track_count} tracks")
        return snapshot

    def save(self, snapshot: Snapshot) -> Path:
        """
        Atomically persist a snapshot as the playlist's state

        Args:
            snapshot: Snapshot to persist

        Returns:
            Path of the state file

        Raises:
            StateError: If the file cannot be written; the previous state is kept
        """
        path = self.state_path(snapshot.playlist_id)
        self._atomic_write_json(path, snapshot.to_state_dict())
        self.logger.debug(f"Saved state for {snapshot.playlist_id}: {snapshot.track_count} tracks")
        return path

    def write_export(self, snapshot: Snapshot) -> Path:
        """
        Atomically write the consumer-facing playlist file

        Args:
            snapshot: Snapshot to export

        Returns:
            Path of the export file
        """
        path = self.export_path(snapshot.playlist_id)
        self._atomic_write_json(path, snapshot.to_export_dict())
        return path

    def quarantine(self, playlist_id: str) -> Path:
        """
        Move a corrupt state file aside so the playlist can be resynchronized

        Args:
            playlist_id: Spotify playlist id

        Returns:
            Path of the backup file

        Raises:
            StateError: If the file cannot be moved
        """
        path = self.state_path(playlist_id)
        backup_path = create_backup_filename(path)
        try:
            os.replace(path, backup_path)
        except OSError as e:
            raise StateError(
                f"Could not move corrupt state file {path} aside: {e}",
                details={'playlist_id': playlist_id}
            ) from e

        self.logger.warning(f"Corrupt state for {playlist_id} moved to {backup_path}")
        return backup_path

    def _atomic_write_json(self, path: Path, data: Dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}_", suffix=".tmp")
        except OSError as e:
            raise StateError(f"Could not write {path}: {e}") from e

        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
        except (OSError, TypeError, ValueError) as e:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise StateError(f"Could not write {path}: {e}") from e
