"""
Synchronization package

Incremental playlist synchronization built from three parts:

**Diff (`diff`)**
Classifies tracks of two snapshots as added, removed, moved or unchanged by
track identifier.

**State store (`tracker`)**
Persists one snapshot per playlist in ``data/<id>.json`` plus a consumer
facing export in ``playlists/<id>.json``. Writes are atomic; a missing file
means "never synchronized" and an unreadable one raises ``StateCorruptError``.

**Synchronizer (`synchronizer`)**
Runs fetch, diff, download and persist for each playlist, and repeats on a
fixed schedule in long-running mode. The snapshot is only persisted after the
download loop, so an interrupted run is retried in full next time.
"""

from .diff import DiffResult, MovedTrack, diff_tracks, format_diff_report
from .tracker import StateStore
from .synchronizer import (
    PlaylistSynchronizer,
    SyncState,
    DownloadSummary,
    ScrapeResult,
    PlaylistSyncResult,
    SyncRunSummary,
)

__all__ = [
    'DiffResult',
    'MovedTrack',
    'diff_tracks',
    'format_diff_report',
    'StateStore',
    'PlaylistSynchronizer',
    'SyncState',
    'DownloadSummary',
    'ScrapeResult',
    'PlaylistSyncResult',
    'SyncRunSummary',
]
