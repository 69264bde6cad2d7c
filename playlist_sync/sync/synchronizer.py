"""
Incremental playlist synchronization

The synchronizer ties the pieces together for one playlist at a time:

    IDLE -> FETCHING_METADATA -> DIFFING -> DOWNLOADING -> PERSISTING -> IDLE

1. Load the last persisted snapshot (absent on the first run)
2. Fetch the current snapshot from Spotify
3. Diff the two; an unchanged playlist ends the cycle without touching disk
4. Download the new tracks (all tracks on a first or forced run), skipping
   any whose output file already exists
5. Persist the new snapshot, export file and cover path

The snapshot is persisted only after the download loop has finished. A run
that is interrupted or fails while fetching leaves the previous state file
exactly as it was, so the next run sees the same new tracks again.

Per-track problems (no search match, download or tagging failures, or any
unexpected error) are recorded in the playlist's DownloadSummary and never
stop the loop. Metadata fetch failures, a cookie jar that stops working
mid-run and unexpected errors abort only the affected playlist.
"""

import math
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from ..audio.artwork import CoverArtCache
from ..audio.metadata import MetadataManager, build_track_tags
from ..config.settings import Settings, get_settings
from ..exceptions import (
    ConfigurationError,
    DownloadError,
    MetadataFetchError,
    PlaylistSyncError,
    SearchError,
    StateCorruptError,
    StateError,
)
from ..spotify.client import SpotifyClient
from ..spotify.models import Snapshot, Track, TrackStatus
from ..utils.helpers import sanitize_filename, track_filename
from ..utils.logger import create_operation_logger, get_logger
from ..ytmusic.downloader import YouTubeMusicDownloader
from ..ytmusic.searcher import MatchResult, YouTubeMusicSearcher
from .diff import DiffResult, diff_tracks, format_diff_report
from .tracker import StateStore


class SyncState(Enum):
    """Phases of one playlist synchronization cycle"""
    IDLE = "idle"
    FETCHING_METADATA = "fetching_metadata"
    DIFFING = "diffing"
    DOWNLOADING = "downloading"
    PERSISTING = "persisting"
    FAILED = "failed"


@dataclass
class TrackOutcome:
    """Result of processing one track in a download loop"""
    track: Track
    status: TrackStatus
    match: Optional[MatchResult] = None
    file_path: Optional[Path] = None
    error_message: Optional[str] = None


@dataclass
class DownloadSummary:
    """Per-track outcomes of one download loop"""
    outcomes: List[TrackOutcome] = field(default_factory=list)

    def count(self, status: TrackStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def downloaded(self) -> int:
        return self.count(TrackStatus.DOWNLOADED)

    @property
    def skipped(self) -> int:
        return self.count(TrackStatus.SKIPPED)

    @property
    def not_found(self) -> int:
        return self.count(TrackStatus.NOT_FOUND)

    @property
    def failed(self) -> int:
        return self.count(TrackStatus.FAILED)

    @property
    def summary(self) -> str:
        """Human-readable summary, e.g. ``"5 downloaded, 1 not found"``"""
        parts = []
        if self.downloaded:
            parts.append(f"{self.downloaded} downloaded")
        if self.skipped:
            parts.append(f"{self.skipped} skipped")
        if self.not_found:
            parts.append(f"{self.not_found} not found")
        if self.failed:
            parts.append(f"{self.failed} failed")

        if not parts:
            return "Nothing to download"
        return ", ".join(parts)


@dataclass
class ScrapeResult:
    """
    Result of a metadata-only scrape

    Attributes:
        snapshot: Freshly fetched snapshot
        previous: Previously persisted snapshot, if any
        diff: Changes since ``previous``; None on a first or forced scrape
        forced: Whether the previous state was ignored
        state_path: Written state file, None if the playlist was up to date
        export_path: Written export file, None if the playlist was up to date
    """
    snapshot: Snapshot
    previous: Optional[Snapshot] = None
    diff: Optional[DiffResult] = None
    forced: bool = False
    state_path: Optional[Path] = None
    export_path: Optional[Path] = None

    @property
    def first_scan(self) -> bool:
        return self.previous is None

    @property
    def persisted(self) -> bool:
        return self.state_path is not None


@dataclass
class PlaylistSyncResult:
    """Outcome of one playlist synchronization cycle"""
    playlist_id: str
    state: SyncState = SyncState.IDLE
    playlist_name: Optional[str] = None
    first_run: bool = False
    diff: Optional[DiffResult] = None
    new_tracks: int = 0
    downloads: Optional[DownloadSummary] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state is not SyncState.FAILED

    @property
    def summary(self) -> str:
        if not self.success:
            return f"Sync failed: {self.error_message}"
        if self.downloads is None:
            return "Playlist is up to date"
        return self.downloads.summary


@dataclass
class SyncRunSummary:
    """Totals over all playlists of one sync run"""
    results: List[PlaylistSyncResult] = field(default_factory=list)

    @property
    def playlists_processed(self) -> int:
        return len(self.results)

    @property
    def new_tracks_found(self) -> int:
        return sum(result.new_tracks for result in self.results)

    @property
    def playlists_with_new_tracks(self) -> int:
        return sum(1 for result in self.results if result.new_tracks > 0)

    @property
    def failed_playlists(self) -> List[str]:
        return [result.playlist_id for result in self.results if not result.success]

    def report_lines(self) -> List[str]:
        lines = [
            "Synchronization completed",
            f"   Playlists processed: {self.playlists_processed}",
            f"   New tracks found: {self.new_tracks_found}",
            f"   Playlists with new tracks: {self.playlists_with_new_tracks}",
        ]
        if self.failed_playlists:
            lines.append(f"   Failed playlists: {', '.join(self.failed_playlists)}")
        return lines


def next_deadline(start: float, now: float, interval: float) -> Tuple[int, float]:
    """
    First cycle deadline strictly after ``now``

    Deadlines are ``start + k * interval``; deadlines already in the past are
    skipped rather than replayed.

    Returns:
        Tuple of (cycle index k, deadline)
    """
    index = max(1, math.floor((now - start) / interval) + 1)
    return index, start + index * interval


class PlaylistSynchronizer:
    """Runs scrape, download and sync cycles for playlists"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        state_store: Optional[StateStore] = None,
        spotify_client: Optional[SpotifyClient] = None,
        searcher_factory: Optional[Callable[[], YouTubeMusicSearcher]] = None,
        downloader: Optional[YouTubeMusicDownloader] = None,
        metadata_manager: Optional[MetadataManager] = None,
        cover_cache: Optional[CoverArtCache] = None,
        sleep: Callable[[float], None] = time.sleep,
        uniform: Callable[[float, float], float] = random.uniform
    ):
        """
        Initialize synchronizer; collaborators default to instances built from settings

        Args:
            settings: Application settings, defaults to the global instance
            state_store: Snapshot persistence
            spotify_client: Metadata resolver
            searcher_factory: Creates one match resolver per download loop
            downloader: yt-dlp wrapper
            metadata_manager: Tag writer
            cover_cache: Playlist cover cache
            sleep: Sleep function for download pacing and scheduling
            uniform: Random source for the download delay
        """
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)

        self.state_store = state_store or StateStore(
            self.settings.get_data_directory(),
            self.settings.get_playlists_directory()
        )
        self.spotify_client = spotify_client or SpotifyClient(settings=self.settings)
        self.searcher_factory = searcher_factory or (lambda: YouTubeMusicSearcher(self.settings))
        self.downloader = downloader or YouTubeMusicDownloader(self.settings)
        self.metadata_manager = metadata_manager or MetadataManager(self.settings)
        self.cover_cache = cover_cache or CoverArtCache(settings=self.settings)

        self.sleep = sleep
        self.uniform = uniform
        self.state = SyncState.IDLE

    def _transition(self, result: PlaylistSyncResult, state: SyncState) -> None:
        self.logger.debug(f"{result.playlist_id}: {result.state.value} -> {state.value}")
        result.state = state
        self.state = state

    def artifact_path(self, playlist_id: str, track: Track) -> Path:
        """Final output path of a track's audio file"""
        return (
            self.settings.get_output_directory()
            / playlist_id
            / track_filename(track.artists, track.title, self.settings.download.format)
        )

    def _load_previous(self, playlist_id: str) -> Optional[Snapshot]:
        """
        Load the persisted snapshot, applying the corrupt state policy

        Raises:
            StateCorruptError: If the state is corrupt and the policy is ``fail``
        """
        try:
            return self.state_store.load(playlist_id)
        except StateCorruptError as e:
            if self.settings.sync.on_corrupt_state != "resync":
                raise

            self.logger.warning(f"{e}; resynchronizing {playlist_id} from scratch")
            self.state_store.quarantine(playlist_id)
            return None

    def _fetch_snapshot(self, playlist_id: str) -> Snapshot:
        snapshot = self.spotify_client.get_full_playlist(playlist_id)
        if not snapshot.tracks:
            raise MetadataFetchError("No tracks found!", details={'playlist_id': playlist_id})
        return snapshot

    def _ensure_cover(self, playlist_id: str, image_url: Optional[str], refresh: bool = True) -> Optional[str]:
        """Cache the playlist cover; a cover problem never fails the playlist"""
        try:
            return self.cover_cache.ensure(playlist_id, image_url, refresh=refresh)
        except Exception as e:
            self.logger.warning(f"Skipping cover for {playlist_id}: {e}", exc_info=True)
            return self.cover_cache.cached(playlist_id)

    def _persist(self, snapshot: Snapshot) -> Tuple[Path, Path]:
        """Write export and state files; the state file is written last"""
        export_path = self.state_store.write_export(snapshot)
        state_path = self.state_store.save(snapshot)
        return state_path, export_path

    def scrape_playlist(self, playlist_id: str, force: bool = False) -> ScrapeResult:
        """
        Fetch a playlist and persist its snapshot without downloading

        Args:
            playlist_id: Spotify playlist id
            force: Ignore the previous state and overwrite it

        Returns:
            ScrapeResult; nothing is written when the playlist is unchanged

        Raises:
            MetadataFetchError: If the playlist cannot be fetched or is empty
            StateError: If the state cannot be read or written
        """
        previous = self._load_previous(playlist_id)
        snapshot = self._fetch_snapshot(playlist_id)
        result = ScrapeResult(snapshot=snapshot, previous=previous, forced=force)

        if previous is not None and not force:
            result.diff = diff_tracks(previous.tracks, snapshot.tracks)
            if not result.diff.has_changes:
                self.logger.info(f"{playlist_id} is up to date")
                return result

        snapshot.image_path = self._ensure_cover(playlist_id, snapshot.image_url)
        result.state_path, result.export_path = self._persist(snapshot)
        return result

    def download_playlist(self, playlist_id: str) -> DownloadSummary:
        """
        Download every track of the persisted snapshot

        Existing files are skipped, so this also resumes an interrupted run.

        Raises:
            StateError: If the playlist has not been scraped yet
        """
        snapshot = self.state_store.load(playlist_id)
        if snapshot is None:
            raise StateError(
                f"No state file found for {playlist_id}. Run scrape first.",
                details={'playlist_id': playlist_id}
            )

        if not (snapshot.image_path and Path(snapshot.image_path).is_file()):
            snapshot.image_path = self._ensure_cover(playlist_id, snapshot.image_url, refresh=False)

        return self.download_tracks(snapshot, snapshot.tracks)

    def download_tracks(self, snapshot: Snapshot, tracks: Sequence[Track]) -> DownloadSummary:
        """
        Resolve, download and tag tracks of a snapshot

        Tracks are processed sequentially with a random pause between
        consecutive download attempts. The match resolver lives for exactly
        one call.

        Args:
            snapshot: Snapshot the tracks belong to (name and cover for tags)
            tracks: Tracks to process, in order

        Returns:
            DownloadSummary with one outcome per track
        """
        summary = DownloadSummary()
        if not tracks:
            self.logger.console_info("No new tracks to download")
            return summary

        operation = create_operation_logger(__name__, f"download {snapshot.playlist_id}")
        operation.start(f"Starting download of {len(tracks)} track(s) from \"{snapshot.name}\"")

        try:
            with self.searcher_factory() as searcher:
                for index, track in enumerate(tracks, 1):
                    outcome = self._process_track(snapshot, track, searcher)
                    summary.outcomes.append(outcome)
                    operation.progress(f"{track.display_name}: {outcome.status.value}", index, len(tracks))

                    if outcome.status is not TrackStatus.SKIPPED and index < len(tracks):
                        self._pause()
        except ConfigurationError as e:
            operation.error(str(e))
            raise
        finally:
            self.downloader.cleanup()

        operation.complete(f"Download finished: {summary.summary}")
        return summary

    def _pause(self) -> None:
        delay = self.uniform(self.settings.download.delay_min, self.settings.download.delay_max)
        self.sleep(delay)

    def _process_track(self, snapshot: Snapshot, track: Track, searcher: YouTubeMusicSearcher) -> TrackOutcome:
        final_path = self.artifact_path(snapshot.playlist_id, track)
        if final_path.exists():
            self.logger.debug(f"Already exists, skipping: {final_path.name}")
            return TrackOutcome(track, TrackStatus.SKIPPED, file_path=final_path)

        match = None
        try:
            match = searcher.find_track(track)
            if match is None:
                self.logger.warning(
                    f"No YouTube Music result for {track.display_name} ({snapshot.playlist_id}, {track.id})"
                )
                return TrackOutcome(track, TrackStatus.NOT_FOUND)

            self.logger.debug(f"Found: {match.title} ({match.video_id}) for {track.display_name}")
            self._fetch_and_tag(snapshot, track, match, final_path)

        except (SearchError, DownloadError) as e:
            self.logger.error(
                f"Failed to process {track.display_name} ({snapshot.playlist_id}, {track.id}): {e}"
            )
            return TrackOutcome(track, TrackStatus.FAILED, match=match, error_message=str(e))
        except ConfigurationError:
            raise
        except Exception as e:
            self.logger.error(
                f"Unexpected error processing {track.display_name} ({snapshot.playlist_id}, {track.id}): {e}",
                exc_info=True
            )
            return TrackOutcome(track, TrackStatus.FAILED, match=match, error_message=str(e))

        self.logger.info(f"Downloaded: {final_path.name}")
        return TrackOutcome(track, TrackStatus.DOWNLOADED, match=match, file_path=final_path)

    def _fetch_and_tag(self, snapshot: Snapshot, track: Track, match: MatchResult, final_path: Path) -> None:
        """Download into staging, tag, then move to the final path"""
        staging_name = sanitize_filename(track.id.rsplit('/', 1)[-1]) or f"track_{track.position}"
        try:
            staged = self.downloader.download(match.youtube_url, staging_name)
            tags = build_track_tags(track, snapshot.name, match.youtube_url)
            self.metadata_manager.apply_tags(staged, tags, snapshot.image_path)
            self.downloader.publish(staged, final_path)
        finally:
            self.downloader.discard(staging_name)

    def sync_playlist(self, playlist_id: str, force: bool = False) -> PlaylistSyncResult:
        """
        Run one full synchronization cycle for a playlist

        Args:
            playlist_id: Spotify playlist id
            force: Download all tracks and overwrite the state even if unchanged

        Returns:
            PlaylistSyncResult; ``state`` is IDLE on success and FAILED when
            the playlist could not be loaded, fetched or persisted
        """
        result = PlaylistSyncResult(playlist_id=playlist_id)

        self._transition(result, SyncState.FETCHING_METADATA)
        try:
            previous = self._load_previous(playlist_id)
            snapshot = self._fetch_snapshot(playlist_id)
        except (MetadataFetchError, StateError) as e:
            return self._fail(result, e)

        result.playlist_name = snapshot.name
        result.first_run = previous is None

        self._transition(result, SyncState.DIFFING)
        if previous is not None and not force:
            result.diff = diff_tracks(previous.tracks, snapshot.tracks)
            for line in format_diff_report(result.diff, snapshot.name):
                self.logger.console_info(line)

            if not result.diff.has_changes:
                self._transition(result, SyncState.IDLE)
                return result

            selected = sorted(result.diff.added, key=lambda track: track.position)
        else:
            self.logger.console_info(
                f"{'Force mode' if force else 'First scan'}: "
                f"downloading all {snapshot.track_count} track(s) of \"{snapshot.name}\""
            )
            selected = list(snapshot.tracks)

        result.new_tracks = len(selected)

        self._transition(result, SyncState.DOWNLOADING)
        snapshot.image_path = self._ensure_cover(playlist_id, snapshot.image_url)
        try:
            result.downloads = self.download_tracks(snapshot, selected)
        except ConfigurationError as e:
            # Nothing is persisted, so the same tracks are selected next run
            return self._fail(result, e)

        self._transition(result, SyncState.PERSISTING)
        try:
            self._persist(snapshot)
        except StateError as e:
            return self._fail(result, e)

        self._transition(result, SyncState.IDLE)
        return result

    def _fail(self, result: PlaylistSyncResult, error: PlaylistSyncError) -> PlaylistSyncResult:
        self.logger.error(f"Error with playlist {result.playlist_id}: {error}")
        result.error_message = str(error)
        self._transition(result, SyncState.FAILED)
        return result

    def sync_all(self, playlist_ids: Sequence[str], force: bool = False) -> SyncRunSummary:
        """
        Synchronize playlists one after another in the given order

        Returns:
            SyncRunSummary over all playlists
        """
        run = SyncRunSummary()
        self.logger.console_info(f"Starting synchronization of {len(playlist_ids)} playlist(s)")

        for index, playlist_id in enumerate(playlist_ids, 1):
            self.logger.console_info(f"[{index}/{len(playlist_ids)}] Playlist: {playlist_id}")
            try:
                result = self.sync_playlist(playlist_id, force=force)
            except Exception as e:
                self.logger.error(f"Unexpected error with playlist {playlist_id}: {e}", exc_info=True)
                result = PlaylistSyncResult(
                    playlist_id=playlist_id,
                    state=SyncState.FAILED,
                    error_message=str(e),
                )
                self.state = SyncState.FAILED
            run.results.append(result)

            if result.success:
                self.logger.console_info(f"Playlist synchronized: {result.summary}")

        for line in run.report_lines():
            self.logger.console_info(line)
        return run

    def run_forever(
        self,
        playlist_ids: Sequence[str],
        interval_hours: float,
        max_cycles: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        force_first: bool = False
    ) -> int:
        """
        Run sync cycles on a fixed schedule anchored at the first cycle

        Cycle k starts at ``start + k * interval``. When a cycle overruns one
        or more deadlines, those cycles are skipped. A failing cycle is logged
        and the schedule continues.

        Args:
            playlist_ids: Playlists to synchronize each cycle
            interval_hours: Hours between cycle starts
            max_cycles: Stop after this many cycles; None runs until interrupted
            clock: Monotonic clock in seconds
            force_first: Run the first cycle with force

        Returns:
            Number of cycles run
        """
        interval = interval_hours * 3600
        start = clock()
        cycle_index = 0
        cycles_run = 0

        while max_cycles is None or cycles_run < max_cycles:
            try:
                self.sync_all(playlist_ids, force=force_first and cycles_run == 0)
            except Exception as e:
                self.logger.error(f"Synchronization failed: {e}", exc_info=True)
            cycles_run += 1

            if max_cycles is not None and cycles_run >= max_cycles:
                break

            now = clock()
            next_index, deadline = next_deadline(start, now, interval)
            skipped = next_index - cycle_index - 1
            if skipped > 0:
                self.logger.warning(f"Sync overran its interval, skipping {skipped} scheduled run(s)")
            cycle_index = next_index

            wait = deadline - now
            next_run = datetime.now() + timedelta(seconds=wait)
            self.logger.console_info(f"Next sync scheduled at: {next_run:%Y-%m-%d %H:%M:%S}")
            self.sleep(wait)

        return cycles_run
