"""
Positional diff between two playlist snapshots

Tracks are matched by identifier only. A track present in both snapshots is
"moved" when its stored position differs, regardless of whether its order
relative to other tracks changed; this is not a sequence alignment.
"""

from dataclasses import dataclass, field
from typing import List, Sequence

from ..spotify.models import Track


REPORT_LIMIT = 10


@dataclass
class MovedTrack:
    """Track present in both snapshots at different positions"""
    id: str
    from_position: int
    to_position: int
    artists: str
    title: str


@dataclass
class DiffResult:
    """
    Classification of two track lists

    Every identifier in the new list is in exactly one of ``added``, ``moved``
    or the ``unchanged`` count; every identifier only in the old list is in
    ``removed``.
    """
    added: List[Track] = field(default_factory=list)
    removed: List[Track] = field(default_factory=list)
    moved: List[MovedTrack] = field(default_factory=list)
    unchanged: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.moved)

    @property
    def summary(self) -> str:
        parts = []
        if self.added:
            parts.append(f"{len(self.added)} added")
        if self.removed:
            parts.append(f"{len(self.removed)} removed")
        if self.moved:
            parts.append(f"{len(self.moved)} moved")

        if not parts:
            return "No changes detected"
        return ", ".join(parts)


def diff_tracks(old: Sequence[Track], new: Sequence[Track]) -> DiffResult:
    """
    Compare two track lists by identifier and stored position

    Args:
        old: Tracks from the previously persisted snapshot
        new: Tracks from the freshly fetched snapshot

    Returns:
        DiffResult with added/removed tracks in their list order and moved
        tracks in new-list order
    """
    old_by_id = {track.id: track for track in old}
    new_ids = {track.id for track in new}

    result = DiffResult()

    for track in new:
        previous = old_by_id.get(track.id)
        if previous is None:
            result.added.append(track)
        elif previous.position != track.position:
            result.moved.append(MovedTrack(
                id=track.id,
                from_position=previous.position,
                to_position=track.position,
                artists=track.artists,
                title=track.title,
            ))
        else:
            result.unchanged += 1

    result.removed = [track for track in old if track.id not in new_ids]
    return result


def format_diff_report(diff: DiffResult, playlist_name: str) -> List[str]:
    """
    Render a human-readable change report

    At most ten added and ten removed tracks are listed; moved tracks are only
    listed when there are ten or fewer of them.

    Args:
        diff: Result of diff_tracks
        playlist_name: Playlist display name for the header

    Returns:
        Report lines without trailing newlines
    """
    lines = [f'Changes in "{playlist_name}":']

    if not diff.has_changes:
        lines.append("   No changes found")
        return lines

    lines.extend([
        f"   + {len(diff.added)} new tracks",
        f"   - {len(diff.removed)} removed tracks",
        f"   ~ {len(diff.moved)} position changes",
        f"   = {diff.unchanged} unchanged",
    ])

    if diff.added:
        lines.append("")
        lines.append("New tracks:")
        for track in diff.added[:REPORT_LIMIT]:
            lines.append(f"   #{track.position}  {track.artists} - {track.title}")
        if len(diff.added) > REPORT_LIMIT:
            lines.append(f"   ... and {len(diff.added) - REPORT_LIMIT} more")

    if diff.removed:
        lines.append("")
        lines.append("Removed tracks:")
        for track in diff.removed[:REPORT_LIMIT]:
            lines.append(f"   {track.artists} - {track.title}")
        if len(diff.removed) > REPORT_LIMIT:
            lines.append(f"   ... and {len(diff.removed) - REPORT_LIMIT} more")

    if diff.moved and len(diff.moved) <= REPORT_LIMIT:
        lines.append("")
        lines.append("Moved tracks:")
        for moved in diff.moved:
            lines.append(f"   #{moved.from_position} -> #{moved.to_position}  {moved.artists} - {moved.title}")

    return lines
