"""Test snapshot diffing"""

from playlist_sync.sync.diff import diff_tracks, format_diff_report

from conftest import make_track


class TestDiffTracks:
    """Test identifier and position based diffing"""

    def test_identical_lists(self):
        """Test a list diffed against itself has no changes"""
        tracks = [make_track(1), make_track(2), make_track(3)]

        diff = diff_tracks(tracks, tracks)

        assert not diff.has_changes
        assert diff.unchanged == 3
        assert diff.summary == "No changes detected"

    def test_disjoint_lists(self):
        """Test disjoint lists are all added and all removed"""
        old = [make_track(1), make_track(2)]
        new = [make_track(3, position=1), make_track(4, position=2)]

        diff = diff_tracks(old, new)

        assert [track.id for track in diff.added] == [track.id for track in new]
        assert [track.id for track in diff.removed] == [track.id for track in old]
        assert diff.moved == []
        assert diff.unchanged == 0

    def test_first_run_against_empty(self):
        """Test every track is new against an empty list"""
        new = [make_track(1), make_track(2)]

        diff = diff_tracks([], new)

        assert len(diff.added) == 2
        assert diff.removed == []

    def test_insert_at_top_moves_everything_below(self):
        """Test position shifts count as moves even if relative order is kept"""
        old = [make_track(1, position=1), make_track(2, position=2)]
        new = [make_track(9, position=1), make_track(1, position=2), make_track(2, position=3)]

        diff = diff_tracks(old, new)

        assert [track.id for track in diff.added] == [make_track(9).id]
        assert [(m.from_position, m.to_position) for m in diff.moved] == [(1, 2), (2, 3)]
        assert diff.unchanged == 0

    def test_swap_moves_both_tracks(self):
        """Test two tracks trading places are both moved"""
        old = [make_track(1, position=1), make_track(2, position=2)]
        new = [make_track(2, position=1), make_track(1, position=2)]

        diff = diff_tracks(old, new)

        assert diff.added == []
        assert diff.removed == []
        assert sorted((m.id, m.from_position, m.to_position) for m in diff.moved) == [
            (make_track(1).id, 1, 2),
            (make_track(2).id, 2, 1),
        ]
        assert diff.unchanged == 0
        assert diff.has_changes

    def test_mixed_changes(self):
        """Test added, removed, moved and unchanged are disjoint and complete"""
        old = [make_track(1, position=1), make_track(2, position=2), make_track(3, position=3)]
        new = [make_track(1, position=1), make_track(3, position=2), make_track(4, position=3)]

        diff = diff_tracks(old, new)

        assert [track.id for track in diff.added] == [make_track(4).id]
        assert [track.id for track in diff.removed] == [make_track(2).id]
        assert [m.id for m in diff.moved] == [make_track(3).id]
        assert diff.unchanged == 1
        assert len(diff.added) + len(diff.moved) + diff.unchanged == len(new)
        assert diff.summary == "1 added, 1 removed, 1 moved"

    def test_renamed_track_is_unchanged(self):
        """Test only identifiers matter, not display data"""
        old = [make_track(1, title="Old Title")]
        new = [make_track(1, title="New Title")]

        diff = diff_tracks(old, new)

        assert not diff.has_changes


class TestFormatDiffReport:
    """Test the human-readable change report"""

    def test_no_changes(self):
        """Test report for an unchanged playlist"""
        tracks = [make_track(1)]
        lines = format_diff_report(diff_tracks(tracks, tracks), "Road Trip")
        assert lines == ['Changes in "Road Trip":', "   No changes found"]

    def test_lists_are_limited(self):
        """Test at most ten added and removed tracks are listed"""
        old = [make_track(n, position=n) for n in range(1, 13)]
        new = [make_track(n + 100, position=n) for n in range(1, 13)]

        lines = format_diff_report(diff_tracks(old, new), "Road Trip")

        assert "   + 12 new tracks" in lines
        assert "   - 12 removed tracks" in lines
        assert lines.count("   ... and 2 more") == 2
        assert "   #1  Artist 101 - Song 101" in lines
        assert not any("Song 111" in line for line in lines)

    def test_moved_tracks_hidden_when_many(self):
        """Test moved tracks are only listed when there are ten or fewer"""
        old = [make_track(n, position=n) for n in range(1, 14)]
        new = [make_track(n, position=14 - n) for n in range(1, 14)]

        few = format_diff_report(diff_tracks(old[:2], [make_track(2, position=1), make_track(1, position=2)]), "x")
        many = format_diff_report(diff_tracks(old, new), "x")

        assert "Moved tracks:" in few
        assert "   #2 -> #1  Artist 2 - Song 2" in few
        assert "Moved tracks:" not in many
        assert "   ~ 12 position changes" in many
