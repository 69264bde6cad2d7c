"""Test the snapshot state store"""

import json
import pytest
from datetime import datetime
from unittest.mock import patch

from playlist_sync.exceptions import StateCorruptError, StateError
from playlist_sync.sync.tracker import StateStore


@pytest.fixture
def store(temp_dir):
    return StateStore(temp_dir / "data", temp_dir / "playlists")


class TestStateStore:
    """Test loading and persisting snapshots"""

    def test_load_missing_returns_none(self, store, sample_snapshot):
        """Test a never persisted playlist loads as None"""
        assert store.load(sample_snapshot.playlist_id) is None
        assert not store.exists(sample_snapshot.playlist_id)

    def test_save_and_load(self, store, sample_snapshot):
        """Test a saved snapshot loads back unchanged"""
        path = store.save(sample_snapshot)

        assert path == store.state_path(sample_snapshot.playlist_id)
        assert store.load(sample_snapshot.playlist_id) == sample_snapshot

    def test_save_leaves_no_temp_files(self, store, sample_snapshot):
        """Test atomic writes clean up after themselves"""
        store.save(sample_snapshot)
        store.write_export(sample_snapshot)

        assert [p.name for p in store.data_directory.iterdir()] == [f"{sample_snapshot.playlist_id}.json"]
        assert [p.name for p in store.playlists_directory.iterdir()] == [f"{sample_snapshot.playlist_id}.json"]

    def test_write_export(self, store, sample_snapshot):
        """Test the export file holds the consumer format"""
        path = store.write_export(sample_snapshot)

        data = json.loads(path.read_text(encoding='utf-8'))
        assert data['playlistName'] == "Road Trip"
        assert data['trackCount'] == 3
        assert 'exportDate' in data

    def test_failed_write_keeps_previous_state(self, store, sample_snapshot):
        """Test a write failure leaves the old file intact and no temp file"""
        path = store.save(sample_snapshot)
        before = path.read_bytes()

        sample_snapshot.name = "Renamed"
        with patch('playlist_sync.sync.tracker.os.replace', side_effect=OSError("disk full")):
            with pytest.raises(StateError):
                store.save(sample_snapshot)

        assert path.read_bytes() == before
        assert len(list(store.data_directory.iterdir())) == 1

    @pytest.mark.parametrize("content", [
        "{not json",
        "[]",
        json.dumps({'playlistId': '37i9dQZF1DXcBWIGoYBM5M'}),
        json.dumps({'playlistId': '37i9dQZF1DXcBWIGoYBM5M', 'tracks': [{'position': 1}]}),
    ])
    def test_corrupt_state_raises(self, store, sample_snapshot, content):
        """Test unparseable state is reported, not treated as missing"""
        path = store.state_path(sample_snapshot.playlist_id)
        path.parent.mkdir(parents=True)
        path.write_text(content, encoding='utf-8')

        with pytest.raises(StateCorruptError):
            store.load(sample_snapshot.playlist_id)

        assert path.read_text(encoding='utf-8') == content

    def test_state_of_other_playlist_is_corrupt(self, store, sample_snapshot):
        """Test a state file naming a different playlist is rejected"""
        store.save(sample_snapshot)
        other = store.state_path("0000000000000000000000")
        store.state_path(sample_snapshot.playlist_id).rename(other)

        with pytest.raises(StateCorruptError):
            store.load("0000000000000000000000")

    def test_quarantine(self, store, sample_snapshot):
        """Test a corrupt file is moved aside"""
        path = store.state_path(sample_snapshot.playlist_id)
        path.parent.mkdir(parents=True)
        path.write_text("garbage", encoding='utf-8')

        backup = store.quarantine(sample_snapshot.playlist_id)

        assert not path.exists()
        assert backup.read_text(encoding='utf-8') == "garbage"
        assert store.load(sample_snapshot.playlist_id) is None

    def test_repeated_quarantine_keeps_every_backup(self, store, sample_snapshot):
        """Test two quarantines at the same instant produce two backups"""
        path = store.state_path(sample_snapshot.playlist_id)
        path.parent.mkdir(parents=True)
        frozen = datetime(2025, 1, 1, 10, 0, 0, 123456)

        with patch('playlist_sync.utils.helpers.datetime') as mock_datetime:
            mock_datetime.now.return_value = frozen
            path.write_text("first", encoding='utf-8')
            first = store.quarantine(sample_snapshot.playlist_id)
            path.write_text("second", encoding='utf-8')
            second = store.quarantine(sample_snapshot.playlist_id)

        assert first != second
        assert first.read_text(encoding='utf-8') == "first"
        assert second.read_text(encoding='utf-8') == "second"

    def test_quarantine_missing_file(self, store):
        """Test moving a missing file raises StateError"""
        with pytest.raises(StateError):
            store.quarantine("37i9dQZF1DXcBWIGoYBM5M")
