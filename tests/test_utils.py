# tests/test_utils.py
"""Test utilities and helpers"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

from playlist_sync.utils.helpers import (
    create_backup_filename,
    format_duration,
    minutes_since,
    retry_on_failure,
    sanitize_filename,
    track_filename,
)
from playlist_sync.utils.logger import parse_size
from playlist_sync.utils.validation import validate_playlist_id, validate_spotify_url


class TestHelpers:
    """Test helper functions"""

    def test_sanitize_filename(self):
        """Test filename sanitization"""
        assert sanitize_filename("AC/DC - Back In Black") == "ACDC - Back In Black"
        assert sanitize_filename('Song: "Title"?') == "Song Title"
        assert sanitize_filename("a <b> c|d*e") == "a b cde"
        assert sanitize_filename("  spaced   out  ") == "spaced out"
        assert sanitize_filename("") == ""

    def test_sanitize_filename_truncates(self):
        """Test long names are cut to max_length"""
        assert len(sanitize_filename("x" * 500)) == 200
        assert sanitize_filename("abcdef", max_length=3) == "abc"

    def test_sanitize_filename_is_deterministic(self):
        """Test the same input always maps to the same name"""
        name = "Beyoncé, JAY-Z - Crazy In Love / Remix"
        assert sanitize_filename(name) == sanitize_filename(name)

    def test_track_filename(self):
        """Test output file naming"""
        assert track_filename("Queen", "Bohemian Rhapsody") == "Queen - Bohemian Rhapsody.mp3"
        assert track_filename("A", "B?", "flac") == "A - B.flac"
        assert track_filename("", "", "mp3") == "-.mp3"

    def test_format_duration(self):
        """Test duration formatting"""
        assert format_duration(90) == "1:30"
        assert format_duration(3661) == "1:01:01"
        assert format_duration(0) == "0:00"
        assert format_duration(-10) == "0:00"

    def test_minutes_since(self):
        """Test elapsed minutes from an ISO timestamp"""
        ten_minutes_ago = datetime.now(timezone.utc) - timedelta(minutes=10, seconds=5)
        timestamp = ten_minutes_ago.isoformat().replace('+00:00', 'Z')
        assert minutes_since(timestamp) == 10
        assert minutes_since("not a timestamp") == -1

    def test_create_backup_filename(self, temp_dir):
        """Test backup names keep the directory and extension"""
        backup = create_backup_filename(temp_dir / "state.json")
        assert backup.parent == temp_dir
        assert backup.name.startswith("state.backup_")
        assert backup.suffix == ".json"


class TestRetryOnFailure:
    """Test the retry decorator"""

    @patch('playlist_sync.utils.helpers.time.sleep')
    def test_retries_listed_exceptions(self, mock_sleep):
        """Test listed exceptions are retried with backoff"""
        func = Mock(side_effect=[ConnectionError("down"), ConnectionError("down"), "ok"])
        func.__name__ = "func"
        func.__module__ = __name__

        wrapped = retry_on_failure(max_attempts=3, delay=1.0, backoff=2.0, exceptions=(ConnectionError,))(func)

        assert wrapped() == "ok"
        assert func.call_count == 3
        assert [call.args[0] for call in mock_sleep.call_args_list] == [1.0, 2.0]

    @patch('playlist_sync.utils.helpers.time.sleep')
    def test_reraises_after_last_attempt(self, mock_sleep):
        """Test the last failure propagates"""
        func = Mock(side_effect=ConnectionError("down"))
        func.__name__ = "func"
        func.__module__ = __name__

        wrapped = retry_on_failure(max_attempts=2, delay=0, exceptions=(ConnectionError,))(func)

        with pytest.raises(ConnectionError):
            wrapped()
        assert func.call_count == 2

    @patch('playlist_sync.utils.helpers.time.sleep')
    def test_other_exceptions_are_not_retried(self, mock_sleep):
        """Test unlisted exceptions propagate immediately"""
        func = Mock(side_effect=ValueError("bad"))
        func.__name__ = "func"
        func.__module__ = __name__

        wrapped = retry_on_failure(max_attempts=3, exceptions=(ConnectionError,))(func)

        with pytest.raises(ValueError):
            wrapped()
        assert func.call_count == 1
        mock_sleep.assert_not_called()


class TestValidation:
    """Test input validation"""

    def test_validate_spotify_url(self):
        """Test Spotify playlist URL validation"""
        valid, error = validate_spotify_url(
            "https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M?si=abc"
        )
        assert valid is True
        assert error is None

        assert validate_spotify_url("spotify:playlist:37i9dQZF1DXcBWIGoYBM5M")[0] is True

    def test_validate_spotify_url_rejects(self):
        """Test non-playlist and non-Spotify URLs are rejected"""
        assert validate_spotify_url("") == (False, "URL cannot be empty")
        assert validate_spotify_url("https://example.com/playlist/x") == (False, "Not a Spotify URL")
        assert validate_spotify_url("https://open.spotify.com/album/37i9dQZF1DXcBWIGoYBM5M")[0] is False
        assert validate_spotify_url("https://open.spotify.com/playlist/short") == (
            False, "Invalid playlist ID format"
        )

    def test_validate_playlist_id(self):
        """Test bare playlist id validation"""
        assert validate_playlist_id("37i9dQZF1DXcBWIGoYBM5M") == (True, None)
        assert validate_playlist_id("")[0] is False
        assert validate_playlist_id("too-short")[0] is False


class TestLoggerHelpers:
    """Test logging helpers"""

    def test_parse_size(self):
        """Test log size parsing"""
        assert parse_size("50MB") == 50 * 1024 * 1024
        assert parse_size("1.5KB") == 1536
        with pytest.raises(ValueError):
            parse_size("lots")
