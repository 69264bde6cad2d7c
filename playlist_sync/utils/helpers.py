"""
Utility functions and helpers for playlist-sync
Common functions for file naming, retries, timestamps and formatting
"""

import functools
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Tuple, Type, Union

from .logger import get_logger


INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')


def sanitize_filename(filename: str, max_length: int = 200) -> str:
    """
    Sanitize filename for cross-platform compatibility

    Removes the characters Windows forbids in file names, collapses runs of
    whitespace and truncates the result. The same input always produces the
    same name, which is what makes the "already downloaded" check possible.

    Args:
        filename: Original filename
        max_length: Maximum filename length

    Returns:
        Sanitized filename, possibly empty
    """
    if not filename:
        return ""

    filename = INVALID_FILENAME_CHARS.sub('', filename)
    filename = re.sub(r'\s+', ' ', filename)
    return filename.strip()[:max_length]


def track_filename(artists: str, title: str, extension: str = "mp3") -> str:
    """
    Build the deterministic output filename for a track

    Args:
        artists: Display artist string
        title: Display title
        extension: Audio file extension without dot

    Returns:
        Filename such as ``"Artist - Title.mp3"``
    """
    base = sanitize_filename(f"{artists} - {title}") or "unknown"
    return f"{base}.{extension}"


def retry_on_failure(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,)
):
    """
    Decorator for retrying functions on failure

    Only exceptions listed in ``exceptions`` are retried; anything else
    propagates immediately. The last failure is re-raised once attempts are
    exhausted.

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay between attempts
        backoff: Delay multiplier for exponential backoff
        exceptions: Exception types that trigger a retry
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            current_delay = delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        raise
                    get_logger(func.__module__).debug(
                        f"{func.__name__} attempt {attempt}/{max_attempts} failed: {e}, "
                        f"retrying in {current_delay:.1f}s"
                    )
                    time.sleep(current_delay)
                    current_delay *= backoff
        return wrapper
    return decorator


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure directory exists, create if necessary

    Args:
        path: Directory path

    Returns:
        Path object
    """
    path_obj = Path(path)
    path_obj.mkdir(parents=True, exist_ok=True)
    return path_obj


def get_current_timestamp() -> str:
    """Get current UTC timestamp in ISO format"""
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def minutes_since(timestamp: str) -> int:
    """
    Whole minutes elapsed since an ISO timestamp

    Args:
        timestamp: ISO 8601 timestamp, optionally ending in ``Z``

    Returns:
        Elapsed minutes, or -1 if the timestamp cannot be parsed
    """
    try:
        dt = datetime.fromisoformat(timestamp.replace('Z', '+00:00'))
    except (AttributeError, ValueError):
        return -1
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int((datetime.now(timezone.utc) - dt).total_seconds() // 60)


def create_backup_filename(original_path: Union[str, Path]) -> Path:
    """
    Create backup filename with timestamp

    The timestamp has microsecond resolution and a counter is appended if the
    name is still taken, so an existing backup is never overwritten.

    Args:
        original_path: Original file path

    Returns:
        Backup file path that does not exist yet
    """
    path = Path(original_path)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S_%f')
    stem, suffix = (path.stem, path.suffix) if path.suffix else (path.name, "")

    backup_path = path.parent / f"{stem}.backup_{timestamp}{suffix}"
    counter = 1
    while backup_path.exists():
        backup_path = path.parent / f"{stem}.backup_{timestamp}_{counter}{suffix}"
        counter += 1

    return backup_path


def format_duration(seconds: Union[int, float]) -> str:
    """
    Format duration in seconds to human readable format

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string (MM:SS or HH:MM:SS)
    """
    if seconds < 0:
        return "0:00"

    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
