"""
YouTube Music package
Search matching and audio download
"""

from .cookies import Cookie, load_cookie_file, parse_netscape_cookies, to_cookie_header
from .searcher import YouTubeMusicSearcher, MatchResult, SearchCandidate, extract_first_watch_candidate
from .downloader import YouTubeMusicDownloader, ffmpeg_location

__all__ = [
    'Cookie',
    'load_cookie_file',
    'parse_netscape_cookies',
    'to_cookie_header',
    'YouTubeMusicSearcher',
    'MatchResult',
    'SearchCandidate',
    'extract_first_watch_candidate',
    'YouTubeMusicDownloader',
    'ffmpeg_location',
]
