"""
YouTube Music search through the InnerTube web API

Resolves a playlist track to the first playable YouTube Music search result.
The searcher mimics the music.youtube.com web client: it loads the browser
cookies, reads the InnerTube API key and client context from the homepage, and
posts search queries to ``/youtubei/v1/search``.

Matching is deliberately simple: the query is ``"<artists> <title>"`` and the
first result with a watch endpoint wins. No result is a normal outcome and
returns None; only transport failures raise ``SearchError``.

A searcher is owned by one synchronization run and used as a context manager:

    with YouTubeMusicSearcher(settings) as searcher:
        match = searcher.find_track(track)

Responses are cached per instance by lowercased query, so repeated queries in
one run cost a single request.
"""

import json
import re
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import requests

from ..config.settings import Settings, get_settings
from ..exceptions import MalformedResponseError, SearchError
from ..spotify.models import Track
from ..utils.helpers import retry_on_failure
from ..utils.logger import get_logger
from .cookies import load_cookie_file, to_cookie_header


ORIGIN = "https://music.youtube.com"
WATCH_URL_PREFIX = "https://www.youtube.com/watch?v="
CLIENT_NAME_ID = "67"  # WEB_REMIX
DEFAULT_CLIENT_NAME = "WEB_REMIX"
DEFAULT_CLIENT_VERSION = "1.20251029.03.00"

API_KEY_PATTERN = re.compile(r'"INNERTUBE_API_KEY"\s*:\s*"([^"]+)"', re.IGNORECASE)
CONTEXT_PATTERN = re.compile(r'"INNERTUBE_CONTEXT"\s*:\s*\{')

RETRYABLE_ERRORS = (requests.Timeout, requests.ConnectionError)


@dataclass
class SearchCandidate:
    """First playable entry of a search response"""
    video_id: str
    playlist_id: Optional[str]
    music_video_type: Optional[str]
    title: str
    subtitle: str


@dataclass
class MatchResult:
    """
    Search match for a playlist track

    Attributes:
        video_id: YouTube video id
        playlist_id: Watch playlist id, if the result carries one
        music_video_type: InnerTube type such as ``MUSIC_VIDEO_TYPE_ATV``
        title: Result title as shown by YouTube Music
        subtitle: Result subtitle (artist, album, duration)
        query: Query that produced the match
    """
    video_id: str
    playlist_id: Optional[str]
    music_video_type: Optional[str]
    title: str
    subtitle: str
    query: str

    @property
    def youtube_url(self) -> str:
        return f"{WATCH_URL_PREFIX}{self.video_id}"

    @classmethod
    def from_candidate(cls, candidate: SearchCandidate, query: str) -> 'MatchResult':
        return cls(
            video_id=candidate.video_id,
            playlist_id=candidate.playlist_id,
            music_video_type=candidate.music_video_type,
            title=candidate.title,
            subtitle=candidate.subtitle,
            query=query,
        )


def _dig(data: Any, *keys) -> Any:
    for key in keys:
        if isinstance(key, int):
            if not isinstance(data, list) or len(data) <= key:
                return None
        elif not isinstance(data, dict):
            return None
        data = data[key] if isinstance(key, int) else data.get(key)
    return data


def _runs_text(runs: Any) -> str:
    if not isinstance(runs, list):
        return ""
    return "".join(run.get('text', '') for run in runs if isinstance(run, dict)).strip()


def extract_first_watch_candidate(response: Dict[str, Any]) -> Optional[SearchCandidate]:
    """
    Find the first playable result in a search response

    Args:
        response: Decoded ``/youtubei/v1/search`` response

    Returns:
        First candidate with a video id, or None if there are no results

    Raises:
        MalformedResponseError: If the response is not an object with ``contents``
    """
    if not isinstance(response, dict) or 'contents' not in response:
        raise MalformedResponseError("Search response has no contents")

    tabs = _dig(response, 'contents', 'tabbedSearchResultsRenderer', 'tabs') or []

    for tab in tabs:
        sections = _dig(tab, 'tabRenderer', 'content', 'sectionListRenderer', 'contents') or []

        for section in sections:
            items = _dig(section, 'musicShelfRenderer', 'contents')
            if not isinstance(items, list):
                continue

            for item in items:
                renderer = _dig(item, 'musicResponsiveListItemRenderer')
                if not isinstance(renderer, dict):
                    continue

                watch_endpoint = (
                    _dig(renderer, 'overlay', 'musicItemThumbnailOverlayRenderer', 'content',
                         'musicPlayButtonRenderer', 'playNavigationEndpoint', 'watchEndpoint')
                    or _dig(renderer, 'navigationEndpoint', 'watchEndpoint')
                )
                if not isinstance(watch_endpoint, dict) or not watch_endpoint.get('videoId'):
                    continue

                return SearchCandidate(
                    video_id=watch_endpoint['videoId'],
                    playlist_id=(
                        watch_endpoint.get('playlistId')
                        or _dig(renderer, 'navigationEndpoint', 'watchPlaylistEndpoint', 'playlistId')
                    ),
                    music_video_type=_dig(
                        watch_endpoint, 'watchEndpointMusicSupportedConfigs',
                        'watchEndpointMusicConfig', 'musicVideoType'
                    ),
                    title=_runs_text(_dig(renderer, 'flexColumns', 0,
                                          'musicResponsiveListItemFlexColumnRenderer', 'text', 'runs')),
                    subtitle=_runs_text(_dig(renderer, 'flexColumns', 1,
                                             'musicResponsiveListItemFlexColumnRenderer', 'text', 'runs')),
                )

    return None


def extract_innertube_config(html: str) -> Tuple[str, Dict[str, Any]]:
    """
    Read the InnerTube API key and client context from the homepage

    Args:
        html: music.youtube.com homepage markup

    Returns:
        Tuple of (api_key, context)

    Raises:
        SearchError: If no API key is present
    """
    match = API_KEY_PATTERN.search(html)
    if not match:
        raise SearchError("Could not extract INNERTUBE_API_KEY from YouTube Music homepage")
    api_key = match.group(1)

    context = None
    context_match = CONTEXT_PATTERN.search(html)
    if context_match:
        try:
            context, _ = json.JSONDecoder().raw_decode(html, context_match.end() - 1)
        except ValueError:
            context = None

    if not isinstance(context, dict) or 'client' not in context:
        context = _fallback_context(html)

    return api_key, context


def _fallback_context(html: str) -> Dict[str, Any]:
    def find(key: str, default: str) -> str:
        match = re.search(rf'"{key}"\s*:\s*"([^"]+)"', html)
        return match.group(1) if match else default

    return {
        'client': {
            'clientName': find('clientName', DEFAULT_CLIENT_NAME),
            'clientVersion': find('clientVersion', DEFAULT_CLIENT_VERSION),
            'gl': find('gl', 'US'),
            'hl': find('hl', 'en'),
            'platform': 'DESKTOP',
            'originalUrl': ORIGIN,
        }
    }


class QueryCache:
    """
    Search response cache keyed by lowercased query

    Unbounded when ``max_entries`` is 0, otherwise evicts the least recently
    used entry.
    """

    def __init__(self, max_entries: int = 0):
        self.max_entries = max_entries
        self._entries: 'OrderedDict[str, Dict[str, Any]]' = OrderedDict()

    def get(self, query: str) -> Optional[Dict[str, Any]]:
        key = query.lower()
        if key not in self._entries:
            return None
        self._entries.move_to_end(key)
        return self._entries[key]

    def put(self, query: str, response: Dict[str, Any]) -> None:
        key = query.lower()
        self._entries[key] = response
        self._entries.move_to_end(key)
        if self.max_entries > 0:
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class YouTubeMusicSearcher:
    """Finds YouTube Music matches for playlist tracks"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        cookies_path: Optional[Union[str, Path]] = None
    ):
        """
        Initialize searcher; no network activity happens until the first search

        Args:
            settings: Application settings, defaults to the global instance
            session: HTTP session for homepage and search requests
            cookies_path: Netscape cookie file, defaults to ``ytmusic.cookies_file``
        """
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        self.cookies_path = Path(cookies_path) if cookies_path else self.settings.get_cookies_path()
        self.logger = get_logger(__name__)

        self.cache = QueryCache(self.settings.ytmusic.query_cache_size)
        self.initialized = False
        self.api_key: Optional[str] = None
        self.context: Dict[str, Any] = {}
        self.cookie_header = ""

        self.stats = {'requests': 0, 'cache_hits': 0, 'matches': 0, 'misses': 0}

    def __enter__(self) -> 'YouTubeMusicSearcher':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Drop cached responses and session state"""
        self.logger.debug(f"Search stats: {self.stats}")
        self.cache.clear()
        self.initialized = False
        self.session.close()

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        network = self.settings.network
        send = retry_on_failure(
            max_attempts=max(1, network.max_retries),
            delay=network.retry_delay,
            exceptions=RETRYABLE_ERRORS
        )(self.session.request)

        try:
            response = send(method, url, timeout=network.request_timeout, **kwargs)
        except requests.RequestException as e:
            raise SearchError(f"YouTube Music request failed: {e}", details={'url': url}) from e

        if not response.ok:
            raise SearchError(
                f"YouTube Music request failed with status {response.status_code}",
                details={'url': url, 'status': response.status_code}
            )
        return response

    def _initialize(self) -> None:
        """
        Load cookies and the InnerTube configuration

        Raises:
            ConfigurationError: If the cookie file is missing or empty
            SearchError: If the homepage cannot be loaded or parsed
        """
        if self.initialized:
            return

        self.cookie_header = to_cookie_header(load_cookie_file(self.cookies_path))

        response = self._send('GET', ORIGIN, headers={
            'User-Agent': self.settings.network.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': self.settings.ytmusic.accept_language,
            'Cookie': self.cookie_header,
            'Referer': ORIGIN,
        })

        self.api_key, self.context = extract_innertube_config(response.text)
        self.initialized = True
        self.logger.debug(
            f"YouTube Music client initialized ({self.context['client'].get('clientVersion')})"
        )

    def search_raw(self, query: str) -> Dict[str, Any]:
        """
        Run a search and return the decoded response

        Args:
            query: Search query

        Returns:
            InnerTube search response

        Raises:
            SearchError: If the request fails or returns invalid JSON
        """
        self._initialize()

        cached = self.cache.get(query)
        if cached is not None:
            self.stats['cache_hits'] += 1
            return cached

        client_version = self.context.get('client', {}).get('clientVersion') or DEFAULT_CLIENT_VERSION
        self.stats['requests'] += 1
        response = self._send(
            'POST',
            f"{ORIGIN}/youtubei/v1/search?prettyPrint=false&key={self.api_key}",
            headers={
                'User-Agent': self.settings.network.user_agent,
                'Accept': '*/*',
                'Accept-Language': self.settings.ytmusic.accept_language,
                'Content-Type': 'application/json',
                'Cookie': self.cookie_header,
                'Origin': ORIGIN,
                'Referer': f"{ORIGIN}/",
                'X-Youtube-Client-Name': CLIENT_NAME_ID,
                'X-Youtube-Client-Version': client_version,
            },
            json={'context': self.context, 'query': query}
        )

        try:
            data = response.json()
        except ValueError as e:
            raise SearchError(f"Search response is not JSON: {e}", details={'query': query}) from e

        self.cache.put(query, data)
        return data

    def find_first_track(self, query: str) -> Optional[MatchResult]:
        """
        Return the first playable result for a query

        Raises:
            SearchError: On transport failures or a malformed response
        """
        try:
            candidate = extract_first_watch_candidate(self.search_raw(query))
        except MalformedResponseError as e:
            raise SearchError(str(e), details={'query': query}) from e

        if candidate is None:
            self.stats['misses'] += 1
            return None

        self.stats['matches'] += 1
        return MatchResult.from_candidate(candidate, query)

    def find_track(self, track: Track) -> Optional[MatchResult]:
        """
        Find a YouTube Music match for a playlist track

        Args:
            track: Playlist track

        Returns:
            MatchResult, or None if the search has no playable result

        Raises:
            SearchError: If the track has no searchable text or the search fails
        """
        query = f"{track.artists or ''} {track.title or ''}".strip()
        if not query:
            raise SearchError("Track is missing artists/title for search", details={'track_id': track.id})

        self.logger.debug(f"Searching YouTube Music: {query}")
        return self.find_first_track(query)
