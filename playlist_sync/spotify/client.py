"""
Spotify playlist client using the web player's GraphQL API

Playlists are fetched through persisted GraphQL queries, the same requests the
Spotify web player sends. No developer credentials are needed; anonymous
access and client tokens come from ``config.auth``.

Response handling is split from transport: ``parse_playlist_page`` validates
the nested ``playlistV2`` payload and converts it into a ``PlaylistPage`` so
that raw JSON never leaves this module.

Error Handling:
    - HTTP 401: both credentials are invalidated and the request is retried once
    - HTTP 429: waits for ``Retry-After`` and retries once
    - Timeouts/connection errors: retried with exponential backoff
    - Anything else, including GraphQL ``errors`` and malformed payloads, raises
      ``MetadataFetchError`` which aborts the playlist's cycle
"""

import re
import time
from typing import Any, Dict, List, Optional

import requests

from ..config.auth import SpotifyAuth
from ..config.settings import Settings, get_settings
from ..exceptions import MalformedResponseError, MetadataFetchError
from ..utils.helpers import retry_on_failure
from ..utils.logger import get_logger, log_performance
from .models import PlaylistPage, Snapshot, Track, UNKNOWN_PLAYLIST, as_mapping


PERSISTED_QUERIES = {
    'fetchPlaylist': '837211ef46f604a73cd3d051f12ee63c81aca4ec6eb18e227b0629a7b36adad3',
    'fetchPlaylistContents': '837211ef46f604a73cd3d051f12ee63c81aca4ec6eb18e227b0629a7b36adad3',
}

RETRYABLE_ERRORS = (requests.Timeout, requests.ConnectionError)


class SpotifyClient:
    """Fetches playlist snapshots from Spotify"""

    def __init__(
        self,
        auth: Optional[SpotifyAuth] = None,
        session: Optional[requests.Session] = None,
        settings: Optional[Settings] = None,
        sleep=time.sleep
    ):
        """
        Initialize client

        Args:
            auth: Credential bundle; a new one sharing ``session`` is created if omitted
            session: HTTP session for GraphQL requests
            settings: Application settings, defaults to the global instance
            sleep: Sleep function used for 429 back-off
        """
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        self.auth = auth or SpotifyAuth(session=self.session, settings=self.settings)
        self.sleep = sleep
        self.logger = get_logger(__name__)

    @staticmethod
    def extract_playlist_id(url_or_id: str) -> str:
        """
        Extract playlist ID from a Spotify URL, URI or bare ID

        Args:
            url_or_id: ``https://open.spotify.com/playlist/<id>?si=...``,
                ``spotify:playlist:<id>`` or ``<id>``

        Returns:
            Playlist ID

        Raises:
            ValueError: If no playlist ID can be found
        """
        url_or_id = url_or_id.strip()

        if re.match(r'^[a-zA-Z0-9]{22}$', url_or_id):
            return url_or_id

        match = re.search(r'playlist[/:]([a-zA-Z0-9]+)', url_or_id)
        if match and ('spotify.com' in url_or_id or url_or_id.startswith('spotify:')):
            return match.group(1)

        raise ValueError(f"Invalid Spotify playlist URL or ID: {url_or_id}")

    def _execute(self, operation_name: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute a persisted GraphQL query

        Args:
            operation_name: Key of PERSISTED_QUERIES
            variables: Query variables

        Returns:
            Decoded JSON response

        Raises:
            MetadataFetchError: On HTTP errors, GraphQL errors or invalid JSON
        """
        payload = {
            'variables': variables,
            'operationName': operation_name,
            'extensions': {
                'persistedQuery': {
                    'version': 1,
                    'sha256Hash': PERSISTED_QUERIES.get(operation_name, PERSISTED_QUERIES['fetchPlaylist']),
                }
            },
        }

        response = self._post(payload)

        if response.status_code == 401:
            self.logger.debug("Spotify credentials rejected, refreshing...")
            self.auth.invalidate()
            response = self._post(payload)
        elif response.status_code == 429:
            retry_after = _retry_after_seconds(response)
            self.logger.warning(f"Rate limited by Spotify, waiting {retry_after} seconds...")
            self.sleep(retry_after)
            response = self._post(payload)

        if not response.ok:
            raise MetadataFetchError(
                f"GraphQL request failed: {response.status_code} {response.reason}",
                details={'operation': operation_name, 'status': response.status_code}
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"GraphQL response is not JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedResponseError("GraphQL response is not an object")

        if data.get('errors'):
            raise MetadataFetchError(
                f"GraphQL errors: {data['errors']}",
                details={'operation': operation_name}
            )

        return data

    def _post(self, payload: Dict[str, Any]) -> requests.Response:
        network = self.settings.network
        headers = {
            **self.auth.get_headers(),
            'Content-Type': 'application/json;charset=UTF-8',
            'Accept': 'application/json',
            'User-Agent': network.user_agent,
            'app-platform': 'WebPlayer',
            'spotify-app-version': self.settings.spotify.client_version,
            'accept-language': 'en',
            'Referer': 'https://open.spotify.com/',
            'Origin': 'https://open.spotify.com',
        }

        send = retry_on_failure(
            max_attempts=max(1, network.max_retries),
            delay=network.retry_delay,
            exceptions=RETRYABLE_ERRORS
        )(self.session.post)

        try:
            return send(
                self.settings.spotify.graphql_endpoint,
                json=payload,
                headers=headers,
                timeout=network.request_timeout
            )
        except requests.RequestException as e:
            raise MetadataFetchError(f"GraphQL request failed: {e}") from e

    def fetch_playlist_page(self, playlist_id: str, offset: int = 0, limit: Optional[int] = None) -> PlaylistPage:
        """
        Fetch one page of a playlist's contents

        Args:
            playlist_id: Spotify playlist id
            offset: Index of the first item to fetch
            limit: Page size, defaults to ``spotify.page_size``

        Returns:
            Parsed page

        Raises:
            MetadataFetchError: If the request fails or the payload is malformed
        """
        limit = limit or self.settings.spotify.page_size
        operation_name = 'fetchPlaylist' if offset == 0 else 'fetchPlaylistContents'

        response = self._execute(operation_name, {
            'uri': f"spotify:playlist:{playlist_id}",
            'offset': offset,
            'limit': limit,
            'enableWatchFeedEntrypoint': False,
        })
        return parse_playlist_page(response, offset, limit)

    @log_performance
    def get_full_playlist(self, playlist_id: str) -> Snapshot:
        """
        Fetch all pages of a playlist into a snapshot

        Positions are renumbered 1..N after non-track items are dropped, so
        the snapshot's positions are always dense.

        Args:
            playlist_id: Spotify playlist id

        Returns:
            Snapshot of the playlist's current state

        Raises:
            MetadataFetchError: If any page cannot be fetched
        """
        limit = self.settings.spotify.page_size
        tracks: List[Track] = []
        name: Optional[str] = None
        image_url: Optional[str] = None
        offset = 0

        self.logger.info(f"Loading playlist tracks (ID: {playlist_id})")

        while True:
            page = self.fetch_playlist_page(playlist_id, offset, limit)
            name = name or page.name
            image_url = image_url or page.image_url
            tracks.extend(page.tracks)

            if not page.has_more:
                break

            offset += limit
            self.logger.debug(f"Loaded {len(tracks)} tracks so far")

        for position, track in enumerate(tracks, 1):
            track.position = position

        self.logger.info(f"{len(tracks)} tracks loaded for {playlist_id}")

        return Snapshot(
            playlist_id=playlist_id,
            name=name or UNKNOWN_PLAYLIST,
            tracks=tracks,
            image_url=image_url,
        )


def parse_playlist_page(response: Dict[str, Any], offset: int, limit: int) -> PlaylistPage:
    """
    Convert a fetchPlaylist response into a PlaylistPage

    Args:
        response: Decoded GraphQL response
        offset: Offset the page was requested at
        limit: Page size the page was requested with

    Returns:
        PlaylistPage; ``has_more`` is true when the raw item count equals ``limit``

    Raises:
        MalformedResponseError: If ``data.playlistV2`` is missing
    """
    playlist = as_mapping(as_mapping(response).get('data')).get('playlistV2')
    if not isinstance(playlist, dict):
        raise MalformedResponseError("Playlist not found in response")

    content = playlist.get('content')
    if content is not None and not isinstance(content, dict):
        raise MalformedResponseError("Playlist content is not an object")

    items = as_mapping(content).get('items')
    if items is None:
        items = []
    if not isinstance(items, list):
        raise MalformedResponseError("Playlist content items is not a list")

    tracks = []
    for index, item in enumerate(items):
        track = Track.from_graphql_item(item, offset + index + 1)
        if track is not None:
            tracks.append(track)

    name = playlist.get('name')

    return PlaylistPage(
        tracks=tracks,
        has_more=len(items) == limit,
        name=name if isinstance(name, str) and name else None,
        image_url=extract_playlist_image_url(playlist),
    )


def extract_playlist_image_url(playlist: Dict[str, Any]) -> Optional[str]:
    """
    Pick the widest cover image among all image collections of a playlist

    Args:
        playlist: ``playlistV2`` object

    Returns:
        Image URL, or None if the playlist has no images
    """
    widths: Dict[str, int] = {}

    def add_sources(sources) -> None:
        if not isinstance(sources, list):
            return
        for source in sources:
            url = as_mapping(source).get('url')
            if not isinstance(url, str) or not url:
                continue
            width = source.get('width')
            if isinstance(width, bool) or not isinstance(width, (int, float)):
                width = 0
            widths[url] = max(widths.get(url, 0), width)

    for key in ('images', 'imagesV2', 'galleryImages'):
        items = as_mapping(playlist.get(key)).get('items')
        for item in items if isinstance(items, list) else []:
            add_sources(as_mapping(item).get('sources'))

    add_sources(as_mapping(playlist.get('coverArt')).get('sources'))
    add_sources(as_mapping(playlist.get('image')).get('sources'))

    if not widths:
        return None

    # max() keeps the first URL among equal widths
    return max(widths, key=lambda url: widths[url])


def _retry_after_seconds(response: requests.Response) -> int:
    try:
        return max(1, int(response.headers.get('Retry-After', 1)))
    except (TypeError, ValueError):
        return 1
