"""Test YouTube Music cookie loading and search"""

import pytest
from unittest.mock import Mock

import requests

from playlist_sync.exceptions import ConfigurationError, MalformedResponseError, SearchError
from playlist_sync.ytmusic.cookies import load_cookie_file, parse_netscape_cookies, to_cookie_header
from playlist_sync.ytmusic.searcher import (
    DEFAULT_CLIENT_NAME,
    QueryCache,
    YouTubeMusicSearcher,
    extract_first_watch_candidate,
    extract_innertube_config,
)

from conftest import make_track


NOW = 1_700_000_000

COOKIES = "\n".join([
    "# Netscape HTTP Cookie File",
    "",
    ".youtube.com\tTRUE\t/\tTRUE\t1900000000\tSID\tabc",
    "#HttpOnly_.youtube.com\tTRUE\t/\tTRUE\t1900000000\t__Secure-3PSID\tdef",
    ".youtube.com\tTRUE\t/\tFALSE\t1000\tOLD\texpired",
    ".youtube.com\tTRUE\t/\tFALSE\t0\tPREF\tf6=40000000",
    "broken line without tabs",
])

HOMEPAGE = (
    '<script>ytcfg.set({"INNERTUBE_API_KEY":"AIzaTestKey",'
    '"INNERTUBE_CONTEXT":{"client":{"clientName":"WEB_REMIX","clientVersion":"1.20990101.00.00",'
    '"hl":"en","gl":"DE","note":"a } brace"}},"OTHER":1});</script>'
)


def song_item(video_id, title="Song", subtitle="Artist"):
    return {'musicResponsiveListItemRenderer': {
        'flexColumns': [
            {'musicResponsiveListItemFlexColumnRenderer': {'text': {'runs': [{'text': title}]}}},
            {'musicResponsiveListItemFlexColumnRenderer': {'text': {'runs': [
                {'text': subtitle}, {'text': ' • '}, {'text': '3:45'},
            ]}}},
        ],
        'overlay': {'musicItemThumbnailOverlayRenderer': {'content': {'musicPlayButtonRenderer': {
            'playNavigationEndpoint': {'watchEndpoint': {
                'videoId': video_id,
                'playlistId': f"RDAMVM{video_id}",
                'watchEndpointMusicSupportedConfigs': {
                    'watchEndpointMusicConfig': {'musicVideoType': 'MUSIC_VIDEO_TYPE_ATV'}
                },
            }},
        }}}},
    }}


def search_response(*shelf_items):
    return {'contents': {'tabbedSearchResultsRenderer': {'tabs': [{'tabRenderer': {'content': {
        'sectionListRenderer': {'contents': [
            {'itemSectionRenderer': {'contents': []}},
            {'musicShelfRenderer': {'contents': list(shelf_items)}},
        ]}
    }}}]}}}


def make_response(status=200, text="", json_data=None):
    response = Mock(spec=requests.Response)
    response.status_code = status
    response.ok = status < 400
    response.text = text
    response.json.return_value = json_data
    return response


@pytest.fixture
def cookies_file(settings):
    path = settings.get_cookies_path()
    path.write_text(COOKIES, encoding='utf-8')
    return path


@pytest.fixture
def session():
    session = Mock()

    def request(method, url, **kwargs):
        if method == 'GET':
            return make_response(text=HOMEPAGE)
        return make_response(json_data=search_response(song_item("dQw4w9WgXcQ", "Found")))

    session.request.side_effect = request
    return session


class TestCookies:
    """Test Netscape cookie parsing"""

    def test_parse_netscape_cookies(self):
        """Test HttpOnly lines are kept and expired or broken lines dropped"""
        cookies = parse_netscape_cookies(COOKIES, now=NOW)

        assert [cookie.name for cookie in cookies] == ["SID", "__Secure-3PSID", "PREF"]
        assert cookies[0].secure is True
        assert cookies[1].domain == ".youtube.com"
        assert cookies[2].expires == 0

    def test_to_cookie_header(self):
        """Test header rendering"""
        cookies = parse_netscape_cookies(COOKIES, now=NOW)
        assert to_cookie_header(cookies) == "SID=abc; __Secure-3PSID=def; PREF=f6=40000000"

    def test_load_missing_file(self, temp_dir):
        """Test a missing cookie file is a configuration error"""
        with pytest.raises(ConfigurationError):
            load_cookie_file(temp_dir / "cookies.txt")

    def test_load_file_without_cookies(self, temp_dir):
        """Test a file with only comments is a configuration error"""
        path = temp_dir / "cookies.txt"
        path.write_text("# Netscape HTTP Cookie File\n", encoding='utf-8')

        with pytest.raises(ConfigurationError):
            load_cookie_file(path)


class TestResponseParsing:
    """Test search response and homepage parsing"""

    def test_first_watch_candidate(self):
        """Test the first playable shelf entry is returned"""
        response = search_response(
            {'musicResponsiveListItemRenderer': {'flexColumns': []}},
            song_item("first123456", "Bohemian Rhapsody", "Queen"),
            song_item("second12345"),
        )

        candidate = extract_first_watch_candidate(response)

        assert candidate.video_id == "first123456"
        assert candidate.playlist_id == "RDAMVMfirst123456"
        assert candidate.music_video_type == "MUSIC_VIDEO_TYPE_ATV"
        assert candidate.title == "Bohemian Rhapsody"
        assert candidate.subtitle == "Queen • 3:45"

    def test_navigation_endpoint_fallback(self):
        """Test results without a play button use the navigation endpoint"""
        item = {'musicResponsiveListItemRenderer': {
            'navigationEndpoint': {'watchEndpoint': {'videoId': "nav12345678"}},
        }}

        candidate = extract_first_watch_candidate(search_response(item))

        assert candidate.video_id == "nav12345678"
        assert candidate.title == ""

    def test_no_results(self):
        """Test a response without playable entries yields None"""
        assert extract_first_watch_candidate(search_response()) is None
        assert extract_first_watch_candidate({'contents': {}}) is None

    def test_malformed_response(self):
        """Test a response without contents is malformed"""
        with pytest.raises(MalformedResponseError):
            extract_first_watch_candidate({'error': 'x'})

    def test_innertube_config(self):
        """Test the API key and full context object are extracted"""
        api_key, context = extract_innertube_config(HOMEPAGE)

        assert api_key == "AIzaTestKey"
        assert context['client']['clientVersion'] == "1.20990101.00.00"
        assert context['client']['note'] == "a } brace"

    def test_innertube_config_fallback_context(self):
        """Test a page without a parseable context gets a built one"""
        html = '"INNERTUBE_API_KEY": "key", "clientVersion":"1.2.3"'

        api_key, context = extract_innertube_config(html)

        assert api_key == "key"
        assert context['client']['clientName'] == DEFAULT_CLIENT_NAME
        assert context['client']['clientVersion'] == "1.2.3"
        assert context['client']['gl'] == "US"

    def test_innertube_config_without_key(self):
        """Test a page without an API key raises SearchError"""
        with pytest.raises(SearchError):
            extract_innertube_config("<html></html>")


class TestQueryCache:
    """Test the query cache"""

    def test_case_insensitive(self):
        """Test queries differing in case share an entry"""
        cache = QueryCache()
        cache.put("Queen Bohemian Rhapsody", {'a': 1})
        assert cache.get("queen bohemian rhapsody") == {'a': 1}

    def test_bounded_cache_evicts_least_recent(self):
        """Test the least recently used entry is evicted"""
        cache = QueryCache(max_entries=2)
        cache.put("a", {})
        cache.put("b", {})
        cache.get("a")
        cache.put("c", {})

        assert cache.get("b") is None
        assert cache.get("a") == {}
        assert len(cache) == 2


class TestYouTubeMusicSearcher:
    """Test searcher requests"""

    def test_find_track(self, settings, session, cookies_file):
        """Test a track is matched to the first result"""
        with YouTubeMusicSearcher(settings, session=session) as searcher:
            match = searcher.find_track(make_track(1, title="Bohemian Rhapsody", artists="Queen"))

        assert match.video_id == "dQw4w9WgXcQ"
        assert match.youtube_url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        assert match.query == "Queen Bohemian Rhapsody"
        session.close.assert_called_once()

    def test_search_request(self, settings, session, cookies_file):
        """Test the search call carries key, context and cookies"""
        searcher = YouTubeMusicSearcher(settings, session=session)
        searcher.find_first_track("Queen Bohemian Rhapsody")

        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert method == 'POST'
        assert url.endswith("/youtubei/v1/search?prettyPrint=false&key=AIzaTestKey")
        assert kwargs['json']['query'] == "Queen Bohemian Rhapsody"
        assert kwargs['json']['context']['client']['gl'] == "DE"
        assert kwargs['headers']['X-Youtube-Client-Version'] == "1.20990101.00.00"
        assert "SID=abc" in kwargs['headers']['Cookie']

    def test_repeated_query_uses_cache(self, settings, session, cookies_file):
        """Test a repeated query differing only in case is served from cache"""
        searcher = YouTubeMusicSearcher(settings, session=session)

        searcher.find_first_track("Queen Bohemian Rhapsody")
        searcher.find_first_track("QUEEN bohemian rhapsody")

        methods = [call.args[0] for call in session.request.call_args_list]
        assert methods == ['GET', 'POST']
        assert searcher.stats['cache_hits'] == 1

    def test_no_result_returns_none(self, settings, session, cookies_file):
        """Test an empty result is not an error"""
        session.request.side_effect = lambda method, url, **kwargs: (
            make_response(text=HOMEPAGE) if method == 'GET' else make_response(json_data=search_response())
        )
        searcher = YouTubeMusicSearcher(settings, session=session)

        assert searcher.find_first_track("nothing matches this") is None
        assert searcher.stats['misses'] == 1

    def test_http_error_raises_search_error(self, settings, session, cookies_file):
        """Test a failing search request raises SearchError"""
        session.request.side_effect = lambda method, url, **kwargs: (
            make_response(text=HOMEPAGE) if method == 'GET' else make_response(status=503)
        )
        searcher = YouTubeMusicSearcher(settings, session=session)

        with pytest.raises(SearchError):
            searcher.find_first_track("query")

    def test_malformed_response_raises_search_error(self, settings, session, cookies_file):
        """Test a response without contents raises SearchError"""
        session.request.side_effect = lambda method, url, **kwargs: (
            make_response(text=HOMEPAGE) if method == 'GET' else make_response(json_data={'x': 1})
        )
        searcher = YouTubeMusicSearcher(settings, session=session)

        with pytest.raises(SearchError):
            searcher.find_first_track("query")

    def test_empty_track_raises_search_error(self, settings, session, cookies_file):
        """Test tracks without searchable text are rejected before any request"""
        searcher = YouTubeMusicSearcher(settings, session=session)

        with pytest.raises(SearchError):
            searcher.find_track(make_track(1, title=" ", artists=" "))
        session.request.assert_not_called()

    def test_missing_cookies(self, settings, session):
        """Test searching without a cookie file is a configuration error"""
        searcher = YouTubeMusicSearcher(settings, session=session)

        with pytest.raises(ConfigurationError):
            searcher.find_first_track("query")
        session.request.assert_not_called()
