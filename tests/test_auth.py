"""Test anonymous Spotify credentials"""

import pytest
from unittest.mock import Mock

import requests

from playlist_sync.config.auth import (
    ACCESS_TOKEN_TTL,
    AccessTokenProvider,
    ClientTokenProvider,
    CredentialProvider,
    SpotifyAuth,
    extract_access_token,
)
from playlist_sync.exceptions import CredentialError


TOKEN = "BQ" + "a" * 120


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingProvider(CredentialProvider):
    name = "test credential"

    def __init__(self, clock, ttl=3600, **kwargs):
        super().__init__(session=Mock(), settings=Mock(), clock=clock, **kwargs)
        self.ttl = ttl
        self.fetches = 0

    def _fetch(self):
        self.fetches += 1
        return f"value-{self.fetches}", self.ttl


def make_response(status=200, text="", json_data=None):
    response = Mock(spec=requests.Response)
    response.status_code = status
    response.ok = status < 400
    response.text = text
    response.json.return_value = json_data
    return response


class TestCredentialProvider:
    """Test credential caching and expiry"""

    def test_value_is_cached_until_expiry(self):
        """Test repeated gets within the lifetime fetch once"""
        clock = FakeClock()
        provider = CountingProvider(clock, ttl=3600, safety_buffer=300)

        assert provider.get() == "value-1"
        clock.now += 3000
        assert provider.get() == "value-1"
        assert provider.fetches == 1

    def test_value_is_refreshed_inside_safety_buffer(self):
        """Test a value about to expire is replaced"""
        clock = FakeClock()
        provider = CountingProvider(clock, ttl=3600, safety_buffer=300)

        provider.get()
        clock.now += 3301

        assert provider.get() == "value-2"
        assert provider.expires_at == clock.now + 3600

    def test_invalidate_forces_refresh(self):
        """Test invalidate drops the cached value"""
        provider = CountingProvider(FakeClock())

        provider.get()
        provider.invalidate()

        assert provider.is_expired()
        assert provider.get() == "value-2"


class TestExtractAccessToken:
    """Test access token extraction from embed HTML"""

    def test_extracts_long_token(self):
        """Test the accessToken JSON field is found"""
        html = f'<script>{{"session":{{"accessToken":"{TOKEN}","expires":1}}}}</script>'
        assert extract_access_token(html) == TOKEN

    def test_ignores_short_values(self):
        """Test values of 50 characters or fewer are not tokens"""
        html = '{"accessToken":"' + "a" * 50 + '"}'
        assert extract_access_token(html) is None

    def test_no_token(self):
        """Test HTML without a token"""
        assert extract_access_token("<html></html>") is None


class TestProviders:
    """Test the concrete credential requests"""

    def test_access_token_provider(self, settings):
        """Test the access token is scraped from the embed page"""
        session = Mock()
        session.request.return_value = make_response(text=f'"accessToken":"{TOKEN}"')
        provider = AccessTokenProvider(session, settings, clock=FakeClock())

        assert provider.get() == TOKEN
        assert provider.expires_at == 1000.0 + ACCESS_TOKEN_TTL
        method, url = session.request.call_args.args
        assert method == 'GET'
        assert url == settings.spotify.embed_url

    def test_access_token_provider_without_token(self, settings):
        """Test an embed page without a token raises CredentialError"""
        session = Mock()
        session.request.return_value = make_response(text="<html></html>")
        provider = AccessTokenProvider(session, settings)

        with pytest.raises(CredentialError):
            provider.get()

    def test_client_token_provider(self, settings):
        """Test the granted token and its lifetime are used"""
        session = Mock()
        session.request.return_value = make_response(json_data={
            'granted_token': {'token': 'client-abc', 'expires_after_seconds': 7200}
        })
        provider = ClientTokenProvider(session, settings, clock=FakeClock())

        assert provider.get() == 'client-abc'
        assert provider.expires_at == 1000.0 + 7200
        payload = session.request.call_args.kwargs['json']
        assert payload['client_data']['client_id'] == settings.spotify.client_id

    def test_client_token_provider_http_error(self, settings):
        """Test a failed grant raises CredentialError"""
        session = Mock()
        session.request.return_value = make_response(status=500)
        provider = ClientTokenProvider(session, settings)

        with pytest.raises(CredentialError):
            provider.get()

    def test_connection_error_becomes_credential_error(self, settings):
        """Test transport failures are wrapped"""
        session = Mock()
        session.request.side_effect = requests.ConnectionError("offline")
        provider = AccessTokenProvider(session, settings)

        with pytest.raises(CredentialError):
            provider.get()


class TestSpotifyAuth:
    """Test the credential bundle"""

    def test_headers_and_invalidate(self):
        """Test headers carry both credentials and invalidate resets both"""
        access = Mock()
        access.get.return_value = "access"
        client = Mock()
        client.get.return_value = "client"
        auth = SpotifyAuth(access_token=access, client_token=client)

        assert auth.get_headers() == {'Authorization': 'Bearer access', 'client-token': 'client'}

        auth.invalidate()
        access.invalidate.assert_called_once()
        client.invalidate.assert_called_once()
