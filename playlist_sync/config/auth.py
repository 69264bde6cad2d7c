"""
Anonymous Spotify web player credentials

The private GraphQL API used by the web player needs two short-lived
credentials:

- an access token, scraped from the public embed page (valid ~1 hour)
- a client token, granted by the client token service (valid ~2 weeks)

Each is managed by a ``CredentialProvider`` that caches one value with its
expiry time and fetches a new one when the cached value is expired, about to
expire, or explicitly invalidated after a 401 response. Providers take an
injectable clock so expiry can be simulated in tests.
"""

import re
import time
from typing import Callable, Dict, Optional, Tuple

import requests

from ..exceptions import CredentialError
from ..utils.helpers import retry_on_failure
from ..utils.logger import get_logger
from .settings import Settings, get_settings


ACCESS_TOKEN_TTL = 3600
DEFAULT_CLIENT_TOKEN_TTL = 1209600

ACCESS_TOKEN_PATTERNS = [
    re.compile(r'accessToken["\s:]+["\']([A-Za-z0-9_-]+)["\']', re.IGNORECASE),
    re.compile(r'["\']accessToken["\'][:\s]+["\']([A-Za-z0-9_-]+)["\']', re.IGNORECASE),
    re.compile(r'"token"[:\s]+"([A-Za-z0-9_-]{100,})"', re.IGNORECASE),
]

RETRYABLE_ERRORS = (requests.Timeout, requests.ConnectionError)


class CredentialProvider:
    """
    Caches a single credential value with its expiry

    Subclasses implement ``_fetch`` which returns the new value and its
    lifetime in seconds.
    """

    name = "credential"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
        safety_buffer: float = 300
    ):
        """
        Initialize provider

        Args:
            session: HTTP session used for refresh requests
            settings: Application settings, defaults to the global instance
            clock: Function returning the current time in seconds
            safety_buffer: Seconds before expiry at which the value is refreshed
        """
        self.session = session or requests.Session()
        self.settings = settings or get_settings()
        self.clock = clock
        self.safety_buffer = safety_buffer
        self.logger = get_logger(__name__)

        self._value: Optional[str] = None
        self._expires_at: float = 0.0

    @property
    def expires_at(self) -> float:
        return self._expires_at

    def is_expired(self) -> bool:
        """Whether the cached value is missing or within the safety buffer of expiry"""
        if self._value is None:
            return True
        return self.clock() >= self._expires_at - self.safety_buffer

    def get(self) -> str:
        """
        Return a valid credential, refreshing it if needed

        Raises:
            CredentialError: If a new credential cannot be obtained
        """
        if self.is_expired():
            self.logger.debug(f"Refreshing {self.name}")
            value, ttl = self._fetch()
            self._value = value
            self._expires_at = self.clock() + ttl
            self.logger.debug(f"{self.name} valid for {ttl}s")
        return self._value

    def invalidate(self) -> None:
        """Drop the cached value so the next ``get`` fetches a new one"""
        self._value = None
        self._expires_at = 0.0

    def _fetch(self) -> Tuple[str, float]:
        raise NotImplementedError

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        network = self.settings.network
        send = retry_on_failure(
            max_attempts=max(1, network.max_retries),
            delay=network.retry_delay,
            exceptions=RETRYABLE_ERRORS
        )(self.session.request)

        try:
            return send(method, url, timeout=network.request_timeout, **kwargs)
        except requests.RequestException as e:
            raise CredentialError(f"Failed to get {self.name}: {e}") from e


class AccessTokenProvider(CredentialProvider):
    """Scrapes an anonymous access token from the Spotify embed page"""

    name = "access token"

    def _fetch(self) -> Tuple[str, float]:
        response = self._request('GET', self.settings.spotify.embed_url, headers={
            'User-Agent': self.settings.network.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
            'Referer': 'https://open.spotify.com/',
        })

        if not response.ok:
            raise CredentialError(f"Failed to get access token: embed request failed: {response.status_code}")

        token = extract_access_token(response.text)
        if not token:
            raise CredentialError("Failed to get access token: no access token found in embed HTML")

        return token, ACCESS_TOKEN_TTL


class ClientTokenProvider(CredentialProvider):
    """Requests a client token from Spotify's client token service"""

    name = "client token"

    def _fetch(self) -> Tuple[str, float]:
        spotify = self.settings.spotify
        response = self._request('POST', spotify.client_token_url, headers={
            'User-Agent': self.settings.network.user_agent,
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        }, json={
            'client_data': {
                'client_version': spotify.client_version,
                'client_id': spotify.client_id,
                'js_sdk_data': {
                    'device_brand': 'unknown',
                    'device_model': 'desktop',
                    'os': 'macOS',
                    'os_version': 'unknown',
                },
            }
        })

        if not response.ok:
            raise CredentialError(f"Failed to get client token: request failed: {response.status_code}")

        try:
            granted = response.json().get('granted_token') or {}
        except (ValueError, AttributeError) as e:
            raise CredentialError(f"Failed to get client token: invalid response: {e}") from e

        token = granted.get('token')
        if not token:
            raise CredentialError("Failed to get client token: no client token in response")

        return token, granted.get('expires_after_seconds') or DEFAULT_CLIENT_TOKEN_TTL


def extract_access_token(html: str) -> Optional[str]:
    """
    Find the access token embedded in the embed page HTML

    Args:
        html: Embed page markup

    Returns:
        Token string, or None if no plausible token is present
    """
    for pattern in ACCESS_TOKEN_PATTERNS:
        match = pattern.search(html)
        if match and len(match.group(1)) > 50:
            return match.group(1)
    return None


class SpotifyAuth:
    """Bundles the access token and client token providers"""

    def __init__(
        self,
        access_token: Optional[CredentialProvider] = None,
        client_token: Optional[CredentialProvider] = None,
        session: Optional[requests.Session] = None,
        settings: Optional[Settings] = None
    ):
        session = session or requests.Session()
        self.access_token = access_token or AccessTokenProvider(session, settings)
        self.client_token = client_token or ClientTokenProvider(session, settings)

    def get_headers(self) -> Dict[str, str]:
        """
        Authorization headers for a GraphQL request

        Raises:
            CredentialError: If either credential cannot be obtained
        """
        return {
            'Authorization': f"Bearer {self.access_token.get()}",
            'client-token': self.client_token.get(),
        }

    def invalidate(self) -> None:
        self.access_token.invalidate()
        self.client_token.invalidate()
