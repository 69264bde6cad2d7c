"""
Netscape cookie jar loader for YouTube Music requests

Search requests are sent with the browser session cookies exported to a
Netscape-format ``cookies.txt`` (the same file yt-dlp reads with ``--cookies``).
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

from ..exceptions import ConfigurationError
from ..utils.logger import get_logger


HTTPONLY_PREFIX = "#HttpOnly_"

logger = get_logger(__name__)


@dataclass
class Cookie:
    """One cookie jar entry"""
    name: str
    value: str
    domain: str
    path: str = "/"
    secure: bool = False
    expires: int = 0  # 0 = session cookie

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires <= 0:
            return False
        return self.expires < (time.time() if now is None else now)


def parse_netscape_cookies(text: str, now: Optional[float] = None) -> List[Cookie]:
    """
    Parse a Netscape cookie file

    Lines are ``domain  flag  path  secure  expires  name  value`` separated by
    tabs. Comments and blank lines are ignored, except lines marked
    ``#HttpOnly_`` which are real cookies.

    Args:
        text: File content
        now: Current time in seconds, used to drop expired cookies

    Returns:
        Unexpired cookies in file order
    """
    cookies = []

    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue

        if line.startswith(HTTPONLY_PREFIX):
            line = line[len(HTTPONLY_PREFIX):]
        elif line.startswith('#'):
            continue

        fields = line.split('\t')
        if len(fields) < 7:
            continue

        try:
            expires = int(fields[4])
        except ValueError:
            expires = 0

        cookie = Cookie(
            name=fields[5],
            value=fields[6],
            domain=fields[0],
            path=fields[2] or "/",
            secure=fields[3].upper() == 'TRUE',
            expires=expires,
        )

        if cookie.is_expired(now):
            continue

        cookies.append(cookie)

    return cookies


def load_cookie_file(path: Union[str, Path], now: Optional[float] = None) -> List[Cookie]:
    """
    Load cookies from a Netscape cookie file

    Args:
        path: Path to ``cookies.txt``
        now: Current time in seconds

    Returns:
        Unexpired cookies

    Raises:
        ConfigurationError: If the file is missing or holds no valid cookies
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(
            f"Cookies file not found: {path}",
            details={'path': str(path)}
        )

    try:
        text = path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cookies file is unreadable: {path}: {e}") from e

    cookies = parse_netscape_cookies(text, now)
    if not cookies:
        raise ConfigurationError(
            f"No valid cookies in {path}",
            details={'path': str(path)}
        )

    logger.debug(f"Loaded {len(cookies)} cookies from {path}")
    return cookies


def to_cookie_header(cookies: Iterable[Cookie]) -> str:
    """Render cookies as a ``Cookie`` request header value"""
    return "; ".join(f"{cookie.name}={cookie.value}" for cookie in cookies)
