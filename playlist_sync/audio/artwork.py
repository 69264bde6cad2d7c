"""
Playlist cover cache

Downloads the playlist cover once per scrape and keeps it as
``<covers_dir>/<playlist_id>.jpg``. Images are normalized with Pillow to an RGB
JPEG no larger than 1000x1000 so every tag format can embed them.
"""

import os
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

import requests
from PIL import Image

from ..config.settings import Settings, get_settings
from ..utils.helpers import ensure_directory
from ..utils.logger import get_logger


MAX_COVER_SIZE = 1000
JPEG_QUALITY = 90


def normalize_cover_image(image_data: bytes) -> bytes:
    """
    Convert image data to an embeddable JPEG

    Args:
        image_data: Raw image bytes in any format Pillow reads

    Returns:
        JPEG bytes

    Raises:
        OSError: If the data is not a readable image
    """
    with Image.open(BytesIO(image_data)) as img:
        if img.mode != 'RGB':
            img = img.convert('RGB')

        if img.width > MAX_COVER_SIZE or img.height > MAX_COVER_SIZE:
            img.thumbnail((MAX_COVER_SIZE, MAX_COVER_SIZE), Image.Resampling.LANCZOS)

        output = BytesIO()
        img.save(output, format='JPEG', quality=JPEG_QUALITY, optimize=True)
        return output.getvalue()


class CoverArtCache:
    """Keeps one cover image per playlist on disk"""

    def __init__(
        self,
        covers_directory: Optional[Union[str, Path]] = None,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None
    ):
        self.settings = settings or get_settings()
        self.covers_directory = Path(covers_directory) if covers_directory else self.settings.get_covers_directory()
        self.session = session or requests.Session()
        self.logger = get_logger(__name__)

    def cover_path(self, playlist_id: str) -> Path:
        return self.covers_directory / f"{playlist_id}.jpg"

    def cached(self, playlist_id: str) -> Optional[str]:
        """Path of the cached cover, or None if there is none"""
        path = self.cover_path(playlist_id)
        return str(path) if path.is_file() else None

    def ensure(self, playlist_id: str, image_url: Optional[str], refresh: bool = True) -> Optional[str]:
        """
        Make sure the playlist cover is cached

        Download failures are not errors: the previously cached cover is used
        if there is one.

        Args:
            playlist_id: Spotify playlist id
            image_url: Remote cover URL
            refresh: Download even if a cached cover exists

        Returns:
            Path of the cached cover, or None if no cover is available
        """
        existing = self.cached(playlist_id)
        if not image_url or (existing and not refresh):
            return existing

        try:
            response = self.session.get(image_url, headers={
                'User-Agent': self.settings.network.user_agent,
                'Accept': 'image/avif,image/webp,image/apng,image/*,*/*;q=0.8',
            }, timeout=self.settings.network.request_timeout)
            response.raise_for_status()
            image_data = normalize_cover_image(response.content)
        except (requests.RequestException, OSError, ValueError, Image.DecompressionBombError) as e:
            # PIL.UnidentifiedImageError is an OSError
            self.logger.warning(f"Could not load playlist cover for {playlist_id}: {e}")
            return existing

        path = self.cover_path(playlist_id)
        temp_path = path.with_name(f"{path.stem}.tmp.jpg")
        try:
            ensure_directory(path.parent)
            temp_path.write_bytes(image_data)
            os.replace(temp_path, path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            self.logger.warning(f"Could not save playlist cover for {playlist_id}: {e}")
            return existing

        self.logger.debug(f"Cover cached: {path}")
        return str(path)
