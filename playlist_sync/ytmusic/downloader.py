"""
Audio download and transcoding with yt-dlp

Downloads the audio stream of a YouTube video and converts it with the
FFmpegExtractAudio postprocessor into the configured format. Files are written
to a staging directory inside the output directory; the caller tags the staged
file and then publishes it to its final path, so the final path never holds a
partial or untagged file.
"""

import os
import shutil
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yt_dlp

from ..config.settings import Settings, get_settings
from ..exceptions import DownloadError
from ..utils.helpers import ensure_directory
from ..utils.logger import get_logger


STAGING_DIRECTORY = ".staging"
AUDIO_EXTENSIONS = {'.mp3', '.flac', '.m4a'}


def ffmpeg_location() -> Optional[str]:
    """Path of the ffmpeg executable, or None if it is not on PATH"""
    return shutil.which('ffmpeg')


class YouTubeMusicDownloader:
    """Downloads and transcodes audio for matched tracks"""

    def __init__(self, settings: Optional[Settings] = None, staging_dir: Optional[Union[str, Path]] = None):
        """
        Initialize downloader

        Args:
            settings: Application settings, defaults to the global instance
            staging_dir: Directory for in-progress files; must be on the same
                filesystem as the output directory
        """
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)

        self.audio_format = self.settings.download.format
        self.audio_quality = self.settings.download.quality
        self.timeout = self.settings.download.timeout
        self.max_retries = self.settings.download.retry_attempts

        self.staging_dir = (
            Path(staging_dir) if staging_dir
            else self.settings.get_output_directory() / STAGING_DIRECTORY
        )

    def _get_ydl_options(self, output_template: str) -> Dict[str, Any]:
        """
        Build yt-dlp options for a single audio download

        Args:
            output_template: yt-dlp ``outtmpl`` for the staged file

        Returns:
            Options dictionary for ``yt_dlp.YoutubeDL``
        """
        options = {
            'format': 'bestaudio/best',
            'outtmpl': output_template,
            'noplaylist': True,

            'quiet': True,
            'no_warnings': True,
            'noprogress': True,
            'logtostderr': False,
            'consoletitle': False,

            'socket_timeout': self.timeout,
            'retries': self.max_retries,
            'fragment_retries': self.max_retries,
            'file_access_retries': self.max_retries,

            'postprocessors': [{
                'key': 'FFmpegExtractAudio',
                'preferredcodec': self.audio_format,
                'preferredquality': self.audio_quality,
            }],
        }

        location = ffmpeg_location()
        if location:
            options['ffmpeg_location'] = location

        cookies_path = self.settings.get_cookies_path()
        if cookies_path.is_file():
            options['cookiefile'] = str(cookies_path)

        return options

    def download(self, youtube_url: str, staging_name: str) -> Path:
        """
        Download and transcode one video into the staging directory

        Args:
            youtube_url: Watch URL of the matched video
            staging_name: Unique file stem for the staged file

        Returns:
            Path of the staged audio file

        Raises:
            DownloadError: If yt-dlp fails or produces no audio file; partial
                files are removed
        """
        ensure_directory(self.staging_dir)
        self.discard(staging_name)

        output_template = str(self.staging_dir / f"{staging_name}.%(ext)s")
        self.logger.debug(f"Starting download: {youtube_url}")

        try:
            with yt_dlp.YoutubeDL(self._get_ydl_options(output_template)) as ydl:
                ydl.download([youtube_url])
        except (yt_dlp.utils.YoutubeDLError, OSError) as e:
            self.discard(staging_name)
            raise DownloadError(
                f"yt-dlp failed for {youtube_url}: {e}",
                details={'url': youtube_url}
            ) from e

        staged = self._find_staged_file(staging_name)
        if staged is None:
            self.discard(staging_name)
            raise DownloadError(
                f"Downloaded file not found for {youtube_url}",
                details={'url': youtube_url}
            )

        self.logger.debug(f"Download completed: {youtube_url} -> {staged.name}")
        return staged

    def _find_staged_file(self, staging_name: str) -> Optional[Path]:
        expected = self.staging_dir / f"{staging_name}.{self.audio_format}"
        if expected.is_file():
            return expected

        for file_path in self.staging_dir.glob(f"{staging_name}.*"):
            if file_path.is_file() and file_path.suffix in AUDIO_EXTENSIONS:
                return file_path
        return None

    def publish(self, staged_path: Path, final_path: Path) -> Path:
        """
        Move a tagged staged file to its final location

        Raises:
            DownloadError: If the file cannot be moved
        """
        try:
            ensure_directory(final_path.parent)
            os.replace(staged_path, final_path)
        except OSError as e:
            raise DownloadError(f"Could not move {staged_path.name} to {final_path}: {e}") from e
        return final_path

    def discard(self, staging_name: str) -> None:
        """Remove all staged files for a name"""
        if not self.staging_dir.is_dir():
            return

        for file_path in self.staging_dir.glob(f"{staging_name}.*"):
            try:
                if file_path.is_file():
                    file_path.unlink()
                    self.logger.debug(f"Cleaned up partial file: {file_path.name}")
            except OSError as e:
                self.logger.warning(f"Failed to clean up {file_path.name}: {e}")

    def cleanup(self) -> None:
        """Remove the staging directory if it is empty"""
        if self.staging_dir.is_dir() and not any(self.staging_dir.iterdir()):
            self.staging_dir.rmdir()
