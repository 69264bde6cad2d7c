"""
Tag writing for downloaded audio files

Every file gets the same tag layout regardless of format, so that players
group all tracks of a playlist as one album named after the playlist:

- title: ``"<artists> - <title>"``
- artist, album, album artist: playlist name
- comment: ``"Source: <youtube url> | Original: <artists> - <title>"``
- date: current year
- front cover: cached playlist cover

MP3 files get ID3v2 frames, FLAC files Vorbis comments with a picture block
and M4A files iTunes atoms. Tags are written into a ``<name>.tmp.<ext>`` copy
which then replaces the original, so a failed write never leaves a half-tagged
file behind.
"""

import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import mutagen
from mutagen.flac import FLAC, Picture
from mutagen.id3 import APIC, COMM, ID3, ID3NoHeaderError, TALB, TDRC, TIT2, TPE1, TPE2
from mutagen.mp3 import MP3
from mutagen.mp4 import MP4, MP4Cover

from ..config.settings import Settings, get_settings
from ..exceptions import TaggingError
from ..spotify.models import Track
from ..utils.logger import get_logger


DEFAULT_ALBUM = "Playlist"
SUPPORTED_EXTENSIONS = ('.mp3', '.flac', '.m4a')


def format_metadata_value(value) -> str:
    """Convert a value to tag text, dropping NUL characters"""
    if value is None:
        return ""
    return str(value).replace('\x00', '').strip()


@dataclass
class TrackTags:
    """Tag values written to one audio file"""
    title: str
    artist: str
    album: str
    album_artist: str
    comment: str
    year: str


def build_track_tags(
    track: Track,
    playlist_name: str,
    youtube_url: Optional[str] = None,
    year: Optional[int] = None
) -> TrackTags:
    """
    Build the tag set for a playlist track

    Args:
        track: Playlist track
        playlist_name: Playlist display name, used as artist and album
        youtube_url: Source URL of the downloaded audio
        year: Year tag, defaults to the current year

    Returns:
        TrackTags
    """
    original = f"{track.artists} - {track.title}"
    label = format_metadata_value(playlist_name) or DEFAULT_ALBUM

    if youtube_url:
        comment = f"Source: {youtube_url} | Original: {original}"
    else:
        comment = f"Original: {original}"

    return TrackTags(
        title=format_metadata_value(original) or track.title,
        artist=label,
        album=label,
        album_artist=label,
        comment=format_metadata_value(comment),
        year=str(year or datetime.now().year),
    )


class MetadataManager:
    """Writes tags and cover art into audio files"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)

        self.include_cover_art = self.settings.metadata.include_cover_art
        self.add_comment = self.settings.metadata.add_comment
        self.id3_version = 4 if self.settings.metadata.id3_version == "2.4" else 3

    def apply_tags(
        self,
        file_path: Union[str, Path],
        tags: TrackTags,
        cover_path: Optional[Union[str, Path]] = None
    ) -> Path:
        """
        Replace the tags of an audio file

        Args:
            file_path: Audio file (mp3, flac or m4a)
            tags: Tag values
            cover_path: JPEG cover to embed, if any

        Returns:
            Path of the tagged file

        Raises:
            TaggingError: If the tags cannot be written; the original file is
                left unchanged and no temporary file remains
        """
        path = Path(file_path)
        extension = path.suffix.lower()
        if extension not in SUPPORTED_EXTENSIONS:
            raise TaggingError(f"Unsupported audio format: {path.name}", details={'path': str(path)})

        cover_data = self._load_cover(cover_path)
        temp_path = path.with_name(f"{path.stem}.tmp{path.suffix}")

        try:
            shutil.copy2(path, temp_path)

            if extension == '.mp3':
                self._write_mp3_tags(temp_path, tags, cover_data)
            elif extension == '.flac':
                self._write_flac_tags(temp_path, tags, cover_data)
            else:
                self._write_mp4_tags(temp_path, tags, cover_data)

            os.replace(temp_path, path)
        except (mutagen.MutagenError, OSError, ValueError) as e:
            if temp_path.exists():
                temp_path.unlink()
            raise TaggingError(
                f"Failed to write tags to {path.name}: {e}",
                details={'path': str(path)}
            ) from e

        self.logger.debug(f"Tags written: {path.name}")
        return path

    def _load_cover(self, cover_path: Optional[Union[str, Path]]) -> Optional[bytes]:
        if not self.include_cover_art or not cover_path:
            return None

        try:
            return Path(cover_path).read_bytes()
        except OSError as e:
            self.logger.warning(f"Could not read cover {cover_path}: {e}")
            return None

    def _write_mp3_tags(self, file_path: Path, tags: TrackTags, cover_data: Optional[bytes]) -> None:
        try:
            audio = MP3(file_path, ID3=ID3)
        except ID3NoHeaderError:
            audio = MP3(file_path)

        if audio.tags is None:
            audio.add_tags()

        audio.tags.clear()
        audio.tags.add(TIT2(encoding=3, text=tags.title))
        audio.tags.add(TPE1(encoding=3, text=tags.artist))
        audio.tags.add(TALB(encoding=3, text=tags.album))
        audio.tags.add(TPE2(encoding=3, text=tags.album_artist))
        audio.tags.add(TDRC(encoding=3, text=tags.year))

        if self.add_comment and tags.comment:
            audio.tags.add(COMM(encoding=3, lang='eng', desc='', text=tags.comment))

        if cover_data:
            audio.tags.add(APIC(
                encoding=3,
                mime='image/jpeg',
                type=3,  # front cover
                desc='Cover',
                data=cover_data
            ))

        audio.save(v2_version=self.id3_version)

    def _write_flac_tags(self, file_path: Path, tags: TrackTags, cover_data: Optional[bytes]) -> None:
        audio = FLAC(file_path)
        if audio.tags is None:
            audio.add_tags()
        audio.tags.clear()
        audio.clear_pictures()

        audio['TITLE'] = tags.title
        audio['ARTIST'] = tags.artist
        audio['ALBUM'] = tags.album
        audio['ALBUMARTIST'] = tags.album_artist
        audio['DATE'] = tags.year

        if self.add_comment and tags.comment:
            audio['COMMENT'] = tags.comment

        if cover_data:
            picture = Picture()
            picture.type = 3
            picture.mime = 'image/jpeg'
            picture.desc = 'Cover'
            picture.data = cover_data
            audio.add_picture(picture)

        audio.save()

    def _write_mp4_tags(self, file_path: Path, tags: TrackTags, cover_data: Optional[bytes]) -> None:
        audio = MP4(file_path)
        if audio.tags is None:
            audio.add_tags()
        audio.tags.clear()

        audio['\xa9nam'] = [tags.title]
        audio['\xa9ART'] = [tags.artist]
        audio['\xa9alb'] = [tags.album]
        audio['aART'] = [tags.album_artist]
        audio['\xa9day'] = [tags.year]

        if self.add_comment and tags.comment:
            audio['\xa9cmt'] = [tags.comment]

        if cover_data:
            audio['covr'] = [MP4Cover(cover_data, imageformat=MP4Cover.FORMAT_JPEG)]

        audio.save()
