"""
Audio package

Writes playlist tags into downloaded files and keeps the playlist cover used
as embedded artwork.
"""

from .metadata import MetadataManager, TrackTags, build_track_tags
from .artwork import CoverArtCache, normalize_cover_image

__all__ = [
    'MetadataManager',
    'TrackTags',
    'build_track_tags',
    'CoverArtCache',
    'normalize_cover_image',
]
