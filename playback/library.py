"""Local music folders as a track provider."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from mutagen import File as MutagenFile
from mutagen import MutagenError

from playback.logging import get_logger
from playback.providers import TrackFilter, TrackPage, TrackProvider
from playback.security import SecurityValidator

logger = get_logger(__name__)

# Same defaults the web app's upload form applies
DEFAULT_ALBUM = 'Single'
DEFAULT_GENRE = 'Unknown'

SEARCH_FIELDS = ('title', 'artist_name', 'album_name', 'genre')
SORT_KEYS = {
    'title': lambda item: item['title'].casefold(),
    'artist': lambda item: item['artist_name'].casefold(),
}


def _first_tag(audio_file, key: str) -> Optional[str]:
    """First non-empty value of an easy tag, or None."""
    tags = getattr(audio_file, 'tags', None)
    if not tags:
        return None
    try:
        values = tags.get(key)
    except (KeyError, TypeError, ValueError):
        return None
    if not values:
        return None
    if isinstance(values, (list, tuple)):
        values = values[0]
    value = str(values).strip()
    return value or None


def read_track(file_path: Path) -> Dict[str, Any]:
    """Read one audio file into a provider-shaped track dict."""
    path = Path(file_path).resolve()
    title = artist = album = genre = None
    duration = 0.0

    try:
        audio_file = MutagenFile(str(path), easy=True)
    except (MutagenError, OSError) as e:
        logger.warning("Cannot read tags from %s: %s", path, e)
        audio_file = None

    if audio_file is not None:
        title = _first_tag(audio_file, 'title')
        artist = _first_tag(audio_file, 'artist')
        album = _first_tag(audio_file, 'album')
        genre = _first_tag(audio_file, 'genre')
        info = getattr(audio_file, 'info', None)
        if info is not None and getattr(info, 'length', None):
            duration = float(info.length)

    try:
        modified = path.stat().st_mtime
    except OSError:
        modified = 0.0

    return {
        '_id': str(path),
        # Untagged files still need something to display
        'title': title or path.stem,
        'artist_name': artist or '',
        'album_name': album or DEFAULT_ALBUM,
        'genre': genre or DEFAULT_GENRE,
        'duration': duration,
        'url': path.as_uri(),
        'image': '',
        'modified': modified,
    }


class LocalTrackProvider(TrackProvider):
    """Lists audio files found under a set of music directories."""

    def __init__(self, music_dirs: Iterable[Path]):
        self.music_dirs = [Path(d) for d in music_dirs]
        self._tracks: Optional[List[Dict[str, Any]]] = None

    def scan(self) -> int:
        """(Re)scan all music directories; returns the number of tracks."""
        tracks = []
        for music_dir in self.music_dirs:
            if not music_dir.is_dir():
                logger.warning("Music directory not found: %s", music_dir)
                continue
            for root, _dirs, files in os.walk(music_dir):
                for name in sorted(files):
                    if SecurityValidator.validate_file_extension(name):
                        tracks.append(read_track(Path(root) / name))
        self._tracks = tracks
        logger.info("Library scan found %d tracks", len(tracks))
        return len(tracks)

    @property
    def tracks(self) -> List[Dict[str, Any]]:
        if self._tracks is None:
            self.scan()
        return list(self._tracks)

    def list_tracks(self, track_filter: Optional[TrackFilter] = None) -> TrackPage:
        track_filter = track_filter or TrackFilter()
        items = self.tracks

        if track_filter.search:
            pattern = re.compile(re.escape(track_filter.search), re.IGNORECASE)
            items = [
                item for item in items
                if any(pattern.search(str(item.get(f) or '')) for f in SEARCH_FIELDS)
            ]

        if track_filter.genre:
            pattern = re.compile(re.escape(track_filter.genre), re.IGNORECASE)
            items = [item for item in items if pattern.search(item.get('genre') or '')]

        sort_key = SORT_KEYS.get(track_filter.order)
        if sort_key is not None:
            items.sort(key=sort_key)
        else:
            # newest first, like the API's default ordering
            items.sort(key=lambda item: item['modified'], reverse=True)

        total = len(items)
        limit = track_filter.limit
        start = track_filter.skip
        return TrackPage(
            items=items[start:start + limit],
            current_page=track_filter.page,
            total_pages=(total + limit - 1) // limit,
            total_items=total,
            items_per_page=limit,
        )
