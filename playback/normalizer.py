"""Track normalization.

Tracks reach the player in two shapes:

- provider shape, as returned by the REST API and the local library
  (``_id``, ``title``, ``url``, ``image``, ...)
- player shape, as stored by front ends that already converted a track
  (``id``, ``name``, ``audio``, ``album_image``, ...)

Both are mapped onto :class:`playback.track.Track` through one field table
per shape, so nothing downstream has to probe for optional field names.
"""

from enum import Enum
from typing import Any, Iterable, List, Mapping, Union

from playback.exceptions import MissingAudioSource
from playback.logging import get_logger
from playback.security import SecurityValidator
from playback.track import Track

logger = get_logger(__name__)


class TrackShape(Enum):
    PROVIDER = "provider"
    PLAYER = "player"
    CANONICAL = "canonical"


# canonical field -> source keys, first non-empty wins
_FIELD_MAP = {
    TrackShape.PROVIDER: {
        'id': ('_id',),
        'title': ('title',),
        'audio_url': ('url',),
        'artist_name': ('artist_name',),
        'album_name': ('album_name',),
        'duration_seconds': ('duration',),
        'image_url': ('image',),
        'genre': ('genre',),
    },
    TrackShape.PLAYER: {
        'id': ('id',),
        'title': ('name',),
        'audio_url': ('audio',),
        'artist_name': ('artist_name',),
        'album_name': ('album_name',),
        'duration_seconds': ('duration',),
        'image_url': ('image', 'album_image'),
        'genre': ('genre',),
    },
}

RawTrack = Union[Track, Mapping[str, Any]]


def detect_shape(raw: RawTrack) -> TrackShape:
    """Tell which shape ``raw`` is in.

    Raises:
        MissingAudioSource: ``raw`` is neither shape, so it has nothing playable.
    """
    if isinstance(raw, Track):
        return TrackShape.CANONICAL
    if not isinstance(raw, Mapping):
        raise MissingAudioSource(f"Unsupported track object: {type(raw).__name__}")

    # Front ends keep the provider keys next to the player keys after
    # converting, so 'audio' decides in favour of the player shape.
    if 'audio' in raw and 'id' in raw:
        return TrackShape.PLAYER
    if '_id' in raw:
        return TrackShape.PROVIDER
    if 'id' in raw:
        return TrackShape.PLAYER
    raise MissingAudioSource("Track has neither '_id' nor 'id'")


def _first(raw: Mapping[str, Any], keys) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ''):
            return value
    return None


def _as_duration(value: Any) -> float:
    try:
        duration = float(value)
    except (TypeError, ValueError):
        return 0.0
    # NaN fails every comparison, so it lands on 0.0 too
    return duration if duration > 0 else 0.0


def normalize_track(raw: RawTrack) -> Track:
    """Convert a provider- or player-shaped track into a canonical Track.

    Raises:
        MissingAudioSource: no resolvable audio URL (or no id) on ``raw``.
    """
    shape = detect_shape(raw)
    if shape is TrackShape.CANONICAL:
        return raw

    fields = {name: _first(raw, keys) for name, keys in _FIELD_MAP[shape].items()}

    track_id = fields['id']
    if track_id is None:
        raise MissingAudioSource("Track has an empty id")
    track_id = str(track_id)

    audio_url = SecurityValidator.validate_audio_url(fields['audio_url'])
    if audio_url is None:
        raise MissingAudioSource(
            f"Track {track_id} has no playable audio URL", track_id=track_id
        )

    return Track(
        id=track_id,
        title=str(fields['title'] or ''),
        audio_url=audio_url,
        artist_name=str(fields['artist_name'] or ''),
        album_name=str(fields['album_name'] or ''),
        duration_seconds=_as_duration(fields['duration_seconds']),
        image_url=fields['image_url'],
        genre=fields['genre'],
    )


def normalize_tracks(items: Iterable[RawTrack]) -> List[Track]:
    """Normalize a batch, dropping unplayable items and repeated ids.

    The first occurrence of an id wins, which keeps ids unique in a queue.
    """
    tracks: List[Track] = []
    seen = set()
    for raw in items:
        try:
            track = normalize_track(raw)
        except MissingAudioSource as e:
            logger.warning("Skipping track: %s", e)
            continue
        if track.id in seen:
            logger.debug("Dropping duplicate track %s", track.id)
            continue
        seen.add(track.id)
        tracks.append(track)
    return tracks
