"""Play queue: ordered tracks, current position, shuffle and repeat modes."""

from enum import Enum
from typing import Iterable, List, Optional

from playback.exceptions import PlaylistError
from playback.logging import get_logger
from playback.shuffle import ShuffleIndexGenerator
from playback.track import Track

logger = get_logger(__name__)

# Returned by navigation on an empty queue
NO_TRACK = -1


class Direction(Enum):
    NEXT = 1
    PREVIOUS = -1


class RepeatMode(Enum):
    """Repeat modes, in the order ``cycle_repeat`` walks through them."""

    NONE = "none"
    ONCE = "once"
    FOREVER = "forever"


_REPEAT_CYCLE = [RepeatMode.NONE, RepeatMode.ONCE, RepeatMode.FOREVER]


class QueueState:
    """Holds the play queue and derives which index plays next.

    The queue always wraps: "next" from the last track is the first one and
    "previous" from the first track is the last one, in both plain and
    shuffled order. The shuffle order is a full permutation of the queue
    indices and is regenerated, never patched, whenever the tracks change.
    """

    def __init__(self, shuffler: Optional[ShuffleIndexGenerator] = None) -> None:
        self._shuffler = shuffler or ShuffleIndexGenerator()
        self._tracks: List[Track] = []
        self.current_index: int = NO_TRACK
        self.shuffle_enabled: bool = False
        self.shuffle_order: List[int] = []
        self.shuffle_position: int = NO_TRACK
        self.repeat_mode: RepeatMode = RepeatMode.NONE

    def __len__(self) -> int:
        return len(self._tracks)

    @property
    def is_empty(self) -> bool:
        return not self._tracks

    @property
    def tracks(self) -> List[Track]:
        """Copy of the queued tracks."""
        return list(self._tracks)

    @property
    def current_track(self) -> Optional[Track]:
        if 0 <= self.current_index < len(self._tracks):
            return self._tracks[self.current_index]
        return None

    def index_of(self, track_id: str) -> int:
        """Index of the track with ``track_id``, or NO_TRACK."""
        for i, track in enumerate(self._tracks):
            if track.id == track_id:
                return i
        return NO_TRACK

    def set_queue(self, tracks: Iterable[Track], start_index: int = 0) -> int:
        """
        Replace the queue.

        Args:
            tracks: New tracks, in playback order
            start_index: Index to start from (clamped into range)

        Returns:
            The new current index (NO_TRACK for an empty queue)

        Raises:
            PlaylistError: two tracks share an id
        """
        tracks = list(tracks)
        ids = [t.id for t in tracks]
        if len(set(ids)) != len(ids):
            raise PlaylistError("Queue contains duplicate track ids")

        self._tracks = tracks
        if not tracks:
            self.current_index = NO_TRACK
        else:
            self.current_index = max(0, min(int(start_index), len(tracks) - 1))
        self._regenerate_shuffle()
        return self.current_index

    def append_tracks(self, tracks: Iterable[Track]) -> int:
        """
        Append tracks that are not queued yet, keeping the current track.

        Returns:
            Number of tracks actually appended
        """
        known = {t.id for t in self._tracks}
        added = 0
        for track in tracks:
            if track.id in known:
                continue
            known.add(track.id)
            self._tracks.append(track)
            added += 1

        if added:
            if self.current_index == NO_TRACK:
                self.current_index = 0
            self._regenerate_shuffle()
        return added

    def select(self, index: int) -> int:
        """Jump to ``index``; out-of-range indices leave the queue untouched."""
        if not 0 <= index < len(self._tracks):
            return NO_TRACK
        self.current_index = index
        if self.shuffle_enabled:
            self.shuffle_position = self.shuffle_order.index(index)
        return index

    def advance(self, direction: Direction) -> int:
        """
        Move the current position one step and return the new index.

        The caller loads and plays the returned track. An empty queue returns
        NO_TRACK and changes nothing.
        """
        if not self._tracks:
            return NO_TRACK

        step = direction.value
        length = len(self._tracks)
        if self.shuffle_enabled:
            self.shuffle_position = (self.shuffle_position + step) % length
            self.current_index = self.shuffle_order[self.shuffle_position]
        else:
            self.current_index = (self.current_index + step) % length
        return self.current_index

    def toggle_shuffle(self) -> bool:
        """Flip shuffle; the current track stays current either way."""
        return self.set_shuffle(not self.shuffle_enabled)

    def set_shuffle(self, enabled: bool) -> bool:
        enabled = bool(enabled)
        if enabled != self.shuffle_enabled:
            self.shuffle_enabled = enabled
            self._regenerate_shuffle()
        return self.shuffle_enabled

    def cycle_repeat(self) -> RepeatMode:
        """Rotate none -> once -> forever -> none."""
        position = _REPEAT_CYCLE.index(self.repeat_mode)
        self.repeat_mode = _REPEAT_CYCLE[(position + 1) % len(_REPEAT_CYCLE)]
        return self.repeat_mode

    def set_repeat_mode(self, mode: RepeatMode) -> RepeatMode:
        self.repeat_mode = RepeatMode(mode)
        return self.repeat_mode

    def _regenerate_shuffle(self) -> None:
        if not self.shuffle_enabled or not self._tracks:
            self.shuffle_order = []
            self.shuffle_position = NO_TRACK
            return

        self.shuffle_order = self._shuffler.generate(len(self._tracks))
        self.shuffle_position = self.shuffle_order.index(self.current_index)
        logger.debug(
            "Shuffle order regenerated for %d tracks", len(self.shuffle_order)
        )
