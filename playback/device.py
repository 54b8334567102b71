"""Playback device contract.

A playback device wraps one native audio output. Commands are fire-and-forget;
results arrive later through the ``on_*`` callback slots. Every callback gets
the id of the track that was loaded when the event originated, so the
engine can discard events from a track it has already replaced.
"""

from typing import Callable, Optional


class PlaybackDevice:
    """Base class for audio outputs driven by the PlaybackEngine."""

    def __init__(self) -> None:
        # Callbacks, all (track_id, ...) -> None
        self.on_time_update: Optional[Callable[[str, float], None]] = None
        self.on_duration_known: Optional[Callable[[str, float], None]] = None
        self.on_ended: Optional[Callable[[str], None]] = None
        self.on_error: Optional[Callable[[str, str], None]] = None
        self.on_started: Optional[Callable[[str], None]] = None
        self.on_paused: Optional[Callable[[str], None]] = None
        self.on_play_rejected: Optional[Callable[[str, str], None]] = None

    def load(self, url: str, track_id: str) -> None:
        """Start loading ``url``; later events are tagged with ``track_id``."""
        raise NotImplementedError

    def play(self) -> None:
        """Start or resume; refusal is reported through ``on_play_rejected``."""
        raise NotImplementedError

    def pause(self) -> None:
        raise NotImplementedError

    def seek(self, seconds: float) -> None:
        raise NotImplementedError

    def set_volume(self, volume: float) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        """Unload the current source; no further events for it."""
        raise NotImplementedError

    def cleanup(self) -> None:
        """Release native resources."""
        self.stop()

    def _emit(self, callback: Optional[Callable], *args) -> None:
        if callback is not None:
            callback(*args)
