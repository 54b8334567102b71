"""Playback engine - drives one playback device from the play queue.

The engine is the only component that talks to the device. UI front ends
call the command methods and observe the engine through the EventBus;
device events come back through the device's callback slots.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

import gi
gi.require_version("GLib", "2.0")
from gi.repository import GLib

from playback.device import PlaybackDevice
from playback.events import EventBus
from playback.exceptions import (
    AutoplayBlocked,
    DeviceLoadError,
    MissingAudioSource,
    PlayerError,
)
from playback.logging import get_logger
from playback.normalizer import RawTrack, normalize_track, normalize_tracks
from playback.providers import TrackPage
from playback.queue_state import NO_TRACK, Direction, QueueState, RepeatMode
from playback.track import Track

logger = get_logger(__name__)

# "Previous" restarts the current track once it has played this long
RESTART_THRESHOLD = 3.0


class EngineState(Enum):
    """State machine for the loaded track."""

    IDLE = "idle"
    LOADED_PAUSED = "paused"
    LOADED_PLAYING = "playing"


@dataclass(frozen=True)
class PlayerSnapshot:
    """Read-only view of engine and queue for rendering."""

    state: EngineState
    track: Optional[Track]
    queue: Tuple[Track, ...]
    current_index: int
    is_playing: bool
    current_time: float
    duration: float
    volume: float
    shuffle_enabled: bool
    repeat_mode: RepeatMode


class PlaybackEngine:
    """Owns the play queue and the playback device; publishes state events."""

    def __init__(
        self,
        device: PlaybackDevice,
        event_bus: Optional[EventBus] = None,
        queue: Optional[QueueState] = None,
        volume: float = 0.7,
        restart_threshold: float = RESTART_THRESHOLD,
        load_timeout: float = 0.0,
    ):
        self._device = device
        self._events = event_bus or EventBus()
        self._queue = queue or QueueState()
        self._restart_threshold = restart_threshold
        self._load_timeout = max(0.0, load_timeout)

        self._state = EngineState.IDLE
        self._loaded_track: Optional[Track] = None
        self._current_time: float = 0.0
        self._duration: float = 0.0
        self._volume: float = max(0.0, min(1.0, volume))

        # Track id whose single extra play (repeat once) has been used up
        self._repeat_once_consumed_for: Optional[str] = None
        # Device errors in a row; a queue where every track fails goes idle
        self._consecutive_errors: int = 0
        self._load_timeout_id: Optional[int] = None

        device.on_time_update = self.on_device_time_update
        device.on_duration_known = self.on_device_duration_known
        device.on_ended = self.on_device_ended
        device.on_error = self.on_device_error
        device.on_started = self.on_device_started
        device.on_paused = self.on_device_paused
        device.on_play_rejected = self.on_device_play_rejected

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------
    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def queue(self) -> QueueState:
        return self._queue

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state == EngineState.LOADED_PLAYING

    @property
    def current_track(self) -> Optional[Track]:
        return self._loaded_track

    @property
    def current_time(self) -> float:
        return self._current_time

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def repeat_once_consumed_for(self) -> Optional[str]:
        return self._repeat_once_consumed_for

    def snapshot(self) -> PlayerSnapshot:
        return PlayerSnapshot(
            state=self._state,
            track=self._loaded_track,
            queue=tuple(self._queue.tracks),
            current_index=self._queue.current_index,
            is_playing=self.is_playing,
            current_time=self._current_time,
            duration=self._duration,
            volume=self._volume,
            shuffle_enabled=self._queue.shuffle_enabled,
            repeat_mode=self._queue.repeat_mode,
        )

    # ------------------------------------------------------------------
    # State setters (publish on change)
    # ------------------------------------------------------------------
    def _set_state(self, state: EngineState) -> None:
        if self._state != state:
            self._state = state
            self._events.publish(
                EventBus.PLAYBACK_STATE_CHANGED,
                {"state": state.value, "track": self._loaded_track},
            )

    def _set_position(self, position: float) -> None:
        self._current_time = max(0.0, position)
        self._events.publish(
            EventBus.PLAYBACK_PROGRESS,
            {"position": self._current_time, "duration": self._duration},
        )

    def _publish_queue_changed(self) -> None:
        self._events.publish(
            EventBus.QUEUE_CHANGED,
            {"length": len(self._queue), "index": self._queue.current_index},
        )

    def _report(self, error: PlayerError) -> None:
        """Funnel a playback failure to observers."""
        self._events.publish(
            EventBus.PLAYBACK_ERROR, {"error": error, "track": self._loaded_track}
        )

    # ------------------------------------------------------------------
    # Queue commands
    # ------------------------------------------------------------------
    def set_queue(
        self, items: Iterable[RawTrack], start_index: int = 0, autoplay: bool = True
    ) -> int:
        """
        Replace the queue and load the start track.

        Items in either track shape are normalized; unplayable ones are
        dropped. ``start_index`` refers to ``items`` and follows its item
        when earlier items are dropped; out-of-range values are clamped.

        Returns:
            Index of the loaded track in the new queue, or NO_TRACK
        """
        items = list(items)
        tracks = normalize_tracks(items)

        start = 0
        if start_index >= len(items):
            start = max(0, len(tracks) - 1)
        elif start_index >= 0:
            try:
                start_id = normalize_track(items[start_index]).id
            except MissingAudioSource:
                start_id = None
            if start_id is not None:
                start = next(
                    (i for i, t in enumerate(tracks) if t.id == start_id), 0
                )

        self._repeat_once_consumed_for = None
        self._consecutive_errors = 0
        index = self._queue.set_queue(tracks, start)
        self._publish_queue_changed()

        if index == NO_TRACK:
            logger.warning("Queue is empty; nothing to play")
            self._go_idle()
            return NO_TRACK

        self.load_and_maybe_play(self._queue.current_track, autoplay)
        return index

    def append_tracks(self, items: Iterable[RawTrack]) -> int:
        """Append tracks to the queue without interrupting playback."""
        added = self._queue.append_tracks(normalize_tracks(items))
        if added:
            self._publish_queue_changed()
        return added

    def play_track(self, item: RawTrack) -> bool:
        """
        Play one track now.

        A queued track is jumped to; an unknown track is put at the front of
        the queue.

        Returns:
            False if the track has no playable audio
        """
        try:
            track = normalize_track(item)
        except MissingAudioSource as e:
            logger.warning("Cannot play track: %s", e)
            self._report(e)
            return False

        self._repeat_once_consumed_for = None
        self._consecutive_errors = 0
        index = self._queue.index_of(track.id)
        if index == NO_TRACK:
            self._queue.set_queue([track] + self._queue.tracks, 0)
            self._publish_queue_changed()
        else:
            self._queue.select(index)

        self.load_and_maybe_play(self._queue.current_track, autoplay=True)
        return True

    def load_more(self, provider, track_filter) -> TrackPage:
        """
        Fetch the page ``track_filter`` names from ``provider`` and append it.

        The caller picks the page: unplayable and duplicate items are
        dropped, so the queue length says nothing about pages fetched.

        Returns:
            The fetched page

        Raises:
            ProviderError: the provider failed
        """
        result = provider.list_tracks(track_filter)
        added = self.append_tracks(result.items)
        logger.info("Loaded page %d: %d new tracks", track_filter.page, added)
        return result

    def toggle_shuffle(self) -> bool:
        return self.set_shuffle(not self._queue.shuffle_enabled)

    def set_shuffle(self, enabled: bool) -> bool:
        before = self._queue.shuffle_enabled
        enabled = self._queue.set_shuffle(enabled)
        if enabled != before:
            self._events.publish(EventBus.SHUFFLE_CHANGED, {"enabled": enabled})
        return enabled

    def cycle_repeat(self) -> RepeatMode:
        mode = self._queue.cycle_repeat()
        self._events.publish(EventBus.REPEAT_MODE_CHANGED, {"mode": mode})
        return mode

    def set_repeat_mode(self, mode: RepeatMode) -> RepeatMode:
        if self._queue.repeat_mode != mode:
            self._queue.set_repeat_mode(mode)
            self._events.publish(EventBus.REPEAT_MODE_CHANGED, {"mode": mode})
        return self._queue.repeat_mode

    # ------------------------------------------------------------------
    # Transport commands
    # ------------------------------------------------------------------
    def load_and_maybe_play(self, track: Track, autoplay: bool) -> None:
        """Load ``track`` into the device, resetting position; play if asked."""
        self._cancel_load_timeout()
        self._loaded_track = track
        self._duration = track.duration_seconds

        logger.info("Loading track %s (%s)", track.id, track.display_name)
        self._device.set_volume(self._volume)
        self._device.load(track.audio_url, track.id)
        self._arm_load_timeout(track.id)

        self._events.publish(
            EventBus.TRACK_CHANGED,
            {"track": track, "index": self._queue.current_index},
        )
        self._set_position(0.0)

        if autoplay:
            # State first: a device may reject play() synchronously
            self._set_state(EngineState.LOADED_PLAYING)
            self._device.play()
        else:
            self._set_state(EngineState.LOADED_PAUSED)

    def toggle_play_pause(self) -> None:
        if self._state == EngineState.IDLE:
            return
        if self._state == EngineState.LOADED_PLAYING:
            self._device.pause()
            self._set_state(EngineState.LOADED_PAUSED)
        else:
            self._set_state(EngineState.LOADED_PLAYING)
            self._device.play()

    def play(self) -> None:
        """Resume, or load the current queue track when nothing is loaded."""
        if self._state == EngineState.LOADED_PAUSED:
            self.toggle_play_pause()
        elif self._state == EngineState.IDLE and self._queue.current_track is not None:
            self.load_and_maybe_play(self._queue.current_track, autoplay=True)

    def pause(self) -> None:
        if self._state == EngineState.LOADED_PLAYING:
            self.toggle_play_pause()

    def stop(self) -> None:
        """Unload the track; the queue and its position are kept."""
        self._go_idle()

    def skip_next(self) -> None:
        if self._queue.is_empty:
            return
        self._repeat_once_consumed_for = None
        self._advance_and_load(Direction.NEXT, autoplay=self.is_playing)

    def skip_previous(self) -> None:
        if self._queue.is_empty:
            return
        self._repeat_once_consumed_for = None

        if self._state != EngineState.IDLE and self._current_time > self._restart_threshold:
            self._device.seek(0.0)
            self._set_position(0.0)
            return

        self._advance_and_load(Direction.PREVIOUS, autoplay=self.is_playing)

    def seek(self, position: float) -> None:
        """Seek within the loaded track; clamped to [0, duration] once known."""
        if self._state == EngineState.IDLE:
            return
        position = max(0.0, position)
        if self._duration > 0:
            position = min(position, self._duration)
        self._device.seek(position)
        self._set_position(position)

    def set_volume(self, volume: float) -> None:
        new_vol = max(0.0, min(1.0, volume))
        if abs(self._volume - new_vol) > 0.001:
            self._volume = new_vol
            self._events.publish(EventBus.VOLUME_CHANGED, {"volume": self._volume})
        if self._state != EngineState.IDLE:
            self._device.set_volume(self._volume)

    def shutdown(self) -> None:
        self._go_idle()
        self._device.cleanup()

    def _advance_and_load(self, direction: Direction, autoplay: bool) -> None:
        index = self._queue.advance(direction)
        if index == NO_TRACK:
            self._go_idle()
            return
        self.load_and_maybe_play(self._queue.current_track, autoplay)

    def _restart_current(self) -> None:
        self._device.seek(0.0)
        self._set_position(0.0)
        self._set_state(EngineState.LOADED_PLAYING)
        self._device.play()

    def _go_idle(self) -> None:
        self._cancel_load_timeout()
        if self._state != EngineState.IDLE:
            self._device.stop()
        self._loaded_track = None
        self._current_time = 0.0
        self._duration = 0.0
        self._set_state(EngineState.IDLE)

    # ------------------------------------------------------------------
    # Device events
    # ------------------------------------------------------------------
    def _is_current(self, track_id: Optional[str]) -> bool:
        """False for events from a track that is no longer loaded."""
        if self._loaded_track is None or track_id != self._loaded_track.id:
            logger.debug("Ignoring stale device event for %s", track_id)
            return False
        return True

    def on_device_time_update(self, track_id: str, seconds: float) -> None:
        if self._is_current(track_id):
            self._set_position(seconds)

    def on_device_duration_known(self, track_id: str, seconds: float) -> None:
        if not self._is_current(track_id):
            return
        self._cancel_load_timeout()
        self._consecutive_errors = 0
        self._duration = max(0.0, seconds)
        self._set_position(self._current_time)

    def on_device_started(self, track_id: str) -> None:
        if not self._is_current(track_id):
            return
        self._cancel_load_timeout()
        self._consecutive_errors = 0
        self._set_state(EngineState.LOADED_PLAYING)

    def on_device_paused(self, track_id: str) -> None:
        if self._is_current(track_id) and self._state == EngineState.LOADED_PLAYING:
            self._set_state(EngineState.LOADED_PAUSED)

    def on_device_ended(self, track_id: str) -> None:
        if not self._is_current(track_id):
            return

        track = self._loaded_track
        mode = self._queue.repeat_mode
        if mode == RepeatMode.FOREVER:
            self._restart_current()
            return

        if mode == RepeatMode.ONCE and self._repeat_once_consumed_for != track.id:
            self._repeat_once_consumed_for = track.id
            self._restart_current()
            return

        self._repeat_once_consumed_for = None
        self._advance_and_load(Direction.NEXT, autoplay=True)

    def on_device_error(self, track_id: str, reason: str) -> None:
        if not self._is_current(track_id):
            return

        self._cancel_load_timeout()
        error = DeviceLoadError(reason, track_id=track_id)
        logger.error("Playback failed for %s: %s", track_id, reason)
        self._report(error)

        self._consecutive_errors += 1
        if self._consecutive_errors >= len(self._queue):
            logger.error("Every queued track failed; stopping playback")
            self._consecutive_errors = 0
            self._go_idle()
            return

        self._repeat_once_consumed_for = None
        self._advance_and_load(Direction.NEXT, autoplay=True)

    def on_device_play_rejected(self, track_id: str, reason: str) -> None:
        if not self._is_current(track_id):
            return
        logger.warning("Play request rejected for %s: %s", track_id, reason)
        self._set_state(EngineState.LOADED_PAUSED)
        self._report(AutoplayBlocked(reason, track_id=track_id))

    # ------------------------------------------------------------------
    # Load safety timeout
    # ------------------------------------------------------------------
    def _arm_load_timeout(self, track_id: str) -> None:
        if self._load_timeout <= 0:
            return
        self._load_timeout_id = GLib.timeout_add(
            int(self._load_timeout * 1000), self._on_load_timeout, track_id
        )

    def _cancel_load_timeout(self) -> None:
        if self._load_timeout_id is not None:
            GLib.source_remove(self._load_timeout_id)
            self._load_timeout_id = None

    def _on_load_timeout(self, track_id: str) -> bool:
        self._load_timeout_id = None
        if self._loaded_track is not None and self._loaded_track.id == track_id:
            self.on_device_error(
                track_id, f"No response within {self._load_timeout:g}s"
            )
        return False
