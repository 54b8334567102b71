"""GStreamer playbin as a playback device.

Streams any URI playbin understands (http(s) from the web API, file:// from
the local library). Bus messages are translated into the device callbacks,
each tagged with the id of the track that was loaded at the time.
"""

from typing import Callable, Optional

import gi
gi.require_version('Gst', '1.0')
gi.require_version('GLib', '2.0')
from gi.repository import Gst, GLib

from playback.device import PlaybackDevice
from playback.logging import get_logger

logger = get_logger(__name__)


# GStreamer playbin flags
GST_FLAG_AUDIO = 0x02
GST_FLAG_SOFT_VOLUME = 0x10

# Update interval (milliseconds)
POSITION_UPDATE_INTERVAL = 250


class GstPlaybackDevice(PlaybackDevice):
    """Audio-only playbin driven by the PlaybackEngine."""

    def __init__(self):
        super().__init__()
        if not Gst.is_initialized():
            Gst.init(None)

        self.playbin: Optional[Gst.Element] = None
        self.track_id: Optional[str] = None
        self.volume: float = 1.0
        self.duration: float = 0.0
        self.is_playing: bool = False

        self._position_timeout_id: Optional[int] = None

        self._setup_pipeline()

    def _setup_pipeline(self):
        """Set up the GStreamer playbin pipeline."""
        self.playbin = Gst.ElementFactory.make("playbin", "playbin")
        if not self.playbin:
            raise RuntimeError("Failed to create GStreamer playbin")

        try:
            self.playbin.set_property("flags", GST_FLAG_AUDIO | GST_FLAG_SOFT_VOLUME)
        except (AttributeError, TypeError):
            # Ignore errors setting flags (playbin might not support this property)
            pass

        audio_sink = Gst.ElementFactory.make("autoaudiosink", "audiosink")
        if audio_sink:
            self.playbin.set_property("audio-sink", audio_sink)

        self.playbin.set_property("volume", self.volume)

        bus = self.playbin.get_bus()
        bus.add_signal_watch()
        bus.connect("message", self._on_message)

    def _emit_later(self, callback: Optional[Callable], *args) -> None:
        """Deliver a callback from the main loop instead of the caller's stack."""
        def deliver():
            self._emit(callback, *args)
            return False
        GLib.idle_add(deliver)

    def _on_message(self, bus: Gst.Bus, message: Gst.Message) -> bool:
        """
        Handle GStreamer bus messages.

        Args:
            bus: GStreamer message bus
            message: GStreamer message

        Returns:
            True to continue receiving messages
        """
        msg_type = message.type
        track_id = self.track_id
        if track_id is None:
            return True

        if msg_type == Gst.MessageType.ERROR:
            err, debug = message.parse_error()
            logger.error("Playback error: %s", err.message)
            if debug:
                logger.debug("GStreamer debug: %s", debug)
            self._stop()
            self._emit(self.on_error, track_id, err.message)

        elif msg_type == Gst.MessageType.EOS:
            self.is_playing = False
            self._stop_position_updates()
            self._emit(self.on_ended, track_id)

        elif msg_type == Gst.MessageType.STATE_CHANGED:
            if message.src == self.playbin:
                old_state, new_state, _ = message.parse_state_changed()
                if new_state == Gst.State.PLAYING and old_state != Gst.State.PLAYING:
                    self.is_playing = True
                    self._start_position_updates()
                    self._update_duration()
                    self._emit(self.on_started, track_id)
                elif new_state == Gst.State.PAUSED and old_state == Gst.State.PLAYING:
                    self.is_playing = False
                    self._stop_position_updates()
                    self._emit(self.on_paused, track_id)

        elif msg_type in (Gst.MessageType.DURATION_CHANGED, Gst.MessageType.ASYNC_DONE):
            self._update_duration()

        return True

    def _update_duration(self) -> None:
        if not self.playbin or self.track_id is None:
            return
        success, duration = self.playbin.query_duration(Gst.Format.TIME)
        if success and duration > 0:
            seconds = duration / Gst.SECOND
            if abs(seconds - self.duration) > 0.01:
                self.duration = seconds
                self._emit(self.on_duration_known, self.track_id, seconds)

    def _update_position(self) -> bool:
        """Report playback position (called periodically while playing)."""
        if self.playbin and self.is_playing and self.track_id is not None:
            success, position = self.playbin.query_position(Gst.Format.TIME)
            if success:
                self._emit(self.on_time_update, self.track_id, position / Gst.SECOND)
            return True
        self._position_timeout_id = None
        return False

    def _start_position_updates(self) -> None:
        self._stop_position_updates()
        self._position_timeout_id = GLib.timeout_add(
            POSITION_UPDATE_INTERVAL, self._update_position
        )

    def _stop_position_updates(self) -> None:
        if self._position_timeout_id is not None:
            GLib.source_remove(self._position_timeout_id)
            self._position_timeout_id = None

    def load(self, url: str, track_id: str) -> None:
        """Load a URI; failures are reported through on_error."""
        self._stop()
        self.track_id = track_id
        self.duration = 0.0

        self.playbin.set_property("uri", url)
        self.playbin.set_property("volume", self.volume)

        # Preroll so duration becomes known before play()
        ret = self.playbin.set_state(Gst.State.PAUSED)
        if ret == Gst.StateChangeReturn.FAILURE:
            logger.error("Failed to load %s", url)
            self._emit_later(self.on_error, track_id, f"Cannot open {url}")

    def play(self) -> None:
        """Start or resume playback; refusal is reported through on_play_rejected."""
        if not self.playbin or self.track_id is None:
            return

        ret = self.playbin.set_state(Gst.State.PLAYING)
        if ret == Gst.StateChangeReturn.FAILURE:
            logger.warning("Failed to start playback")
            self._emit_later(self.on_play_rejected, self.track_id, "Output refused to start")
            return

        # Replaying after EOS leaves the pipeline in PLAYING, so no
        # STATE_CHANGED message restarts the position poll
        self.is_playing = True
        self._start_position_updates()

    def pause(self) -> None:
        if self.playbin and self.track_id is not None:
            self.playbin.set_state(Gst.State.PAUSED)

    def seek(self, seconds: float) -> None:
        """
        Seek to position in seconds.

        Args:
            seconds: Position in seconds (the engine clamps it)
        """
        if not self.playbin or self.track_id is None:
            return
        success = self.playbin.seek_simple(
            Gst.Format.TIME,
            Gst.SeekFlags.FLUSH | Gst.SeekFlags.KEY_UNIT,
            int(max(0.0, seconds) * Gst.SECOND),
        )
        if not success:
            logger.warning("Seek failed for position %.2fs", seconds)

    def set_volume(self, volume: float) -> None:
        """
        Set volume (0.0 to 1.0).

        Args:
            volume: Volume level from 0.0 to 1.0 (will be clamped)
        """
        self.volume = max(0.0, min(1.0, volume))
        if self.playbin:
            self.playbin.set_property("volume", self.volume)

    def stop(self) -> None:
        """Stop playback and forget the loaded track."""
        self._stop()

    def _stop(self):
        self._stop_position_updates()
        if self.playbin:
            self.playbin.set_state(Gst.State.NULL)
        self.track_id = None
        self.is_playing = False

    def cleanup(self) -> None:
        """
        Clean up resources.

        Stops playback, removes signal watches, and releases GStreamer elements.
        Should be called when the device is no longer needed.
        """
        self._stop()

        if self.playbin:
            try:
                bus = self.playbin.get_bus()
                if bus:
                    bus.remove_signal_watch()
            except (AttributeError, RuntimeError):
                # Bus may already be destroyed
                pass

            self.playbin.set_state(Gst.State.NULL)
            self.playbin = None
