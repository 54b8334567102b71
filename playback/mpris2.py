"""MPRIS2 (Media Player Remote Interfacing Specification) D-Bus interface.

Publishes the playback engine on the session bus so media keys, desktop
shells and ``playerctl`` can drive it:
- Transport commands (Play, Pause, PlayPause, Stop, Next, Previous, Seek)
- Read/write properties (Volume, Shuffle, LoopStatus)
- PropertiesChanged signals mirrored from the engine's EventBus
"""

import re
from typing import Any, Dict, Optional

import dbus
import dbus.service
from dbus.mainloop.glib import DBusGMainLoop

from playback.engine import EngineState, PlaybackEngine
from playback.events import EventBus
from playback.logging import get_logger
from playback.queue_state import RepeatMode
from playback.track import Track

logger = get_logger(__name__)


# MPRIS2 interfaces
MPRIS2_BUS_NAME = 'org.mpris.MediaPlayer2.cloudplayer'
MPRIS2_OBJECT_PATH = '/org/mpris/MediaPlayer2'
MPRIS2_ROOT_INTERFACE = 'org.mpris.MediaPlayer2'
MPRIS2_PLAYER_INTERFACE = 'org.mpris.MediaPlayer2.Player'
PROPERTIES_INTERFACE = 'org.freedesktop.DBus.Properties'

TRACK_PATH_PREFIX = '/org/cloudplayer/Track/'
NO_TRACK_PATH = '/org/mpris/MediaPlayer2/TrackList/NoTrack'

PLAYBACK_STATUS = {
    EngineState.IDLE: 'Stopped',
    EngineState.LOADED_PAUSED: 'Paused',
    EngineState.LOADED_PLAYING: 'Playing',
}

US_PER_SECOND = 1_000_000


def loop_status_for(mode: RepeatMode) -> str:
    """MPRIS LoopStatus for a repeat mode.

    The queue always wraps, so "no repeat" is a playlist loop in MPRIS terms.
    """
    if mode == RepeatMode.NONE:
        return 'Playlist'
    return 'Track'


def repeat_mode_for(loop_status: str) -> RepeatMode:
    if loop_status == 'Track':
        return RepeatMode.FOREVER
    if loop_status in ('None', 'Playlist'):
        return RepeatMode.NONE
    raise ValueError(f"Unknown LoopStatus: {loop_status!r}")


def track_object_path(track: Optional[Track]) -> str:
    """D-Bus object path identifying ``track`` (only [A-Za-z0-9_] allowed)."""
    if track is None:
        return NO_TRACK_PATH
    return TRACK_PATH_PREFIX + (re.sub(r'[^A-Za-z0-9_]', '_', track.id) or '_')


def build_metadata(track: Optional[Track]) -> Dict[str, Any]:
    """MPRIS metadata map for a track (empty map when nothing is loaded)."""
    if track is None:
        return {}

    metadata = {
        'mpris:trackid': dbus.ObjectPath(track_object_path(track)),
        'xesam:title': track.title or track.id,
        'xesam:url': track.audio_url,
    }
    if track.artist_name:
        metadata['xesam:artist'] = dbus.Array([track.artist_name], signature='s')
    if track.album_name:
        metadata['xesam:album'] = track.album_name
    if track.genre:
        metadata['xesam:genre'] = dbus.Array([track.genre], signature='s')
    if track.duration_seconds:
        metadata['mpris:length'] = dbus.Int64(int(track.duration_seconds * US_PER_SECOND))
    if track.image_url:
        metadata['mpris:artUrl'] = track.image_url
    return metadata


class MPRIS2Service(dbus.service.Object):
    """Root and Player interfaces on one object, backed by a PlaybackEngine."""

    def __init__(self, bus, engine: PlaybackEngine):
        super().__init__(bus, MPRIS2_OBJECT_PATH)
        self._engine = engine
        self.on_quit = None

        events = engine.events
        events.subscribe(EventBus.PLAYBACK_STATE_CHANGED, self._on_state_changed)
        events.subscribe(EventBus.TRACK_CHANGED, self._on_track_changed)
        events.subscribe(EventBus.QUEUE_CHANGED, self._on_queue_changed)
        events.subscribe(EventBus.SHUFFLE_CHANGED, self._on_shuffle_changed)
        events.subscribe(EventBus.REPEAT_MODE_CHANGED, self._on_repeat_changed)
        events.subscribe(EventBus.VOLUME_CHANGED, self._on_volume_changed)

    # ------------------------------------------------------------------
    # org.mpris.MediaPlayer2
    # ------------------------------------------------------------------
    @dbus.service.method(MPRIS2_ROOT_INTERFACE, in_signature='', out_signature='')
    def Raise(self):
        """No window to raise."""
        pass

    @dbus.service.method(MPRIS2_ROOT_INTERFACE, in_signature='', out_signature='')
    def Quit(self):
        logger.info("MPRIS2: Quit requested")
        if self.on_quit:
            self.on_quit()

    # ------------------------------------------------------------------
    # org.mpris.MediaPlayer2.Player
    # ------------------------------------------------------------------
    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='', out_signature='')
    def Next(self):
        logger.info("MPRIS2: Next requested")
        self._engine.skip_next()

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='', out_signature='')
    def Previous(self):
        logger.info("MPRIS2: Previous requested")
        self._engine.skip_previous()

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='', out_signature='')
    def Pause(self):
        self._engine.pause()

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='', out_signature='')
    def PlayPause(self):
        if self._engine.state == EngineState.IDLE:
            self._engine.play()
        else:
            self._engine.toggle_play_pause()

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='', out_signature='')
    def Stop(self):
        self._engine.stop()

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='', out_signature='')
    def Play(self):
        self._engine.play()

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='x', out_signature='')
    def Seek(self, offset):
        """Seek forward or backward by ``offset`` microseconds."""
        if self._engine.state == EngineState.IDLE:
            return
        self._engine.seek(self._engine.current_time + int(offset) / US_PER_SECOND)
        self.Seeked(dbus.Int64(int(self._engine.current_time * US_PER_SECOND)))

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='ox', out_signature='')
    def SetPosition(self, track_id, position):
        """Absolute seek; ignored unless ``track_id`` is the loaded track."""
        if str(track_id) != track_object_path(self._engine.current_track):
            logger.debug("MPRIS2: SetPosition for stale track %s", track_id)
            return
        position = int(position)
        if position < 0:
            return
        self._engine.seek(position / US_PER_SECOND)
        self.Seeked(dbus.Int64(int(self._engine.current_time * US_PER_SECOND)))

    @dbus.service.method(MPRIS2_PLAYER_INTERFACE, in_signature='s', out_signature='')
    def OpenUri(self, uri):
        logger.info("MPRIS2: OpenUri requested: %s", uri)
        uri = str(uri)
        name = uri.rstrip('/').rsplit('/', 1)[-1] or uri
        self._engine.play_track({'id': uri, 'name': name, 'audio': uri})

    @dbus.service.signal(MPRIS2_PLAYER_INTERFACE, signature='x')
    def Seeked(self, position):
        """Signal emitted after a jump in position."""
        pass

    # ------------------------------------------------------------------
    # org.freedesktop.DBus.Properties
    # ------------------------------------------------------------------
    def _root_properties(self) -> Dict[str, Any]:
        return {
            'CanQuit': dbus.Boolean(self.on_quit is not None),
            'CanRaise': dbus.Boolean(False),
            'HasTrackList': dbus.Boolean(False),
            'Identity': 'Cloud Player',
            'SupportedUriSchemes': dbus.Array(['http', 'https', 'file'], signature='s'),
            'SupportedMimeTypes': dbus.Array(
                ['audio/mpeg', 'audio/flac', 'audio/ogg', 'audio/mp4', 'audio/wav'],
                signature='s',
            ),
        }

    def _player_properties(self) -> Dict[str, Any]:
        snapshot = self._engine.snapshot()
        has_queue = bool(snapshot.queue)
        loaded = snapshot.state != EngineState.IDLE
        return {
            'PlaybackStatus': PLAYBACK_STATUS[snapshot.state],
            'LoopStatus': loop_status_for(snapshot.repeat_mode),
            'Rate': dbus.Double(1.0),
            'MinimumRate': dbus.Double(1.0),
            'MaximumRate': dbus.Double(1.0),
            'Shuffle': dbus.Boolean(snapshot.shuffle_enabled),
            'Metadata': dbus.Dictionary(build_metadata(snapshot.track), signature='sv'),
            'Volume': dbus.Double(snapshot.volume),
            'Position': dbus.Int64(int(snapshot.current_time * US_PER_SECOND)),
            'CanGoNext': dbus.Boolean(has_queue),
            'CanGoPrevious': dbus.Boolean(has_queue),
            'CanPlay': dbus.Boolean(has_queue),
            'CanPause': dbus.Boolean(loaded),
            'CanSeek': dbus.Boolean(loaded),
            'CanControl': dbus.Boolean(True),
        }

    def _properties(self, interface: str) -> Dict[str, Any]:
        if interface == MPRIS2_ROOT_INTERFACE:
            return self._root_properties()
        if interface == MPRIS2_PLAYER_INTERFACE:
            return self._player_properties()
        raise dbus.exceptions.DBusException(
            f"No such interface: {interface}",
            name='org.freedesktop.DBus.Error.UnknownInterface',
        )

    @dbus.service.method(PROPERTIES_INTERFACE, in_signature='ss', out_signature='v')
    def Get(self, interface, prop):
        properties = self._properties(str(interface))
        if prop not in properties:
            raise dbus.exceptions.DBusException(
                f"No such property: {prop}",
                name='org.freedesktop.DBus.Error.UnknownProperty',
            )
        return properties[prop]

    @dbus.service.method(PROPERTIES_INTERFACE, in_signature='s', out_signature='a{sv}')
    def GetAll(self, interface):
        return self._properties(str(interface))

    @dbus.service.method(PROPERTIES_INTERFACE, in_signature='ssv', out_signature='')
    def Set(self, interface, prop, value):
        if str(interface) != MPRIS2_PLAYER_INTERFACE:
            raise dbus.exceptions.DBusException(
                f"{interface}.{prop} is read-only",
                name='org.freedesktop.DBus.Error.PropertyReadOnly',
            )

        if prop == 'Volume':
            self._engine.set_volume(float(value))
        elif prop == 'Shuffle':
            self._engine.set_shuffle(bool(value))
        elif prop == 'LoopStatus':
            try:
                mode = repeat_mode_for(str(value))
            except ValueError as e:
                raise dbus.exceptions.DBusException(
                    str(e), name='org.freedesktop.DBus.Error.InvalidArgs'
                ) from e
            self._engine.set_repeat_mode(mode)
        else:
            raise dbus.exceptions.DBusException(
                f"{interface}.{prop} is read-only",
                name='org.freedesktop.DBus.Error.PropertyReadOnly',
            )

    @dbus.service.signal(PROPERTIES_INTERFACE, signature='sa{sv}as')
    def PropertiesChanged(self, interface, changed, invalidated):
        """Signal emitted when properties change."""
        pass

    # ------------------------------------------------------------------
    # EventBus -> PropertiesChanged
    # ------------------------------------------------------------------
    def _emit_player_change(self, *names: str) -> None:
        properties = self._player_properties()
        changed = {name: properties[name] for name in names}
        self.PropertiesChanged(MPRIS2_PLAYER_INTERFACE, changed, dbus.Array([], signature='s'))

    def _on_state_changed(self, data):
        self._emit_player_change('PlaybackStatus', 'CanPause', 'CanSeek')

    def _on_track_changed(self, data):
        self._emit_player_change('Metadata')

    def _on_queue_changed(self, data):
        self._emit_player_change('CanGoNext', 'CanGoPrevious', 'CanPlay')

    def _on_shuffle_changed(self, data):
        self._emit_player_change('Shuffle')

    def _on_repeat_changed(self, data):
        self._emit_player_change('LoopStatus')

    def _on_volume_changed(self, data):
        self._emit_player_change('Volume')


class MPRIS2Manager:
    """Owns the bus name and the MPRIS2 service object."""

    def __init__(self, engine: PlaybackEngine):
        DBusGMainLoop(set_as_default=True)
        self.bus = dbus.SessionBus()
        self.service: Optional[MPRIS2Service] = None
        self._owns_name = False

        try:
            reply = self.bus.request_name(
                MPRIS2_BUS_NAME,
                dbus.bus.NAME_FLAG_DO_NOT_QUEUE,
            )
        except dbus.exceptions.DBusException as e:
            logger.error("MPRIS2: Failed to register: %s", e, exc_info=True)
            return

        if reply != dbus.bus.REQUEST_NAME_REPLY_PRIMARY_OWNER:
            logger.warning("MPRIS2: Could not acquire bus name (may already be in use)")
            return

        self._owns_name = True
        self.service = MPRIS2Service(self.bus, engine)
        logger.info("MPRIS2: Acquired bus name %s", MPRIS2_BUS_NAME)

    def set_quit_callback(self, on_quit) -> None:
        if self.service:
            self.service.on_quit = on_quit

    def cleanup(self):
        """Release the bus name and unexport the service."""
        try:
            if self.service:
                self.service.remove_from_connection()
                self.service = None
            if self._owns_name:
                self.bus.release_name(MPRIS2_BUS_NAME)
                self._owns_name = False
            logger.info("MPRIS2: Cleaned up")
        except dbus.exceptions.DBusException as e:
            logger.error("MPRIS2: Error during cleanup: %s", e, exc_info=True)
