"""Pytest configuration and fixtures."""

import pytest
import tempfile
import shutil
import types
from pathlib import Path

# Mock GStreamer, GLib and D-Bus before imports
import sys
from unittest.mock import MagicMock

# Mock gi.repository
sys.modules['gi'] = MagicMock()
sys.modules['gi.repository'] = MagicMock()
sys.modules['gi.repository.Gst'] = MagicMock()
sys.modules['gi.repository.GLib'] = MagicMock()


def _mock_dbus():
    """Minimal dbus-python surface: decorators pass methods through unchanged."""
    dbus = types.ModuleType('dbus')
    service = types.ModuleType('dbus.service')
    exceptions = types.ModuleType('dbus.exceptions')
    bus = types.ModuleType('dbus.bus')
    mainloop = types.ModuleType('dbus.mainloop')
    mainloop_glib = types.ModuleType('dbus.mainloop.glib')

    class DBusException(Exception):
        def __init__(self, *args, name=None):
            super().__init__(*args)
            self._dbus_error_name = name

        def get_dbus_name(self):
            return self._dbus_error_name

    class Object:
        def __init__(self, *args, **kwargs):
            pass

        def remove_from_connection(self, *args, **kwargs):
            pass

    def passthrough(*args, **kwargs):
        return lambda func: func

    service.Object = Object
    service.method = passthrough
    service.signal = passthrough
    exceptions.DBusException = DBusException
    bus.NAME_FLAG_DO_NOT_QUEUE = 4
    bus.REQUEST_NAME_REPLY_PRIMARY_OWNER = 1
    mainloop_glib.DBusGMainLoop = MagicMock()
    mainloop.glib = mainloop_glib

    dbus.service = service
    dbus.exceptions = exceptions
    dbus.bus = bus
    dbus.mainloop = mainloop
    dbus.SessionBus = MagicMock()
    dbus.ObjectPath = str
    dbus.Boolean = bool
    dbus.Double = float
    dbus.Int64 = int
    dbus.Array = lambda items=(), signature=None: list(items)
    dbus.Dictionary = lambda mapping=None, signature=None: dict(mapping or {})

    sys.modules['dbus'] = dbus
    sys.modules['dbus.service'] = service
    sys.modules['dbus.exceptions'] = exceptions
    sys.modules['dbus.bus'] = bus
    sys.modules['dbus.mainloop'] = mainloop
    sys.modules['dbus.mainloop.glib'] = mainloop_glib


_mock_dbus()

from playback.device import PlaybackDevice  # noqa: E402


class RecordingDevice(PlaybackDevice):
    """Playback device that records every command it receives."""

    def __init__(self):
        super().__init__()
        self.calls = []
        self.track_id = None
        self.reject_play = False

    def load(self, url, track_id):
        self.calls.append(('load', url, track_id))
        self.track_id = track_id

    def play(self):
        self.calls.append(('play',))
        if self.reject_play:
            self._emit(self.on_play_rejected, self.track_id, "NotAllowedError")

    def pause(self):
        self.calls.append(('pause',))

    def seek(self, seconds):
        self.calls.append(('seek', seconds))

    def set_volume(self, volume):
        self.calls.append(('set_volume', volume))

    def stop(self):
        self.calls.append(('stop',))
        self.track_id = None

    def names(self):
        """Command names in call order."""
        return [call[0] for call in self.calls]

    def loaded_ids(self):
        return [call[2] for call in self.calls if call[0] == 'load']


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def mock_config(monkeypatch, temp_dir):
    """Fresh configuration rooted in temporary XDG directories."""
    from playback.config import Config

    monkeypatch.setenv('XDG_CONFIG_HOME', str(temp_dir / 'config'))
    monkeypatch.setenv('XDG_CACHE_HOME', str(temp_dir / 'cache'))
    monkeypatch.setenv('XDG_DATA_HOME', str(temp_dir / 'data'))

    Config._instance = None
    yield Config.get_instance()
    Config._instance = None


@pytest.fixture
def device():
    return RecordingDevice()


@pytest.fixture
def make_tracks():
    """Factory for provider-shaped track dicts t1..tN."""
    def _make(count, prefix='t'):
        return [
            {
                '_id': f'{prefix}{i}',
                'title': f'Song {i}',
                'url': f'https://cdn.example.com/{prefix}{i}.mp3',
                'artist_name': 'Artist',
                'album_name': 'Album',
                'duration': 180,
            }
            for i in range(1, count + 1)
        ]
    return _make


@pytest.fixture
def sample_audio_file(temp_dir):
    """Create a sample audio file path for testing."""
    audio_file = temp_dir / 'test.mp3'
    audio_file.touch()
    return str(audio_file)
