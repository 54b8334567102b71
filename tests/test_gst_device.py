"""Tests for the GStreamer playback device."""

import pytest
from unittest.mock import MagicMock, Mock, patch

SECOND = 1_000_000_000


@pytest.fixture
def gst():
    with patch('playback.gst_device.Gst') as gst:
        gst.SECOND = SECOND
        playbin = MagicMock(name='playbin')
        gst.ElementFactory.make.side_effect = (
            lambda factory, name: playbin if factory == 'playbin' else MagicMock(name=factory)
        )
        gst.playbin = playbin
        yield gst


@pytest.fixture
def glib():
    with patch('playback.gst_device.GLib') as glib:
        glib.timeout_add.return_value = 7
        yield glib


@pytest.fixture
def gst_device(gst, glib):
    from playback.gst_device import GstPlaybackDevice
    device = GstPlaybackDevice()
    for slot in ('on_time_update', 'on_duration_known', 'on_ended', 'on_error',
                 'on_started', 'on_paused', 'on_play_rejected'):
        setattr(device, slot, Mock())
    return device


def _message(gst, msg_type, src=None):
    message = MagicMock()
    message.type = getattr(gst.MessageType, msg_type)
    message.src = src
    return message


def _run_idle(glib):
    """Run the most recently scheduled idle callback."""
    callback = glib.idle_add.call_args[0][0]
    return callback()


class TestGstPlaybackDevice:

    def test_initialization(self, gst_device, gst):
        assert gst_device.playbin is gst.playbin
        assert gst_device.track_id is None
        assert gst_device.volume == 1.0
        assert gst_device.is_playing is False
        gst.playbin.get_bus.return_value.add_signal_watch.assert_called_once()
        gst.playbin.get_bus.return_value.connect.assert_called_once_with(
            'message', gst_device._on_message
        )

    def test_missing_playbin(self, gst, glib):
        from playback.gst_device import GstPlaybackDevice
        gst.ElementFactory.make.side_effect = None
        gst.ElementFactory.make.return_value = None
        with pytest.raises(RuntimeError):
            GstPlaybackDevice()

    def test_load_prerolls(self, gst_device, gst):
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        assert gst_device.track_id == 't1'
        gst.playbin.set_property.assert_any_call('uri', 'https://cdn.example.com/a.mp3')
        assert gst.playbin.set_state.call_args_list[-1][0][0] == gst.State.PAUSED

    def test_load_failure_reported_later(self, gst_device, gst, glib):
        gst.playbin.set_state.return_value = gst.StateChangeReturn.FAILURE
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        gst_device.on_error.assert_not_called()

        assert _run_idle(glib) is False
        gst_device.on_error.assert_called_once_with('t1', 'Cannot open https://cdn.example.com/a.mp3')

    def test_play_rejected_reported_later(self, gst_device, gst, glib):
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        gst.playbin.set_state.return_value = gst.StateChangeReturn.FAILURE
        gst_device.play()
        gst_device.on_play_rejected.assert_not_called()

        _run_idle(glib)
        gst_device.on_play_rejected.assert_called_once_with('t1', 'Output refused to start')

    def test_play_without_track(self, gst_device, gst):
        gst_device.play()
        gst.playbin.set_state.assert_not_called()

    def test_end_of_stream(self, gst_device, gst):
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        gst_device._on_message(None, _message(gst, 'EOS'))
        gst_device.on_ended.assert_called_once_with('t1')

    def test_messages_without_track_ignored(self, gst_device, gst):
        assert gst_device._on_message(None, _message(gst, 'EOS')) is True
        gst_device.on_ended.assert_not_called()

    def test_error_stops_and_reports(self, gst_device, gst):
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        message = _message(gst, 'ERROR')
        message.parse_error.return_value = (Mock(message='Not Found'), 'souphttpsrc: 404')

        gst_device._on_message(None, message)

        gst_device.on_error.assert_called_once_with('t1', 'Not Found')
        assert gst_device.track_id is None
        assert gst.playbin.set_state.call_args_list[-1][0][0] == gst.State.NULL

    def test_started_and_paused(self, gst_device, gst, glib):
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        gst.playbin.query_duration.return_value = (False, 0)

        message = _message(gst, 'STATE_CHANGED', src=gst.playbin)
        message.parse_state_changed.return_value = (gst.State.PAUSED, gst.State.PLAYING, None)
        gst_device._on_message(None, message)

        gst_device.on_started.assert_called_once_with('t1')
        assert gst_device.is_playing is True
        glib.timeout_add.assert_called_once_with(250, gst_device._update_position)

        message.parse_state_changed.return_value = (gst.State.PLAYING, gst.State.PAUSED, None)
        gst_device._on_message(None, message)

        gst_device.on_paused.assert_called_once_with('t1')
        assert gst_device.is_playing is False
        glib.source_remove.assert_called_with(7)

    def test_replay_after_end_of_stream_resumes_position_updates(self, gst_device, gst, glib):
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        gst_device.play()
        gst_device._on_message(None, _message(gst, 'EOS'))
        assert gst_device.is_playing is False
        assert gst_device._position_timeout_id is None

        glib.timeout_add.reset_mock()
        gst_device.seek(0.0)
        gst_device.play()

        assert gst_device.is_playing is True
        glib.timeout_add.assert_called_once_with(250, gst_device._update_position)
        assert gst_device._position_timeout_id == 7

    def test_rejected_play_keeps_position_updates_stopped(self, gst_device, gst, glib):
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        gst.playbin.set_state.return_value = gst.StateChangeReturn.FAILURE
        gst_device.play()
        assert gst_device.is_playing is False
        glib.timeout_add.assert_not_called()

    def test_state_change_of_child_element_ignored(self, gst_device, gst):
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        message = _message(gst, 'STATE_CHANGED', src=MagicMock(name='decoder'))
        message.parse_state_changed.return_value = (gst.State.PAUSED, gst.State.PLAYING, None)
        gst_device._on_message(None, message)
        gst_device.on_started.assert_not_called()

    def test_duration_reported_once(self, gst_device, gst):
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        gst.playbin.query_duration.return_value = (True, 200 * SECOND)

        gst_device._on_message(None, _message(gst, 'DURATION_CHANGED'))
        gst_device._on_message(None, _message(gst, 'ASYNC_DONE'))

        gst_device.on_duration_known.assert_called_once_with('t1', 200.0)
        assert gst_device.duration == 200.0

    def test_position_updates(self, gst_device, gst):
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        gst_device.is_playing = True
        gst.playbin.query_position.return_value = (True, 5 * SECOND)

        assert gst_device._update_position() is True
        gst_device.on_time_update.assert_called_once_with('t1', 5.0)

        gst_device.is_playing = False
        assert gst_device._update_position() is False

    def test_seek(self, gst_device, gst):
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        gst_device.seek(12.5)
        assert gst.playbin.seek_simple.call_args[0][2] == int(12.5 * SECOND)

    def test_volume_range(self, gst_device, gst):
        """Test volume clamping."""
        gst_device.set_volume(2.0)
        assert gst_device.volume == 1.0

        gst_device.set_volume(-1.0)
        assert gst_device.volume == 0.0

        gst_device.set_volume(0.5)
        assert gst_device.volume == 0.5
        gst.playbin.set_property.assert_called_with('volume', 0.5)

    def test_stop_forgets_track(self, gst_device, gst):
        gst_device.load('https://cdn.example.com/a.mp3', 't1')
        gst_device.stop()
        assert gst_device.track_id is None
        assert gst.playbin.set_state.call_args_list[-1][0][0] == gst.State.NULL

    def test_cleanup(self, gst_device, gst):
        playbin = gst.playbin
        gst_device.cleanup()
        playbin.get_bus.return_value.remove_signal_watch.assert_called_once()
        assert gst_device.playbin is None
