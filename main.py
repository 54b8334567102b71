#!/usr/bin/env python3
"""Cloud Player - Main entry point."""

import signal
import sys
import gi
gi.require_version('Gst', '1.0')
gi.require_version('GLib', '2.0')
from gi.repository import Gst, GLib

from playback.config import get_config
from playback.engine import PlaybackEngine
from playback.events import EventBus
from playback.exceptions import ConfigurationError, ProviderError
from playback.gst_device import GstPlaybackDevice
from playback.library import LocalTrackProvider
from playback.logging import get_logger
from playback.providers import HttpTrackProvider, TrackFilter, TrackProvider

logger = get_logger(__name__)


def build_provider(config) -> TrackProvider:
    """Track provider selected by ``[playback] source``."""
    if config.track_source == 'local':
        return LocalTrackProvider(config.music_directories)
    return HttpTrackProvider(config.api_base_url, timeout=config.api_timeout)


class QueueFeeder:
    """Appends the provider's next page when the last queued track starts.

    ``track_filter`` names the page already in the queue; later pages are
    counted here since dropped items make the queue length unreliable.
    """

    def __init__(
        self,
        engine: PlaybackEngine,
        provider: TrackProvider,
        track_filter: TrackFilter,
        exhausted: bool = False,
    ):
        self.engine = engine
        self.provider = provider
        self.track_filter = track_filter
        self.page = track_filter.page
        self.exhausted = exhausted
        engine.events.subscribe(EventBus.TRACK_CHANGED, self._on_track_changed)

    def _on_track_changed(self, data):
        if self.exhausted or data['index'] != len(self.engine.queue) - 1:
            return
        try:
            result = self.engine.load_more(
                self.provider, self.track_filter.with_page(self.page + 1)
            )
        except ProviderError as e:
            logger.warning("Could not load more tracks: %s", e)
            return
        self.page += 1
        if not result.items or not result.has_more:
            self.exhausted = True


def _log_playback_error(data):
    error = data['error']
    track = data.get('track')
    logger.warning(
        "%s: %s", type(error).__name__,
        f"{error} ({track.display_name})" if track else error,
    )


def main():
    """Main entry point."""
    # Initialize config (creates directories, loads settings)
    try:
        config = get_config()
        provider = build_provider(config)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 1

    # Initialize GStreamer
    Gst.init(None)

    engine = PlaybackEngine(
        GstPlaybackDevice(),
        EventBus(),
        volume=config.default_volume,
        restart_threshold=config.restart_threshold,
        load_timeout=config.load_timeout,
    )
    engine.events.subscribe(EventBus.PLAYBACK_ERROR, _log_playback_error)

    track_filter = TrackFilter(order=config.api_order, limit=config.page_size)
    try:
        page = provider.list_tracks(track_filter)
    except ProviderError as e:
        logger.error("Could not fetch tracks: %s", e)
        engine.shutdown()
        return 1

    QueueFeeder(engine, provider, track_filter, exhausted=not page.has_more)
    engine.set_queue(page.items, autoplay=config.autoplay)

    loop = GLib.MainLoop()

    mpris = None
    if config.mpris_enabled:
        from playback.mpris2 import MPRIS2Manager
        mpris = MPRIS2Manager(engine)
        mpris.set_quit_callback(loop.quit)

    def _quit():
        loop.quit()
        return GLib.SOURCE_REMOVE

    GLib.unix_signal_add(GLib.PRIORITY_DEFAULT, signal.SIGINT, _quit)
    GLib.unix_signal_add(GLib.PRIORITY_DEFAULT, signal.SIGTERM, _quit)

    logger.info("Cloud Player running with %d queued tracks", len(engine.queue))
    try:
        loop.run()
    finally:
        if mpris:
            mpris.cleanup()
        engine.shutdown()
    return 0


if __name__ == '__main__':
    sys.exit(main())
