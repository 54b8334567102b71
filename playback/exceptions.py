"""Custom exception hierarchy for the player.

Device-originated failures (``DeviceLoadError``, ``AutoplayBlocked``) are
never raised out of engine commands; the engine builds them and publishes
them on the event bus. ``MissingAudioSource`` is raised by the normalizer and
caught by whoever assembles a queue.
"""


class MusicPlayerError(Exception):
    """Base exception for all player errors."""

    pass


class PlayerError(MusicPlayerError):
    """Errors related to audio playback."""

    def __init__(self, message: str, track_id=None):
        super().__init__(message)
        self.track_id = track_id


class MissingAudioSource(PlayerError):
    """A track carries no resolvable audio URL and cannot be queued."""

    pass


class DeviceLoadError(PlayerError):
    """The playback device could not load or decode a track."""

    pass


class AutoplayBlocked(PlayerError):
    """The playback device rejected a programmatic play request."""

    pass


class PlaylistError(MusicPlayerError):
    """Errors related to queue operations."""

    pass


class ProviderError(MusicPlayerError):
    """Errors raised by track providers (HTTP API, local library)."""

    pass


class ConfigurationError(MusicPlayerError):
    """Errors related to configuration."""

    pass
