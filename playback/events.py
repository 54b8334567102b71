"""Centralized event bus for decoupled component communication."""

from typing import Any, Callable, Dict, List
from playback.logging import get_logger

logger = get_logger(__name__)


class EventBus:
    """Publish-subscribe event system. Components publish/subscribe without knowing each other.

    Event Flow Architecture:
    - The PlaybackEngine publishes *_CHANGED events and PLAYBACK_ERROR (notifications)
    - Front ends (MPRIS2, main loop wiring) subscribe and call engine commands directly
    - The engine never calls into a front end, so any number of them can observe it
    """

    # =========================================================================
    # Engine -> observers: State Change Notifications
    # =========================================================================

    # {"state": "idle"|"paused"|"playing", "track": Track?}
    PLAYBACK_STATE_CHANGED = "playback.state_changed"
    # {"position": float, "duration": float}
    PLAYBACK_PROGRESS = "playback.progress"
    # {"enabled": bool}
    SHUFFLE_CHANGED = "playback.shuffle_changed"
    # {"mode": RepeatMode}
    REPEAT_MODE_CHANGED = "playback.repeat_mode_changed"
    # {"volume": float}
    VOLUME_CHANGED = "volume.changed"
    # {"error": PlayerError, "track": Track?}
    PLAYBACK_ERROR = "playback.error"

    # Queue state
    # {"length": int, "index": int}
    QUEUE_CHANGED = "queue.changed"
    # {"track": Track?, "index": int}
    TRACK_CHANGED = "track.changed"

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event not in self._subscribers:
            self._subscribers[event] = []
        self._subscribers[event].append(callback)

    def unsubscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event in self._subscribers:
            try:
                self._subscribers[event].remove(callback)
            except ValueError:
                pass

    def publish(self, event: str, data: Any = None) -> None:
        # Copy so a callback may unsubscribe itself while we iterate
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(data)
            except Exception as e:
                logger.error(
                    "Error in event callback for %s: %s", event, e, exc_info=True
                )
