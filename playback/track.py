"""Canonical track representation consumed by the queue and the engine."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Track:
    """A playable track.

    ``duration_seconds`` comes from the provider and may be 0 until the
    playback device reports the real duration.
    """

    id: str
    title: str
    audio_url: str
    artist_name: str = ""
    album_name: str = ""
    duration_seconds: float = 0.0
    image_url: Optional[str] = None
    genre: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.artist_name:
            return f"{self.artist_name} - {self.title}"
        return self.title
