"""Validation of audio sources handed to the playback device."""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
# None

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from playback.logging import get_logger

logger = get_logger(__name__)


class SecurityValidator:
    """Security validation utilities."""

    # Schemes the playback device is allowed to open
    ALLOWED_SCHEMES = {"http", "https", "file"}

    # Allowed file extensions for local audio
    ALLOWED_EXTENSIONS = {
        ".mp3",
        ".m4a",
        ".aac",
        ".ogg",
        ".opus",
        ".flac",
        ".wav",
        ".aiff",
        ".wma",
    }

    @staticmethod
    def validate_audio_url(url: Optional[str]) -> Optional[str]:
        """
        Validate a playable media URL.

        Args:
            url: URL to validate

        Returns:
            The stripped URL if valid, None otherwise
        """
        if not url or not isinstance(url, str):
            return None

        url = url.strip()
        if "\x00" in url:
            logger.warning("Security: Null byte in audio URL")
            return None

        try:
            parsed = urlparse(url)
        except ValueError as e:
            logger.warning("Security: Unparseable audio URL %r (%s)", url, e)
            return None

        scheme = parsed.scheme.lower()
        if scheme not in SecurityValidator.ALLOWED_SCHEMES:
            logger.warning("Security: Disallowed audio URL scheme: %r", scheme)
            return None

        if scheme == "file":
            if not parsed.path:
                return None
        elif not parsed.netloc:
            logger.warning("Security: Audio URL without host: %s", url)
            return None

        return url

    @staticmethod
    def validate_file_extension(file_path: str) -> bool:
        """
        Validate file extension against allowed list.

        Args:
            file_path: Path to validate

        Returns:
            True if extension is allowed, False otherwise
        """
        ext = Path(file_path).suffix.lower()
        return ext in SecurityValidator.ALLOWED_EXTENSIONS
