"""
Error types, error formatting and logging utilities.
"""

import logging
from typing import Optional

from config import FORMAT_UNAVAILABLE_MARKERS


def setup_logging(
    level: str = "INFO",
    format_string: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
) -> logging.Logger:
    """Configure root logging once and return module logger."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(numeric_level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(format_string))
    root_logger.addHandler(console_handler)
    return logging.getLogger(__name__)


class DownloaderError(Exception):
    """Base exception for all service errors."""


class MetadataFetchError(DownloaderError):
    """Raised when a collection URL could not be resolved into items."""


class FormatListError(DownloaderError):
    """Raised when the variants of an item could not be listed."""


class FormatUnavailableError(DownloaderError):
    """Raised when the extraction tool rejects the requested format."""


class SpawnError(DownloaderError):
    """Raised when the extraction tool process could not be started."""


class TaskError(DownloaderError):
    """Raised when a task attempt fails for any other reason."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class ArchiveNotFoundError(DownloaderError):
    """Raised when an archive is requested for a missing session."""


def is_format_unavailable(output: str) -> bool:
    """Detect the recoverable "requested format is not available" failure."""
    msg = (output or "").lower()
    return any(marker in msg for marker in FORMAT_UNAVAILABLE_MARKERS)


class ErrorManager:
    """Convert internal exceptions to compact user-facing messages."""

    def to_user_message(self, error: Exception, url: Optional[str] = None) -> str:
        msg = str(error).lower()

        if "drm protected" in msg:
            return "This media is DRM protected and cannot be downloaded."

        if "unsupported url" in msg:
            return "This link is not supported."

        if "private" in msg or "video unavailable" in msg or "not available" in msg:
            return "The media is unavailable. It may be private, removed or region locked."

        if "timeout" in msg or "timed out" in msg:
            return "The source took too long to respond. Try again later."

        if "no space" in msg or "disk" in msg:
            return "Not enough disk space on the server."

        details = str(error).strip()[:350]
        if url:
            return f"{details} ({url})" if details else f"Request failed for {url}"
        return details or error.__class__.__name__


error_manager = ErrorManager()
