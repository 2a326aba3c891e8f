"""
Utilities for URL validation, external tool detection and file operations.
"""

import logging
import os
import re
import shutil
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from config import (
    FFMPEG_BINARY,
    ITEM_URL_TEMPLATE,
    PLAYLIST_URL_RE,
    YTDLP_BINARY,
    YTDLP_COOKIES_FILE,
    YTDLP_COOKIES_FROM_BROWSER,
)

logger = logging.getLogger(__name__)

SESSION_ID_RE: re.Pattern[str] = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def is_playlist_url(url: str) -> bool:
    """Whether URL points at a collection rather than a single item."""
    return bool(url and PLAYLIST_URL_RE.search(url))


def build_item_url(item_id: str, template: str = ITEM_URL_TEMPLATE) -> str:
    """Source URL for an item id."""
    return template.format(id=item_id)


def is_valid_session_id(session_id: str) -> bool:
    """Session ids are plain tokens; anything path-like is rejected."""
    return bool(session_id and SESSION_ID_RE.match(session_id))


def extraction_command() -> List[str]:
    """Command prefix used to start the extraction tool."""
    if YTDLP_BINARY:
        return [YTDLP_BINARY]
    return [sys.executable, "-m", "yt_dlp"]


def has_transcoder(binary: str = FFMPEG_BINARY) -> bool:
    """Whether the transcoding tool is installed."""
    return shutil.which(binary) is not None


def parse_cookies_from_browser(raw_value: str) -> Optional[Tuple[Optional[str], ...]]:
    """
    Parse env string into yt-dlp `cookiesfrombrowser` tuple.

    Accepts the command line syntax BROWSER[+KEYRING][:PROFILE][::CONTAINER]
    and returns (browser, profile, keyring, container), missing slots as None.

    Examples:
    - chrome
    - firefox:default-release
    - firefox::Work (container, no profile)
    """
    if not raw_value:
        return None

    head, _, container = raw_value.strip().partition("::")
    browser_part, _, profile = head.partition(":")
    browser, _, keyring = browser_part.partition("+")
    browser = browser.strip()
    if not browser:
        return None

    return (
        browser.lower(),
        profile.strip() or None,
        keyring.strip().upper() or None,
        container.strip() or None,
    )


def _existing_cookie_file(cookie_file: str) -> Optional[str]:
    cookie_file = (cookie_file or "").strip()
    if not cookie_file:
        return None
    if not os.path.exists(cookie_file):
        logger.warning("YTDLP_COOKIES_FILE is set but file does not exist: %s", cookie_file)
        return None
    return cookie_file


def cookie_options(
    cookie_file: str = YTDLP_COOKIES_FILE,
    from_browser: str = YTDLP_COOKIES_FROM_BROWSER,
) -> Dict[str, Any]:
    """Cookie settings for in-process yt-dlp calls."""
    options: Dict[str, Any] = {}
    existing = _existing_cookie_file(cookie_file)
    if existing:
        options["cookiefile"] = existing

    browser = parse_cookies_from_browser(from_browser)
    if browser:
        options["cookiesfrombrowser"] = browser
    return options


def cookie_flags(
    cookie_file: str = YTDLP_COOKIES_FILE,
    from_browser: str = YTDLP_COOKIES_FROM_BROWSER,
) -> List[str]:
    """Cookie settings for the extraction tool command line."""
    flags: List[str] = []
    existing = _existing_cookie_file(cookie_file)
    if existing:
        flags.extend(["--cookies", existing])

    browser = parse_cookies_from_browser(from_browser)
    if browser:
        name, profile, keyring, container = browser
        browser_arg = name
        if keyring:
            browser_arg += f"+{keyring}"
        if profile:
            browser_arg += f":{profile}"
        if container:
            browser_arg += f"::{container}"
        flags.extend(["--cookies-from-browser", browser_arg])
    return flags


def list_directory_files(directory: Path) -> List[Path]:
    """Immediate regular files of a directory, sorted by name."""
    if not directory.is_dir():
        return []
    return sorted((entry for entry in directory.iterdir() if entry.is_file()), key=lambda p: p.name)


def remove_directory(directory: Path) -> bool:
    """Remove a directory tree. Returns False if nothing was removed."""
    try:
        if directory and directory.is_dir():
            shutil.rmtree(directory)
            return True
    except OSError:
        logger.warning("Failed to remove directory %s", directory, exc_info=True)
    return False


def format_file_size(bytes_size: int) -> str:
    """Human readable file size."""
    if bytes_size is None:
        return "0.0 B"

    size = float(max(bytes_size, 0))
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size < 1024.0 or unit == "TB":
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return "0.0 B"


def format_duration(seconds: float) -> str:
    """Human readable duration."""
    total_seconds = max(0, int(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def validate_url_input(url: str) -> Tuple[bool, str]:
    """Validate URL format and safety."""
    if not url:
        return False, "URL required"
    if len(url) > 2000:
        return False, "URL is too long"

    try:
        parsed = urlparse(url)
        if parsed.scheme.lower() not in {"http", "https"}:
            return False, "Only HTTP/HTTPS URLs are supported"
        if not parsed.netloc:
            return False, "Invalid URL"
    except ValueError:
        return False, "Invalid URL"

    return True, ""


def sanitize_user_input(text: str, max_length: int = 4096) -> str:
    """Remove control chars and trim length."""
    if not text:
        return ""
    sanitized = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", text)
    return sanitized.strip()[:max_length]
