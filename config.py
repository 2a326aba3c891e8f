"""
Configuration for the playlist download service.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "3001"))
CORS_ALLOW_ORIGIN: str = os.getenv("CORS_ALLOW_ORIGIN", "*")

DOWNLOADS_DIR: Path = Path(os.getenv("DOWNLOADS_DIR", "downloads")).resolve()
SESSION_TTL_SECONDS: int = int(os.getenv("SESSION_TTL_SECONDS", "3600"))
REAPER_INTERVAL_SECONDS: int = int(os.getenv("REAPER_INTERVAL_SECONDS", "3600"))
CANCEL_ON_DISCONNECT: bool = _env_bool("CANCEL_ON_DISCONNECT")

YTDLP_BINARY: str = os.getenv("YTDLP_BINARY", "").strip()
FFMPEG_BINARY: str = os.getenv("FFMPEG_BINARY", "ffmpeg").strip() or "ffmpeg"
YTDLP_COOKIES_FILE: str = os.getenv("YTDLP_COOKIES_FILE", "").strip()
YTDLP_COOKIES_FROM_BROWSER: str = os.getenv("YTDLP_COOKIES_FROM_BROWSER", "").strip()

ITEM_URL_TEMPLATE: str = os.getenv("ITEM_URL_TEMPLATE", "https://www.youtube.com/watch?v={id}")
DEFAULT_THUMBNAIL_TEMPLATE: str = "https://i.ytimg.com/vi/{id}/mqdefault.jpg"

VIDEO_CONTAINER: str = "mp4"
AUDIO_CONTAINER: str = "mp3"
OUTPUT_TEMPLATE: str = "%(title)s.%(ext)s"
ARCHIVE_FILENAME: str = "playlist.zip"
ARCHIVE_CHUNK_SIZE: int = 256 * 1024

# Tool quality index: 0 is best, 9 is worst.
AUDIO_QUALITY_MAP: Dict[str, str] = {
    "64k": "6",
    "128k": "4",
    "192k": "2",
    "320k": "0",
}
# Used when a command is constructed directly with an unlisted quality.
DEFAULT_AUDIO_QUALITY_INDEX: str = "5"
DEFAULT_VIDEO_HEIGHT_CAP: int = 1080

TASK_RETRIES: int = 10
TASK_FRAGMENT_RETRIES: int = 10
TASK_BUFFER_SIZE: str = "16K"
TASK_HTTP_CHUNK_SIZE: str = "10M"
TASK_OUTPUT_TAIL_LINES: int = 40

# Options for in-process metadata calls (resolver and catalog).
YTDL_INFO_OPTS: Dict[str, Any] = {
    "quiet": True,
    "no_warnings": True,
    "skip_download": True,
    "nocheckcertificate": True,
    "ignoreerrors": True,
}

PLAYLIST_URL_RE: re.Pattern[str] = re.compile(r"[?&]list=")

FORMAT_UNAVAILABLE_MARKERS: tuple[str, ...] = (
    "requested format is not available",
    "requested format not available",
    "format is not available",
)

POSTPROCESSOR_TAGS: List[str] = [
    "ExtractAudio",
    "Merger",
    "VideoConvertor",
    "VideoRemuxer",
    "FixupM3u8",
    "FixupM4a",
    "FixupStretched",
    "FixupDuplicateMoov",
    "FixupTimestamp",
    "FixupDuration",
]
