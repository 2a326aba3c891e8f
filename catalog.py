"""
Metadata resolver and format catalog backed by yt-dlp.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from config import DEFAULT_THUMBNAIL_TEMPLATE, ITEM_URL_TEMPLATE, YTDL_INFO_OPTS
from errors import FormatListError, MetadataFetchError
from models import Item, Variant
from utils import build_item_url, cookie_options, format_duration, is_playlist_url

logger = logging.getLogger(__name__)


def _codec_present(codec: Any) -> bool:
    return bool(codec) and codec != "none"


def _thumbnail_for(entry: Dict[str, Any]) -> str:
    thumbnails = entry.get("thumbnails") or []
    if thumbnails and thumbnails[0].get("url"):
        return thumbnails[0]["url"]
    if entry.get("thumbnail"):
        return entry["thumbnail"]
    return DEFAULT_THUMBNAIL_TEMPLATE.format(id=entry.get("id", ""))


def _duration_for(entry: Dict[str, Any]) -> str:
    if entry.get("duration_string"):
        return str(entry["duration_string"])
    if entry.get("duration"):
        return format_duration(float(entry["duration"]))
    return "00:00"


def normalize_entries(info: Optional[Dict[str, Any]]) -> List[Item]:
    """Turn a yt-dlp info dict into an ordered list of items."""
    if not info:
        return []

    raw_entries = [entry for entry in (info.get("entries") or []) if entry]
    if not raw_entries and info.get("id"):
        raw_entries = [info]

    items: List[Item] = []
    for entry in raw_entries:
        if not entry.get("id"):
            continue
        items.append(
            Item(
                id=str(entry["id"]),
                title=str(entry.get("title") or entry["id"]),
                thumbnail=_thumbnail_for(entry),
                duration=_duration_for(entry),
            )
        )
    return items


def normalize_formats(info: Optional[Dict[str, Any]]) -> List[Variant]:
    """Turn the ``formats`` list of a yt-dlp info dict into variants."""
    if not info:
        return []

    variants: List[Variant] = []
    for fmt in info.get("formats") or []:
        if not fmt.get("format_id"):
            continue
        variants.append(
            Variant(
                id=str(fmt["format_id"]),
                container=str(fmt.get("ext") or ""),
                height=fmt.get("height") or None,
                fps=fmt.get("fps") or None,
                bitrate=fmt.get("tbr") or None,
                size_bytes=fmt.get("filesize") or fmt.get("filesize_approx") or None,
                has_video=_codec_present(fmt.get("vcodec")),
                has_audio=_codec_present(fmt.get("acodec")),
                note=str(fmt.get("format_note") or fmt.get("format") or ""),
            )
        )
    return variants


class MediaCatalog:
    """Resolves collection URLs into items and items into variants."""

    def __init__(self, item_url_template: str = ITEM_URL_TEMPLATE):
        self.item_url_template = item_url_template

    async def fetch_items(self, url: str) -> List[Item]:
        options: Dict[str, Any] = {}
        if is_playlist_url(url):
            options["extract_flat"] = "in_playlist"
        else:
            options["noplaylist"] = True

        try:
            info = await self._extract(url, options)
        except Exception as error:
            logger.error("Info error for %s", url, exc_info=True)
            raise MetadataFetchError(str(error)) from error

        if info is None:
            raise MetadataFetchError(f"No metadata returned for {url}")
        return normalize_entries(info)

    async def fetch_variants(self, item_id: str) -> List[Variant]:
        url = build_item_url(item_id, self.item_url_template)
        try:
            info = await self._extract(url, {"noplaylist": True})
        except Exception as error:
            logger.error("Formats error for %s", item_id, exc_info=True)
            raise FormatListError(str(error)) from error

        if info is None:
            raise FormatListError(f"No formats returned for {item_id}")
        return normalize_formats(info)

    async def _extract(self, url: str, extra: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._extract_blocking, url, extra)

    @staticmethod
    def _extract_blocking(url: str, extra: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Blocking yt-dlp call used in thread pool."""
        from yt_dlp import YoutubeDL

        options: Dict[str, Any] = {**YTDL_INFO_OPTS, **cookie_options(), **extra}
        with YoutubeDL(options) as ydl:
            info = ydl.extract_info(url, download=False)
            return ydl.sanitize_info(info) if info else None
