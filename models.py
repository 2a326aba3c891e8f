"""
Data models for the playlist download service.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import AUDIO_QUALITY_MAP, DEFAULT_AUDIO_QUALITY_INDEX, DEFAULT_VIDEO_HEIGHT_CAP


class ItemStatus(Enum):
    """Lifecycle states for one item during an orchestration run, in order."""

    PENDING = "pending"
    PREPARING = "preparing"
    DOWNLOADING = "downloading"
    CONVERTING = "converting"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER: List[ItemStatus] = list(ItemStatus)


class TargetKind(Enum):
    """Supported output modes."""

    VIDEO = "video"
    AUDIO = "audio"


class TaskAttempt(Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


class AudioQuality(Enum):
    LOW = "64k"
    MEDIUM = "128k"
    HIGH = "192k"
    ULTRA = "320k"


class VideoQuality(Enum):
    P360 = "360p"
    P480 = "480p"
    P720 = "720p"
    P1080 = "1080p"
    P1440 = "1440p"
    P2160 = "2160p"


class ConcurrencyProfile(Enum):
    """Named (taskParallelism, perTaskFragmentParallelism) pairs."""

    NORMAL = "NORMAL"
    FAST = "FAST"
    TURBO = "TURBO"

    @property
    def task_parallelism(self) -> int:
        return _PROFILE_TABLE[self][0]

    @property
    def fragment_parallelism(self) -> int:
        return _PROFILE_TABLE[self][1]


_PROFILE_TABLE: Dict[ConcurrencyProfile, tuple[int, int]] = {
    ConcurrencyProfile.NORMAL: (1, 2),
    ConcurrencyProfile.FAST: (2, 4),
    ConcurrencyProfile.TURBO: (4, 8),
}


@dataclass(frozen=True)
class Variant:
    """One concrete encoding option for an item."""

    id: str
    container: str = ""
    height: Optional[int] = None
    fps: Optional[float] = None
    bitrate: Optional[float] = None
    size_bytes: Optional[int] = None
    has_video: bool = False
    has_audio: bool = False
    note: str = ""

    def to_dict(self, is_default: bool = False) -> Dict[str, Any]:
        return {
            "id": self.id,
            "isDefault": is_default,
            "container": self.container,
            "height": self.height,
            "fps": self.fps,
            "bitrate": self.bitrate,
            "sizeBytes": self.size_bytes,
            "hasVideo": self.has_video,
            "hasAudio": self.has_audio,
            "note": self.note,
        }


@dataclass
class Item:
    """A media entry of a collection and its progress in the current run."""

    id: str
    title: str = ""
    thumbnail: str = ""
    duration: str = "00:00"
    status: ItemStatus = ItemStatus.PENDING
    progress: float = 0.0
    speed: str = ""
    eta: str = ""
    variants: List[Variant] = field(default_factory=list)
    chosen_variant: Optional[Variant] = None
    error_message: Optional[str] = None

    def advance(self, status: ItemStatus) -> bool:
        """Move to ``status`` if it is later in the lifecycle; never go back."""
        if status.rank <= self.status.rank:
            return False
        self.status = status
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "thumbnail": self.thumbnail,
            "duration": self.duration,
            "status": self.status.value,
            "progress": self.progress,
            "speed": self.speed,
            "eta": self.eta,
        }


@dataclass
class Session:
    """Ephemeral per-connection working directory."""

    id: str
    directory: Path
    created_at: float


@dataclass
class DownloadTask:
    """One attempt at downloading an item."""

    item: Item
    flags: List[str]
    attempt: TaskAttempt = TaskAttempt.PRIMARY
    start_ts: Optional[float] = None
    end_ts: Optional[float] = None
    error_message: Optional[str] = None


@dataclass
class StartDownloadCommand:
    """Validated ``start_download`` request from the event channel."""

    items: List[Item]
    target: TargetKind
    quality: str
    profile: ConcurrencyProfile

    # The defaults below only apply to commands built in code; from_payload
    # rejects qualities outside AudioQuality and VideoQuality.
    @property
    def audio_quality_index(self) -> str:
        return AUDIO_QUALITY_MAP.get(self.quality, DEFAULT_AUDIO_QUALITY_INDEX)

    @property
    def height_cap(self) -> int:
        digits = self.quality.lower().rstrip("p")
        if digits.isdigit():
            return int(digits)
        return DEFAULT_VIDEO_HEIGHT_CAP

    @classmethod
    def from_payload(cls, payload: Any) -> "StartDownloadCommand":
        """Parse the wire payload; raise ``ValueError`` on malformed input."""
        if not isinstance(payload, dict):
            raise ValueError("start_download payload must be an object")

        try:
            target = TargetKind(payload.get("targetKind"))
        except ValueError:
            raise ValueError(f"Unknown target kind: {payload.get('targetKind')!r}") from None

        try:
            profile = ConcurrencyProfile(payload.get("concurrencyProfile", "NORMAL"))
        except ValueError:
            raise ValueError(
                f"Unknown concurrency profile: {payload.get('concurrencyProfile')!r}"
            ) from None

        quality = str(payload.get("quality") or "")
        allowed = AudioQuality if target is TargetKind.AUDIO else VideoQuality
        if quality not in {member.value for member in allowed}:
            raise ValueError(f"Unknown {target.value} quality: {quality!r}")

        raw_items = payload.get("items")
        if not isinstance(raw_items, list):
            raise ValueError("items must be a list")

        items = [_item_from_payload(entry) for entry in raw_items]
        return cls(items=items, target=target, quality=quality, profile=profile)


def _item_from_payload(entry: Any) -> Item:
    if not isinstance(entry, dict) or not entry.get("id"):
        raise ValueError("Every item needs an id")

    item = Item(id=str(entry["id"]), title=str(entry.get("title") or ""))
    variant_id = entry.get("variantId")
    if variant_id:
        item.chosen_variant = Variant(
            id=str(variant_id),
            container=str(entry.get("container") or ""),
            has_video=entry.get("hasVideo") is True,
            has_audio=entry.get("hasAudio") is True,
        )
    return item
