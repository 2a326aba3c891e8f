"""
Default variant selection when the user does not pick one explicitly.

Pure functions, no I/O. The video pick always prefers the tallest resolution
and does not look at the configured quality cap; only the generic fallback
selector built by the orchestrator honours the cap.
"""

from typing import Dict, Optional, Sequence

from models import TargetKind, Variant


def audio_score(variant: Variant) -> float:
    return (variant.bitrate or 0) + (variant.size_bytes or 0) / 1_000_000


def video_score(variant: Variant) -> float:
    container_bonus = 1000 if variant.container.lower() == "mp4" else 0
    return (
        container_bonus
        + (variant.fps or 0) * 10
        + (variant.bitrate or 0)
        + (variant.size_bytes or 0) / 1_000_000
    )


def pick_audio_variant(variants: Sequence[Variant]) -> Optional[Variant]:
    """Best audio-only variant by bitrate and size; first one wins ties."""
    best: Optional[Variant] = None
    for variant in variants:
        if not variant.has_audio or variant.has_video:
            continue
        if best is None or audio_score(variant) > audio_score(best):
            best = variant
    return best


def pick_video_variant(variants: Sequence[Variant]) -> Optional[Variant]:
    """
    Tallest video variant.

    Within one height the variant with the highest ``video_score`` represents
    it; across heights the tallest wins, with the first seen height winning
    ties.
    """
    best_by_height: Dict[int, Variant] = {}
    for variant in variants:
        if not variant.has_video or variant.height is None:
            continue
        current = best_by_height.get(variant.height)
        if current is None or video_score(variant) > video_score(current):
            best_by_height[variant.height] = variant

    best: Optional[Variant] = None
    for variant in best_by_height.values():
        if best is None or variant.height > best.height:
            best = variant
    return best


def select_default_variant(variants: Sequence[Variant], target: TargetKind) -> Optional[str]:
    """Variant id to use by default for ``target``, or None if nothing fits."""
    if target is TargetKind.AUDIO:
        chosen = pick_audio_variant(variants)
    else:
        chosen = pick_video_variant(variants)
    return chosen.id if chosen else None
