"""
Unit tests for data models and start_download payload parsing.
"""

import pytest

from models import (
    ConcurrencyProfile,
    Item,
    ItemStatus,
    StartDownloadCommand,
    TargetKind,
    Variant,
)


def test_item_defaults():
    item = Item(id="abc")
    assert item.status == ItemStatus.PENDING
    assert item.progress == 0.0
    assert item.chosen_variant is None
    assert item.error_message is None


def test_item_status_enum_values():
    assert [status.value for status in ItemStatus] == [
        "pending",
        "preparing",
        "downloading",
        "converting",
        "completed",
        "error",
    ]


def test_item_advance_never_goes_back():
    item = Item(id="abc")
    assert item.advance(ItemStatus.DOWNLOADING)
    assert item.advance(ItemStatus.CONVERTING)
    assert not item.advance(ItemStatus.DOWNLOADING)
    assert not item.advance(ItemStatus.PREPARING)
    assert item.status == ItemStatus.CONVERTING


@pytest.mark.parametrize(
    "profile,tasks,fragments",
    [
        (ConcurrencyProfile.NORMAL, 1, 2),
        (ConcurrencyProfile.FAST, 2, 4),
        (ConcurrencyProfile.TURBO, 4, 8),
    ],
)
def test_concurrency_profile_table(profile, tasks, fragments):
    assert profile.task_parallelism == tasks
    assert profile.fragment_parallelism == fragments


def test_variant_to_dict_uses_wire_names():
    variant = Variant(id="137", container="mp4", height=1080, size_bytes=10, has_video=True)
    payload = variant.to_dict()
    assert payload["sizeBytes"] == 10
    assert payload["hasVideo"] is True
    assert payload["hasAudio"] is False
    assert payload["isDefault"] is False
    assert variant.to_dict(is_default=True)["isDefault"] is True


class TestStartDownloadCommand:
    """Parsing of the start_download payload."""

    def test_parses_items_and_variants(self):
        command = StartDownloadCommand.from_payload(
            {
                "items": [
                    {"id": "a", "variantId": "137", "hasVideo": True, "hasAudio": False, "container": "mp4"},
                    {"id": "b", "variantId": None, "hasVideo": None, "hasAudio": None, "container": None},
                ],
                "targetKind": "video",
                "quality": "720p",
                "concurrencyProfile": "FAST",
            }
        )
        assert command.target == TargetKind.VIDEO
        assert command.profile == ConcurrencyProfile.FAST
        assert command.height_cap == 720
        first, second = command.items
        assert first.chosen_variant == Variant(id="137", container="mp4", has_video=True, has_audio=False)
        assert second.chosen_variant is None

    def test_audio_quality_index(self):
        command = StartDownloadCommand.from_payload(
            {"items": [], "targetKind": "audio", "quality": "320k", "concurrencyProfile": "NORMAL"}
        )
        assert command.audio_quality_index == "0"

    def test_profile_defaults_to_normal(self):
        command = StartDownloadCommand.from_payload({"items": [], "targetKind": "audio", "quality": "128k"})
        assert command.profile == ConcurrencyProfile.NORMAL

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            {"items": [], "targetKind": "podcast", "quality": "128k"},
            {"items": [], "targetKind": "audio", "quality": "1080p"},
            {"items": [], "targetKind": "video", "quality": "720p", "concurrencyProfile": "LUDICROUS"},
            {"items": "a,b", "targetKind": "audio", "quality": "128k"},
            {"items": [{"title": "no id"}], "targetKind": "audio", "quality": "128k"},
        ],
    )
    def test_rejects_malformed_payloads(self, payload):
        with pytest.raises(ValueError):
            StartDownloadCommand.from_payload(payload)

    def test_directly_built_commands_fall_back_to_defaults(self):
        command = StartDownloadCommand(
            items=[],
            target=TargetKind.VIDEO,
            quality="best",
            profile=ConcurrencyProfile.NORMAL,
        )
        assert command.height_cap == 1080
        assert command.audio_quality_index == "5"
