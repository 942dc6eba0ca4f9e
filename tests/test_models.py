import json
from pathlib import Path

from link_preview.models import (
    ActivityIndicatorStyle,
    LinkType,
    PixelSize,
    default_activity_indicator_style,
)
from link_preview.settings_manager import reset_settings


def test_pixel_size_from_stored_dimensions_rounds_to_pixels() -> None:
    assert PixelSize.from_dimensions((99.6, 50.2)) == PixelSize(100, 50)
    assert PixelSize.from_dimensions(None) is PixelSize.ZERO
    assert PixelSize.from_dimensions((-3.0, 4.0)) == PixelSize(0, 4)


def test_pixel_size_positivity() -> None:
    assert PixelSize(1, 1).is_positive
    assert not PixelSize(0, 10).is_positive
    assert not PixelSize.ZERO.is_positive


def test_only_invite_link_types_are_group_invites() -> None:
    invites = {t for t in LinkType if t.is_group_invite_link}
    assert invites == {
        LinkType.INCOMING_MESSAGE_GROUP_INVITE_LINK,
        LinkType.OUTGOING_MESSAGE_GROUP_INVITE_LINK,
    }


def test_default_activity_indicator_style_follows_settings(tmp_path: Path, monkeypatch) -> None:
    assert default_activity_indicator_style() is ActivityIndicatorStyle.LARGE

    settings_path = tmp_path / "settings.json"
    settings_path.write_text(json.dumps({"default_activity_indicator_style": "medium"}), encoding="utf-8")
    monkeypatch.setenv("LINK_PREVIEW_SETTINGS", str(settings_path))
    reset_settings()
    assert default_activity_indicator_style() is ActivityIndicatorStyle.MEDIUM


def test_unknown_default_style_falls_back_to_large(tmp_path: Path, monkeypatch) -> None:
    settings_path = tmp_path / "settings.json"
    settings_path.write_text(json.dumps({"default_activity_indicator_style": "huge"}), encoding="utf-8")
    monkeypatch.setenv("LINK_PREVIEW_SETTINGS", str(settings_path))
    reset_settings()
    assert default_activity_indicator_style() is ActivityIndicatorStyle.LARGE
