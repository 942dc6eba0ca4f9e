"""Plain value types shared by the preview states.

Nothing here touches Qt or pyvips; records are immutable snapshots handed in
by the metadata-fetch and persistence layers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar

from .logger import get_logger
from .settings_manager import get_settings

_logger = get_logger("models")


class ImageState(Enum):
    NONE = "none"
    LOADING = "loading"
    LOADED = "loaded"
    INVALID = "invalid"


class LinkType(Enum):
    """Why a preview is being shown."""

    PREVIEW = "preview"
    INCOMING_MESSAGE = "incoming_message"
    OUTGOING_MESSAGE = "outgoing_message"
    INCOMING_MESSAGE_GROUP_INVITE_LINK = "incoming_message_group_invite_link"
    OUTGOING_MESSAGE_GROUP_INVITE_LINK = "outgoing_message_group_invite_link"

    @property
    def is_group_invite_link(self) -> bool:
        return self in (
            LinkType.INCOMING_MESSAGE_GROUP_INVITE_LINK,
            LinkType.OUTGOING_MESSAGE_GROUP_INVITE_LINK,
        )


class ActivityIndicatorStyle(Enum):
    MEDIUM = "medium"
    LARGE = "large"


def default_activity_indicator_style() -> ActivityIndicatorStyle:
    """Indicator style the card view uses when nothing more specific applies."""
    value = get_settings().get("default_activity_indicator_style")
    try:
        return ActivityIndicatorStyle(value)
    except ValueError:
        _logger.warning("unknown default_activity_indicator_style: %r", value)
        return ActivityIndicatorStyle.LARGE


@dataclass(frozen=True)
class PixelSize:
    width: int
    height: int

    ZERO: ClassVar[PixelSize]

    @property
    def is_positive(self) -> bool:
        return self.width > 0 and self.height > 0

    @classmethod
    def from_dimensions(cls, dimensions: tuple[float, float] | None) -> PixelSize:
        """Convert stored (possibly fractional) dimensions to whole pixels."""
        if not dimensions:
            return cls.ZERO
        width, height = dimensions
        return cls(max(0, round(width)), max(0, round(height)))


PixelSize.ZERO = PixelSize(0, 0)


@dataclass(frozen=True)
class LinkPreviewDraftRecord:
    """Result of fetching a URL's metadata while composing."""

    url_string: str
    display_domain: str | None = None
    title: str | None = None
    preview_description: str | None = None
    date: datetime | None = None
    image_data: bytes | None = None
    image_mime_type: str | None = None


@dataclass(frozen=True)
class LinkPreviewRecord:
    """Preview persisted alongside a message."""

    url_string: str | None = None
    display_domain: str | None = None
    title: str | None = None
    preview_description: str | None = None
    date: datetime | None = None
