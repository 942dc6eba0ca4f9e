"""Attachment collaborators used by sent previews.

A sent preview refers to its image through an :class:`AttachmentReference`.
The reference resolves to an :class:`AttachmentStream` only once the bytes
are available locally; until then the preview reports ``LOADING``.

`LocalAttachment` is the file-backed implementation: the attachment store
hands it a path once the download has landed on disk.
"""

from __future__ import annotations

import asyncio
from collections.abc import Hashable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

from PySide6.QtGui import QImage

from . import decoder
from .atomic import AtomicOptional
from .decoder import AnimatedImage
from .logger import get_logger
from .settings_manager import get_settings

_logger = get_logger("attachments")


class ThumbnailQuality(Enum):
    SMALL = "small"
    MEDIUM = "medium"
    MEDIUM_LARGE = "medium_large"
    LARGE = "large"

    @property
    def max_pixels(self) -> int:
        return get_settings().thumbnail_max_pixels(self.value)


class ContentTypeKind(Enum):
    IMAGE = "image"
    ANIMATED_IMAGE = "animated_image"
    AUDIO = "audio"
    VIDEO = "video"
    FILE = "file"
    INVALID = "invalid"


@dataclass(frozen=True)
class ContentType:
    kind: ContentTypeKind
    # Stored image dimensions; only present for IMAGE and ANIMATED_IMAGE.
    dimensions: tuple[float, float] | None = None

    @classmethod
    def image(cls, dimensions: tuple[float, float]) -> ContentType:
        return cls(ContentTypeKind.IMAGE, dimensions)

    @classmethod
    def animated_image(cls, dimensions: tuple[float, float]) -> ContentType:
        return cls(ContentTypeKind.ANIMATED_IMAGE, dimensions)

    @property
    def is_image(self) -> bool:
        return self.kind in (ContentTypeKind.IMAGE, ContentTypeKind.ANIMATED_IMAGE)


AUDIO = ContentType(ContentTypeKind.AUDIO)
VIDEO = ContentType(ContentTypeKind.VIDEO)
FILE = ContentType(ContentTypeKind.FILE)
INVALID = ContentType(ContentTypeKind.INVALID)


@runtime_checkable
class AttachmentStream(Protocol):
    """Locally available attachment bytes."""

    @property
    def resource_id(self) -> Hashable: ...

    def compute_content_type(self) -> ContentType: ...

    def decode_animated_image(self) -> AnimatedImage | None: ...

    async def thumbnail_image(self, quality: ThumbnailQuality) -> QImage | None: ...


@runtime_checkable
class AttachmentReference(Protocol):
    """An attachment that may still be downloading."""

    def as_stream(self) -> AttachmentStream | None: ...


class LocalAttachmentStream:
    def __init__(self, resource_id: Hashable, path: Path, mime_type: str | None) -> None:
        self._resource_id = resource_id
        self.path = path
        self.mime_type = (mime_type or "").lower()
        self._content_type: AtomicOptional[ContentType] = AtomicOptional()

    @property
    def resource_id(self) -> Hashable:
        return self._resource_id

    def __repr__(self) -> str:
        return f"LocalAttachmentStream({self._resource_id!r}, {str(self.path)!r}, {self.mime_type!r})"

    def _read_bytes(self) -> bytes | None:
        try:
            return self.path.read_bytes()
        except OSError as e:
            _logger.warning("attachment read failed: %s (%s)", self.path, e)
            return None

    def compute_content_type(self) -> ContentType:
        """Classify the attachment; the image header is read once per stream."""
        cached = self._content_type.get()
        if cached is not None:
            return cached
        return self._content_type.set_if_absent(self._classify())

    def _classify(self) -> ContentType:
        if self.mime_type.startswith("audio/"):
            return AUDIO
        if self.mime_type.startswith("video/"):
            return VIDEO
        if not self.mime_type.startswith("image/"):
            return FILE
        meta = decoder.read_file_metadata(str(self.path))
        if not meta.is_valid:
            _logger.debug("undecodable image attachment: %r", self._resource_id)
            return INVALID
        dimensions = (float(meta.width), float(meta.height))
        if meta.is_animated:
            return ContentType.animated_image(dimensions)
        return ContentType.image(dimensions)

    def decode_animated_image(self) -> AnimatedImage | None:
        return decoder.decode_animated_bytes(self._read_bytes())

    async def thumbnail_image(self, quality: ThumbnailQuality) -> QImage | None:
        return await asyncio.to_thread(decoder.thumbnail_file, str(self.path), quality.max_pixels)


class LocalAttachment:
    """Attachment whose bytes land at ``path`` once downloaded."""

    def __init__(self, resource_id: Hashable, mime_type: str | None, path: str | Path | None = None) -> None:
        self.resource_id = resource_id
        self.mime_type = mime_type
        self.path = Path(path) if path is not None else None

    def __repr__(self) -> str:
        return f"LocalAttachment({self.resource_id!r}, {self.mime_type!r}, {self.path!r})"

    def as_stream(self) -> LocalAttachmentStream | None:
        if self.path is None or not self.path.is_file():
            return None
        return LocalAttachmentStream(self.resource_id, self.path, self.mime_type)
