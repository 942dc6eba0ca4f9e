from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass

from .attachments import ThumbnailQuality


@dataclass(frozen=True)
class LinkPreviewImageCacheKey:
    """Identity of a decoded preview image for the view layer's bitmap cache.

    Draft previews key on ``url_string``; sent previews key on the attachment's
    ``resource_id``. Equality and hashing cover all three fields.
    """

    resource_id: Hashable | None
    url_string: str | None
    thumbnail_quality: ThumbnailQuality


def make_key(
    resource_id: Hashable | None = None,
    url_string: str | None = None,
    thumbnail_quality: ThumbnailQuality = ThumbnailQuality.MEDIUM,
) -> LinkPreviewImageCacheKey:
    return LinkPreviewImageCacheKey(resource_id, url_string, thumbnail_quality)
