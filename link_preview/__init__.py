"""Link preview state for message cards.

This package provides a uniform, read-only view over a link preview:
- Preview states (preview_state): loading, draft and sent variants
- Image decoding (decoder) and attachment access (attachments)
- Cache identity for rendered bitmaps (cache_key)
- GUI-thread delivery of resolved images (image_loader)

Usage:
    from link_preview import LinkPreviewDraft, ThumbnailQuality

    state = LinkPreviewDraft(draft_record)
    if state.has_loaded_image:
        state.image_async(ThumbnailQuality.MEDIUM, on_image)
"""

from .attachments import (
    AttachmentReference,
    AttachmentStream,
    ContentType,
    ContentTypeKind,
    LocalAttachment,
    ThumbnailQuality,
)
from .cache_key import LinkPreviewImageCacheKey, make_key
from .decoder import AnimatedImage
from .models import (
    ActivityIndicatorStyle,
    ImageState,
    LinkPreviewDraftRecord,
    LinkPreviewRecord,
    LinkType,
    PixelSize,
)
from .preview_state import (
    LinkPreviewDraft,
    LinkPreviewLoading,
    LinkPreviewSent,
    LinkPreviewState,
    LinkPreviewVariant,
)

__all__ = [
    "ActivityIndicatorStyle",
    "AnimatedImage",
    "AttachmentReference",
    "AttachmentStream",
    "ContentType",
    "ContentTypeKind",
    "ImageState",
    "LinkPreviewDraft",
    "LinkPreviewDraftRecord",
    "LinkPreviewImageCacheKey",
    "LinkPreviewLoading",
    "LinkPreviewRecord",
    "LinkPreviewSent",
    "LinkPreviewState",
    "LinkPreviewVariant",
    "LinkType",
    "LocalAttachment",
    "PixelSize",
    "ThumbnailQuality",
    "make_key",
]
