"""Preview states: one read-only interface over three kinds of link preview.

- `LinkPreviewLoading`: metadata is still being fetched; only the link type
  is known.
- `LinkPreviewDraft`: metadata fetched while composing, image as raw bytes.
- `LinkPreviewSent`: preview persisted with a message, image held by an
  attachment that may still be downloading.

Instances are immutable. When the underlying data changes (a draft arrives,
an attachment finishes downloading) the owner builds a new state and swaps
its reference; states never observe their inputs.

Image work never runs on the caller's thread. `image_async` hands decoding
to the shared background executor (coroutine thumbnailers to its event loop
thread) and returns a `Future`; the completion callback runs on one of those
background threads, at most once, and only on success.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import Future
from datetime import datetime
from functools import partial
from typing import Any, Union

from PySide6.QtGui import QImage

from . import background, decoder
from .atomic import AtomicOptional
from .attachments import AttachmentReference, AttachmentStream, ContentTypeKind, ThumbnailQuality
from .cache_key import LinkPreviewImageCacheKey, make_key
from .decoder import AnimatedImage
from .dev_assert import assert_debug, fail_debug
from .logger import get_logger
from .metrics import metrics
from .models import (
    ActivityIndicatorStyle,
    ImageState,
    LinkPreviewDraftRecord,
    LinkPreviewRecord,
    LinkType,
    PixelSize,
    default_activity_indicator_style,
)
from .text_utils import filter_for_display, nil_if_empty

_logger = get_logger("preview_state")

PreviewImage = Union[QImage, AnimatedImage]
ImageCompletion = Callable[[PreviewImage], None]


def _resolved(value: PreviewImage | None = None) -> Future:
    future: Future = Future()
    future.set_result(value)
    return future


class LinkPreviewState(ABC):
    """Uniform view over a link preview for the card renderer."""

    _sealed = False

    def __setattr__(self, name: str, value: Any) -> None:
        if self._sealed:
            raise AttributeError(f"{type(self).__name__} is immutable")
        super().__setattr__(name, value)

    def _seal(self) -> None:
        object.__setattr__(self, "_sealed", True)

    @property
    @abstractmethod
    def is_loaded(self) -> bool: ...

    @property
    @abstractmethod
    def url_string(self) -> str | None: ...

    @property
    @abstractmethod
    def display_domain(self) -> str | None: ...

    @property
    @abstractmethod
    def title(self) -> str | None: ...

    @property
    @abstractmethod
    def image_state(self) -> ImageState: ...

    @abstractmethod
    def image_async(self, thumbnail_quality: ThumbnailQuality, completion: ImageCompletion) -> Future:
        """Resolve the preview image off the caller's thread.

        ``completion`` is called on a background thread with a `QImage` (or an
        `AnimatedImage`) at most once, and only if resolution succeeds. The
        returned future resolves to the same image, or to ``None`` when
        resolution failed. It can stay pending indefinitely if the
        attachment's thumbnailer never finishes, so callers that need an
        answer should wait with a timeout. Cancelling the future before a
        worker starts on it skips the work and the callback.
        """

    @abstractmethod
    def image_cache_key(self, thumbnail_quality: ThumbnailQuality) -> LinkPreviewImageCacheKey | None: ...

    @property
    @abstractmethod
    def image_pixel_size(self) -> PixelSize: ...

    @property
    @abstractmethod
    def preview_description(self) -> str | None: ...

    @property
    @abstractmethod
    def date(self) -> datetime | None: ...

    @property
    @abstractmethod
    def is_group_invite_link(self) -> bool: ...

    @property
    @abstractmethod
    def is_call_link(self) -> bool: ...

    @property
    @abstractmethod
    def activity_indicator_style(self) -> ActivityIndicatorStyle: ...

    @property
    @abstractmethod
    def conversation_style(self) -> Any | None: ...

    @property
    def has_loaded_image(self) -> bool:
        return self.is_loaded and self.image_state is ImageState.LOADED

    def _resolve_in_background(
        self, resolve: Callable[[], PreviewImage | Future | None], completion: ImageCompletion
    ) -> Future:
        future: Future = Future()

        def _deliver(image: PreviewImage | None) -> None:
            if isinstance(image, QImage) and image.isNull():
                image = None
            if image is None:
                metrics.inc("image_async.failed")
                future.set_result(None)
                return
            metrics.inc("image_async.completed")
            try:
                completion(image)
            except Exception:
                _logger.exception("image completion callback failed: %r", self)
            future.set_result(image)

        def _on_thumbnail(pending: Future) -> None:
            image = None
            if pending.cancelled():
                _logger.debug("thumbnail cancelled: %r", self)
            else:
                try:
                    image = pending.result()
                except Exception:
                    _logger.exception("thumbnail failed: %r", self)
            if image is None:
                fail_debug("Could not load thumbnail.")
            _deliver(image)

        def _run() -> None:
            if not future.set_running_or_notify_cancel():
                _logger.debug("image request cancelled before start: %r", self)
                return
            try:
                outcome = resolve()
            except Exception:
                _logger.exception("image resolution failed: %r", self)
                outcome = None
            if isinstance(outcome, Future):
                # Coroutine thumbnailer running on the event loop thread.
                outcome.add_done_callback(_on_thumbnail)
                return
            _deliver(outcome)

        try:
            background.dispatch(_run)
        except RuntimeError as e:
            # Executor shut down between lookup and submit.
            _logger.warning("image request not scheduled: %r (%s)", self, e)
            metrics.inc("image_async.failed")
            future.set_result(None)
        return future


class LinkPreviewLoading(LinkPreviewState):
    def __init__(self, link_type: LinkType) -> None:
        self.link_type = link_type
        self._seal()

    def __repr__(self) -> str:
        return f"LinkPreviewLoading({self.link_type.value})"

    @property
    def is_loaded(self) -> bool:
        return False

    @property
    def url_string(self) -> str | None:
        return None

    @property
    def display_domain(self) -> str | None:
        return None

    @property
    def title(self) -> str | None:
        return None

    @property
    def image_state(self) -> ImageState:
        return ImageState.NONE

    def image_async(self, thumbnail_quality: ThumbnailQuality, completion: ImageCompletion) -> Future:
        fail_debug("Should not be called.")
        return _resolved()

    def image_cache_key(self, thumbnail_quality: ThumbnailQuality) -> LinkPreviewImageCacheKey | None:
        fail_debug("Should not be called.")
        return None

    @property
    def image_pixel_size(self) -> PixelSize:
        return PixelSize.ZERO

    @property
    def preview_description(self) -> str | None:
        return None

    @property
    def date(self) -> datetime | None:
        return None

    @property
    def is_group_invite_link(self) -> bool:
        return self.link_type.is_group_invite_link

    @property
    def is_call_link(self) -> bool:
        return False

    @property
    def activity_indicator_style(self) -> ActivityIndicatorStyle:
        if self.link_type.is_group_invite_link:
            return ActivityIndicatorStyle.MEDIUM
        return default_activity_indicator_style()

    @property
    def conversation_style(self) -> Any | None:
        return None


def _decode_draft_image(image_data: bytes) -> QImage | None:
    image = decoder.decode_image_bytes(image_data)
    if image is None:
        fail_debug("Could not load image: %d bytes", len(image_data))
    return image


class LinkPreviewDraft(LinkPreviewState):
    def __init__(self, link_preview_draft: LinkPreviewDraftRecord) -> None:
        self.link_preview_draft = link_preview_draft
        self._image_pixel_size_cache: AtomicOptional[PixelSize] = AtomicOptional()
        self._seal()

    def __repr__(self) -> str:
        return f"LinkPreviewDraft({self.link_preview_draft.url_string!r})"

    @property
    def is_loaded(self) -> bool:
        return True

    @property
    def url_string(self) -> str | None:
        return self.link_preview_draft.url_string

    @property
    def display_domain(self) -> str | None:
        display_domain = self.link_preview_draft.display_domain
        if display_domain is None:
            fail_debug("Missing display domain")
            return None
        return display_domain

    @property
    def title(self) -> str | None:
        return nil_if_empty(self.link_preview_draft.title)

    @property
    def image_state(self) -> ImageState:
        # Drafts exist only after the fetch finished, so there is no LOADING or INVALID here.
        return ImageState.LOADED if self.link_preview_draft.image_data is not None else ImageState.NONE

    def image_async(self, thumbnail_quality: ThumbnailQuality, completion: ImageCompletion) -> Future:
        assert_debug(self.image_state is ImageState.LOADED, "Image requested without image data.")
        image_data = self.link_preview_draft.image_data
        if image_data is None:
            fail_debug("Missing image data.")
            return _resolved()
        # Draft images are small and local; quality is not applied.
        return self._resolve_in_background(partial(_decode_draft_image, image_data), completion)

    def image_cache_key(self, thumbnail_quality: ThumbnailQuality) -> LinkPreviewImageCacheKey | None:
        url_string = self.url_string
        if not url_string:
            fail_debug("Missing url string.")
            return None
        return make_key(url_string=url_string, thumbnail_quality=thumbnail_quality)

    @property
    def image_pixel_size(self) -> PixelSize:
        cached = self._image_pixel_size_cache.get()
        if cached is not None:
            return cached
        assert_debug(self.image_state is ImageState.LOADED, "Pixel size requested without image data.")
        image_data = self.link_preview_draft.image_data
        if image_data is None:
            fail_debug("Missing image data.")
            return PixelSize.ZERO
        metadata = decoder.read_image_metadata(image_data)
        if not metadata.is_valid:
            fail_debug("Invalid image.")
            return PixelSize.ZERO
        pixel_size = metadata.pixel_size
        if not pixel_size.is_positive:
            fail_debug("Invalid image size: %s", pixel_size)
            return PixelSize.ZERO
        return self._image_pixel_size_cache.set_if_absent(pixel_size)

    @property
    def preview_description(self) -> str | None:
        return self.link_preview_draft.preview_description

    @property
    def date(self) -> datetime | None:
        return self.link_preview_draft.date

    @property
    def is_group_invite_link(self) -> bool:
        return False

    @property
    def is_call_link(self) -> bool:
        return False

    @property
    def activity_indicator_style(self) -> ActivityIndicatorStyle:
        return default_activity_indicator_style()

    @property
    def conversation_style(self) -> Any | None:
        return None


def _resolve_attachment_image(
    stream: AttachmentStream, thumbnail_quality: ThumbnailQuality
) -> PreviewImage | Future | None:
    kind = stream.compute_content_type().kind
    if kind is ContentTypeKind.ANIMATED_IMAGE:
        animated = stream.decode_animated_image()
        if animated is None:
            fail_debug("Could not load image.")
        return animated
    if kind is ContentTypeKind.IMAGE:
        coro = stream.thumbnail_image(thumbnail_quality)
        try:
            return background.run_coroutine(coro)
        except RuntimeError:
            coro.close()
            raise
    fail_debug("Invalid image.")
    return None


class LinkPreviewSent(LinkPreviewState):
    """Preview stored with a message.

    The attachment reference is resolved once, here. A state built while the
    image is downloading keeps reporting ``LOADING``; build a new one after
    the download completes.
    """

    def __init__(
        self,
        link_preview: LinkPreviewRecord,
        image_attachment: AttachmentReference | None,
        conversation_style: Any | None = None,
        is_call_link: bool = False,
    ) -> None:
        self._link_preview = link_preview
        self._image_attachment = image_attachment
        self._attachment_stream: AttachmentStream | None = (
            image_attachment.as_stream() if image_attachment is not None else None
        )
        self._conversation_style = conversation_style
        self._is_call_link = bool(is_call_link)
        self._image_pixel_size_cache: AtomicOptional[PixelSize] = AtomicOptional()
        self._seal()

    def __repr__(self) -> str:
        return f"LinkPreviewSent({self._link_preview.url_string!r}, attachment={self._image_attachment!r})"

    @property
    def is_loaded(self) -> bool:
        return True

    @property
    def url_string(self) -> str | None:
        url_string = self._link_preview.url_string
        if url_string is None:
            fail_debug("Missing url")
            return None
        return url_string

    @property
    def display_domain(self) -> str | None:
        display_domain = self._link_preview.display_domain
        if display_domain is None:
            _logger.error("Missing display domain")
            return None
        return display_domain

    @property
    def title(self) -> str | None:
        return nil_if_empty(filter_for_display(self._link_preview.title))

    @property
    def image_state(self) -> ImageState:
        if self._image_attachment is None:
            return ImageState.NONE
        stream = self._attachment_stream
        if stream is None:
            return ImageState.LOADING
        if not stream.compute_content_type().is_image:
            return ImageState.INVALID
        return ImageState.LOADED

    def image_async(self, thumbnail_quality: ThumbnailQuality, completion: ImageCompletion) -> Future:
        assert_debug(self.image_state is ImageState.LOADED, "Image requested without a loaded attachment.")
        stream = self._attachment_stream
        if stream is None:
            fail_debug("Could not load image.")
            return _resolved()
        return self._resolve_in_background(partial(_resolve_attachment_image, stream, thumbnail_quality), completion)

    def image_cache_key(self, thumbnail_quality: ThumbnailQuality) -> LinkPreviewImageCacheKey | None:
        stream = self._attachment_stream
        if stream is None:
            return None
        return make_key(resource_id=stream.resource_id, thumbnail_quality=thumbnail_quality)

    @property
    def image_pixel_size(self) -> PixelSize:
        cached = self._image_pixel_size_cache.get()
        if cached is not None:
            return cached
        assert_debug(self.image_state is ImageState.LOADED, "Pixel size requested without a loaded attachment.")
        stream = self._attachment_stream
        if stream is None:
            return PixelSize.ZERO
        content_type = stream.compute_content_type()
        pixel_size = PixelSize.from_dimensions(content_type.dimensions) if content_type.is_image else PixelSize.ZERO
        return self._image_pixel_size_cache.set_if_absent(pixel_size)

    @property
    def preview_description(self) -> str | None:
        return self._link_preview.preview_description

    @property
    def date(self) -> datetime | None:
        return self._link_preview.date

    @property
    def is_group_invite_link(self) -> bool:
        return False

    @property
    def is_call_link(self) -> bool:
        return self._is_call_link

    @property
    def activity_indicator_style(self) -> ActivityIndicatorStyle:
        return default_activity_indicator_style()

    @property
    def conversation_style(self) -> Any | None:
        return self._conversation_style


LinkPreviewVariant = Union[LinkPreviewLoading, LinkPreviewDraft, LinkPreviewSent]
