"""Qt bridge that delivers resolved preview images to the GUI thread.

`LinkPreviewState.image_async` calls back on a worker thread. This loader
emits `image_loaded` from that thread instead; Qt's queued connection then
runs connected slots on the receiver's thread.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future

from PySide6.QtCore import QObject, Signal

from .attachments import ThumbnailQuality
from .cache_key import LinkPreviewImageCacheKey
from .logger import get_logger
from .preview_state import LinkPreviewState, PreviewImage

_logger = get_logger("image_loader")


class PreviewImageLoader(QObject):
    """Requests preview images and dedupes identical in-flight requests.

    Requests are keyed by `LinkPreviewImageCacheKey`; a key that is already
    pending is not requested again. Results for ignored keys are dropped.
    """

    image_loaded = Signal(object, object)  # cache_key, QImage | AnimatedImage

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        # key -> in-flight future, or a reservation token until image_async returns
        self._pending: dict[LinkPreviewImageCacheKey, object] = {}
        self._ignored: set[LinkPreviewImageCacheKey] = set()
        self._lock = threading.Lock()

    def request_image(self, state: LinkPreviewState, quality: ThumbnailQuality) -> bool:
        """Start resolving ``state``'s image; returns False when nothing was queued."""
        if not state.has_loaded_image:
            _logger.debug("request_image skip(no image): %r", state)
            return False
        key = state.image_cache_key(quality)
        if key is None:
            _logger.debug("request_image skip(no key): %r", state)
            return False
        with self._lock:
            if key in self._ignored:
                _logger.debug("request_image skip(ignored): %s", key)
                return False
            if key in self._pending:
                _logger.debug("request_image dedupe(pending): %s", key)
                return False
            token = object()
            self._pending[key] = token
            pending_count = len(self._pending)
        _logger.debug("request_image queued: %s pending=%s", key, pending_count)

        def _on_image(image: PreviewImage) -> None:
            with self._lock:
                if key in self._ignored:
                    _logger.debug("image_loaded ignored: %s", key)
                    return
            self.image_loaded.emit(key, image)

        future = state.image_async(quality, _on_image)
        with self._lock:
            if self._pending.get(key) is token:
                self._pending[key] = future
        future.add_done_callback(lambda f: self._on_finished(key, f))
        return True

    def _on_finished(self, key: LinkPreviewImageCacheKey, future: Future) -> None:
        with self._lock:
            # A newer request may own this key after ignore/unignore or clear.
            if self._pending.get(key) is future:
                del self._pending[key]
        if not future.cancelled() and future.result() is None:
            _logger.debug("image request failed: %s", key)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def ignore_key(self, key: LinkPreviewImageCacheKey) -> None:
        with self._lock:
            self._ignored.add(key)
            self._pending.pop(key, None)

    def unignore_key(self, key: LinkPreviewImageCacheKey) -> None:
        with self._lock:
            self._ignored.discard(key)

    def clear_pending(self) -> None:
        """Forget pending and ignored requests; late results are still emitted."""
        with self._lock:
            self._pending.clear()
            self._ignored.clear()
