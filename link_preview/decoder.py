"""Image decoding using pyvips.

Everything here is safe to call off the GUI thread: results are `QImage`
objects (never `QPixmap`). Decode failures are logged and reported as
``None``; nothing in this module raises to its callers.
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from PySide6.QtGui import QImage

from .logger import get_logger
from .metrics import metrics
from .models import PixelSize

_logger = get_logger("decoder")

RGB_CHANNELS = 3
RGBA_CHANNELS = 4
DEFAULT_FRAME_MS = 100

# libvips loader nickname prefix -> mime type
_LOADER_MIME_TYPES = {
    "jpegload": "image/jpeg",
    "pngload": "image/png",
    "gifload": "image/gif",
    "webpload": "image/webp",
    "heifload": "image/heif",
    "tiffload": "image/tiff",
    "svgload": "image/svg+xml",
    "jp2kload": "image/jp2",
    "jxlload": "image/jxl",
}
_ANIMATED_MIME_TYPES = ("image/gif", "image/webp")


_pyvips: Any | None = None


def _get_pyvips_module() -> Any:
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        # Decodes are one-shot; keep the operation cache from growing.
        with contextlib.suppress(Exception):
            pyvips.cache_set_max(0)
            pyvips.cache_set_max_mem(0)
            pyvips.cache_set_max_files(0)
        _pyvips = pyvips
    return _pyvips


@dataclass(frozen=True)
class ImageMetadata:
    """Header-level facts about encoded image bytes."""

    is_valid: bool
    width: int = 0
    height: int = 0
    n_pages: int = 1
    mime_type: str | None = None

    @property
    def pixel_size(self) -> PixelSize:
        return PixelSize(self.width, self.height)

    @property
    def is_animated(self) -> bool:
        return self.n_pages > 1 and self.mime_type in _ANIMATED_MIME_TYPES


_INVALID = ImageMetadata(is_valid=False)


@dataclass(frozen=True)
class AnimatedImage:
    """All frames of an animated image, decoded at native resolution."""

    frames: list[QImage]
    durations_ms: list[int] = field(default_factory=list)
    loop: int = 0

    @property
    def first_frame(self) -> QImage:
        return self.frames[0]

    @property
    def size(self) -> PixelSize:
        frame = self.frames[0]
        return PixelSize(frame.width(), frame.height())

    @property
    def frame_count(self) -> int:
        return len(self.frames)


def _get_field(image: Any, name: str, default: Any = None) -> Any:
    try:
        if image.get_typeof(name) == 0:
            return default
        return image.get(name)
    except Exception:
        return default


def _mime_type_for(image: Any) -> str | None:
    loader = str(_get_field(image, "vips-loader", "") or "")
    for prefix, mime in _LOADER_MIME_TYPES.items():
        if loader.startswith(prefix):
            return mime
    return None


def read_image_metadata(data: bytes | None) -> ImageMetadata:
    """Read dimensions and frame count from the header only; pixels are not decoded."""
    metrics.inc("decoder.metadata_reads")
    if not data:
        return _INVALID
    pyvips = _get_pyvips_module()
    try:
        image = pyvips.Image.new_from_buffer(data, "", access="sequential")
    except Exception as e:
        _logger.debug("metadata read failed (%d bytes): %s", len(data), e)
        return _INVALID
    return _metadata_from_image(image)


def read_file_metadata(path: str) -> ImageMetadata:
    """Read dimensions and frame count from a file's header without loading the file."""
    metrics.inc("decoder.metadata_reads")
    pyvips = _get_pyvips_module()
    try:
        image = pyvips.Image.new_from_file(str(path), access="sequential")
    except Exception as e:
        _logger.debug("metadata read failed: %s (%s)", path, e)
        return _INVALID
    return _metadata_from_image(image)


def _metadata_from_image(image: Any) -> ImageMetadata:
    n_pages = int(_get_field(image, "n-pages", 1) or 1)
    page_height = int(_get_field(image, "page-height", image.height) or image.height)
    return ImageMetadata(
        is_valid=True,
        width=int(image.width),
        height=page_height,
        n_pages=max(1, n_pages),
        mime_type=_mime_type_for(image),
    )


def _vips_to_qimage(image: Any) -> QImage:
    """Convert a pyvips image to an RGB888/RGBA8888 QImage that owns its pixels."""
    with contextlib.suppress(Exception):
        image = image.colourspace("srgb")
    if image.format != "uchar":
        image = image.cast("uchar")

    if image.hasalpha():
        if image.bands == 2:
            grey = image.extract_band(0)
            image = grey.bandjoin([grey, grey, image.extract_band(1)])
        elif image.bands > RGBA_CHANNELS:
            image = image.extract_band(0, n=RGBA_CHANNELS)
        channels = RGBA_CHANNELS
        fmt = QImage.Format.Format_RGBA8888
    else:
        if image.bands > RGB_CHANNELS:
            image = image.extract_band(0, n=RGB_CHANNELS)
        elif image.bands < RGB_CHANNELS:
            image = image.bandjoin([image] * (RGB_CHANNELS - 1))
        channels = RGB_CHANNELS
        fmt = QImage.Format.Format_RGB888

    mem = image.write_to_memory()
    arr = np.frombuffer(mem, dtype=np.uint8).reshape(image.height, image.width, channels)
    arr = np.ascontiguousarray(arr)
    height, width = arr.shape[0], arr.shape[1]
    # .copy() detaches the QImage from the numpy buffer's lifetime.
    return QImage(arr.data, width, height, width * channels, fmt).copy()


def decode_image_bytes(data: bytes | None) -> QImage | None:
    """Fully decode encoded bytes (first frame for animated formats)."""
    if not data:
        return None
    pyvips = _get_pyvips_module()
    try:
        with metrics.timed("decoder.decode_duration"):
            image = pyvips.Image.new_from_buffer(data, "", access="sequential")
            return _vips_to_qimage(image)
    except Exception as e:
        metrics.inc("decoder.decode_failures")
        _logger.debug("decode failed (%d bytes): %s", len(data), e)
        return None


def decode_animated_bytes(data: bytes | None) -> AnimatedImage | None:
    """Decode every frame of an animated GIF/WebP."""
    if not data:
        return None
    pyvips = _get_pyvips_module()
    try:
        with metrics.timed("decoder.decode_duration"):
            image = pyvips.Image.new_from_buffer(data, "", n=-1)
            page_height = int(_get_field(image, "page-height", image.height) or image.height)
            page_count = max(1, image.height // page_height)
            delays = list(_get_field(image, "delay", []) or [])
            loop = int(_get_field(image, "loop", 0) or 0)
            image = image.copy_memory()
            frames = [
                _vips_to_qimage(image.crop(0, i * page_height, image.width, page_height)) for i in range(page_count)
            ]
    except Exception as e:
        metrics.inc("decoder.decode_failures")
        _logger.debug("animated decode failed (%d bytes): %s", len(data), e)
        return None
    durations = [int(delays[i]) if i < len(delays) and delays[i] > 0 else DEFAULT_FRAME_MS for i in range(page_count)]
    return AnimatedImage(frames=frames, durations_ms=durations, loop=loop)


def thumbnail_file(path: str, max_pixels: int) -> QImage | None:
    """Decode a file scaled down so its longest edge is at most ``max_pixels``."""
    pyvips = _get_pyvips_module()
    try:
        with metrics.timed("decoder.decode_duration"):
            image = pyvips.Image.thumbnail(path, int(max_pixels), height=int(max_pixels), size="down")
            return _vips_to_qimage(image)
    except Exception as e:
        metrics.inc("decoder.decode_failures")
        _logger.debug("thumbnail failed: %s (%s)", path, e)
        return None
