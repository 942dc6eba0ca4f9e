"""Pytest configuration.

Preview states produce `QImage` objects and the loader emits Qt signals, so a
single `QCoreApplication` is created for the whole session and shut down at
the end. Image fixtures are generated with pyvips; modules that need them
skip when pyvips is unavailable.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

_APP: Any | None = None


def pytest_configure(config) -> None:  # noqa: ARG001
    """Ensure a QCoreApplication exists before collecting/running tests."""

    # Import lazily so non-Qt environments can still import this conftest.
    try:
        from PySide6.QtCore import QCoreApplication
    except ImportError:
        return

    global _APP

    app = QCoreApplication.instance()
    if app is None:
        # Keep a strong ref so it isn't GC'd mid-session.
        _APP = QCoreApplication([])
    else:
        _APP = app


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ARG001
    """Stop worker threads and let Qt settle before interpreter exit."""

    try:
        from link_preview import background

        background.shutdown(wait=True)
    except ImportError:
        pass

    try:
        from PySide6.QtCore import QCoreApplication
    except ImportError:
        return

    app = QCoreApplication.instance()
    if app is None:
        return

    app.quit()
    app.processEvents()


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Each test starts from default settings and clean metrics."""
    from link_preview.metrics import metrics
    from link_preview.settings_manager import reset_settings

    monkeypatch.delenv("LINK_PREVIEW_SETTINGS", raising=False)
    reset_settings()
    metrics.reset()
    yield
    reset_settings()


@pytest.fixture
def make_png() -> Callable[[int, int], bytes]:
    pyvips = pytest.importorskip("pyvips")

    def _make(width: int, height: int, bands: int = 3) -> bytes:
        image = (pyvips.Image.black(width, height, bands=bands) + 90).cast("uchar")
        return image.write_to_buffer(".png")

    return _make


@pytest.fixture
def make_gif() -> Callable[[int, int, int], bytes]:
    pyvips = pytest.importorskip("pyvips")

    def _make(width: int, height: int, frames: int = 3) -> bytes:
        pages = [(pyvips.Image.black(width, height, bands=3) + [i * 60, 20, 200]).cast("uchar") for i in range(frames)]
        strip = pyvips.Image.arrayjoin(pages, across=1).copy()
        strip.set_type(pyvips.GValue.gint_type, "page-height", height)
        strip.set_type(pyvips.GValue.array_int_type, "delay", [40] * frames)
        strip.set_type(pyvips.GValue.gint_type, "loop", 0)
        try:
            return strip.write_to_buffer(".gif")
        except pyvips.Error as e:
            pytest.skip(f"libvips built without GIF save support: {e}")

    return _make
