import threading
from datetime import datetime, timezone

import pytest

pytest.importorskip("PySide6")
pytest.importorskip("pyvips")

from PySide6.QtGui import QImage

from link_preview.attachments import ThumbnailQuality
from link_preview.cache_key import make_key
from link_preview.metrics import metrics
from link_preview.models import ActivityIndicatorStyle, ImageState, LinkPreviewDraftRecord, PixelSize
from link_preview.preview_state import LinkPreviewDraft

WAIT_S = 5


def _draft(**kwargs) -> LinkPreviewDraft:
    fields = {"url_string": "https://signal.org/blog", "display_domain": "signal.org"}
    fields.update(kwargs)
    return LinkPreviewDraft(LinkPreviewDraftRecord(**fields))


def test_draft_fields_pass_through() -> None:
    date = datetime(2024, 5, 1, tzinfo=timezone.utc)
    state = _draft(title="Blog", preview_description="News", date=date)
    assert state.is_loaded
    assert state.url_string == "https://signal.org/blog"
    assert state.display_domain == "signal.org"
    assert state.title == "Blog"
    assert state.preview_description == "News"
    assert state.date == date
    assert not state.is_group_invite_link
    assert not state.is_call_link
    assert state.activity_indicator_style is ActivityIndicatorStyle.LARGE
    assert state.conversation_style is None


def test_empty_title_reads_as_none() -> None:
    assert _draft(title="").title is None


def test_missing_display_domain_is_a_developer_error() -> None:
    state = _draft(display_domain=None)
    assert state.display_domain is None
    assert metrics.count("dev_errors") == 1


def test_image_state_depends_only_on_bytes_presence(make_png) -> None:
    assert _draft().image_state is ImageState.NONE
    assert _draft(image_data=make_png(4, 4)).image_state is ImageState.LOADED
    # Undecodable bytes still read as loaded for drafts.
    assert _draft(image_data=b"garbage").image_state is ImageState.LOADED


def test_pixel_size_is_read_once_and_memoized(make_png) -> None:
    state = _draft(image_data=make_png(100, 50))
    first = state.image_pixel_size
    second = state.image_pixel_size
    assert first == PixelSize(100, 50)
    assert second is first
    assert metrics.count("decoder.metadata_reads") == 1


def test_pixel_size_for_corrupt_bytes_is_zero_and_not_memoized() -> None:
    state = _draft(image_data=b"garbage")
    assert state.image_pixel_size == PixelSize.ZERO
    assert state.image_pixel_size == PixelSize.ZERO
    assert metrics.count("decoder.metadata_reads") == 2
    assert metrics.count("dev_errors") == 2


def test_pixel_size_without_image_is_zero_with_developer_error() -> None:
    state = _draft()
    assert state.image_pixel_size == PixelSize.ZERO
    assert metrics.count("dev_errors") >= 1
    assert metrics.count("decoder.metadata_reads") == 0


def test_concurrent_pixel_size_readers_agree(make_png) -> None:
    state = _draft(image_data=make_png(64, 32))
    readers = 8
    barrier = threading.Barrier(readers)
    results: list[PixelSize] = []
    lock = threading.Lock()

    def _read() -> None:
        barrier.wait()
        size = state.image_pixel_size
        with lock:
            results.append(size)

    threads = [threading.Thread(target=_read) for _ in range(readers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results == [PixelSize(64, 32)] * readers
    assert state.image_pixel_size is state.image_pixel_size


def test_cache_key_uses_url(make_png) -> None:
    state = _draft(image_data=make_png(4, 4))
    assert state.image_cache_key(ThumbnailQuality.LARGE) == make_key(
        url_string="https://signal.org/blog", thumbnail_quality=ThumbnailQuality.LARGE
    )


def test_cache_key_without_url_is_none() -> None:
    state = _draft(url_string="")
    assert state.image_cache_key(ThumbnailQuality.SMALL) is None
    assert metrics.count("dev_errors") == 1


def test_image_async_decodes_on_a_worker_thread(make_png) -> None:
    state = _draft(image_data=make_png(20, 10))
    delivered = threading.Event()
    received: dict[str, object] = {}

    def _on_image(image) -> None:
        received["image"] = image
        received["thread"] = threading.get_ident()
        delivered.set()

    future = state.image_async(ThumbnailQuality.SMALL, _on_image)
    image = future.result(timeout=WAIT_S)

    assert delivered.wait(WAIT_S)
    assert isinstance(image, QImage)
    assert received["image"] is image
    assert received["thread"] != threading.get_ident()
    # Drafts are not thumbnailed.
    assert (image.width(), image.height()) == (20, 10)
    assert metrics.count("image_async.completed") == 1


@pytest.mark.parametrize("data", [b"", b"garbage"])
def test_image_async_with_bad_bytes_never_calls_back(data) -> None:
    state = _draft(image_data=data)
    called = threading.Event()

    future = state.image_async(ThumbnailQuality.SMALL, lambda _image: called.set())

    assert future.result(timeout=WAIT_S) is None
    assert not called.wait(0.2)
    assert metrics.count("image_async.failed") == 1
    assert metrics.count("dev_errors") >= 1


def test_image_async_without_bytes_does_not_dispatch() -> None:
    state = _draft()
    calls = []
    future = state.image_async(ThumbnailQuality.SMALL, calls.append)
    assert future.done()
    assert future.result() is None
    assert calls == []
    assert metrics.count("image_async.failed") == 0


def test_completion_errors_do_not_escape(make_png) -> None:
    state = _draft(image_data=make_png(2, 2))

    def _boom(_image) -> None:
        raise RuntimeError("view went away")

    image = state.image_async(ThumbnailQuality.SMALL, _boom).result(timeout=WAIT_S)
    assert isinstance(image, QImage)


def test_draft_is_immutable(make_png) -> None:
    state = _draft(image_data=make_png(2, 2))
    with pytest.raises(AttributeError):
        state.link_preview_draft = LinkPreviewDraftRecord(url_string="https://other.example")
