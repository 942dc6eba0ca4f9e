import threading

from link_preview.metrics import metrics


def test_counters_and_timings_snapshot() -> None:
    metrics.inc("a")
    metrics.inc("a", 2)
    with metrics.timed("t"):
        pass
    snap = metrics.snapshot()
    assert snap["counters"]["a"] == 3
    assert len(snap["timings"]["t"]) == 1
    assert metrics.count("missing") == 0

    metrics.reset()
    assert metrics.snapshot() == {"counters": {}, "timings": {}}


def test_concurrent_increments_are_not_lost() -> None:
    threads = [threading.Thread(target=lambda: [metrics.inc("n") for _ in range(500)]) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert metrics.count("n") == 2000
