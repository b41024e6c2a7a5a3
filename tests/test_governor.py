import threading
from types import SimpleNamespace

import pytest

from patchbay.clock import ManualClock
from patchbay.governor import RequestGovernor


def test_admits_up_to_limit_then_refuses():
    governor = RequestGovernor(max_requests_per_window=3, window_ms=1000, clock=ManualClock())
    assert [governor.try_admit() for _ in range(3)] == [True, True, True]
    assert governor.try_admit() is False


def test_window_resets_lazily_after_it_lapses():
    clock = ManualClock()
    governor = RequestGovernor(max_requests_per_window=2, window_ms=1000, clock=clock)
    governor.try_admit()
    governor.try_admit()

    clock.advance(0.5)
    assert governor.try_admit() is False

    clock.advance(0.5)
    assert governor.try_admit() is True
    assert governor.stats().contexts["default"] == 1


def test_contexts_have_separate_windows():
    governor = RequestGovernor(max_requests_per_window=1, window_ms=1000, clock=ManualClock())
    assert governor.try_admit("window-a") is True
    assert governor.try_admit("window-b") is True
    assert governor.try_admit("window-a") is False


def test_retry_after():
    clock = ManualClock()
    governor = RequestGovernor(max_requests_per_window=1, window_ms=60_000, clock=clock)
    assert governor.retry_after_ms() == 0

    governor.try_admit()
    clock.advance(15)
    assert governor.retry_after_ms() == 45_000


def test_stats_count_rejections():
    governor = RequestGovernor(max_requests_per_window=1, window_ms=1000, clock=ManualClock())
    governor.try_admit()
    governor.try_admit()
    governor.try_admit()
    stats = governor.stats()
    assert stats.rejected == 2
    assert stats.max_requests_per_window == 1


def test_invalid_settings():
    with pytest.raises(ValueError):
        RequestGovernor(max_requests_per_window=0)
    with pytest.raises(ValueError):
        RequestGovernor(window_ms=0)


def test_concurrent_admissions_never_exceed_limit():
    governor = RequestGovernor(max_requests_per_window=50, window_ms=60_000, clock=ManualClock())
    admitted = []
    lock = threading.Lock()

    def worker():
        for _ in range(10):
            ok = governor.try_admit()
            with lock:
                admitted.append(ok)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert admitted.count(True) == 50
    assert admitted.count(False) == 150


def test_lapsed_contexts_are_dropped():
    clock = ManualClock()
    governor = RequestGovernor(max_requests_per_window=1, window_ms=1000, clock=clock)
    for ctx in ("window-a", "window-b", "window-c"):
        governor.try_admit(ctx)
    assert set(governor.stats().contexts) == {"window-a", "window-b", "window-c"}

    clock.advance(1)
    assert governor.stats().contexts == {}

    governor.try_admit("window-a")
    assert governor.stats().contexts == {"window-a": 1}
    assert len(governor._windows) == 1


def test_wall_clock_jump_does_not_stall_window(monkeypatch):
    # wall clock runs backwards while the monotonic clock moves on
    readings = iter([(100.0, 5000.0), (101.5, 10.0)])

    def tick():
        tick.monotonic, tick.wall = next(readings)

    tick()
    fake_time = SimpleNamespace(monotonic=lambda: tick.monotonic, time=lambda: tick.wall)
    monkeypatch.setattr("patchbay.clock.time", fake_time)

    governor = RequestGovernor(max_requests_per_window=1, window_ms=1000)
    assert governor.try_admit() is True
    tick()
    assert governor.try_admit() is True
