"""
PATCHBAY Request Governor

Sliding-window admission control in front of every outbound completion.
One window per caller context (e.g. one per editor window sharing the
process). Lapsed windows are dropped lazily on the next check, so idle
contexts do not pile up.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from loguru import logger
from pydantic import BaseModel

from patchbay.clock import Clock, system_clock

DEFAULT_CONTEXT = "default"


@dataclass
class RateLimitWindow:
    count: int = 0
    window_start: float = 0.0


class GovernorStats(BaseModel):
    max_requests_per_window: int
    window_ms: int
    contexts: dict[str, int] = {}  # context → admissions in its current window
    rejected: int = 0


class RequestGovernor:
    """Admits at most `max_requests_per_window` requests per `window_ms`."""

    def __init__(
        self,
        max_requests_per_window: int = 20,
        window_ms: int = 60_000,
        clock: Clock = system_clock,
    ):
        if max_requests_per_window < 1:
            raise ValueError("max_requests_per_window must be at least 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")

        self.max_requests_per_window = max_requests_per_window
        self.window_ms = window_ms
        self._clock = clock
        self._windows: dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()
        self._rejected = 0

    def _elapsed_ms(self, window: RateLimitWindow, now: float) -> float:
        return (now - window.window_start) * 1000.0

    def _prune(self, now: float) -> None:
        """Drop windows that have lapsed. Caller holds the lock."""
        lapsed = [
            ctx for ctx, w in self._windows.items()
            if self._elapsed_ms(w, now) >= self.window_ms
        ]
        for ctx in lapsed:
            del self._windows[ctx]

    def try_admit(self, context: str = DEFAULT_CONTEXT) -> bool:
        """Count one request against `context`. False means do not send it."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            window = self._windows.get(context)
            if window is None:
                window = self._windows[context] = RateLimitWindow(count=0, window_start=now)

            if window.count >= self.max_requests_per_window:
                self._rejected += 1
                logger.warning(
                    f"[GOVERNOR] Rate limit hit for '{context}' "
                    f"({window.count}/{self.max_requests_per_window})"
                )
                return False

            window.count += 1
            return True

    def retry_after_ms(self, context: str = DEFAULT_CONTEXT) -> int:
        """Milliseconds until `context` can be admitted again (0 if it can now)."""
        with self._lock:
            window = self._windows.get(context)
            if window is None or window.count < self.max_requests_per_window:
                return 0
            remaining = self.window_ms - self._elapsed_ms(window, self._clock())
            return max(0, int(remaining))

    def stats(self) -> GovernorStats:
        with self._lock:
            self._prune(self._clock())
            return GovernorStats(
                max_requests_per_window=self.max_requests_per_window,
                window_ms=self.window_ms,
                contexts={ctx: w.count for ctx, w in self._windows.items()},
                rejected=self._rejected,
            )
