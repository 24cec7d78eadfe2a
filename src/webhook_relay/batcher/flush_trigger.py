"""Flush conditions for the in-progress batch.

Two sources funnel into the same take-and-reset path: the size threshold,
checked synchronously by the caller of ``EventBuffer.add``, and an interval
timer armed when the first event of a batch arrives.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional, Protocol

from loguru import logger


class TimerHandle(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]
IntervalCallback = Callable[[int], None]


def _thread_timer(interval: float, callback: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    timer.name = "flush-timer"
    return timer


class FlushTrigger:
    """Decides when the in-progress batch must be flushed."""

    def __init__(
        self,
        threshold: int,
        interval_seconds: float,
        on_interval_elapsed: IntervalCallback,
        timer_factory: Optional[TimerFactory] = None,
    ):
        """Initialize the trigger.

        Args:
            threshold: Batch size that fires the size trigger
            interval_seconds: Delay between a batch's first event and its time trigger
            on_interval_elapsed: Called from the timer thread with the batch generation
            timer_factory: Builds the timer handle, ``threading.Timer`` by default
        """
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.threshold = threshold
        self.interval_seconds = interval_seconds
        self._on_interval_elapsed = on_interval_elapsed
        self._timer_factory = timer_factory or _thread_timer

        self._lock = threading.Lock()
        self._timer: Optional[TimerHandle] = None
        self._armed_generation: Optional[int] = None
        self._closed = False

    def size_reached(self, size: int) -> bool:
        """Return True for the add that brings the batch to the threshold.

        Later adds to the same batch return False so the batch is flushed once.
        """
        return size == self.threshold

    def arm(self, generation: int) -> None:
        """Start the interval timer for a freshly started batch."""
        with self._lock:
            if self._closed:
                return
            self._cancel_locked()
            timer = self._timer_factory(self.interval_seconds, lambda: self._fire(generation))
            self._timer = timer
            self._armed_generation = generation
            timer.start()

        logger.debug(f"Armed flush timer for batch generation {generation} ({self.interval_seconds}s)")

    def cancel(self) -> None:
        """Invalidate the pending timer, if any."""
        with self._lock:
            self._cancel_locked()

    def shutdown(self) -> None:
        """Cancel the pending timer and refuse to arm new ones."""
        with self._lock:
            self._closed = True
            self._cancel_locked()

    @property
    def armed_generation(self) -> Optional[int]:
        with self._lock:
            return self._armed_generation

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._armed_generation = None

    def _fire(self, generation: int) -> None:
        with self._lock:
            if self._armed_generation == generation:
                self._timer = None
                self._armed_generation = None

        # The buffer decides whether this generation is still in progress.
        self._on_interval_elapsed(generation)
