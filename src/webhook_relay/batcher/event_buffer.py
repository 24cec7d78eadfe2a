"""Thread-safe accumulator for the batch in progress."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from loguru import logger

from ..core.events import Event, EventBatch
from .flush_trigger import FlushTrigger


class EventBuffer:
    """Owns the single in-progress batch.

    ``add`` and ``take_and_reset`` share one critical section, so an event is
    either in the batch that was taken or in the fresh batch that replaced it.
    Nothing slow ever runs under the lock.
    """

    def __init__(self, trigger: FlushTrigger, clock: Callable[[], float] = time.monotonic):
        self.trigger = trigger
        self._clock = clock
        self._lock = threading.Lock()
        self._batch = EventBatch()
        self._started_at: Optional[float] = None
        self._generation = 0

    def add(self, event: Event) -> bool:
        """Append an event to the batch in progress.

        Returns:
            True if this add brought the batch to the size threshold; the caller
            is then responsible for flushing.
        """
        with self._lock:
            if self._batch.is_empty():
                self._generation += 1
                self._batch = EventBatch(created_at=event.received_at)
                self._started_at = self._clock()
                self.trigger.arm(self._generation)

            self._batch.add_event(event)
            size = self._batch.size()

        return self.trigger.size_reached(size)

    def take_and_reset(self, generation: Optional[int] = None, min_size: int = 1) -> Optional[EventBatch]:
        """Detach the batch in progress and start a fresh empty one.

        Args:
            generation: Only take the batch if it is still this generation
            min_size: Only take the batch if it holds at least this many events

        Returns:
            The detached batch, or None when there is nothing (matching) to take
        """
        with self._lock:
            if self._batch.is_empty():
                return None
            if generation is not None and generation != self._generation:
                logger.debug(f"Ignoring flush for stale batch generation {generation} (current {self._generation})")
                return None
            if self._batch.size() < min_size:
                return None

            batch = self._batch
            self._batch = EventBatch()
            self._started_at = None
            self.trigger.cancel()

        return batch

    def size(self) -> int:
        with self._lock:
            return self._batch.size()

    def age_seconds(self) -> Optional[float]:
        """Seconds since the first event of the batch in progress, None if empty."""
        with self._lock:
            if self._started_at is None:
                return None
            return self._clock() - self._started_at

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation
