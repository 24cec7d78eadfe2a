"""Shared test doubles for the webhook relay.

Delivery, timers and process exit are replaced with in-memory fakes so the
batching properties can be checked without network access or wall-clock
waits.
"""

from __future__ import annotations

import threading
from typing import Callable, List, Optional

import pytest

from webhook_relay.core import FatalPolicy, ProcessSupervisor, TransientDeliveryError
from webhook_relay.core.events import EventBatch
from webhook_relay.orchestrator import BatchCoordinator, CoordinatorConfig
from webhook_relay.sender import DeliveryReceipt, RetryConfig


class ManualTimer:
    """Timer handle that only fires when a test says so."""

    def __init__(self, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        """Run the callback as if the interval had elapsed."""
        self.fired = True
        self.callback()


class ManualTimerFactory:
    def __init__(self):
        self.timers: List[ManualTimer] = []

    def __call__(self, interval: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[ManualTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]

    def fire_pending(self) -> None:
        for timer in self.pending:
            timer.fire()


class RecordingClient:
    """Delivery client that records payloads and fails on request."""

    def __init__(self, failures: int = 0, always_fail: bool = False, gate: Optional[threading.Event] = None):
        self.failures = failures
        self.always_fail = always_fail
        self.gate = gate
        self.calls = 0
        self.batches: List[list] = []
        self._lock = threading.Lock()

    def deliver(self, batch: EventBatch) -> DeliveryReceipt:
        with self._lock:
            self.calls += 1
            call = self.calls

        if self.gate is not None:
            self.gate.wait(5)

        if self.always_fail or call <= self.failures:
            raise TransientDeliveryError(f"downstream unavailable (call {call})", status_code=503)

        with self._lock:
            self.batches.append([event.payload for event in batch.events])
        return DeliveryReceipt(batch_id=batch.batch_id, event_count=batch.size(), status_code=200, duration_seconds=0.0)

    @property
    def delivered_payloads(self) -> list:
        with self._lock:
            return [payload for batch in self.batches for payload in batch]


@pytest.fixture()
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture()
def exit_codes() -> List[int]:
    return []


@pytest.fixture()
def make_coordinator(timers, exit_codes):
    """Build a started coordinator wired to fakes; stopped after the test."""
    created: List[BatchCoordinator] = []

    def _make(
        client=None,
        batch_size: int = 10,
        interval: float = 60.0,
        max_attempts: int = 3,
        policy: FatalPolicy = FatalPolicy.CONTINUE,
        timer_factory=None,
    ) -> BatchCoordinator:
        config = CoordinatorConfig(
            batch_size=batch_size,
            batch_interval_seconds=interval,
            retry=RetryConfig(max_attempts=max_attempts, retry_delay_seconds=2.0),
            shutdown_timeout_seconds=5.0,
        )
        supervisor = ProcessSupervisor(policy=policy, exit_fn=exit_codes.append)
        coordinator = BatchCoordinator(
            config,
            client or RecordingClient(),
            supervisor=supervisor,
            timer_factory=timer_factory or timers,
            sleep=lambda _seconds: None,
        )
        coordinator.start()
        created.append(coordinator)
        return coordinator

    yield _make

    for coordinator in created:
        coordinator.stop(flush=False, timeout=5.0)
