"""Batch coordinator for the webhook relay.

This module ties the relay core together:
accept → EventBuffer → FlushTrigger → RetryPolicy → DeliveryClient

A flush detaches the batch in progress under the buffer lock and hands it to
a dedicated delivery thread, so a slow or retrying delivery never blocks
ingestion and several deliveries may be in flight at once. Only a fatal
outcome leaves the core, through the process supervisor.

Delivery is at-least-once within a batch's attempt budget: a batch whose
response is lost after the downstream accepted it is sent again, and a batch
that exhausts its attempts is dropped and never re-queued.
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from loguru import logger

from ..batcher import EventBuffer, FlushTrigger
from ..batcher.flush_trigger import TimerFactory
from ..config.settings import RelayConfig
from ..core.errors import CoordinatorStoppedError, FatalDeliveryError
from ..core.events import Event, EventBatch
from ..core.supervisor import ProcessSupervisor
from ..sender import DeliveryClient, DeliveryOutcome, DeliveryStatus, RetryConfig, RetryPolicy, create_default_sender


class CoordinatorState(str, Enum):
    """Observable state of the coordinator."""

    ACCUMULATING = "accumulating"
    FLUSHING = "flushing"
    FATAL_FAILURE = "fatal_failure"
    STOPPED = "stopped"


class FlushReason(str, Enum):
    SIZE = "size"
    INTERVAL = "interval"
    MANUAL = "manual"
    SHUTDOWN = "shutdown"


@dataclass
class CoordinatorConfig:
    """Configuration for the batch coordinator."""

    batch_size: int = 10  # Size trigger threshold
    batch_interval_seconds: float = 60.0  # Time trigger delay after a batch's first event
    retry: RetryConfig = field(default_factory=RetryConfig)
    shutdown_timeout_seconds: float = 30.0  # How long stop() waits for in-flight deliveries


class BatchCoordinator:
    """Orchestrates buffering, flushing and delivery of event batches."""

    def __init__(
        self,
        config: CoordinatorConfig,
        client: DeliveryClient,
        supervisor: Optional[ProcessSupervisor] = None,
        timer_factory: Optional[TimerFactory] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the coordinator.

        Args:
            config: Coordinator configuration
            client: Delivery capability used for every attempt
            supervisor: Receives fatal delivery failures
            timer_factory: Builds interval timers (tests inject a manual timer)
            sleep: Used between retry attempts
            clock: Monotonic clock for batch age and delivery timing
        """
        self.config = config
        self.client = client
        self.supervisor = supervisor or ProcessSupervisor()

        self.trigger = FlushTrigger(
            threshold=config.batch_size,
            interval_seconds=config.batch_interval_seconds,
            on_interval_elapsed=self._on_interval_elapsed,
            timer_factory=timer_factory,
        )
        self.buffer = EventBuffer(self.trigger, clock=clock)
        self.retry_policy = RetryPolicy(client, config.retry, sleep=sleep, clock=clock)

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._in_flight: Dict[str, threading.Thread] = {}
        self._running = False
        self._stopped = False
        self._flush_on_stop = True
        self._start_time: Optional[datetime] = None

        # Statistics
        self._events_accepted = 0
        self._flushes: Counter[str] = Counter()
        self._batches_delivered = 0
        self._batches_failed = 0
        self._events_delivered = 0
        self._events_lost = 0
        self._last_outcome: Optional[DeliveryOutcome] = None

    def start(self) -> None:
        """Start accepting events."""
        with self._lock:
            if self._running:
                logger.warning("Coordinator is already running")
                return
            if self._stopped:
                raise CoordinatorStoppedError("Coordinator cannot be restarted after stop()")
            self._running = True
            self._start_time = datetime.now()

        logger.info(f"Batch coordinator started - size threshold: {self.config.batch_size}, interval: {self.config.batch_interval_seconds}s, attempts: {self.config.retry.max_attempts}")

    def stop(self, flush: bool = True, timeout: Optional[float] = None) -> bool:
        """Stop accepting events and wind down.

        Args:
            flush: Hand the batch in progress to delivery before stopping
            timeout: Seconds to wait for in-flight deliveries, defaults to the
                configured shutdown timeout

        Returns:
            True if no delivery was still in flight when stop() returned
        """
        with self._lock:
            if not self._running:
                return not self._in_flight
            self._running = False
            self._stopped = True
            self._flush_on_stop = flush

        self.trigger.shutdown()

        if flush:
            self._flush(FlushReason.SHUTDOWN)

        wait_for = self.config.shutdown_timeout_seconds if timeout is None else timeout
        drained = self.wait_idle(wait_for)
        if not drained:
            logger.warning(f"Abandoning {self.in_flight_count} in-flight deliveries at shutdown")

        stats = self.get_stats()
        logger.info(f"Stopped batch coordinator. Stats - Events: {stats['events_accepted']}, Batches flushed: {stats['batches_flushed']}, Delivered: {stats['batches_delivered']}, Failed: {stats['batches_failed']}")
        return drained

    def accept(self, event: Event) -> bool:
        """Add an event to the batch in progress.

        Args:
            event: Inbound event

        Returns:
            True if this event triggered a size flush

        Raises:
            CoordinatorStoppedError: If the coordinator is not accepting events
        """
        if not self.accepting:
            raise CoordinatorStoppedError("Coordinator is not accepting events")

        ready = self.buffer.add(event)

        with self._lock:
            self._events_accepted += 1
            running = self._running
            flush_on_stop = self._flush_on_stop

        if ready:
            # min_size keeps a late caller from flushing a batch the timer already replaced.
            return self._flush(FlushReason.SIZE, min_size=self.trigger.threshold)

        if not running and flush_on_stop:
            # Raced with stop(); its final flush may already have happened.
            self._flush(FlushReason.SHUTDOWN)

        return False

    def force_flush(self) -> bool:
        """Flush the batch in progress regardless of size or age."""
        return self._flush(FlushReason.MANUAL)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no delivery is in flight.

        Returns:
            False if the timeout expired first
        """
        with self._idle:
            return self._idle.wait_for(lambda: not self._in_flight, timeout=timeout)

    @property
    def accepting(self) -> bool:
        with self._lock:
            running = self._running
        return running and not self.supervisor.terminating

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    @property
    def state(self) -> CoordinatorState:
        if self.supervisor.terminating:
            return CoordinatorState.FATAL_FAILURE
        with self._lock:
            if self._stopped and not self._in_flight:
                return CoordinatorState.STOPPED
            if self._in_flight:
                return CoordinatorState.FLUSHING
        return CoordinatorState.ACCUMULATING

    def get_stats(self) -> Dict[str, Any]:
        """Get coordinator statistics."""
        current_batch_size = self.buffer.size()
        current_batch_age = self.buffer.age_seconds()
        state = self.state

        with self._lock:
            return {
                "state": state.value,
                "running": self._running,
                "start_time": self._start_time.isoformat() if self._start_time else None,
                "events_accepted": self._events_accepted,
                "batches_flushed": sum(self._flushes.values()),
                "flushes_by_trigger": dict(self._flushes),
                "batches_delivered": self._batches_delivered,
                "batches_failed": self._batches_failed,
                "events_delivered": self._events_delivered,
                "events_lost": self._events_lost,
                "in_flight": len(self._in_flight),
                "current_batch_size": current_batch_size,
                "current_batch_age_seconds": current_batch_age,
                "fatal_failures": self.supervisor.fatal_count,
                "last_outcome": self._describe(self._last_outcome),
                "config": {
                    "batch_size": self.config.batch_size,
                    "batch_interval_seconds": self.config.batch_interval_seconds,
                    "max_attempts": self.config.retry.max_attempts,
                    "retry_delay_seconds": self.config.retry.retry_delay_seconds,
                    "fatal_policy": self.supervisor.policy.value,
                },
            }

    def _on_interval_elapsed(self, generation: int) -> None:
        self._flush(FlushReason.INTERVAL, generation=generation)

    def _flush(self, reason: FlushReason, generation: Optional[int] = None, min_size: int = 1) -> bool:
        """Detach the batch in progress and start its delivery.

        Returns:
            True if a batch was handed to delivery
        """
        # The take and the in-flight registration are one step, so wait_idle()
        # never sees a detached batch that has no worker yet.
        with self._lock:
            batch = self.buffer.take_and_reset(generation=generation, min_size=min_size)
            if batch is not None:
                worker = threading.Thread(target=self._deliver, args=(batch,), name=f"deliver-{batch.batch_id}", daemon=True)
                self._flushes[reason.value] += 1
                self._in_flight[batch.batch_id] = worker

        if batch is None:
            logger.debug(f"Nothing to flush ({reason.value} trigger)")
            return False

        logger.bind(batch_id=batch.batch_id, batch_size=batch.size(), trigger=reason.value).info("Flushing batch")
        worker.start()
        return True

    def _deliver(self, batch: EventBatch) -> None:
        """Delivery worker: runs the retry policy for one detached batch."""
        try:
            outcome = self.retry_policy.execute(batch)
        except Exception as e:
            logger.exception(f"Unexpected error delivering batch {batch.batch_id}")
            outcome = DeliveryOutcome(
                batch_id=batch.batch_id,
                batch_size=batch.size(),
                status=DeliveryStatus.FATAL,
                attempts=0,
                elapsed_seconds=0.0,
                last_error=f"Unexpected error: {e}",
            )

        with self._idle:
            self._last_outcome = outcome
            if outcome.delivered:
                self._batches_delivered += 1
                self._events_delivered += outcome.batch_size
            else:
                self._batches_failed += 1
                self._events_lost += outcome.batch_size
            self._in_flight.pop(batch.batch_id, None)
            self._idle.notify_all()

        if outcome.delivered:
            logger.bind(batch_id=outcome.batch_id, attempts=outcome.attempts, duration=f"{outcome.elapsed_seconds:.3f}s").debug("Batch delivered")
            return

        self.supervisor.handle_fatal(FatalDeliveryError(outcome))

    @staticmethod
    def _describe(outcome: Optional[DeliveryOutcome]) -> Optional[Dict[str, Any]]:
        if outcome is None:
            return None
        return {
            "batch_id": outcome.batch_id,
            "status": outcome.status.value,
            "attempts": outcome.attempts,
            "elapsed_seconds": round(outcome.elapsed_seconds, 3),
            "last_error": outcome.last_error,
        }


def create_default_coordinator(config: RelayConfig, client: Optional[DeliveryClient] = None) -> BatchCoordinator:
    """Create a coordinator wired to an HTTP sender from relay configuration.

    Args:
        config: Relay configuration
        client: Delivery client override, an ``HTTPSender`` for the configured endpoint by default

    Returns:
        Configured, not yet started, batch coordinator
    """
    coordinator_config = CoordinatorConfig(
        batch_size=config.batching.batch_size,
        batch_interval_seconds=config.batching.batch_interval_seconds,
        retry=RetryConfig(
            max_attempts=config.delivery.max_attempts,
            retry_delay_seconds=config.delivery.retry_delay_seconds,
        ),
        shutdown_timeout_seconds=config.delivery.shutdown_timeout_seconds,
    )

    if client is None:
        client = create_default_sender(config.delivery.endpoint, timeout_seconds=config.delivery.timeout_seconds)

    supervisor = ProcessSupervisor(policy=config.delivery.fatal_policy)
    return BatchCoordinator(coordinator_config, client, supervisor=supervisor)
