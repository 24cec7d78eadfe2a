"""Process-level disposition of fatal delivery failures."""

from __future__ import annotations

import os
import threading
from enum import Enum
from typing import Callable

from loguru import logger

from .errors import FatalDeliveryError

ExitFn = Callable[[int], None]


class FatalPolicy(str, Enum):
    """What to do when a batch exhausts its delivery attempts."""

    TERMINATE = "terminate"
    CONTINUE = "continue"


class ProcessSupervisor:
    """Receives fatal delivery failures and applies the configured policy.

    ``TERMINATE`` ends the whole process with a non-zero status, which also
    abandons every other in-flight batch. ``CONTINUE`` drops the failed
    batch, logs it and keeps the relay running.
    """

    def __init__(self, policy: FatalPolicy = FatalPolicy.TERMINATE, exit_fn: ExitFn = os._exit, exit_code: int = 1):
        """Initialize the supervisor.

        Args:
            policy: Disposition applied to every fatal failure
            exit_fn: Called with ``exit_code`` to terminate the process. The
                default bypasses interpreter cleanup because failures are
                reported from delivery worker threads.
            exit_code: Process status used on termination
        """
        self.policy = policy
        self.exit_code = exit_code
        self._exit_fn = exit_fn
        self._lock = threading.Lock()
        self._fatal_count = 0
        self._terminating = False

    @property
    def fatal_count(self) -> int:
        with self._lock:
            return self._fatal_count

    @property
    def terminating(self) -> bool:
        with self._lock:
            return self._terminating

    def handle_fatal(self, error: FatalDeliveryError) -> None:
        """Apply the policy to a fatal delivery failure."""
        outcome = error.outcome
        with self._lock:
            self._fatal_count += 1
            terminate = self.policy is FatalPolicy.TERMINATE and not self._terminating
            if terminate:
                self._terminating = True

        log = logger.bind(batch_id=outcome.batch_id, batch_size=outcome.batch_size, attempts=outcome.attempts)

        if self.policy is FatalPolicy.CONTINUE:
            log.error(f"Dropping batch after exhausting delivery attempts: {outcome.last_error}")
            return

        if not terminate:
            # Another worker already started termination.
            return

        log.error(f"Failed to send batch after {outcome.attempts} attempts. Exiting...")
        logger.complete()
        self._exit_fn(self.exit_code)
