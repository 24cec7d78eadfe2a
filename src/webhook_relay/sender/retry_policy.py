"""Bounded retries around a delivery client for a single batch."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from ..core.errors import TransientDeliveryError
from ..core.events import EventBatch
from .http_sender import DeliveryClient, DeliveryReceipt


@dataclass
class RetryConfig:
    """Configuration for delivery retries."""

    max_attempts: int = 3  # Total attempts, including the first
    retry_delay_seconds: float = 2.0  # Fixed delay between attempts


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    FATAL = "fatal"


@dataclass
class DeliveryOutcome:
    """Result of delivering one batch through the retry policy."""

    batch_id: str
    batch_size: int
    status: DeliveryStatus
    attempts: int
    elapsed_seconds: float
    last_error: Optional[str] = None
    receipt: Optional[DeliveryReceipt] = None

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED

    @property
    def fatal(self) -> bool:
        return self.status is DeliveryStatus.FATAL


class RetryPolicy:
    """Calls a delivery client until it succeeds or the attempt budget runs out.

    The batch is owned by the caller and is never put back into the live
    buffer; an exhausted budget yields a ``FATAL`` outcome.
    """

    def __init__(
        self,
        client: DeliveryClient,
        config: RetryConfig = RetryConfig(),
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if config.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.client = client
        self.config = config
        self._sleep = sleep
        self._clock = clock

    def execute(self, batch: EventBatch) -> DeliveryOutcome:
        """Deliver ``batch``, retrying transient failures.

        Args:
            batch: Detached batch to deliver

        Returns:
            ``DELIVERED`` outcome with the attempt count, or ``FATAL`` once every
            attempt has failed
        """
        start = self._clock()
        last_error: Optional[str] = None

        for attempt in range(1, self.config.max_attempts + 1):
            if attempt > 1:
                self._sleep(self.config.retry_delay_seconds)
                logger.bind(batch_id=batch.batch_id, retry_attempt=attempt - 1).info("Retrying batch sending")

            try:
                receipt = self.client.deliver(batch)
            except TransientDeliveryError as e:
                last_error = str(e)
                logger.bind(batch_id=batch.batch_id, attempt=attempt).warning(f"Delivery attempt {attempt}/{self.config.max_attempts} failed: {e}")
                continue

            return DeliveryOutcome(
                batch_id=batch.batch_id,
                batch_size=batch.size(),
                status=DeliveryStatus.DELIVERED,
                attempts=attempt,
                elapsed_seconds=self._clock() - start,
                receipt=receipt,
            )

        return DeliveryOutcome(
            batch_id=batch.batch_id,
            batch_size=batch.size(),
            status=DeliveryStatus.FATAL,
            attempts=self.config.max_attempts,
            elapsed_seconds=self._clock() - start,
            last_error=last_error,
        )
