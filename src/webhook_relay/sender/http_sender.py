"""HTTP sender for forwarding event batches downstream.

This module provides the delivery capability consumed by ``RetryPolicy``:
a single POST of one batch to ``<endpoint>/batch`` with a bounded timeout.
It never retries on its own.
"""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from http.client import HTTPException
from typing import Any, Dict, Optional, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from loguru import logger

from ..core.errors import TransientDeliveryError
from ..core.events import EventBatch


@dataclass
class DeliveryReceipt:
    """Acknowledgement of a delivered batch."""

    batch_id: str
    event_count: int
    status_code: int
    duration_seconds: float


class DeliveryClient(Protocol):
    """Sends one batch and either returns a receipt or raises ``TransientDeliveryError``."""

    def deliver(self, batch: EventBatch) -> DeliveryReceipt: ...


@dataclass
class SenderConfig:
    """Configuration for the HTTP sender."""

    endpoint: str = "http://requestbin.net"  # Downstream base URL
    batch_path: str = "/batch"
    timeout_seconds: float = 10.0  # Upper bound for one attempt
    user_agent: str = "webhook-relay"

    @property
    def batch_url(self) -> str:
        return self.endpoint.rstrip("/") + "/" + self.batch_path.lstrip("/")


class HTTPSender:
    """HTTP delivery client for event batches."""

    def __init__(self, config: SenderConfig = SenderConfig()):
        """Initialize the HTTP sender.

        Args:
            config: Sender configuration
        """
        self.config = config
        self._lock = threading.Lock()

        # Statistics
        self._total_attempts = 0
        self._total_failures = 0
        self._total_events_sent = 0
        self._total_send_time = 0.0
        self._last_successful_send: Optional[datetime] = None
        self._last_error: Optional[str] = None

    def deliver(self, batch: EventBatch) -> DeliveryReceipt:
        """Send a batch to the downstream endpoint.

        Args:
            batch: Event batch to send

        Returns:
            Receipt for a 2xx response

        Raises:
            TransientDeliveryError: On network errors, timeouts and non-2xx responses
        """
        url = self.config.batch_url
        start_time = time.monotonic()

        logger.bind(batch_id=batch.batch_id, batch_size=batch.size()).info("Sending batch to external endpoint")

        try:
            status_code = self._post(url, batch.to_dict())
        except TransientDeliveryError as e:
            self._record_failure(time.monotonic() - start_time, str(e))
            raise

        duration = time.monotonic() - start_time
        with self._lock:
            self._total_attempts += 1
            self._total_events_sent += batch.size()
            self._total_send_time += duration
            self._last_successful_send = datetime.now()
            self._last_error = None

        logger.bind(batch_id=batch.batch_id, status_code=status_code, duration=f"{duration:.3f}s").info("Batch sent successfully")
        return DeliveryReceipt(batch_id=batch.batch_id, event_count=batch.size(), status_code=status_code, duration_seconds=duration)

    def get_stats(self) -> Dict[str, Any]:
        """Get sender statistics.

        Returns:
            Dictionary with sender statistics
        """
        with self._lock:
            succeeded = self._total_attempts - self._total_failures
            return {
                "endpoint": self.config.batch_url,
                "total_attempts": self._total_attempts,
                "total_failures": self._total_failures,
                "total_events_sent": self._total_events_sent,
                "success_rate": succeeded / max(1, self._total_attempts),
                "average_send_time_seconds": self._total_send_time / max(1, self._total_attempts),
                "last_successful_send": self._last_successful_send.isoformat() if self._last_successful_send else None,
                "last_error": self._last_error,
            }

    def _record_failure(self, duration: float, error_msg: str) -> None:
        with self._lock:
            self._total_attempts += 1
            self._total_failures += 1
            self._total_send_time += duration
            self._last_error = error_msg

    def _post(self, url: str, payload: Dict[str, Any]) -> int:
        """Send a single HTTP request and return its status code.

        Args:
            url: Downstream batch URL
            payload: JSON payload to send
        """
        try:
            req = Request(
                url,
                data=json.dumps(payload, default=str).encode("utf-8"),
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": self.config.user_agent,
                },
                method="POST",
            )

            with urlopen(req, timeout=self.config.timeout_seconds) as response:
                if 200 <= response.status < 300:
                    logger.debug(f"Successful response: {response.status}")
                    return response.status
                raise TransientDeliveryError(f"HTTP {response.status}: {response.reason}", status_code=response.status)

        except HTTPError as e:
            raise TransientDeliveryError(f"HTTP error: {e.code} {e.reason}", status_code=e.code) from e

        except URLError as e:
            raise TransientDeliveryError(f"Network error: {e.reason}") from e

        except TimeoutError as e:
            raise TransientDeliveryError(f"Timed out after {self.config.timeout_seconds}s") from e

        except HTTPException as e:
            raise TransientDeliveryError(f"Invalid response: {e!r}") from e

        except OSError as e:
            raise TransientDeliveryError(f"Request error: {e}") from e


def create_default_sender(endpoint: str, timeout_seconds: float = 10.0) -> HTTPSender:
    """Create an HTTP sender for ``endpoint`` with default settings."""
    return HTTPSender(SenderConfig(endpoint=endpoint, timeout_seconds=timeout_seconds))
