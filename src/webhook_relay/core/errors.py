"""Error taxonomy for the webhook relay.

``ClientError`` stays inside the request handler, ``TransientDeliveryError``
stays inside ``RetryPolicy``, and ``FatalDeliveryError`` is the only error
that leaves the batching core.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..sender.retry_policy import DeliveryOutcome


class RelayError(Exception):
    """Base class for all relay errors."""


class ClientError(RelayError):
    """Inbound payload could not be parsed."""


class DeliveryError(RelayError):
    """A batch could not be delivered downstream."""


class TransientDeliveryError(DeliveryError):
    """A single delivery attempt failed; the attempt may be retried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FatalDeliveryError(DeliveryError):
    """Every delivery attempt for a batch failed."""

    def __init__(self, outcome: DeliveryOutcome):
        super().__init__(f"Batch {outcome.batch_id} ({outcome.batch_size} events) lost after {outcome.attempts} attempts: {outcome.last_error}")
        self.outcome = outcome


class CoordinatorStoppedError(RelayError):
    """The coordinator no longer accepts events."""
