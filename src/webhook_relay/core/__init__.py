"""Core relay types: events, errors and the process supervisor."""

from .errors import ClientError, CoordinatorStoppedError, DeliveryError, FatalDeliveryError, RelayError, TransientDeliveryError
from .events import Event, EventBatch
from .supervisor import FatalPolicy, ProcessSupervisor

__all__ = [
    # Events
    "Event",
    "EventBatch",
    # Errors
    "RelayError",
    "ClientError",
    "DeliveryError",
    "TransientDeliveryError",
    "FatalDeliveryError",
    "CoordinatorStoppedError",
    # Supervision
    "FatalPolicy",
    "ProcessSupervisor",
]
