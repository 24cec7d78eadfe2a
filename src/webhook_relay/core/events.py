"""Event models for the webhook relay.

This module defines the structures that flow through the relay:
HTTP ingest → EventBuffer → BatchCoordinator → RetryPolicy → Sender → downstream
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Event:
    """A single inbound webhook payload.

    The relay never inspects ``payload``; it is carried to the downstream
    endpoint exactly as it was received.
    """

    payload: Any
    received_at: datetime = field(default_factory=_utcnow)

    def to_batch_item(self) -> Any:
        """Return the value placed into the batch body."""
        return self.payload


@dataclass
class EventBatch:
    """An ordered batch of events handed to delivery as one unit."""

    events: list[Event] = field(default_factory=list)
    batch_id: str = field(default_factory=lambda: f"batch_{uuid.uuid4().hex[:12]}")
    created_at: datetime = field(default_factory=_utcnow)

    def add_event(self, event: Event) -> None:
        """Add an event to this batch."""
        self.events.append(event)

    def size(self) -> int:
        """Return the number of events in this batch."""
        return len(self.events)

    def is_empty(self) -> bool:
        return not self.events

    def to_dict(self) -> Dict[str, Any]:
        """Convert batch to dictionary for the downstream payload."""
        return {
            "batch_id": self.batch_id,
            "created_at": self.created_at.isoformat(),
            "event_count": len(self.events),
            "events": [event.to_batch_item() for event in self.events],
        }
