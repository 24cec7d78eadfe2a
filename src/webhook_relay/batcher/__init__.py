"""Event batching module: the in-progress buffer and its flush triggers."""

from .event_buffer import EventBuffer
from .flush_trigger import FlushTrigger

__all__ = ["EventBuffer", "FlushTrigger"]
