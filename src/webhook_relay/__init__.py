"""Webhook Relay - accepts webhook payloads over HTTP and forwards them downstream in batches."""

from .config import get_config_manager
from .orchestrator import BatchCoordinator, create_default_coordinator

__version__ = "0.1.0"

__all__ = ["BatchCoordinator", "create_default_coordinator", "get_config_manager"]
