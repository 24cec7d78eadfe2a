"""Batch coordination module for the webhook relay."""

from .batch_coordinator import BatchCoordinator, CoordinatorConfig, CoordinatorState, FlushReason, create_default_coordinator

__all__ = ["BatchCoordinator", "CoordinatorConfig", "CoordinatorState", "FlushReason", "create_default_coordinator"]
