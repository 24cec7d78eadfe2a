"""HTTP transport module for delivering batches downstream."""

from .http_sender import DeliveryClient, DeliveryReceipt, HTTPSender, SenderConfig, create_default_sender
from .retry_policy import DeliveryOutcome, DeliveryStatus, RetryConfig, RetryPolicy

__all__ = ["DeliveryClient", "DeliveryReceipt", "HTTPSender", "SenderConfig", "create_default_sender", "RetryConfig", "RetryPolicy", "DeliveryOutcome", "DeliveryStatus"]
