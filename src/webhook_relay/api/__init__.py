"""HTTP surface of the webhook relay."""

from .app import RequestLoggingMiddleware, create_app
from .schemas import WebhookPayload, parse_event

__all__ = ["create_app", "RequestLoggingMiddleware", "WebhookPayload", "parse_event"]
