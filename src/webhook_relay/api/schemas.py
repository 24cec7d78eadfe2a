"""Pydantic models for the inbound webhook body.

The models only decide whether a body is acceptable. The event that enters
the batch carries the decoded JSON object unchanged.
"""

from __future__ import annotations

import json

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.errors import ClientError
from ..core.events import Event


class Login(BaseModel):
    """A recorded login."""

    model_config = ConfigDict(extra="allow", strict=True)

    time: str = ""
    ip: str = ""


class PhoneNumbers(BaseModel):
    model_config = ConfigDict(extra="allow", strict=True)

    home: str = ""
    mobile: str = ""


class Meta(BaseModel):
    """Nested metadata of a webhook payload."""

    model_config = ConfigDict(extra="allow", strict=True)

    logins: list[Login] = Field(default_factory=list)
    phone_numbers: PhoneNumbers = Field(default_factory=PhoneNumbers)
    completed: bool = False


class WebhookPayload(BaseModel):
    """Body accepted by ``POST /log``.

    Missing fields take zero values and values are not coerced between JSON
    types, so ``"42"`` is not an acceptable ``user_id``.
    """

    model_config = ConfigDict(extra="allow", strict=True)

    user_id: int = 0
    total: float = 0.0
    title: str = ""
    meta: Meta = Field(default_factory=Meta)


def parse_event(body: bytes) -> Event:
    """Decode a request body into an event.

    Raises:
        ClientError: If the body is not JSON or does not fit ``WebhookPayload``
    """
    try:
        raw = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ClientError(f"Invalid JSON: {e}") from e

    if raw is None:
        # A JSON null decodes to a payload with every field at its zero value.
        return Event(payload=WebhookPayload().model_dump())

    try:
        WebhookPayload.model_validate_json(body)
    except ValidationError as e:
        raise ClientError(f"Unexpected payload shape: {e.error_count()} validation error(s)") from e

    return Event(payload=raw)
