"""Schemas for Pub/Sub push deliveries and the receiver's responses."""

from __future__ import annotations

import base64
import binascii
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from notifier.models.build import Build


class PubSubMessage(BaseModel):
    """A single Pub/Sub message carrying a base64-encoded build."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    data: str = ""
    attributes: dict[str, str] = Field(default_factory=dict)
    message_id: Optional[str] = None

    def decode_build(self) -> Build:
        try:
            raw = base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"message data is not valid base64: {exc}") from exc
        try:
            return Build.model_validate_json(raw)
        except ValidationError as exc:
            raise ValueError(f"message data is not a build: {exc}") from exc


class PushEnvelope(BaseModel):
    """Body of a Pub/Sub push request."""

    message: PubSubMessage
    subscription: str = ""


class NotificationResponse(BaseModel):
    build_id: str
    status: str = Field(..., description="One of filtered, created or updated.")
    issue_number: Optional[int] = None
    issue_url: Optional[str] = None
