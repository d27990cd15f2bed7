"""
Relay Payload Models

Pydantic models for the JSON document POSTed to the relay target.
Wire field names are camelCase and must stay stable; automations built
on the relay target depend on them.
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class ContactBlock(_WireModel):
    """Sender contact details."""

    name: str = Field(..., description="Display name, or a sentinel when unknown")
    number: str = Field(..., description="Canonical phone number")
    is_my_contact: bool = Field(False, alias="isMyContact")


class ChatBlock(_WireModel):
    """Chat the message arrived in."""

    name: str = Field(..., description="Chat name, or a sentinel for private chats")
    is_group: bool = Field(False, alias="isGroup")


class QuotedBlock(_WireModel):
    """Summary of the message being replied to."""

    id: str
    body: str = ""


class MetadataBlock(_WireModel):
    """Auxiliary message metadata."""

    has_media: bool = Field(False, alias="hasMedia")
    media_type: str = Field(..., alias="mediaType", description="Mirrors the message type")
    quoted_message: QuotedBlock | None = Field(None, alias="quotedMessage")


class MediaBlock(_WireModel):
    """Media attachment details (present only for media messages)."""

    mimetype: str | None = None
    filename: str | None = None
    size: int | None = None


class RelayPayload(_WireModel):
    """
    Normalized inbound message sent to the relay target.

    Immutable: retries of the same event re-send the same document.
    """

    message_id: str = Field(..., alias="messageId")
    from_: str = Field(..., alias="from", description="Sender network address")
    from_number: str = Field(..., alias="fromNumber", description="Sender canonical number")
    to: str = Field(..., description="Recipient network address")
    body: str = Field("", description="Message text; empty for media-only messages")
    type: str = Field(..., description="Message type (chat, image, ...)")
    timestamp: int = Field(..., description="Epoch milliseconds")
    is_group_msg: bool = Field(False, alias="isGroupMsg")
    contact: ContactBlock
    chat: ChatBlock
    metadata: MetadataBlock
    media: MediaBlock | None = None

    def to_wire(self) -> dict[str, Any]:
        """Wire dict; quotedMessage is always present, media only when attached."""
        data = self.model_dump(by_alias=True)
        if self.media is None:
            data.pop("media", None)
        return data

    def to_json(self) -> bytes:
        """Serialized request body."""
        return json.dumps(self.to_wire(), ensure_ascii=False).encode("utf-8")
