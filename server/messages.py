# server/messages.py
# Wire message models for the chat relay.
# Every frame is a JSON object with a string 'type' discriminator. Known types
# map to their own model; anything else parses into UnknownMessage, which the
# router accepts and ignores.

import json
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ValidationError


class MessageParseError(ValueError):
    """Raised when an inbound frame cannot be turned into a message."""


class WelcomeMessage(BaseModel):
    """Server -> one freshly connected client."""

    type: Literal["welcome"] = "welcome"
    message: str


class ChatMessage(BaseModel):
    """Client -> server chat frame. 'device' optionally tags the sender."""

    type: Literal["chat"] = "chat"
    message: str
    device: Optional[str] = None


class ChatBroadcast(BaseModel):
    """Server -> every open client."""

    type: Literal["chat"] = "chat"
    message: str


class UnknownMessage(BaseModel):
    type: Any = None


InboundMessage = Union[ChatMessage, UnknownMessage]


def parse_message(raw) -> InboundMessage:
    """
    Parses one raw frame (str or bytes) into an inbound message model.

    Args:
        raw (str | bytes): The frame as delivered by the transport.

    Returns:
        ChatMessage | UnknownMessage: ChatMessage for type 'chat', UnknownMessage for any other type.

    Raises:
        MessageParseError: If the frame is not JSON, is not a JSON object, or is a 'chat'
            frame whose fields have the wrong shape.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MessageParseError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MessageParseError(f"Expected a JSON object, got {type(data).__name__}")

    if data.get("type") == "chat":
        try:
            return ChatMessage.model_validate(data)
        except ValidationError as e:
            raise MessageParseError(f"Invalid chat message: {e.error_count()} field error(s)") from e

    return UnknownMessage.model_validate(data)


def serialize_message(message: BaseModel) -> str:
    """Compact JSON text for a message model, without unset optional fields."""
    return message.model_dump_json(exclude_none=True)
