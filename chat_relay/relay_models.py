"""Wire models for the relay protocol.

Client → server: ``send`` and ``typing`` requests.
Server → client: ``history``, ``message`` and ``presence`` events.

All models serialize with camelCase aliases (``sentAt``, ``isTyping``).
"""
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for everything sent over the socket."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> str:
        """Serialize to the JSON text frame sent to clients."""
        return self.model_dump_json(by_alias=True)


class Message(WireModel):
    """A single chat message as stored in history and sent to clients."""
    id: str
    user: str
    body: str
    sent_at: int = Field(description="Wall-clock milliseconds at receipt by the hub")


# ── Client → server ──────────────────────────────────────────────


class SendRequest(WireModel):
    kind: Literal["send"] = "send"
    user: str = ""
    body: str


class TypingRequest(WireModel):
    kind: Literal["typing"] = "typing"
    user: str = ""
    is_typing: bool


ClientMessage = Annotated[Union[SendRequest, TypingRequest], Field(discriminator="kind")]

_client_message_adapter: TypeAdapter = TypeAdapter(ClientMessage)


def parse_client_message(raw: Union[str, bytes]) -> Union[SendRequest, TypingRequest]:
    """Parse one inbound frame (text or binary).

    :raises pydantic.ValidationError: on malformed JSON, unknown kinds or missing fields
    """
    return _client_message_adapter.validate_json(raw)


# ── Server → client ──────────────────────────────────────────────


class HistoryEvent(WireModel):
    kind: Literal["history"] = "history"
    messages: List[Message] = Field(default_factory=list)


class MessageEvent(WireModel):
    kind: Literal["message"] = "message"
    message: Message


class PresenceEvent(WireModel):
    kind: Literal["presence"] = "presence"
    user: str
    is_typing: bool
