"""Relay wire envelopes.

Every frame on /ws is a JSON object tagged by ``type``. Inbound frames are
validated into one of the client -> server models below; outbound frames are
built from the server -> client models and serialized with camelCase keys.

Video identifiers may be integers or strings. Numeric strings are folded into
integers so ``"42"`` and ``42`` address the same room.
"""

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, ValidationError

from vidnote.core import events


class MalformedEnvelopeError(ValueError):
    """Frame is not JSON, not an object, or fails field validation."""


class UnknownEnvelopeError(ValueError):
    """Frame is a JSON object whose ``type`` the relay does not handle."""

    def __init__(self, envelope_type: str) -> None:
        super().__init__(f"unknown envelope type {envelope_type!r}")
        self.envelope_type = envelope_type


def _normalize_video_id(value: Any) -> int | str:
    if isinstance(value, bool):
        raise ValueError("videoId must be an integer or a string")
    if isinstance(value, int):
        if value <= 0:
            raise ValueError("videoId must be positive")
        return value
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError("videoId must not be empty")
        if value.isdigit():
            return _normalize_video_id(int(value))
        return value
    raise ValueError("videoId must be an integer or a string")


VideoId = Annotated[int | str, BeforeValidator(_normalize_video_id)]
UserId = int | str


class _Envelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Client -> server
# ---------------------------------------------------------------------------


class JoinEnvelope(_Envelope):
    type: Literal["join"] = events.JOIN
    video_id: VideoId = Field(alias="videoId")
    user_id: UserId = Field(alias="userId")


class NewCommentEnvelope(_Envelope):
    type: Literal["new_comment"] = events.NEW_COMMENT
    video_id: VideoId = Field(alias="videoId")
    comment: dict[str, Any]


class TypingEnvelope(_Envelope):
    type: Literal["typing"] = events.TYPING
    video_id: VideoId = Field(alias="videoId")
    user_id: UserId = Field(alias="userId")
    is_typing: bool = Field(alias="isTyping")


InboundEnvelope = Annotated[
    Union[JoinEnvelope, NewCommentEnvelope, TypingEnvelope],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundEnvelope] = TypeAdapter(InboundEnvelope)


# ---------------------------------------------------------------------------
# Server -> client
# ---------------------------------------------------------------------------


class JoinedEnvelope(_Envelope):
    type: Literal["joined"] = events.JOINED
    video_id: VideoId = Field(alias="videoId")


class CommentBroadcast(_Envelope):
    type: Literal["new_comment"] = events.NEW_COMMENT
    comment: dict[str, Any]


class TypingBroadcast(_Envelope):
    type: Literal["typing"] = events.TYPING
    user_id: UserId = Field(alias="userId")
    is_typing: bool = Field(alias="isTyping")


def parse_envelope(raw: str | bytes) -> InboundEnvelope:
    """Decode one inbound frame.

    Raises MalformedEnvelopeError for anything that is not a well-formed
    client envelope and UnknownEnvelopeError for a well-formed object with an
    unrecognised ``type``.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedEnvelopeError("payload is not valid JSON") from exc

    if not isinstance(data, dict):
        raise MalformedEnvelopeError("payload must be a JSON object")

    envelope_type = data.get("type")
    if not isinstance(envelope_type, str):
        raise MalformedEnvelopeError("payload has no string 'type' field")
    if envelope_type not in events.CLIENT_EVENTS:
        raise UnknownEnvelopeError(envelope_type)

    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as exc:
        raise MalformedEnvelopeError(f"invalid {envelope_type!r} envelope: {exc.error_count()} error(s)") from exc
