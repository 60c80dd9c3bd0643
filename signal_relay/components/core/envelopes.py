"""
Relay Envelopes.

Typed representation of the JSON messages exchanged with clients: one model
per known kind plus an unknown fallback. Decoding is tolerant of extra fields
(they are the opaque payload of a publish) and never raises; malformed input
yields None.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from signal_relay.components.core.constants import EnvelopeType, RelayConstants

__all__ = [
    "BaseEnvelope",
    "SubscribeEnvelope",
    "UnsubscribeEnvelope",
    "PublishEnvelope",
    "PingEnvelope",
    "PongEnvelope",
    "UnknownEnvelope",
    "Envelope",
    "parse_envelope",
    "serialize_envelope",
]


class BaseEnvelope(BaseModel):
    """Common base: a `type` tag plus any extra fields, kept verbatim."""

    model_config = ConfigDict(extra="allow")

    type: str

    _raw: dict[str, Any] = PrivateAttr(default_factory=dict)

    @property
    def raw(self) -> dict[str, Any]:
        """The decoded JSON object exactly as received."""
        return self._raw


class _TopicListEnvelope(BaseEnvelope):
    topics: list[Any] | None = None

    def topic_names(self, limit: int = RelayConstants.MAX_TOPICS_PER_MESSAGE) -> list[str]:
        """
        Topic names to act on.

        Only the first `limit` entries are considered; entries that are not
        non-empty strings are skipped. Duplicates are kept in order, the
        registry treats them idempotently.
        """
        if not self.topics:
            return []
        return [name for name in self.topics[:limit] if isinstance(name, str) and name]


class SubscribeEnvelope(_TopicListEnvelope):
    type: Literal["subscribe"] = EnvelopeType.SUBSCRIBE


class UnsubscribeEnvelope(_TopicListEnvelope):
    type: Literal["unsubscribe"] = EnvelopeType.UNSUBSCRIBE


class PublishEnvelope(BaseEnvelope):
    type: Literal["publish"] = EnvelopeType.PUBLISH
    topic: Any = None

    @property
    def target_topic(self) -> str | None:
        """The topic to publish to, or None when missing or not a non-empty string."""
        if isinstance(self.topic, str) and self.topic:
            return self.topic
        return None


class PingEnvelope(BaseEnvelope):
    type: Literal["ping"] = EnvelopeType.PING


class PongEnvelope(BaseEnvelope):
    type: Literal["pong"] = EnvelopeType.PONG


class UnknownEnvelope(BaseEnvelope):
    """Any object whose `type` is not one of the known kinds."""

    type: Any = Field(default=None)


Envelope = Union[
    SubscribeEnvelope,
    UnsubscribeEnvelope,
    PublishEnvelope,
    PingEnvelope,
    PongEnvelope,
    UnknownEnvelope,
]

_ENVELOPE_MODELS: dict[str, type[BaseEnvelope]] = {
    EnvelopeType.SUBSCRIBE: SubscribeEnvelope,
    EnvelopeType.UNSUBSCRIBE: UnsubscribeEnvelope,
    EnvelopeType.PUBLISH: PublishEnvelope,
    EnvelopeType.PING: PingEnvelope,
    EnvelopeType.PONG: PongEnvelope,
}


def parse_envelope(data: str | bytes) -> Envelope | None:
    """
    Decode one inbound frame.

    Args:
        data: Text frame, or binary frame holding UTF-8 JSON.

    Returns:
        The typed envelope, or None when the frame is not a JSON object with a
        `type` field, or when a known kind has fields of the wrong type.
    """
    try:
        if isinstance(data, (bytes, bytearray, memoryview)):
            data = bytes(data).decode("utf-8")
        payload = json.loads(data)
    except (UnicodeDecodeError, ValueError, RecursionError):
        return None

    if not isinstance(payload, dict) or payload.get("type") is None:
        return None

    kind = payload["type"]
    model = _ENVELOPE_MODELS.get(kind) if isinstance(kind, str) else None
    try:
        envelope = (model or UnknownEnvelope).model_validate(payload)
    except ValidationError:
        return None

    envelope._raw = payload
    return envelope  # type: ignore[return-value]


def serialize_envelope(payload: dict[str, Any] | BaseEnvelope) -> str:
    """
    Encode an envelope (or its raw object) as compact JSON text.

    Output is ASCII-only: non-ASCII characters and lone surrogates are
    written as \\u escapes, so any decoded payload re-encodes to valid UTF-8.
    """
    if isinstance(payload, BaseEnvelope):
        payload = payload.raw or payload.model_dump()
    return json.dumps(payload, separators=(",", ":"))
