"""
Core relay components: constants, envelopes, log sanitization.
"""

from signal_relay.components.core.constants import (
    DEFAULT_ALLOWED_ORIGINS,
    MSG_PONG_JSON,
    EnvelopeType,
    RelayConstants,
    WSCloseCode,
)
from signal_relay.components.core.context import sanitize_log_data
from signal_relay.components.core.envelopes import (
    Envelope,
    PingEnvelope,
    PongEnvelope,
    PublishEnvelope,
    SubscribeEnvelope,
    UnknownEnvelope,
    UnsubscribeEnvelope,
    parse_envelope,
    serialize_envelope,
)

__all__ = [
    "DEFAULT_ALLOWED_ORIGINS",
    "MSG_PONG_JSON",
    "EnvelopeType",
    "RelayConstants",
    "WSCloseCode",
    "sanitize_log_data",
    "Envelope",
    "PingEnvelope",
    "PongEnvelope",
    "PublishEnvelope",
    "SubscribeEnvelope",
    "UnknownEnvelope",
    "UnsubscribeEnvelope",
    "parse_envelope",
    "serialize_envelope",
]
