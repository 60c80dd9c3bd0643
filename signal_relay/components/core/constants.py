"""
Relay Constants.

Centralized constants with documentation explaining rationale for each value.
Runtime values come from shared.config.settings; these are the defaults and
the protocol-level literals.
"""

from enum import IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "RelayConstants",
    "EnvelopeType",
    "MSG_PONG_JSON",
    "DEFAULT_ALLOWED_ORIGINS",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the relay.

    Standard codes (1000-1999) from RFC 6455.
    """

    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down
    POLICY_VIOLATION = 1008  # Generic policy violation
    MESSAGE_TOO_BIG = 1009  # Message too large to process
    SERVER_ERROR = 1011  # Unexpected server error
    SERVER_OVERLOADED = 1013  # Server at capacity, try again later


class EnvelopeType:
    """Wire values of the envelope `type` field."""

    SUBSCRIBE: Final[str] = "subscribe"
    UNSUBSCRIBE: Final[str] = "unsubscribe"
    PUBLISH: Final[str] = "publish"
    PING: Final[str] = "ping"
    PONG: Final[str] = "pong"


class RelayConstants:
    """
    Relay operational constants.

    These are defaults used when settings are not supplied. At runtime the
    RelayManager and the server read from `shared.config.settings`, which can
    override these values via environment variables.
    """

    # ==========================================================================
    # Heartbeat Constants
    # ==========================================================================

    # HEARTBEAT_INTERVAL: 30 seconds
    # Rationale: A peer that stops answering is reaped after one to two
    # intervals (30-60s): the first cycle marks it suspected-dead, the next
    # terminates it if no pong arrived in between.
    HEARTBEAT_INTERVAL: Final[float] = 30.0

    # PROBE_TIMEOUT: 10 seconds
    # Rationale: Writing a ping frame should be immediate. A probe that cannot
    # be handed to the transport within this time is treated as a failed send.
    PROBE_TIMEOUT: Final[float] = 10.0

    # ==========================================================================
    # Delivery Constants
    # ==========================================================================

    # MAX_BUFFERED_BYTES: 1,000,000 bytes
    # Rationale: A subscriber with more than ~1MB of unsent data is not keeping
    # up. Skipping deliveries to it bounds memory per connection and keeps the
    # publisher from waiting on the slowest reader.
    MAX_BUFFERED_BYTES: Final[int] = 1_000_000

    # ==========================================================================
    # Envelope Constants
    # ==========================================================================

    # MAX_TOPICS_PER_MESSAGE: 64
    # Rationale: Bounds per-message registry work. Entries beyond the first 64
    # of a subscribe/unsubscribe list are ignored.
    MAX_TOPICS_PER_MESSAGE: Final[int] = 64

    # ==========================================================================
    # Shutdown Constants
    # ==========================================================================

    # SHUTDOWN_TIMEOUT: 10 seconds
    # Rationale: Orderly close of every connection runs concurrently; peers that
    # do not complete the closing handshake in time are aborted.
    SHUTDOWN_TIMEOUT: Final[float] = 10.0


# Reply to an application-level ping envelope
MSG_PONG_JSON: Final[str] = '{"type":"pong"}'


# Default development origins, used when ALLOWED_ORIGINS is not configured
DEFAULT_ALLOWED_ORIGINS: Final[tuple[str, ...]] = (
    "http://localhost:3000", "http://localhost:5173", "http://localhost:8080",
    "http://127.0.0.1:3000", "http://127.0.0.1:5173", "http://127.0.0.1:8080",
)
