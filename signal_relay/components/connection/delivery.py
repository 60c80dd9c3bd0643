"""
Delivery.

Sends one envelope to one connection without ever blocking the relay or
raising on a broken peer.

Policy, in order:
1. Target not open          -> request its close, abandon (cleanup follows
                               from the close).
2. Target over the buffered
   byte threshold           -> skip silently (backpressure; counted, not
                               logged, connection stays open).
3. Serialize                -> a payload that cannot be encoded is dropped;
                               the target stays open.
4. Send                     -> on any failure, request the target's close.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from shared.config.logging import get_logger
from signal_relay.components.core.constants import RelayConstants, WSCloseCode
from signal_relay.components.core.envelopes import BaseEnvelope, serialize_envelope

if TYPE_CHECKING:
    from signal_relay.components.connection.connection import Connection
    from signal_relay.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)


class DeliveryOutcome(str, Enum):
    """What happened to one delivery attempt."""

    DELIVERED = "delivered"
    NOT_OPEN = "not_open"
    BACKPRESSURE = "backpressure"
    FAILED = "failed"


class Delivery:
    """
    Fire-and-forget delivery to single connections.

    Callers may ignore the returned outcome; it exists for metrics and tests.
    """

    def __init__(
        self,
        metrics: "MetricsCollector",
        max_buffered_bytes: int = RelayConstants.MAX_BUFFERED_BYTES,
    ) -> None:
        """
        Args:
            metrics: Collects delivery counters.
            max_buffered_bytes: Skip delivery when the target has more unsent
                bytes than this.
        """
        self._metrics = metrics
        self._max_buffered_bytes = max_buffered_bytes

    @property
    def max_buffered_bytes(self) -> int:
        return self._max_buffered_bytes

    async def deliver(
        self,
        conn: "Connection",
        payload: str | dict[str, Any] | BaseEnvelope,
    ) -> DeliveryOutcome:
        """
        Deliver one envelope to one connection.

        Args:
            conn: Target connection.
            payload: Pre-serialized JSON text, a JSON object, or an envelope.

        Returns:
            The outcome of this attempt.
        """
        if not conn.is_open:
            self._metrics.increment_delivery_not_open_sync()
            conn.request_close()
            return DeliveryOutcome.NOT_OPEN

        if conn.buffered_amount > self._max_buffered_bytes:
            self._metrics.increment_backpressure_drops_sync()
            return DeliveryOutcome.BACKPRESSURE

        try:
            data = payload if isinstance(payload, str) else serialize_envelope(payload)
        except (TypeError, ValueError) as e:
            # Bad payload, not a bad target: the connection stays open.
            logger.debug("Payload not serializable", error=type(e).__name__)
            self._metrics.increment_delivery_failed_sync()
            return DeliveryOutcome.FAILED

        try:
            await conn.send_text(data)
        except Exception as e:
            logger.debug(
                "Send failed, closing target",
                connection_id=conn.id,
                error=type(e).__name__,
            )
            self._metrics.increment_delivery_failed_sync()
            conn.request_close(WSCloseCode.SERVER_ERROR, "Send failed")
            return DeliveryOutcome.FAILED

        self._metrics.increment_delivered_sync()
        return DeliveryOutcome.DELIVERED
