"""
Relay Dispatcher.

Per-connection endpoint: registers the connection, reads its inbound frames
in order and applies each envelope, and runs close cleanup exactly once when
the transport goes away for any reason.

All of one connection's envelopes are handled sequentially inside that
connection's own task; the only state shared with other tasks is the
TopicRegistry, which synchronizes internally.
"""

from __future__ import annotations

from contextlib import aclosing
from typing import TYPE_CHECKING

from shared.config.logging import audit_ws_connection, get_logger
from shared.infrastructure.correlation import bind_connection_id
from signal_relay.components.core.constants import WSCloseCode
from signal_relay.components.core.context import sanitize_log_data
from signal_relay.components.core.envelopes import (
    PingEnvelope,
    PongEnvelope,
    PublishEnvelope,
    SubscribeEnvelope,
    UnsubscribeEnvelope,
    parse_envelope,
)

if TYPE_CHECKING:
    from signal_relay.components.connection.connection import Connection
    from signal_relay.connection_manager import RelayManager

logger = get_logger(__name__)


class RelayEndpoint:
    """
    Handles one relay connection from admission to cleanup.

    Usage:
        endpoint = RelayEndpoint(Connection(websocket), manager)
        await endpoint.run()
    """

    def __init__(self, connection: "Connection", manager: "RelayManager") -> None:
        """
        Args:
            connection: The admitted connection.
            manager: Process-wide RelayManager.
        """
        self.connection = connection
        self.manager = manager

    async def run(self) -> None:
        """
        Main entry point - run the endpoint until the transport closes.

        1. Register with the manager (heartbeat tracking)
        2. Message loop
        3. Close cleanup, always, exactly once
        """
        conn = self.connection
        bind_connection_id(conn.id)

        try:
            await self.manager.connect(conn)
        except ConnectionError as e:
            logger.warning("Connection rejected", reason=str(e))
            audit_ws_connection(
                event_type="REJECTED",
                remote_address=conn.remote_address,
                reason=str(e),
            )
            code = (
                WSCloseCode.GOING_AWAY
                if self.manager.is_shutting_down()
                else WSCloseCode.SERVER_OVERLOADED
            )
            await conn.close(code, str(e))
            return

        logger.info("Client connected", remote=conn.remote_address)
        audit_ws_connection(event_type="CONNECT", remote_address=conn.remote_address)

        try:
            await self._message_loop()
        except Exception as e:
            # Contained to this connection; the relay keeps serving others.
            logger.error("Dispatcher error", error=str(e), exc_info=True)
            conn.terminate()
        finally:
            await self.manager.disconnect(conn)
            audit_ws_connection(
                event_type="DISCONNECT",
                remote_address=conn.remote_address,
                close_code=conn.close_code,
            )

    async def _message_loop(self) -> None:
        async with aclosing(self.connection.messages()) as messages:
            async for data in messages:
                await self.handle_message(data)

    async def handle_message(self, data: str | bytes) -> None:
        """
        Apply one inbound frame.

        Malformed frames are discarded without a reply and without closing
        the connection.
        """
        envelope = parse_envelope(data)
        if envelope is None:
            self.manager.metrics.increment_malformed_sync()
            logger.debug("Discarding malformed envelope")
            return

        self.manager.metrics.record_envelope_sync(envelope.type)

        if isinstance(envelope, SubscribeEnvelope):
            await self.manager.subscribe(self.connection, envelope)
        elif isinstance(envelope, UnsubscribeEnvelope):
            await self.manager.unsubscribe(self.connection, envelope)
        elif isinstance(envelope, PublishEnvelope):
            await self.manager.publish(self.connection, envelope)
        elif isinstance(envelope, PingEnvelope):
            await self.manager.pong(self.connection)
        elif isinstance(envelope, PongEnvelope):
            pass
        else:
            logger.debug(
                "Unhandled message type",
                type=sanitize_log_data(envelope.type),
            )
