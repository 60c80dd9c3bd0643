"""
Relay Connection.

Wraps one accepted websocket for its whole lifetime: liveness flag driven by
the heartbeat protocol, the set of topics it belongs to, and the transport
operations the relay needs (send, probe, close, abort).
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any, AsyncIterator, Awaitable

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from shared.config.logging import get_logger
from signal_relay.components.core.constants import WSCloseCode

logger = get_logger(__name__)


class Connection:
    """
    One admitted duplex session.

    Attributes:
        websocket: The underlying transport session (owned by this object).
        id: Short opaque id used in logs.
        is_alive: Liveness flag. Cleared by each heartbeat probe and set again
            when the peer's pong arrives.
        subscribed_topics: Topics this connection belongs to. Mutated only by
            TopicRegistry, under its lock, so it always mirrors the registry.

    Identity semantics: two Connection objects are equal only if they are the
    same object, so a connection appears at most once in any subscriber set.
    """

    def __init__(self, websocket: Any, connection_id: str | None = None) -> None:
        self.websocket = websocket
        self.id = connection_id or uuid.uuid4().hex[:12]
        self.is_alive = True
        self.subscribed_topics: set[str] = set()
        self.connected_at = time.time()
        self._cleaned_up = False
        self._close_task: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"<Connection {self.id} {self.remote_address}>"

    # =========================================================================
    # Transport state
    # =========================================================================

    @property
    def remote_address(self) -> str:
        address = getattr(self.websocket, "remote_address", None)
        if isinstance(address, tuple) and len(address) >= 2:
            return f"{address[0]}:{address[1]}"
        return str(address) if address else "unknown"

    @property
    def is_open(self) -> bool:
        """True while the transport accepts outbound messages."""
        return self.websocket.state is State.OPEN

    @property
    def buffered_amount(self) -> int:
        """Outbound bytes written to the transport but not yet sent."""
        transport = getattr(self.websocket, "transport", None)
        if transport is None:
            return 0
        return transport.get_write_buffer_size()

    @property
    def close_code(self) -> int | None:
        return getattr(self.websocket, "close_code", None)

    # =========================================================================
    # Inbound
    # =========================================================================

    async def messages(self) -> AsyncIterator[str | bytes]:
        """
        Yield inbound frames until the transport closes for any reason.

        Remote close, transport error and local abort all end the iteration
        normally; the caller runs close cleanup afterwards.
        """
        try:
            async for message in self.websocket:
                yield message
        except ConnectionClosed as e:
            logger.debug(
                "Transport closed",
                code=e.rcvd.code if e.rcvd else None,
                error=type(e).__name__,
            )

    # =========================================================================
    # Outbound
    # =========================================================================

    async def send_text(self, data: str) -> None:
        """Send one text frame. Raises on transport failure."""
        await self.websocket.send(data)

    async def ping(self) -> Awaitable[Any]:
        """
        Send a protocol-level ping frame.

        Clears nothing by itself; the heartbeat monitor clears `is_alive`
        before calling this. The returned waiter resolves when the matching
        pong arrives, which sets `is_alive` back to True.
        """
        pong_waiter = await self.websocket.ping()
        pong_waiter.add_done_callback(self._on_pong)
        return pong_waiter

    def _on_pong(self, pong_waiter: asyncio.Future) -> None:
        if pong_waiter.cancelled():
            return
        if pong_waiter.exception() is None:
            self.is_alive = True

    # =========================================================================
    # Closing
    # =========================================================================

    async def close(self, code: int = WSCloseCode.NORMAL, reason: str = "") -> None:
        """Orderly close (closing handshake). Never raises."""
        try:
            await self.websocket.close(code, reason)
        except Exception as e:
            logger.debug("Error closing connection", error=str(e))

    def request_close(self, code: int = WSCloseCode.NORMAL, reason: str = "") -> None:
        """
        Start an orderly close without waiting for it.

        Safe to call any number of times and from inside a send path; only the
        first call schedules the closing handshake.
        """
        if self._close_task is None:
            self._close_task = asyncio.get_running_loop().create_task(
                self.close(code, reason),
                name=f"close_{self.id}",
            )

    async def wait_closing(self) -> None:
        """Wait for a close started by request_close(), if any."""
        if self._close_task is not None:
            await self._close_task

    def terminate(self) -> None:
        """Abort the transport immediately, without a closing handshake."""
        transport = getattr(self.websocket, "transport", None)
        if transport is not None:
            transport.abort()

    # =========================================================================
    # Cleanup bookkeeping
    # =========================================================================

    @property
    def is_cleaned_up(self) -> bool:
        return self._cleaned_up

    def mark_cleaned_up(self) -> bool:
        """
        Claim the close cleanup for this connection.

        Returns True exactly once; every later call returns False. There is
        no await between the check and the set, so concurrent callers on the
        event loop cannot both win.
        """
        if self._cleaned_up:
            return False
        self._cleaned_up = True
        return True
