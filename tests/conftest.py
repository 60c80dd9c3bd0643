"""
Pytest configuration and fixtures for relay tests.
"""

from __future__ import annotations

import asyncio
import itertools
import json
from typing import Any

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.protocol import State

from shared.config.settings import Settings
from signal_relay.components.connection.connection import Connection
from signal_relay.connection_manager import RelayManager


_port_counter = itertools.count(40000)

_CLOSED = object()


class FakeTransport:
    """Stand-in for the asyncio transport under a websocket connection."""

    def __init__(self, websocket: "FakeWebSocket") -> None:
        self._websocket = websocket
        self.buffered = 0
        self.aborted = False

    def get_write_buffer_size(self) -> int:
        return self.buffered

    def abort(self) -> None:
        self.aborted = True
        self._websocket._mark_closed(1006)


class FakeWebSocket:
    """
    In-memory websocket with the surface the relay uses.

    Inbound frames are queued with feed(); outbound text frames are recorded
    in `sent`. Pings resolve immediately unless `answer_pings` is False.
    """

    def __init__(self, answer_pings: bool = True) -> None:
        self.state = State.OPEN
        self.transport = FakeTransport(self)
        self.remote_address = ("127.0.0.1", next(_port_counter))
        self.sent: list[str] = []
        self.pings = 0
        self.answer_pings = answer_pings
        self.fail_send = False
        self.fail_ping = False
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self._inbound: asyncio.Queue = asyncio.Queue()
        self._pong_waiters: list[asyncio.Future] = []

    # Inbound -----------------------------------------------------------------

    def feed(self, message: str | bytes | dict[str, Any]) -> None:
        if isinstance(message, dict):
            message = json.dumps(message)
        self._inbound.put_nowait(message)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.state is not State.OPEN and self._inbound.empty():
            raise StopAsyncIteration
        item = await self._inbound.get()
        if item is _CLOSED:
            if self.close_code == 1006:
                raise ConnectionClosedError(None, None)
            raise StopAsyncIteration
        return item

    # Outbound ----------------------------------------------------------------

    async def send(self, data: str) -> None:
        if self.fail_send:
            raise ConnectionClosedError(None, None)
        # Text frames go out as UTF-8; unencodable strings raise here too
        data.encode("utf-8")
        self.sent.append(data)

    async def ping(self, data: bytes | None = None) -> asyncio.Future:
        if self.fail_ping:
            raise ConnectionClosedError(None, None)
        self.pings += 1
        waiter = asyncio.get_running_loop().create_future()
        if self.answer_pings:
            waiter.set_result(0.0)
        else:
            self._pong_waiters.append(waiter)
        return waiter

    def answer_pending_pings(self) -> None:
        for waiter in self._pong_waiters:
            if not waiter.done():
                waiter.set_result(0.0)
        self._pong_waiters.clear()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.state is State.CLOSED:
            return
        self.close_reason = reason
        self._mark_closed(code)

    def _mark_closed(self, code: int) -> None:
        if self.state is State.CLOSED:
            return
        self.state = State.CLOSED
        self.close_code = code
        self._inbound.put_nowait(_CLOSED)

    # Helpers -----------------------------------------------------------------

    def sent_json(self) -> list[dict[str, Any]]:
        return [json.loads(message) for message in self.sent]


@pytest.fixture
def relay_settings() -> Settings:
    """Settings with short timings for tests."""
    return Settings(
        ws_heartbeat_interval=0.05,
        ws_probe_timeout=0.05,
        ws_shutdown_timeout=1.0,
        ws_close_timeout=0.5,
    )


@pytest.fixture
def manager(relay_settings) -> RelayManager:
    return RelayManager(relay_settings)


@pytest.fixture
def make_connection():
    """Factory for Connection objects over fake websockets."""

    def _make(answer_pings: bool = True) -> Connection:
        return Connection(FakeWebSocket(answer_pings=answer_pings))

    return _make
