"""
End-to-end tests against a real listener on an ephemeral port.

Tests verify:
- Publish round-trip between two websocket clients
- Admission refuses wrong paths and origins before upgrade
- Plain HTTP responders (root, health, metrics)
- Protocol-level heartbeat against a real client
- Graceful shutdown closes clients with 1001
"""

import asyncio
import json
from contextlib import asynccontextmanager

import httpx
import pytest
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidStatus

from shared.config.settings import Settings
from signal_relay.connection_manager import RelayManager
from signal_relay.main import create_server, lifespan


ALLOWED = "https://app.example"


@pytest.fixture
def server_settings():
    return Settings(
        _env_file=None,
        allowed_origins=ALLOWED,
        ws_heartbeat_interval=60.0,
        ws_close_timeout=0.5,
        ws_shutdown_timeout=1.0,
    )


@asynccontextmanager
async def running_relay(config: Settings):
    """Serve on 127.0.0.1 with an ephemeral port; yields (manager, port)."""
    manager = RelayManager(config)
    server = await create_server(manager, config, host="127.0.0.1", port=0)
    port = server.sockets[0].getsockname()[1]
    try:
        async with lifespan(manager):
            yield manager, port
    finally:
        server.close()
        await server.wait_closed()


async def sync(ws) -> None:
    """Round-trip a ping envelope so earlier envelopes are known to be applied."""
    await ws.send('{"type":"ping"}')
    assert json.loads(await asyncio.wait_for(ws.recv(), timeout=1.0)) == {"type": "pong"}


class TestRelay:

    @pytest.mark.asyncio
    async def test_publish_round_trip(self, server_settings):
        async with running_relay(server_settings) as (manager, port):
            uri = f"ws://127.0.0.1:{port}/"
            async with connect(uri, origin=ALLOWED) as a, connect(uri) as b:
                await a.send(json.dumps({"type": "subscribe", "topics": ["x"]}))
                await b.send(json.dumps({"type": "subscribe", "topics": ["x"]}))
                await sync(a)
                await sync(b)

                envelope = {"type": "publish", "topic": "x", "payload": 1}
                await a.send(json.dumps(envelope))

                assert json.loads(await asyncio.wait_for(b.recv(), timeout=1.0)) == envelope
                # Nothing was queued for the sender ahead of its pong
                await sync(a)

    @pytest.mark.asyncio
    async def test_close_removes_topics(self, server_settings):
        async with running_relay(server_settings) as (manager, port):
            async with connect(f"ws://127.0.0.1:{port}/") as ws:
                await ws.send(json.dumps({"type": "subscribe", "topics": ["x", "y"]}))
                await sync(ws)
                assert "x" in manager.registry

            for _ in range(100):
                if manager.total_connections == 0:
                    break
                await asyncio.sleep(0.01)

            assert "x" not in manager.registry
            assert "y" not in manager.registry

    @pytest.mark.asyncio
    async def test_heartbeat_keeps_responsive_client(self, server_settings):
        async with running_relay(server_settings) as (manager, port):
            async with connect(f"ws://127.0.0.1:{port}/") as ws:
                await sync(ws)
                for _ in range(3):
                    assert await manager.heartbeat.run_cycle() == 0
                    await asyncio.sleep(0.05)
                assert manager.total_connections == 1
                await sync(ws)


class TestAdmission:

    @pytest.mark.asyncio
    async def test_wrong_path_refused_with_404(self, server_settings):
        async with running_relay(server_settings) as (manager, port):
            with pytest.raises(InvalidStatus) as exc_info:
                await connect(f"ws://127.0.0.1:{port}/other", origin=ALLOWED)

            assert exc_info.value.response.status_code == 404
            assert manager.total_connections == 0
            assert manager.metrics.get_snapshot()["connections"]["rejected_path"] == 1

    @pytest.mark.asyncio
    async def test_disallowed_origin_refused_with_403(self, server_settings):
        async with running_relay(server_settings) as (manager, port):
            with pytest.raises(InvalidStatus) as exc_info:
                await connect(f"ws://127.0.0.1:{port}/", origin="https://evil.example")

            assert exc_info.value.response.status_code == 403
            assert manager.total_connections == 0
            assert manager.metrics.get_snapshot()["connections"]["rejected_origin"] == 1


class TestHttpResponders:

    @pytest.mark.asyncio
    async def test_root_health_metrics_and_404(self, server_settings):
        async with running_relay(server_settings) as (manager, port):
            base = f"http://127.0.0.1:{port}"
            async with httpx.AsyncClient(base_url=base) as client:
                root = await client.get("/")
                health = await client.get("/health")
                metrics = await client.get("/metrics")
                missing = await client.get("/nope")

        assert root.status_code == 200
        assert root.text == "Signaling server is running"
        assert health.status_code == 200
        assert health.text == "OK"
        assert metrics.status_code == 200
        assert metrics.headers["content-type"].startswith("text/plain; version=0.0.4")
        assert "signal_relay_connections 0" in metrics.text
        assert missing.status_code == 404


class TestShutdown:

    @pytest.mark.asyncio
    async def test_clients_closed_with_going_away(self, server_settings):
        manager = RelayManager(server_settings)
        server = await create_server(manager, server_settings, host="127.0.0.1", port=0)
        port = server.sockets[0].getsockname()[1]
        try:
            async with lifespan(manager):
                ws = await connect(f"ws://127.0.0.1:{port}/")
                await ws.send(json.dumps({"type": "subscribe", "topics": ["x"]}))
                await sync(ws)

            with pytest.raises(ConnectionClosed):
                await asyncio.wait_for(ws.recv(), timeout=2.0)

            assert ws.close_code == 1001
            assert ws.close_reason == "Server shutdown"
            assert len(manager.registry) == 0
            assert manager.is_shutting_down()
        finally:
            server.close()
            await server.wait_closed()
