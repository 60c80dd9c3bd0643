"""
Signaling Relay main application.

Serves relay connections and the plain-text HTTP responders (root, health,
metrics) from one websockets listener.

Admission runs in process_request, before the upgrade completes, so a
refused request never becomes a Connection.
"""

from __future__ import annotations

import asyncio
import signal
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Any, Awaitable, Callable

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.http11 import Request, Response

from shared.config.logging import audit_ws_connection, relay_logger as logger, setup_logging
from shared.config.settings import Settings, settings as default_settings
from signal_relay import __version__
from signal_relay.components.admission.gate import AdmissionGate
from signal_relay.components.connection.connection import Connection
from signal_relay.components.endpoints.dispatcher import RelayEndpoint
from signal_relay.components.metrics.prometheus import generate_prometheus_metrics
from signal_relay.connection_manager import RelayManager

ROOT_TEXT = "Signaling server is running"
HEALTH_TEXT = "OK"
PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(manager: RelayManager):
    """
    Relay lifespan handler.

    Starts the heartbeat monitor; on exit runs the manager's graceful
    shutdown (stop heartbeat, refuse new connections, close and clean up
    every tracked connection).
    """
    manager.start()
    logger.info("Relay started", heartbeat_interval=manager.heartbeat.interval)
    try:
        yield manager
    finally:
        logger.info("Shutting down relay")
        closed = await manager.shutdown()
        logger.info("Relay stopped", closed=closed)


# =============================================================================
# HTTP handling before upgrade
# =============================================================================


def _is_upgrade(request: Request) -> bool:
    return request.headers.get("Upgrade", "").lower() == "websocket"


def build_process_request(
    manager: RelayManager,
    gate: AdmissionGate,
    config: Settings,
) -> Callable[[ServerConnection, Request], Response | None]:
    """
    Build the pre-upgrade hook.

    Plain GET requests get the informational responders. Upgrade requests
    go through the AdmissionGate; a rejection is answered with its HTTP
    status and the handshake never completes.
    """

    def process_request(connection: ServerConnection, request: Request) -> Response | None:
        if not _is_upgrade(request):
            return _respond_http(connection, request, manager, gate, config)

        origins = request.headers.get_all("Origin")
        result = gate.evaluate(request.path, origins)
        if result.accepted:
            return None

        manager.metrics.increment_connection_rejected_sync(
            "path" if result.status == HTTPStatus.NOT_FOUND else "origin"
        )
        audit_ws_connection(
            event_type="REJECTED",
            path=request.path,
            origin=origins[0] if origins else None,
            remote_address=_format_address(connection.remote_address),
            reason=result.reason,
        )
        return connection.respond(result.status, f"{result.status.phrase}\n")

    return process_request


def _respond_http(
    connection: ServerConnection,
    request: Request,
    manager: RelayManager,
    gate: AdmissionGate,
    config: Settings,
) -> Response:
    path = AdmissionGate.request_path(request.path)

    if path == config.health_path:
        return connection.respond(HTTPStatus.OK, HEALTH_TEXT)

    if path == config.metrics_path:
        response = connection.respond(HTTPStatus.OK, generate_prometheus_metrics(manager))
        del response.headers["Content-Type"]
        response.headers["Content-Type"] = PROMETHEUS_CONTENT_TYPE
        return response

    if path in ("/", gate.subscribe_path):
        return connection.respond(HTTPStatus.OK, ROOT_TEXT)

    return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")


def _format_address(address: Any) -> str | None:
    if isinstance(address, tuple) and len(address) >= 2:
        return f"{address[0]}:{address[1]}"
    return str(address) if address else None


# =============================================================================
# Server
# =============================================================================


def build_handler(manager: RelayManager) -> Callable[[ServerConnection], Awaitable[None]]:
    """Connection handler: one RelayEndpoint per admitted websocket."""

    async def handler(websocket: ServerConnection) -> None:
        endpoint = RelayEndpoint(Connection(websocket), manager)
        await endpoint.run()

    return handler


async def create_server(
    manager: RelayManager,
    config: Settings | None = None,
    host: str | None = None,
    port: int | None = None,
) -> Server:
    """
    Start listening.

    Keepalive is disabled in the transport; the HeartbeatMonitor owns
    liveness. The write limit keeps sends admitted by the backpressure check
    from waiting on drain.
    """
    config = config or default_settings
    gate = AdmissionGate.from_settings(config)

    return await serve(
        build_handler(manager),
        host if host is not None else config.host,
        port if port is not None else config.port,
        process_request=build_process_request(manager, gate, config),
        ping_interval=None,
        max_size=config.ws_max_message_size,
        write_limit=config.ws_write_limit,
        close_timeout=config.ws_close_timeout,
    )


async def run_relay(config: Settings | None = None) -> None:
    """
    Serve until SIGINT or SIGTERM.

    Shutdown order: stop accepting, shut the manager down (which closes
    every connection with 1001), then wait for the handlers to finish.
    """
    config = config or default_settings
    setup_logging(config)

    errors = config.validate_production_settings()
    if errors:
        for error in errors:
            logger.error("Configuration error", error=error)
        if config.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(errors)}. "
                "Relay will not start with insecure configuration."
            )
        logger.warning("Running with insecure defaults (acceptable for development only)")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    manager = RelayManager(config)
    server = await create_server(manager, config)
    logger.info(
        "Starting signaling relay",
        version=__version__,
        host=config.host,
        port=config.port,
        path=config.subscribe_path,
        env=config.environment,
    )

    async with lifespan(manager):
        await stop.wait()
        server.close(close_connections=False)

    await server.wait_closed()


def main() -> None:
    asyncio.run(run_relay())


if __name__ == "__main__":
    main()
