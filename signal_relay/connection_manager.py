"""
Relay Connection Manager.

Thin orchestrator that composes the relay components:
- TopicRegistry: topic -> subscribers index
- HeartbeatMonitor: live connection set and liveness probing
- Delivery: single-target sends with backpressure policy
- MetricsCollector: counters

One instance is constructed at process start and passed to every endpoint.
"""

from __future__ import annotations

import asyncio
from typing import Any, TYPE_CHECKING

from shared.config.logging import get_logger
from shared.config.settings import Settings, settings as default_settings
from signal_relay.components.connection.delivery import Delivery
from signal_relay.components.connection.heartbeat import HeartbeatMonitor
from signal_relay.components.connection.registry import TopicRegistry
from signal_relay.components.core.constants import MSG_PONG_JSON, WSCloseCode
from signal_relay.components.core.envelopes import serialize_envelope
from signal_relay.components.metrics.collector import MetricsCollector

if TYPE_CHECKING:
    from signal_relay.components.connection.connection import Connection
    from signal_relay.components.core.envelopes import (
        PublishEnvelope,
        SubscribeEnvelope,
        UnsubscribeEnvelope,
    )

logger = get_logger(__name__)

__all__ = ["RelayManager"]


class RelayManager:
    """
    Owns all shared relay state for one process.

    Configuration from settings:
    - ws_heartbeat_interval: Seconds between heartbeat probe cycles (default: 30)
    - ws_probe_timeout: Seconds allowed for writing one probe (default: 10)
    - ws_max_buffered_bytes: Backpressure threshold (default: 1,000,000)
    - ws_max_topics_per_message: Subscribe/unsubscribe cap (default: 64)
    - ws_max_total_connections: Global connection limit, 0 = unlimited
    - ws_shutdown_timeout: Bound on orderly close at shutdown (default: 10)
    """

    def __init__(self, config: Settings | None = None) -> None:
        config = config or default_settings
        self._max_topics_per_message = config.ws_max_topics_per_message
        self._max_total_connections = config.ws_max_total_connections
        self._shutdown_timeout = config.ws_shutdown_timeout

        self._metrics = MetricsCollector()
        self._registry = TopicRegistry()
        self._delivery = Delivery(
            metrics=self._metrics,
            max_buffered_bytes=config.ws_max_buffered_bytes,
        )
        self._heartbeat = HeartbeatMonitor(
            terminate_callback=self.disconnect,
            metrics=self._metrics,
            interval=config.ws_heartbeat_interval,
            probe_timeout=config.ws_probe_timeout,
        )

        self._shutting_down = False
        self._pending_cleanups: set[asyncio.Task] = set()

    # =========================================================================
    # Public properties
    # =========================================================================

    @property
    def registry(self) -> TopicRegistry:
        return self._registry

    @property
    def heartbeat(self) -> HeartbeatMonitor:
        return self._heartbeat

    @property
    def delivery(self) -> Delivery:
        return self._delivery

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def max_topics_per_message(self) -> int:
        return self._max_topics_per_message

    @property
    def total_connections(self) -> int:
        return self._heartbeat.tracked_count

    def is_shutting_down(self) -> bool:
        return self._shutting_down

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self, conn: "Connection") -> None:
        """
        Register an admitted connection with the heartbeat monitor.

        Raises:
            ConnectionError: If the relay is shutting down or at capacity.
        """
        if self._shutting_down:
            raise ConnectionError("Server is shutting down")

        if self._max_total_connections and self.total_connections >= self._max_total_connections:
            self._metrics.increment_connection_rejected_sync("capacity")
            raise ConnectionError(
                f"Server at capacity ({self._max_total_connections} connections)"
            )

        self._heartbeat.track(conn)
        self._metrics.increment_connection_accepted_sync()

    async def disconnect(self, conn: "Connection") -> None:
        """
        Close cleanup: remove the connection from every topic.

        Runs at most once per connection regardless of how many close paths
        (remote close, error, heartbeat timeout, shutdown) reach it. The
        registry update is shielded so that cancelling the caller cannot
        leave it half-applied.
        """
        if not conn.mark_cleaned_up():
            return

        self._heartbeat.untrack(conn)
        cleanup = asyncio.ensure_future(self._registry.remove_connection(conn))
        self._pending_cleanups.add(cleanup)
        cleanup.add_done_callback(self._pending_cleanups.discard)

        left = await asyncio.shield(cleanup)
        self._metrics.increment_connection_closed_sync()
        logger.info(
            "Client disconnected",
            connection_id=conn.id,
            remote=conn.remote_address,
            topics_left=len(left),
        )

    # =========================================================================
    # Envelope operations
    # =========================================================================

    async def subscribe(self, conn: "Connection", envelope: "SubscribeEnvelope") -> list[str]:
        """Join the first N valid topic names of a subscribe envelope."""
        names = envelope.topic_names(self._max_topics_per_message)
        if not names:
            return []
        return await self._registry.subscribe(conn, names)

    async def unsubscribe(self, conn: "Connection", envelope: "UnsubscribeEnvelope") -> list[str]:
        """Leave the first N valid topic names of an unsubscribe envelope."""
        names = envelope.topic_names(self._max_topics_per_message)
        if not names:
            return []
        return await self._registry.unsubscribe(conn, names)

    async def publish(self, sender: "Connection", envelope: "PublishEnvelope") -> int:
        """
        Relay a publish envelope to every other subscriber of its topic.

        The envelope is forwarded verbatim and serialized once. Deliveries are
        fire-and-forget; the return value is the number of attempts made.
        """
        topic = envelope.target_topic
        if topic is None:
            return 0

        receivers = [r for r in await self._registry.get_subscribers(topic) if r is not sender]
        if not receivers:
            return 0

        try:
            data = serialize_envelope(envelope)
        except (TypeError, ValueError) as e:
            logger.debug("Dropping unserializable publish", error=type(e).__name__)
            return 0

        self._metrics.increment_publishes_sync()
        for receiver in receivers:
            await self._delivery.deliver(receiver, data)
        return len(receivers)

    async def pong(self, conn: "Connection") -> None:
        """Answer an application-level ping envelope."""
        await self._delivery.deliver(conn, MSG_PONG_JSON)

    # =========================================================================
    # Lifespan
    # =========================================================================

    def start(self) -> None:
        """Start background tasks (heartbeat monitor)."""
        self._heartbeat.start()

    async def shutdown(self) -> int:
        """
        Graceful shutdown.

        Stops the heartbeat task, refuses new connections, requests an
        orderly close of every tracked connection and runs close cleanup for
        each. In-flight registry updates are awaited, not cancelled.

        Returns:
            Number of connections closed.
        """
        await self._heartbeat.stop()
        self._shutting_down = True
        logger.info("Relay manager shutting down...")

        connections = self._heartbeat.tracked()

        async def close_one(conn: "Connection") -> None:
            await conn.close(WSCloseCode.GOING_AWAY, "Server shutdown")
            await self.disconnect(conn)

        if connections:
            done, pending = await asyncio.wait(
                [asyncio.ensure_future(close_one(conn)) for conn in connections],
                timeout=self._shutdown_timeout,
            )
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            for conn in connections:
                if not conn.is_cleaned_up:
                    conn.terminate()
                    await self.disconnect(conn)

        await self.await_pending_cleanup()
        logger.info("Relay shutdown complete", closed=len(connections))
        return len(connections)

    async def await_pending_cleanup(self) -> None:
        """Wait for registry cleanups that are still running."""
        if self._pending_cleanups:
            await asyncio.gather(*list(self._pending_cleanups), return_exceptions=True)

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats_sync(self) -> dict[str, Any]:
        """Connection statistics (sync, safe for health and metrics handlers)."""
        return {
            "connections": self._heartbeat.tracked_count,
            "registry": self._registry.get_stats(),
            "metrics": self._metrics.get_snapshot(),
            "heartbeat_interval_seconds": self._heartbeat.interval,
            "shutting_down": self._shutting_down,
        }
