"""
Heartbeat Monitor for the relay.

Periodically probes every tracked connection with a protocol-level ping and
terminates connections that did not answer the previous probe.

Per-connection states:
    alive           is_alive is True (answered the last probe, or new)
    suspected-dead  is_alive is False (probe sent, no pong yet)

On each cycle a suspected-dead connection is terminated; an alive one is
moved to suspected-dead and probed. A peer that stops answering is therefore
reaped within one to two intervals.
"""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING, Awaitable, Callable

from shared.config.logging import get_logger
from signal_relay.components.core.constants import RelayConstants

if TYPE_CHECKING:
    from signal_relay.components.connection.connection import Connection
    from signal_relay.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)


class HeartbeatMonitor:
    """
    Tracks live connections and reaps unresponsive ones.

    The tracked set is guarded by a threading.Lock so that stats readers
    (health checks) can take a snapshot from any thread.
    """

    def __init__(
        self,
        terminate_callback: Callable[["Connection"], Awaitable[None]],
        metrics: "MetricsCollector",
        interval: float = RelayConstants.HEARTBEAT_INTERVAL,
        probe_timeout: float = RelayConstants.PROBE_TIMEOUT,
    ) -> None:
        """
        Initialize heartbeat monitor.

        Args:
            terminate_callback: Close cleanup to run after a connection is
                terminated (removes it from every topic).
            metrics: Collects termination counts.
            interval: Seconds between probe cycles.
            probe_timeout: Seconds allowed for writing one probe.
        """
        self._terminate_callback = terminate_callback
        self._metrics = metrics
        self._interval = interval
        self._probe_timeout = probe_timeout
        self._tracked: set[Connection] = set()
        self._lock = threading.Lock()
        self._task: asyncio.Task | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def tracked_count(self) -> int:
        with self._lock:
            return len(self._tracked)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def track(self, conn: "Connection") -> None:
        """Start probing a newly admitted connection."""
        conn.is_alive = True
        with self._lock:
            self._tracked.add(conn)

    def untrack(self, conn: "Connection") -> None:
        """Stop probing a connection (it is closing)."""
        with self._lock:
            self._tracked.discard(conn)

    def tracked(self) -> list["Connection"]:
        """Snapshot of the tracked connections."""
        with self._lock:
            return list(self._tracked)

    # =========================================================================
    # Probe cycle
    # =========================================================================

    async def run_cycle(self) -> int:
        """
        Run one probe cycle over every tracked connection.

        Returns:
            Number of connections terminated in this cycle.
        """
        connections = self.tracked()
        if not connections:
            return 0

        results = await asyncio.gather(
            *[self._check(conn) for conn in connections],
            return_exceptions=True,
        )
        terminated = 0
        for conn, result in zip(connections, results):
            if isinstance(result, Exception):
                logger.error(
                    "Error during heartbeat check",
                    connection_id=conn.id,
                    error=str(result),
                )
            elif result:
                terminated += 1
        return terminated

    async def _check(self, conn: "Connection") -> bool:
        """Probe or reap one connection. Returns True if it was terminated."""
        if not conn.is_alive:
            await self._terminate(conn, "no_pong")
            return True

        conn.is_alive = False
        try:
            await asyncio.wait_for(conn.ping(), timeout=self._probe_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(
                "Heartbeat probe failed",
                connection_id=conn.id,
                error=type(e).__name__,
            )
            await self._terminate(conn, "probe_failed")
            return True
        return False

    async def _terminate(self, conn: "Connection", reason: str) -> None:
        logger.info(
            "Terminating unresponsive connection",
            connection_id=conn.id,
            remote=conn.remote_address,
            reason=reason,
        )
        self._metrics.increment_heartbeat_terminations_sync()
        self.untrack(conn)
        conn.terminate()
        await self._terminate_callback(conn)

    # =========================================================================
    # Background task
    # =========================================================================

    def start(self) -> None:
        """Start the periodic probe task (idempotent)."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="heartbeat_monitor"
        )
        logger.info("Heartbeat monitor started", interval=self._interval)

    async def stop(self) -> None:
        """Stop the periodic probe task and wait for it to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Heartbeat monitor stopped")

    async def _run(self) -> None:
        cycle = 0
        while True:
            try:
                await asyncio.sleep(self._interval)
                cycle += 1
                terminated = await self.run_cycle()
                if terminated > 0:
                    logger.info(
                        "Reaped unresponsive connections",
                        count=terminated,
                        cycle=cycle,
                    )
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in heartbeat cycle", error=str(e), exc_info=True)
