"""
Metrics Collector for the relay.

Centralizes counters for observability. Thread-safe counter operations so
the health and metrics responders can read a consistent snapshot.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class ConnectionMetrics:
    """Metrics for connection management."""
    accepted: int = 0
    closed: int = 0
    rejected_path: int = 0
    rejected_origin: int = 0
    rejected_capacity: int = 0
    heartbeat_terminations: int = 0


@dataclass
class EnvelopeMetrics:
    """Metrics for inbound envelopes."""
    received: int = 0
    malformed: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


@dataclass
class DeliveryMetrics:
    """Metrics for outbound deliveries."""
    publishes: int = 0
    delivered: int = 0
    backpressure_drops: int = 0
    failed: int = 0
    not_open: int = 0


class MetricsCollector:
    """
    Thread-safe metrics collector for the relay.

    Usage:
        metrics = MetricsCollector()
        metrics.increment_delivered_sync()
        stats = metrics.get_snapshot()
    """

    # Envelope types counted individually; anything else is "unknown"
    KNOWN_TYPES = frozenset({"subscribe", "unsubscribe", "publish", "ping", "pong"})

    def __init__(self) -> None:
        self._sync_lock = threading.Lock()
        self._connection = ConnectionMetrics()
        self._envelope = EnvelopeMetrics()
        self._delivery = DeliveryMetrics()

    # ==========================================================================
    # Connection Metrics
    # ==========================================================================

    def increment_connection_accepted_sync(self) -> None:
        with self._sync_lock:
            self._connection.accepted += 1

    def increment_connection_closed_sync(self) -> None:
        with self._sync_lock:
            self._connection.closed += 1

    def increment_connection_rejected_sync(self, reason: str) -> None:
        """Count an admission rejection. `reason` is path, origin or capacity."""
        with self._sync_lock:
            if reason == "path":
                self._connection.rejected_path += 1
            elif reason == "capacity":
                self._connection.rejected_capacity += 1
            else:
                self._connection.rejected_origin += 1

    def increment_heartbeat_terminations_sync(self) -> None:
        with self._sync_lock:
            self._connection.heartbeat_terminations += 1

    # ==========================================================================
    # Envelope Metrics
    # ==========================================================================

    def record_envelope_sync(self, envelope_type: Any) -> None:
        known = isinstance(envelope_type, str) and envelope_type in self.KNOWN_TYPES
        key = envelope_type if known else "unknown"
        with self._sync_lock:
            self._envelope.received += 1
            self._envelope.by_type[key] = self._envelope.by_type.get(key, 0) + 1

    def increment_malformed_sync(self) -> None:
        with self._sync_lock:
            self._envelope.received += 1
            self._envelope.malformed += 1

    # ==========================================================================
    # Delivery Metrics
    # ==========================================================================

    def increment_publishes_sync(self) -> None:
        with self._sync_lock:
            self._delivery.publishes += 1

    def increment_delivered_sync(self) -> None:
        with self._sync_lock:
            self._delivery.delivered += 1

    def increment_backpressure_drops_sync(self) -> None:
        with self._sync_lock:
            self._delivery.backpressure_drops += 1

    def increment_delivery_failed_sync(self) -> None:
        with self._sync_lock:
            self._delivery.failed += 1

    def increment_delivery_not_open_sync(self) -> None:
        with self._sync_lock:
            self._delivery.not_open += 1

    # ==========================================================================
    # Snapshot
    # ==========================================================================

    def get_snapshot(self) -> dict[str, Any]:
        """Consistent copy of every counter."""
        with self._sync_lock:
            envelope = asdict(self._envelope)
            return {
                "connections": asdict(self._connection),
                "envelopes": envelope,
                "delivery": asdict(self._delivery),
            }

    def reset(self) -> None:
        """Reset all counters (for testing)."""
        with self._sync_lock:
            self._connection = ConnectionMetrics()
            self._envelope = EnvelopeMetrics()
            self._delivery = DeliveryMetrics()
