"""
Prometheus Metrics Export for the relay.

Formats internal metrics in Prometheus exposition format.
No external dependencies required.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from signal_relay.connection_manager import RelayManager


class MetricType(str, Enum):
    """Prometheus metric types."""

    COUNTER = "counter"
    GAUGE = "gauge"


class PrometheusFormatter:
    """
    Formats metrics in Prometheus text exposition format.

    Reference: https://prometheus.io/docs/instrumenting/exposition_formats/

    Usage:
        formatter = PrometheusFormatter()
        output = formatter.format_all_metrics(manager.get_stats_sync())
    """

    def __init__(self, prefix: str = "signal_relay"):
        self._prefix = prefix

    def format_metric(
        self,
        name: str,
        value: float | int,
        help_text: str,
        metric_type: MetricType,
        labels: dict[str, str] | None = None,
    ) -> str:
        """Format a single metric with HELP and TYPE lines."""
        full_name = f"{self._prefix}_{name}"
        lines = [
            f"# HELP {full_name} {help_text}",
            f"# TYPE {full_name} {metric_type.value}",
        ]
        lines.append(self._sample(full_name, value, labels))
        return "\n".join(lines)

    def format_labeled(
        self,
        name: str,
        samples: list[tuple[dict[str, str], float | int]],
        help_text: str,
        metric_type: MetricType,
    ) -> str:
        """Format one metric family with several labeled samples."""
        full_name = f"{self._prefix}_{name}"
        lines = [
            f"# HELP {full_name} {help_text}",
            f"# TYPE {full_name} {metric_type.value}",
        ]
        lines.extend(self._sample(full_name, value, labels) for labels, value in samples)
        return "\n".join(lines)

    @staticmethod
    def _sample(name: str, value: float | int, labels: dict[str, str] | None) -> str:
        if labels:
            label_str = ",".join(f'{k}="{v}"' for k, v in labels.items())
            return f"{name}{{{label_str}}} {value}"
        return f"{name} {value}"

    def format_all_metrics(self, stats: dict[str, Any]) -> str:
        """
        Format all metrics from RelayManager stats.

        Args:
            stats: Stats dictionary from RelayManager.get_stats_sync().

        Returns:
            Complete Prometheus exposition format string.
        """
        registry = stats.get("registry", {})
        metrics = stats.get("metrics", {})
        connections = metrics.get("connections", {})
        envelopes = metrics.get("envelopes", {})
        delivery = metrics.get("delivery", {})
        lines: list[str] = []

        # Gauges
        lines.append(self.format_metric(
            "connections", stats.get("connections", 0),
            "Current number of live relay connections", MetricType.GAUGE,
        ))
        lines.append(self.format_metric(
            "topics", registry.get("topics", 0),
            "Topics with at least one subscriber", MetricType.GAUGE,
        ))
        lines.append(self.format_metric(
            "subscriptions", registry.get("subscriptions", 0),
            "Connection-topic memberships", MetricType.GAUGE,
        ))

        # Connection counters
        lines.append(self.format_metric(
            "connections_accepted_total", connections.get("accepted", 0),
            "Connections admitted", MetricType.COUNTER,
        ))
        lines.append(self.format_metric(
            "connections_closed_total", connections.get("closed", 0),
            "Connections cleaned up after close", MetricType.COUNTER,
        ))
        lines.append(self.format_labeled(
            "connections_rejected_total",
            [
                ({"reason": "path"}, connections.get("rejected_path", 0)),
                ({"reason": "origin"}, connections.get("rejected_origin", 0)),
                ({"reason": "capacity"}, connections.get("rejected_capacity", 0)),
            ],
            "Connections refused at admission", MetricType.COUNTER,
        ))
        lines.append(self.format_metric(
            "heartbeat_terminations_total", connections.get("heartbeat_terminations", 0),
            "Connections terminated by the heartbeat monitor", MetricType.COUNTER,
        ))

        # Envelope counters
        lines.append(self.format_labeled(
            "envelopes_received_total",
            [({"type": kind}, count) for kind, count in sorted(envelopes.get("by_type", {}).items())],
            "Envelopes received by type", MetricType.COUNTER,
        ))
        lines.append(self.format_metric(
            "envelopes_malformed_total", envelopes.get("malformed", 0),
            "Inbound frames discarded as malformed", MetricType.COUNTER,
        ))

        # Delivery counters
        lines.append(self.format_metric(
            "publishes_total", delivery.get("publishes", 0),
            "Publish envelopes relayed", MetricType.COUNTER,
        ))
        lines.append(self.format_labeled(
            "deliveries_total",
            [
                ({"outcome": "delivered"}, delivery.get("delivered", 0)),
                ({"outcome": "backpressure"}, delivery.get("backpressure_drops", 0)),
                ({"outcome": "failed"}, delivery.get("failed", 0)),
                ({"outcome": "not_open"}, delivery.get("not_open", 0)),
            ],
            "Delivery attempts by outcome", MetricType.COUNTER,
        ))

        lines.append(self.format_metric(
            "heartbeat_interval_seconds", stats.get("heartbeat_interval_seconds", 0),
            "Seconds between heartbeat probe cycles", MetricType.GAUGE,
        ))
        lines.append(self.format_metric(
            "scrape_timestamp", int(time.time()),
            "Timestamp of metrics scrape", MetricType.GAUGE,
        ))

        return "\n".join(lines) + "\n"


def generate_prometheus_metrics(manager: "RelayManager") -> str:
    """
    Generate Prometheus metrics from RelayManager.

    Args:
        manager: RelayManager instance.

    Returns:
        Prometheus exposition format string.
    """
    return PrometheusFormatter().format_all_metrics(manager.get_stats_sync())
