"""
Observability components: counters and Prometheus export.
"""

from signal_relay.components.metrics.collector import MetricsCollector
from signal_relay.components.metrics.prometheus import (
    PrometheusFormatter,
    generate_prometheus_metrics,
)

__all__ = [
    "MetricsCollector",
    "PrometheusFormatter",
    "generate_prometheus_metrics",
]
