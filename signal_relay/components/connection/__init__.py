"""
Connection management components.

Handles connection state, topic registry, heartbeat and delivery.
"""

from signal_relay.components.connection.connection import Connection
from signal_relay.components.connection.delivery import Delivery, DeliveryOutcome
from signal_relay.components.connection.heartbeat import HeartbeatMonitor
from signal_relay.components.connection.registry import TopicRegistry

__all__ = [
    "Connection",
    "Delivery",
    "DeliveryOutcome",
    "HeartbeatMonitor",
    "TopicRegistry",
]
