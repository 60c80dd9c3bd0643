"""
Relay endpoints: per-connection envelope dispatch.
"""

from signal_relay.components.endpoints.dispatcher import RelayEndpoint

__all__ = ["RelayEndpoint"]
