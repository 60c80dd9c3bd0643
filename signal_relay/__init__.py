"""
Topic-based WebSocket signaling relay.

Clients subscribe to named topics and publish envelopes that the relay fans
out to every other subscriber of the same topic. Payloads are never
interpreted beyond the envelope's `type` and topic fields.
"""

__version__ = "0.1.0"
