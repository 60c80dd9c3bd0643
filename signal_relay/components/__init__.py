"""
Relay Components.

Organized into domain-specific modules:
- core/       - Constants, envelopes, log sanitization
- connection/ - Connection state, topic registry, heartbeat, delivery
- admission/  - Path and origin checks before upgrade
- endpoints/  - Per-connection envelope dispatch
- metrics/    - Observability (collector, prometheus)
"""
