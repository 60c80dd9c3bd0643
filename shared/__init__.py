"""
Shared infrastructure for the signaling relay: settings and logging.
"""
