"""
Connection admission: path and origin checks before upgrade.
"""

from signal_relay.components.admission.gate import AdmissionGate, AdmissionResult

__all__ = ["AdmissionGate", "AdmissionResult"]
