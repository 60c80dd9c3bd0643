"""
Admission Gate for relay connections.

Decides accept/reject for an upgrade request before any relay state is
touched. Checks, in order:

1. The request target parses and its path equals the subscribe path exactly.
2. If an Origin header is present, it is in the allow-set.
3. If no Origin header is present, the request is admitted unless the gate
   was built with require_origin=True. Non-browser peers do not send Origin;
   admitting them is the default trust decision.

Any request that cannot be parsed is rejected (fail closed).
"""

from __future__ import annotations

from dataclasses import dataclass
from http import HTTPStatus
from typing import Iterable
from urllib.parse import urlsplit

from shared.config.logging import get_logger
from signal_relay.components.core.constants import DEFAULT_ALLOWED_ORIGINS

logger = get_logger(__name__)


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True, slots=True)
class AdmissionResult:
    """
    Result of an admission decision.

    Attributes:
        accepted: Whether the request may become a Connection.
        status: HTTP status to refuse the upgrade with when rejected.
        reason: Short reason code for metrics and audit logging.
    """

    accepted: bool
    status: HTTPStatus = HTTPStatus.SWITCHING_PROTOCOLS
    reason: str | None = None

    @classmethod
    def ok(cls) -> "AdmissionResult":
        return cls(accepted=True)

    @classmethod
    def not_found(cls, reason: str = "path") -> "AdmissionResult":
        return cls(accepted=False, status=HTTPStatus.NOT_FOUND, reason=reason)

    @classmethod
    def forbidden(cls, reason: str = "origin") -> "AdmissionResult":
        return cls(accepted=False, status=HTTPStatus.FORBIDDEN, reason=reason)


# =============================================================================
# Gate
# =============================================================================


class AdmissionGate:
    """
    Path and origin checks for incoming upgrade requests.

    Usage:
        gate = AdmissionGate.from_settings(settings)
        result = gate.evaluate("/", request.headers.get_all("Origin"))
        if not result.accepted:
            ...refuse with result.status
    """

    def __init__(
        self,
        subscribe_path: str,
        allowed_origins: Iterable[str],
        require_origin: bool = False,
    ) -> None:
        """
        Args:
            subscribe_path: The only path accepted for upgrades.
            allowed_origins: Origin values allowed when the header is present.
            require_origin: Reject requests that carry no Origin header.
        """
        self._subscribe_path = subscribe_path
        self._allowed_origins = frozenset(allowed_origins)
        self._require_origin = require_origin

    @classmethod
    def from_settings(cls, settings) -> "AdmissionGate":
        """Build a gate from relay settings, falling back to the development origins."""
        allowed = settings.allowed_origin_set or frozenset(DEFAULT_ALLOWED_ORIGINS)
        return cls(
            subscribe_path=settings.subscribe_path,
            allowed_origins=allowed,
            require_origin=settings.ws_require_origin,
        )

    @property
    def subscribe_path(self) -> str:
        return self._subscribe_path

    @property
    def allowed_origins(self) -> frozenset[str]:
        return self._allowed_origins

    def evaluate(self, target: str | None, origins: list[str] | str | None) -> AdmissionResult:
        """
        Decide whether an upgrade request may proceed.

        Args:
            target: The HTTP request target (path plus optional query).
            origins: Origin header values. A single string or None is
                accepted for convenience; more than one value is rejected.

        Returns:
            AdmissionResult; `accepted` is False for any rejection.
        """
        path = self.request_path(target)
        if path is None:
            return AdmissionResult.not_found("malformed_url")
        if path != self._subscribe_path:
            return AdmissionResult.not_found("path")

        if isinstance(origins, str):
            origins = [origins]
        origins = origins or []

        if len(origins) > 1:
            return AdmissionResult.forbidden("multiple_origins")

        if not origins:
            if self._require_origin:
                return AdmissionResult.forbidden("missing_origin")
            return AdmissionResult.ok()

        if origins[0] not in self._allowed_origins:
            return AdmissionResult.forbidden("origin")

        return AdmissionResult.ok()

    @staticmethod
    def request_path(target: str | None) -> str | None:
        """Path component of a request target, or None if it cannot be parsed."""
        if not target:
            return None
        try:
            parts = urlsplit(target)
        except ValueError:
            return None
        if not parts.path.startswith("/"):
            return None
        return parts.path
