"""
Tests for the admission gate.
"""

from http import HTTPStatus

import pytest

from shared.config.settings import Settings
from signal_relay.components.admission.gate import AdmissionGate, AdmissionResult
from signal_relay.components.core.constants import DEFAULT_ALLOWED_ORIGINS


ALLOWED = "https://app.example.com"


@pytest.fixture
def gate():
    return AdmissionGate(subscribe_path="/", allowed_origins=[ALLOWED])


class TestPath:
    """Only the configured path is accepted, regardless of origin."""

    @pytest.mark.parametrize("target", ["/other", "/ws", "/index.html", "/health"])
    @pytest.mark.parametrize("origin", [None, ALLOWED, "https://evil.example"])
    def test_wrong_path_rejected_with_404(self, gate, target, origin):
        result = gate.evaluate(target, origin)
        assert not result.accepted
        assert result.status == HTTPStatus.NOT_FOUND
        assert result.reason == "path"

    @pytest.mark.parametrize("target", [None, "", "http://[::1", "no-leading-slash"])
    def test_malformed_target_rejected(self, gate, target):
        result = gate.evaluate(target, None)
        assert not result.accepted
        assert result.status == HTTPStatus.NOT_FOUND
        assert result.reason == "malformed_url"

    def test_query_string_ignored(self, gate):
        assert gate.evaluate("/?room=abc", None).accepted

    def test_custom_subscribe_path(self):
        gate = AdmissionGate(subscribe_path="/signal", allowed_origins=[ALLOWED])
        assert gate.evaluate("/signal", ALLOWED).accepted
        assert not gate.evaluate("/", ALLOWED).accepted


class TestOrigin:

    def test_allowed_origin_accepted(self, gate):
        assert gate.evaluate("/", ALLOWED) == AdmissionResult.ok()

    def test_origin_list_form(self, gate):
        assert gate.evaluate("/", [ALLOWED]).accepted

    def test_disallowed_origin_rejected_with_403(self, gate):
        result = gate.evaluate("/", "https://evil.example")
        assert not result.accepted
        assert result.status == HTTPStatus.FORBIDDEN
        assert result.reason == "origin"

    def test_origin_match_is_exact(self, gate):
        assert not gate.evaluate("/", ALLOWED + "/").accepted
        assert not gate.evaluate("/", ALLOWED.upper()).accepted

    def test_absent_origin_allowed_by_default(self, gate):
        assert gate.evaluate("/", None).accepted
        assert gate.evaluate("/", []).accepted

    def test_absent_origin_rejected_when_required(self):
        gate = AdmissionGate(subscribe_path="/", allowed_origins=[ALLOWED], require_origin=True)
        result = gate.evaluate("/", None)
        assert not result.accepted
        assert result.reason == "missing_origin"
        assert gate.evaluate("/", ALLOWED).accepted

    def test_multiple_origin_headers_rejected(self, gate):
        result = gate.evaluate("/", [ALLOWED, ALLOWED])
        assert not result.accepted
        assert result.status == HTTPStatus.FORBIDDEN


class TestFromSettings:

    def test_configured_origins(self):
        gate = AdmissionGate.from_settings(
            Settings(allowed_origins=" https://a.example , https://b.example ,", subscribe_path="/rtc")
        )
        assert gate.allowed_origins == {"https://a.example", "https://b.example"}
        assert gate.subscribe_path == "/rtc"

    def test_empty_origins_fall_back_to_development_defaults(self):
        gate = AdmissionGate.from_settings(Settings(allowed_origins=""))
        assert gate.allowed_origins == frozenset(DEFAULT_ALLOWED_ORIGINS)
