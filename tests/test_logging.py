"""
Tests for structured logging, audit records and log sanitization.
"""

import asyncio
import json
import logging

import pytest

from shared.config.logging import (
    DevelopmentFormatter,
    StructuredFormatter,
    audit_ws_connection,
    get_logger,
)
from shared.infrastructure.correlation import (
    ConnectionIdFilter,
    bind_connection_id,
    get_connection_id,
)
from signal_relay.components.core.context import sanitize_log_data


def _record(logger_name: str = "test", **data) -> logging.LogRecord:
    record = logging.LogRecord(logger_name, logging.INFO, __file__, 1, "hello", (), None)
    record.extra_data = data or None
    return record


class TestStructuredLogger:

    def test_keyword_fields_become_extra_data(self, caplog):
        logger = get_logger("signal_relay.test")
        with caplog.at_level(logging.INFO, logger="signal_relay.test"):
            logger.info("Client joined topic", topic="room-a", subscribers=2)

        record = caplog.records[-1]
        assert record.getMessage() == "Client joined topic"
        assert record.extra_data == {"topic": "room-a", "subscribers": 2}

    def test_json_formatter(self):
        record = _record(topic="x")
        record.connection_id = "abc123"

        payload = json.loads(StructuredFormatter().format(record))

        assert payload["message"] == "hello"
        assert payload["service"] == "signal-relay"
        assert payload["connection_id"] == "abc123"
        assert payload["data"] == {"topic": "x"}
        assert "source" not in payload

    def test_json_formatter_with_source(self):
        payload = json.loads(StructuredFormatter(include_source=True).format(_record()))
        assert payload["source"]["line"] == 1

    def test_development_formatter(self):
        record = _record(topic="x")
        record.connection_id = "-"

        output = DevelopmentFormatter().format(record)

        assert "hello" in output
        assert "topic=x" in output


class TestConnectionIdFilter:

    def test_unbound_is_dash(self):
        record = _record()
        asyncio.run(self._filter_in_fresh_task(record))
        assert record.connection_id == "-"

    def test_bound_id_is_task_local(self):
        async def run():
            async def bound():
                bind_connection_id("conn-1")
                return get_connection_id()

            inner = await asyncio.create_task(bound())
            return inner, get_connection_id()

        inner, outer = asyncio.run(run())
        assert inner == "conn-1"
        assert outer == ""

    @staticmethod
    async def _filter_in_fresh_task(record):
        async def apply():
            ConnectionIdFilter().filter(record)

        await asyncio.create_task(apply())


class TestAudit:

    def test_rejection_logged_as_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="security.audit"):
            audit_ws_connection(event_type="REJECTED", path="/x", origin="https://evil", reason="path")

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.getMessage() == "WS_AUDIT: REJECTED"
        assert record.extra_data["reason"] == "path"

    def test_connect_logged_as_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="security.audit"):
            audit_ws_connection(event_type="CONNECT", remote_address="127.0.0.1:5000")

        assert caplog.records[-1].levelno == logging.INFO


class TestSanitizeLogData:

    def test_control_and_bidi_characters_removed(self):
        assert sanitize_log_data("room\n-\x00a\u202e\u200b") == "room-a"

    def test_truncated(self):
        assert sanitize_log_data("x" * 150, max_length=10) == "x" * 10 + "..."

    @pytest.mark.parametrize("value,expected", [(42, "42"), (None, "None"), (["a"], "['a']")])
    def test_non_strings_use_repr(self, value, expected):
        assert sanitize_log_data(value) == expected
