"""Tests for structured logging helpers."""

import json
import logging

from slawatch.shared.infrastructure.logging import (
    CustomJsonFormatter, EnvironmentFilter, get_context_logger, log_latency
)


def format_record(**extra) -> dict:
    record = logging.LogRecord("slawatch.test", logging.INFO, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    EnvironmentFilter("staging").filter(record)
    return json.loads(CustomJsonFormatter("%(name)s %(levelname)s %(message)s").format(record))


class TestCustomJsonFormatter:
    def test_adds_timestamp_and_environment(self):
        data = format_record()

        assert data["message"] == "hello"
        assert data["environment"] == "staging"
        assert "timestamp" in data

    def test_redacts_sensitive_fields(self):
        data = format_record(webhook_url="https://hooks.example.com/secret-token", ticket_id=4)

        assert data["webhook_url"] == "***REDACTED***"
        assert data["ticket_id"] == 4

    def test_includes_correlation_id(self):
        assert format_record(correlation_id="abc")["correlation_id"] == "abc"


class TestContextLogger:
    def test_merges_correlation_id_with_call_extra(self, caplog):
        logger = get_context_logger("slawatch.test", correlation_id="pass-1")

        with caplog.at_level("INFO"):
            logger.info("evaluated", extra={"ticket_id": 9})

        record = caplog.records[-1]
        assert record.correlation_id == "pass-1"
        assert record.ticket_id == 9

    def test_plain_logger_without_correlation_id(self):
        assert isinstance(get_context_logger("slawatch.test"), logging.Logger)


class TestLogLatency:
    def test_logs_operation_latency(self, caplog):
        logger = logging.getLogger("slawatch.test")

        with caplog.at_level("INFO"):
            with log_latency(logger, "sla_pass", tickets=3):
                pass

        record = caplog.records[-1]
        assert record.operation == "sla_pass"
        assert record.tickets == 3
        assert record.latency_ms >= 0
