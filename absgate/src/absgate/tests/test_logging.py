"""
Tests for logging configuration and the audit logger.
"""

import json
import logging

import pytest
import structlog

from absgate.config import GateConfig
from absgate.monitoring.logging import (
    AuditLogger,
    JSONFormatter,
    configure_logging,
    configure_logging_from_config,
)

from conftest import TEST_SECRET


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestJSONFormatter:

    def test_formats_record_with_extras(self):
        record = logging.LogRecord(
            name="absgate.test",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="gate %s",
            args=("blocked",),
            exc_info=None,
        )
        record.decision_id = "dec-1"

        data = json.loads(JSONFormatter().format(record))
        assert data["level"] == "WARNING"
        assert data["logger"] == "absgate.test"
        assert data["message"] == "gate blocked"
        assert data["decision_id"] == "dec-1"
        assert "lineno" not in data


class TestConfigureLogging:

    def test_installs_single_handler(self, restore_logging):
        configure_logging(level="debug", json_format=True)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_file_output(self, restore_logging, tmp_path):
        log_file = tmp_path / "audit.log"
        configure_logging(level="INFO", json_format=False, log_file=str(log_file))

        AuditLogger().log_decision(
            decision_id="dec-1",
            agent_id="agent-1",
            tenant_id="tenant-1",
            verdict="ALLOW",
            reason_code="POLICY.ALLOWED",
            risk_score=11,
        )
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "dec-1" in log_file.read_text()

    def test_from_gate_config(self, restore_logging):
        config = GateConfig(secret_key=TEST_SECRET, log_level="ERROR", log_json=False)
        configure_logging_from_config(config)

        root = logging.getLogger()
        assert root.level == logging.ERROR
        assert not isinstance(root.handlers[0].formatter, JSONFormatter)


class TestAuditLogger:

    def test_security_event_levels(self, restore_logging, capsys):
        configure_logging(level="INFO", json_format=True)
        audit = AuditLogger()

        audit.log_security_event("signature_invalid", decision_id="dec-1")
        audit.log_security_event("prompt_injection_detected", severity="not-a-level")

        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line]
        assert len(lines) == 2
        assert all(line["level"] == "WARNING" for line in lines)

    def test_blocked_execution_is_warning(self, restore_logging, capsys):
        configure_logging(level="WARNING", json_format=True)
        audit = AuditLogger()

        audit.log_execution("dec-1", "rcpt-1", "EXECUTED", "worker-1")
        audit.log_execution("dec-1", "rcpt-2", "BLOCKED", "worker-1", details="denied")

        out = capsys.readouterr().out
        assert "rcpt-2" in out
        assert "rcpt-1" not in out
