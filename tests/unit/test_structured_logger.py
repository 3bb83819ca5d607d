"""
Tests for structured logging: secret redaction, trace ids and setup.
"""

import json
import logging

from pairing_service.config.settings import LoggingConfig
from pairing_service.core.structured_logger import (
    StructuredLogger,
    TraceContext,
    _redact_secrets,
    configure_logging,
    current_trace_id,
    mask_secret,
)


class ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def _logger() -> tuple[StructuredLogger, ListHandler]:
    base = logging.getLogger("tests.structured")
    base.setLevel(logging.DEBUG)
    base.propagate = False
    for h in list(base.handlers):
        base.removeHandler(h)
    handler = ListHandler()
    base.addHandler(handler)
    return StructuredLogger("Test", logger=base), handler


class TestSecretRedaction:
    def test_bearer_token_redacted(self):
        msg = "Authorization: Bearer rw-abcdef123456"
        assert "rw-abcdef123456" not in _redact_secrets(msg)
        assert "[REDACTED]" in _redact_secrets(msg)

    def test_token_assignment_redacted(self):
        assert "s3cr3tvalue" not in _redact_secrets("token=s3cr3tvalue")
        assert "s3cr3tvalue" not in _redact_secrets('{"api_key": "s3cr3tvalue"}')

    def test_no_secrets_unchanged(self):
        msg = "Gateway attempt failed for worker-telegram-bot"
        assert _redact_secrets(msg) == msg


class TestMaskSecret:
    def test_missing(self):
        assert mask_secret(None) == "MISSING"
        assert mask_secret("") == "MISSING"

    def test_set(self):
        assert mask_secret("rw-1234567890") == "SET (rw-12345...)"


class TestStructuredLogger:
    def test_emits_json_with_fields(self):
        log, handler = _logger()
        log.warning("Gateway attempt failed", attempt=1, error="Gateway timeout")

        entry = json.loads(handler.records[0].getMessage())
        assert handler.records[0].levelno == logging.WARNING
        assert entry["component"] == "Test"
        assert entry["message"] == "Gateway attempt failed"
        assert entry["attempt"] == 1
        assert entry["error"] == "Gateway timeout"
        assert "trace_id" not in entry

    def test_trace_id_included_inside_context(self):
        log, handler = _logger()
        with TraceContext("req-42") as trace_id:
            assert trace_id == "req-42"
            assert current_trace_id() == "req-42"
            log.info("Resolved worker")
        assert current_trace_id() is None

        entry = json.loads(handler.records[0].getMessage())
        assert entry["trace_id"] == "req-42"

    def test_generated_trace_id(self):
        with TraceContext() as trace_id:
            assert len(trace_id) == 8

    def test_field_values_are_redacted(self):
        log, handler = _logger()
        log.info("Calling directory", header="Bearer rw-abcdef123456")
        assert "rw-abcdef123456" not in handler.records[0].getMessage()


def test_configure_logging_installs_single_handler():
    package_logger = logging.getLogger("pairing_service")
    saved = (package_logger.level, list(package_logger.handlers), package_logger.propagate)
    try:
        configure_logging(LoggingConfig(level="debug", format="text"))
        configure_logging(LoggingConfig(level="warning"))
        assert len(package_logger.handlers) == 1
        assert package_logger.level == logging.WARNING
        assert package_logger.propagate is False
    finally:
        level, handlers, propagate = saved
        package_logger.handlers = handlers
        package_logger.setLevel(level)
        package_logger.propagate = propagate
