"""
Unit tests for the logging abstraction and correlation IDs.
"""

import asyncio
import json
import logging

import pytest

from charon.correlation import correlation_context, get_correlation_id
from charon.logging_abstraction import (
    CharonLogger,
    HumanReadableFormatter,
    JSONFormatter,
    get_logger,
    set_global_level,
)


def _record(msg: str = "Relay %s on", args: tuple = (1,), extra_data: dict | None = None) -> logging.LogRecord:
    record = logging.LogRecord("charon.relay.pulse", logging.INFO, __file__, 42, msg, args, None)
    if extra_data is not None:
        record.extra_data = extra_data
    return record


class TestFormatters:
    """Tests for the human and JSON formatters"""

    def test_human_format_includes_correlation_and_context(self):
        """Test the short correlation id and key=value context are appended"""
        with correlation_context("0123456789abcdef"):
            line = HumanReadableFormatter().format(_record(extra_data={"duration_ms": 100}))

        assert "[01234567] > Relay 1 on | duration_ms=100" in line
        assert " INFO " in line

    def test_human_format_without_correlation(self):
        """Test a placeholder is printed outside any correlation context"""
        line = HumanReadableFormatter().format(_record())

        assert "[--------] > Relay 1 on" in line
        assert "|" not in line

    def test_json_format(self):
        """Test the JSON formatter emits one object with the context"""
        with correlation_context("abc"):
            data = json.loads(JSONFormatter().format(_record(extra_data={"channel": 2})))

        assert data["message"] == "Relay 1 on"
        assert data["level"] == "INFO"
        assert data["correlation_id"] == "abc"
        assert data["context"] == {"channel": 2}
        assert data["line"] == 42


class TestCharonLogger:
    """Tests for CharonLogger and get_logger()"""

    def test_get_logger_is_cached(self):
        """Test the same wrapper is returned for a name"""
        assert get_logger("charon.tests.cached") is get_logger("charon.tests.cached")

    def test_extra_is_attached_to_record(self, caplog):
        """Test structured context travels on the record"""
        logger = get_logger("charon.tests.extra")

        with caplog.at_level(logging.INFO):
            logger.info("%s pulsed", "relay", extra={"channel": 1})

        record = caplog.records[-1]
        assert record.getMessage() == "relay pulsed"
        assert record.extra_data == {"channel": 1}

    def test_json_file_output(self, tmp_path):
        """Test json format writes one JSON line per record to the configured file"""
        log_file = tmp_path / "logs" / "charon.jsonl"
        logger = CharonLogger("charon.tests.json_file", log_format="json", json_file=log_file)
        try:
            logger.warning("Relay board not available", extra={"port": "/dev/ttyUSB0"})
        finally:
            for handler in logger.handlers:
                handler.close()

        data = json.loads(log_file.read_text().splitlines()[-1])
        assert data["level"] == "WARNING"
        assert data["context"] == {"port": "/dev/ttyUSB0"}

    def test_set_global_level(self):
        """Test the global level applies to existing loggers"""
        logger = get_logger("charon.tests.level")
        try:
            set_global_level(logging.DEBUG)
            assert logger.logger.level == logging.DEBUG
        finally:
            set_global_level(logging.INFO)


class TestCorrelation:
    """Tests for correlation ID contexts"""

    def test_context_restores_previous_id(self):
        """Test nested contexts restore the outer id"""
        with correlation_context("outer"):
            with correlation_context() as inner:
                assert get_correlation_id() == inner
                assert inner != "outer"
            assert get_correlation_id() == "outer"
        assert get_correlation_id() is None

    @pytest.mark.asyncio
    async def test_tasks_keep_their_own_id(self):
        """Test each dispatched task sees its own correlation id"""

        async def _handler():
            with correlation_context() as cid:
                await asyncio.sleep(0.01)
                return cid == get_correlation_id()

        assert await asyncio.gather(_handler(), _handler()) == [True, True]
