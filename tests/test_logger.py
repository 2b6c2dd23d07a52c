"""Tests for logger.py -- setup_logging(), resolve_level() and JsonFormatter.

Covers:
- stderr handler and optional file handler
- Debug level override and explicit level names
- Environment variable LOG_LEVEL handling
- JSON formatter output
- Third-party logger silencing

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from appstate_sync.logger import JsonFormatter, resolve_level, setup_logging


@pytest.fixture(autouse=True)
def clean_log_level(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)


# ---------------------------------------------------------------------------
# resolve_level tests
# ---------------------------------------------------------------------------


class TestResolveLevel:
    def test_default_is_info(self):
        assert resolve_level() == logging.INFO

    def test_explicit_level(self):
        assert resolve_level(level="warning") == logging.WARNING

    def test_env_used_without_explicit_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert resolve_level() == logging.ERROR
        assert resolve_level(level="DEBUG") == logging.DEBUG

    def test_debug_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert resolve_level(debug=True, level="WARNING") == logging.DEBUG

    def test_unknown_name_falls_back_to_info(self):
        assert resolve_level(level="chatty") == logging.INFO


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("appstate_sync.logger.logging.basicConfig")
    def test_logs_to_stderr(self, mock_basic):
        """Default setup passes a StreamHandler(stderr) to basicConfig."""
        setup_logging()

        mock_basic.assert_called_once()
        kwargs = mock_basic.call_args[1]
        handlers = kwargs["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr
        assert kwargs["force"] is True

    @patch("appstate_sync.logger.logging.basicConfig")
    def test_log_file_adds_file_handler(self, mock_basic, tmp_path):
        log_file = tmp_path / "sync.log"
        setup_logging(log_file=str(log_file))

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 2
        assert isinstance(handlers[1], logging.FileHandler)
        assert handlers[1].baseFilename == str(log_file)
        handlers[1].close()

    @patch("appstate_sync.logger.logging.basicConfig")
    def test_debug_overrides_level(self, mock_basic):
        setup_logging(debug=True)
        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("appstate_sync.logger.logging.basicConfig")
    def test_env_log_level_honored(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging()
        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("appstate_sync.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic):
        setup_logging(debug_format="json")
        handler = mock_basic.call_args[1]["handlers"][0]
        assert isinstance(handler.formatter, JsonFormatter)

    @patch("appstate_sync.logger.logging.basicConfig")
    def test_third_party_silenced_unless_debug(self, mock_basic):
        setup_logging()
        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("requests").level == logging.WARNING


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    def _record(self, msg="hello %s", args=("world",), exc_info=None):
        return logging.LogRecord(
            name="appstate_sync.sync.orchestrator",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg=msg,
            args=args,
            exc_info=exc_info,
        )

    def test_single_line_json(self):
        output = JsonFormatter().format(self._record())
        assert "\n" not in output
        entry = json.loads(output)
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "appstate_sync.sync.orchestrator"
        assert entry["msg"] == "hello world"
        assert "ts" in entry
        assert "exc" not in entry

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            exc_info = sys.exc_info()
        entry = json.loads(JsonFormatter().format(self._record(exc_info=exc_info)))
        assert "RuntimeError: boom" in entry["exc"]
