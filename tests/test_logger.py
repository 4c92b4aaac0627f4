"""Tests for logger.py — setup_logging() and JsonFormatter.

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

from garden_sync.logger import DEFAULT_MCP_LOG_FILE, JsonFormatter, setup_logging


def _record(msg="Hello %s", args=("world",), exc_info=None, level=logging.INFO):
    return logging.LogRecord(
        name="garden_sync.sync.engine",
        level=level,
        pathname="engine.py",
        lineno=1,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    @patch("garden_sync.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        setup_logging(mode="cli")

        mock_basic.assert_called_once()
        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr

    @patch("garden_sync.logger.logging.basicConfig")
    def test_mcp_mode_logs_to_file(self, mock_basic, tmp_path):
        log_file = str(tmp_path / "sync.log")
        setup_logging(mode="mcp", log_file=log_file)

        kwargs = mock_basic.call_args[1]
        assert kwargs["filename"] == log_file
        assert kwargs["filemode"] == "a"

    @patch("garden_sync.logger.logging.basicConfig")
    def test_mcp_mode_default_log_file(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_FILE", raising=False)
        setup_logging(mode="mcp")

        assert mock_basic.call_args[1]["filename"] == DEFAULT_MCP_LOG_FILE

    @patch("garden_sync.logger.logging.basicConfig")
    def test_mcp_mode_log_file_from_env(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_FILE", "/var/log/garden.log")
        setup_logging(mode="mcp")

        assert mock_basic.call_args[1]["filename"] == "/var/log/garden.log"

    @patch("garden_sync.logger.logging.basicConfig")
    def test_debug_overrides_env_level(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(mode="cli", debug=True)

        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("garden_sync.logger.logging.basicConfig")
    def test_env_log_level_honored(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "error")
        setup_logging(mode="cli")

        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("garden_sync.logger.logging.basicConfig")
    def test_unknown_level_falls_back_to_info(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")
        setup_logging(mode="cli")

        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("garden_sync.logger.logging.basicConfig")
    def test_default_levels_per_mode(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        setup_logging(mode="mcp")
        assert mock_basic.call_args[1]["level"] == logging.WARNING

        setup_logging(mode="cli")
        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("garden_sync.logger.logging.basicConfig")
    def test_cli_mode_with_log_file(self, mock_basic, tmp_path):
        setup_logging(mode="cli", log_file=str(tmp_path / "cli.log"))

        handlers = mock_basic.call_args[1]["handlers"]
        file_handlers = [
            h for h in handlers if isinstance(h, logging.FileHandler)
        ]
        assert len(handlers) == 2
        assert len(file_handlers) == 1
        for h in file_handlers:
            h.close()

    @patch("garden_sync.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")

        handlers = mock_basic.call_args[1]["handlers"]
        assert all(isinstance(h.formatter, JsonFormatter) for h in handlers)

    @patch("garden_sync.logger.logging.basicConfig")
    def test_urllib3_silenced(self, _mock_basic):
        logging.getLogger("urllib3").setLevel(logging.NOTSET)
        setup_logging(mode="cli")

        assert logging.getLogger("urllib3").level == logging.WARNING

    @patch("garden_sync.logger.logging.basicConfig")
    def test_urllib3_left_alone_in_debug(self, _mock_basic):
        logging.getLogger("urllib3").setLevel(logging.NOTSET)
        setup_logging(mode="cli", debug=True)

        assert logging.getLogger("urllib3").level == logging.NOTSET


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    def test_basic_output(self):
        data = json.loads(JsonFormatter(datefmt="%Y-%m-%d").format(_record()))

        assert "ts" in data
        assert data["level"] == "INFO"
        assert data["logger"] == "garden_sync.sync.engine"
        assert data["msg"] == "Hello world"
        assert "exc" not in data

    def test_includes_exception(self):
        try:
            raise ValueError("upsert rejected")
        except ValueError:
            exc_info = sys.exc_info()

        output = JsonFormatter().format(
            _record("Entity failed", (), exc_info, logging.ERROR)
        )

        assert "\n" not in output
        data = json.loads(output)
        assert "ValueError" in data["exc"]
        assert "upsert rejected" in data["exc"]
