import json
import logging
import os
import sys

DEFAULT_MCP_LOG_FILE = "/tmp/garden-sync.log"
_TEXT_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg (and exc)."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_formatter(debug_format: str) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=_DATE_FORMAT)
    return logging.Formatter(_TEXT_FORMAT, datefmt=_DATE_FORMAT)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging for the execution mode.

    Args:
        mode: "mcp" logs to a file only (stdout carries JSON-RPC),
            "cli" logs to stderr and optionally to *log_file* as well.
        debug: If True, forces DEBUG level.
        log_file: Log file path (overrides LOG_FILE env var in mcp mode).
        debug_format: "text" (default) or "json".

    Environment variables:
        LOG_LEVEL: Logging level. Default WARNING in mcp mode, INFO in cli mode.
        LOG_FILE: Log file path for mcp mode. Default /tmp/garden-sync.log
    """
    default_level = "WARNING" if mode == "mcp" else "INFO"
    env_level = os.getenv("LOG_LEVEL", default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    if mode == "mcp":
        final_log_file = log_file or os.getenv(
            "LOG_FILE", DEFAULT_MCP_LOG_FILE
        )
        logging.basicConfig(
            level=log_level,
            format=_TEXT_FORMAT,
            datefmt=_DATE_FORMAT,
            filename=final_log_file,
            filemode="a",
        )
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(_make_formatter(debug_format))
        handlers: list[logging.Handler] = [stderr_handler]

        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(_make_formatter(debug_format))
            handlers.append(file_handler)

        logging.basicConfig(level=log_level, handlers=handlers)

    # Quiet HTTP transport noise unless DEBUG
    if log_level != logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
