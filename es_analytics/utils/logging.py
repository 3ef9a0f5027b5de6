"""
Structured logging for the analytics package.

Records are emitted through standard ``logging`` loggers and rendered as JSON
lines. A correlation ID bound with set_correlation_id() lives in structlog
context variables, so it follows the asyncio task serving an MCP tool call
and is attached to every record logged on its behalf.
"""

import json
import logging
import os
import sys
from datetime import UTC, datetime
from typing import Any, cast
from uuid import uuid4

import structlog
from structlog.contextvars import bind_contextvars, get_contextvars, unbind_contextvars

CORRELATION_ID_KEY = "correlation_id"

DEFAULT_LOG_FILE = "/tmp/es-analytics.log"
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

MCP_LOGGER = "es_analytics.mcp"
SEARCH_LOGGER = "es_analytics.elasticsearch"

# Attributes every LogRecord has; anything else came in through extra=
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


class SizeCappedFileHandler(logging.FileHandler):
    """
    File handler that truncates its file once it reaches ``max_bytes``.

    No backup files are kept: a long-running server only keeps its most
    recent logs on disk.
    """

    def __init__(self, filename: str, max_bytes: int = DEFAULT_MAX_FILE_SIZE, encoding: str | None = "utf-8"):
        super().__init__(filename, mode="a", encoding=encoding)
        self.max_bytes = max_bytes

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if self.stream is not None and self.stream.tell() >= self.max_bytes:
                self._truncate()
        except OSError:
            self.handleError(record)
        super().emit(record)

    def _truncate(self) -> None:
        self.stream.seek(0)
        self.stream.truncate()
        self.stream.write(f"=== Log file restarted at {datetime.now(UTC).isoformat()} ===\n")


class JSONFormatter(logging.Formatter):
    """Renders a record as one JSON object, ``extra=`` fields and correlation ID included."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(get_contextvars())

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update((key, value) for key, value in record.__dict__.items() if key not in _RECORD_ATTRS)
        return json.dumps(entry, default=str)


def _with_formatter(handler: logging.Handler, json_output: bool, level: int) -> logging.Handler:
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))
    handler.setLevel(level)
    return handler


def configure_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    enable_console: bool = True,
    enable_file: bool = True,
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    enable_json_logging: bool = True,
    verbose: bool = False,
) -> None:
    """
    Configure logging for the server process.

    Console output goes to stderr: stdout carries the MCP stdio transport.
    structlog loggers are routed through the same handlers.

    Args:
        log_level: Level name; defaults to DEBUG when verbose, else $LOG_LEVEL or INFO
        log_file: Log file path; defaults to $LOG_FILE or /tmp/es-analytics.log
        enable_console: Log to stderr
        enable_file: Log to the size-capped file
        max_file_size: File size that triggers truncation
        enable_json_logging: JSON lines instead of plain text
        verbose: Shortcut for DEBUG level
    """
    if log_level is None:
        log_level = "DEBUG" if verbose else os.getenv("LOG_LEVEL", "INFO")
    level = logging.getLevelNamesMapping().get(log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)

    if enable_console:
        root_logger.addHandler(_with_formatter(logging.StreamHandler(sys.stderr), enable_json_logging, level))

    if enable_file:
        path = log_file or os.getenv("LOG_FILE", DEFAULT_LOG_FILE)
        file_handler = SizeCappedFileHandler(path, max_bytes=max_file_size)
        root_logger.addHandler(_with_formatter(file_handler, enable_json_logging, level))

    structlog.configure(
        processors=cast(Any, [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ]),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # connection pool chatter
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Bind a correlation ID to the current context.

    Args:
        correlation_id: ID to bind; a UUID4 is generated if None

    Returns:
        The bound correlation ID
    """
    correlation_id = correlation_id or str(uuid4())
    bind_contextvars(**{CORRELATION_ID_KEY: correlation_id})
    return correlation_id


def get_correlation_id() -> str | None:
    return get_contextvars().get(CORRELATION_ID_KEY)


def clear_correlation_id() -> None:
    unbind_contextvars(CORRELATION_ID_KEY)


def _log_event(logger_name: str, level: int, message: str, event_type: str, **fields: Any) -> None:
    extra = {key: value for key, value in fields.items() if value is not None}
    extra["event_type"] = event_type
    get_logger(logger_name).log(level, message, extra=extra)


def log_tool_request(tool_name: str, arguments: dict[str, Any]) -> None:
    """Log an incoming MCP tool call."""
    _log_event(MCP_LOGGER, logging.INFO, "MCP tool request", "mcp_request", tool_name=tool_name, arguments=arguments)


def log_tool_response(
    tool_name: str, success: bool, response_data: dict[str, Any] | None = None, error: str | None = None
) -> None:
    """
    Log the outcome of an MCP tool call.

    Args:
        tool_name: Name of the MCP tool
        success: Whether the call succeeded
        response_data: Response summary (if successful)
        error: Error message (if failed)
    """
    if success:
        _log_event(MCP_LOGGER, logging.INFO, "MCP tool response", "mcp_response",
                   tool_name=tool_name, success=True, response_data=response_data or None)
    else:
        _log_event(MCP_LOGGER, logging.ERROR, "MCP tool error", "mcp_response",
                   tool_name=tool_name, success=False, error=error)


def log_search_request(index: str, doc_type: str | None, took_ms: int | None = None) -> None:
    """
    Log a completed search.

    Args:
        index: Index pattern that was searched
        doc_type: Document type, if any
        took_ms: Server-side execution time reported by the engine
    """
    _log_event(SEARCH_LOGGER, logging.DEBUG, "Elasticsearch search", "elasticsearch_query",
               index=index, doc_type=doc_type, took_ms=took_ms)


def log_search_error(index: str, error: str, query: str | None = None) -> None:
    """Log a failed search with the request body that caused it."""
    _log_event(SEARCH_LOGGER, logging.ERROR, "Elasticsearch error", "elasticsearch_error",
               index=index, error=error, query=query)
