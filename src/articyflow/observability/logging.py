"""Structured logging configuration for articyflow.

Provides two logging modes:
- Console logging: Controlled by -v flag (INFO/DEBUG to stderr)
- File logging: Controlled by --log-dir flag (all events to {log_dir}/debug.jsonl)

Traversal events carry the node ids they concern. :func:`flow_log_context`
adds session-wide keys (export file, start node) to every event emitted
inside it, so a JSONL log can be split per flow session afterwards.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003 - Used at runtime for path operations
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from structlog.typing import Processor

LOG_FILE_NAME = "debug.jsonl"

# Dependencies that log at DEBUG on their own (lark: grammar construction)
QUIET_LOGGERS = ("lark",)

# Module-level state
_configured = False
_file_handler: logging.FileHandler | None = None


def _jsonl_entry(record: logging.LogRecord) -> dict[str, Any]:
    """Flatten a log record into one JSONL entry.

    structlog hands the event dict over as ``record.msg``; its ``event`` key
    becomes ``message`` and every other key is kept as is.
    """
    entry: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "level": record.levelname,
        "logger": record.name,
    }
    if not isinstance(record.msg, dict):
        entry["message"] = record.getMessage()
        return entry

    event_dict = {k: v for k, v in record.msg.items() if k not in ("level", "timestamp")}
    entry["message"] = event_dict.pop("event", "")
    entry.update(event_dict)
    return entry


class JSONLFileHandler(logging.FileHandler):
    """File handler that writes JSONL format."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = json.dumps(_jsonl_entry(record), default=str) + "\n"
            if self.stream:
                self.stream.write(line)
                self.stream.flush()
        except Exception:
            self.handleError(record)


def _console_handler(verbosity: int) -> RichHandler:
    levels = {0: logging.WARNING, 1: logging.INFO}
    return RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
        # node text from exports may contain square brackets
        markup=False,
        level=levels.get(verbosity, logging.DEBUG),
    )


def configure_logging(verbosity: int = 0, log_dir: Path | None = None) -> None:
    """Configure logging for articyflow.

    Args:
        verbosity: 0=WARNING (default), 1=INFO, 2+=DEBUG on the console.
        log_dir: If given, every event (DEBUG and up) is also appended to
            ``{log_dir}/debug.jsonl``. The directory is created if needed.
    """
    global _configured, _file_handler

    # Close existing file handler if reconfiguring
    close_file_logging()

    handlers: list[logging.Handler] = [_console_handler(verbosity)]

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        _file_handler = JSONLFileHandler(str(log_dir / LOG_FILE_NAME), mode="a")
        _file_handler.setLevel(logging.DEBUG)
        handlers.append(_file_handler)

    root_level = logging.DEBUG if (verbosity > 0 or log_dir is not None) else logging.WARNING
    logging.basicConfig(level=root_level, format="%(message)s", handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        # Resolved per call so structlog.testing.capture_logs sees module loggers
        cache_logger_on_first_use=False,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Get a structured logger instance.

    Automatically configures logging if not already done.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Bound logger instance.
    """
    if not _configured:
        configure_logging()

    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


@contextmanager
def flow_log_context(**bindings: Any) -> Iterator[None]:
    """Attach *bindings* to every event logged inside the block.

    Example:
        >>> with flow_log_context(export="story.json", start="0x01"):
        ...     advanced_startup_flow_state(db, "0x01", config)
    """
    with structlog.contextvars.bound_contextvars(**bindings):
        yield


def close_file_logging() -> None:
    """Close file logging handler."""
    global _file_handler
    if _file_handler:
        _file_handler.close()
        _file_handler = None
