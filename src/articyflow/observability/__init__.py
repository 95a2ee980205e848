"""Observability module for articyflow.

Provides structured logging configuration.
"""

from articyflow.observability.logging import (
    close_file_logging,
    configure_logging,
    flow_log_context,
    get_logger,
)

__all__ = [
    "close_file_logging",
    "configure_logging",
    "flow_log_context",
    "get_logger",
]
