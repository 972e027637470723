"""Observability module for inkscope.

Provides structured logging.
"""

from inkscope.observability.logging import (
    close_file_logging,
    configure_logging,
    get_logger,
)

__all__ = [
    "close_file_logging",
    "configure_logging",
    "get_logger",
]
