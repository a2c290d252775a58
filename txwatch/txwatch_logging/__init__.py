"""
Structured logging for tx-watch.

JSON logs with timestamp, level, event_type and address/height context.
Use get_logger() in every module.
"""

from txwatch.txwatch_logging.logger import configure_structlog, get_logger

__all__ = ["configure_structlog", "get_logger"]
