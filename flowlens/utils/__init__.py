"""Utility modules for logging, request tracing, and common helpers."""

from flowlens.utils.logging import configure_logging, get_logger
from flowlens.utils.timestamps import parse_timestamp

__all__ = ["configure_logging", "get_logger", "parse_timestamp"]
