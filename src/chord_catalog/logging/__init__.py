"""Structured logging -- JSON formatter and setup."""

from chord_catalog.logging.formatter import JSONLogFormatter
from chord_catalog.logging.setup import configure_logging

__all__ = ["JSONLogFormatter", "configure_logging"]
