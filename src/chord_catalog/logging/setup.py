"""Structured logging configuration for the catalog entry points."""

import logging
import sys

from chord_catalog.constants import ServiceName
from chord_catalog.logging.formatter import JSONLogFormatter


def configure_logging(service: ServiceName = ServiceName.CATALOG, level: str | int = logging.INFO) -> None:
    """Set up structured JSON logging on the root logger."""
    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONLogFormatter(service=service))
    root.addHandler(handler)
