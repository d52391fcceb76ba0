"""
Logging configuration for applications embedding the Stockroom SDK.

The SDK itself only creates module loggers; applications call
setup_logging() once at startup.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings.

    Args:
        settings: SDK settings (log_level, log_format)
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
