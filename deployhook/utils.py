"""
Utility functions for deployhook.

Logging setup shared by the CLI and the HTTP server.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

# Global console for pretty output
console = Console()


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "pretty",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Set up logging for deployhook.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "structured" (JSON) or "pretty" (rich console)
        log_file: Also write JSON lines to this file

    Returns:
        Configured package logger
    """
    logger = logging.getLogger("deployhook")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.handlers = []  # Clear existing handlers

    if log_format == "pretty":
        console_handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(StructuredFormatter())
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    return logger
