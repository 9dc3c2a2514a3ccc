"""
Structured logging configuration for the stock video assembler.
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.stdlib import LoggerFactory

from .config import Settings, get_settings

_configured = False


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structured logging for the application.

    Safe to call more than once; handlers are only attached on the first call.
    """
    global _configured
    if _configured:
        return

    settings = settings or get_settings()
    settings.logs_dir.mkdir(parents=True, exist_ok=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    file_handler = logging.FileHandler(settings.logs_dir / "assembler.log", encoding="utf-8")
    file_handler.setLevel(logging.INFO)

    error_handler = logging.FileHandler(settings.logs_dir / "errors.log", encoding="utf-8")
    error_handler.setLevel(logging.ERROR)

    root_logger = logging.getLogger()
    root_logger.addHandler(file_handler)
    root_logger.addHandler(error_handler)

    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class LoggerMixin:
    """Mixin class to add logging capabilities to other classes."""

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        """Get a logger instance for this class."""
        return get_logger(self.__class__.__name__)
