"""
Structured logging configuration
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.types import EventDict, Processor

from .config import Settings, settings as default_settings


def setup_logging(settings: Optional[Settings] = None) -> structlog.stdlib.BoundLogger:
    """
    Configure structured logging for the service

    Args:
        settings: Optional settings object (module settings are used if not provided)

    Returns:
        Configured logger instance
    """
    settings = settings or default_settings

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    # Add service name to all logs
    def add_service_name(logger, method_name, event_dict: EventDict) -> EventDict:
        event_dict["service"] = settings.service_name
        event_dict["environment"] = settings.environment
        return event_dict

    processors.append(add_service_name)

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(settings.service_name)
