"""
Structured logging configuration.

Features:
- JSON output for production (machine-parseable)
- Pretty console output for development
- Sensitive data filtering (Stripe keys, signatures, bearer tokens)
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from src.config import Environment, Settings

SENSITIVE_KEYS = {
    "password",
    "token",
    "secret",
    "api_key",
    "signature",
    "bearer",
    "authorization",
    "credential",
}


def filter_sensitive_data(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Filter sensitive data from logs.

    Masks values whose key looks like a secret: Stripe keys, webhook
    signatures, bearer tokens.
    """

    def mask_value(key: str, value: Any) -> Any:
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
            if isinstance(value, str) and len(value) > 8:
                return f"{value[:4]}...{value[-4:]}"
            return "***REDACTED***"
        return value

    return {k: mask_value(k, v) for k, v in event_dict.items()}


def service_info_processor(service_name: str, version: str) -> Processor:
    """Build a processor stamping service metadata on every entry."""

    def add_service_info(
        logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict["service"] = service_name
        event_dict["version"] = version
        return event_dict

    return add_service_info


def configure_logging(settings: Settings, version: str = "0.1.0") -> None:
    """
    Configure structured logging.

    Production: JSON output to stdout
    Development: Pretty colored console output
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        filter_sensitive_data,
        service_info_processor(settings.service_name, version),
    ]

    if settings.environment == Environment.PRODUCTION:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.value),
    )

    # Reduce noise from third-party libraries
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance with the given name."""
    return structlog.get_logger(name)
