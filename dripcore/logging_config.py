"""
Structured logging configuration using structlog.

All logs are output as JSON with consistent context fields.
"""
import logging
import sys

import structlog


def configure_logging(level: int = logging.INFO):
    """Configure structlog for JSON output with context."""

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger()


def get_logger(**context):
    """
    Get a logger with additional context bound.

    Usage:
        log = get_logger(component="reconciler", flow_id=flow_id)
        log.info("user_provisioned", user_id=user.id)
    """
    return structlog.get_logger(**context)
