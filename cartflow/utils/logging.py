"""Logging configuration for cartflow.

Services log through ``structlog.get_logger(__name__)`` with key/value
fields; this module wires structlog onto the stdlib root logger once.
"""

import logging

import structlog

logger = structlog.get_logger(__name__)

_configured = False


def setup_logging(level: str = "INFO", fmt: str = "console"):
    global _configured

    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    logging.root.setLevel(numeric_level)

    if _configured:
        return

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    if not logging.root.handlers:
        logging.root.addHandler(logging.StreamHandler())

    # Suppress noisy library loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True
