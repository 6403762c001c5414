"""structlog setup shared by the library, the scripts and the HTTP server.

Everything is written to stderr: the CLI scripts reserve stdout for the JSON
(or table) they were asked for. Library modules call get_logger(__name__) and
never print.
"""

import logging
import sys
from typing import TextIO

import structlog

# Loud at DEBUG/INFO while the portal endpoint fallbacks run
NOISY_LIBRARIES = ("urllib3", "requests")


def setup_logging(
    json_output: bool = False,
    log_level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and route stdlib logging to the same stream.

    Args:
        json_output: One JSON object per line (services) instead of the
            coloured console format (local runs).
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        stream: Where to write; stderr when omitted.
    """
    stream = stream or sys.stderr
    level = getattr(logging, log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers = [logging.StreamHandler(stream)]
    root.setLevel(level)
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.BoundLogger:
    """Logger for a module; pass __name__."""
    return structlog.get_logger(name)
