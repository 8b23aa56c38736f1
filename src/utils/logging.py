"""Structured logging configuration for the moviegen API server.

Uses structlog so every log line can carry the creation request it belongs to.
"""

import logging
import sys
from contextvars import ContextVar

import structlog

# Context variable for creation request correlation
current_request_id: ContextVar[str | None] = ContextVar("current_request_id", default=None)


def add_request_id(_logger, _method_name, event_dict):
    """Structlog processor to inject request_id into all log events."""
    request_id = current_request_id.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def setup_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_output: If True, output JSON logs. If False, use colored console output.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_request_id,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Route stdlib records (our modules use logging.getLogger) through structlog
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for logger_name in ("httpx", "httpcore", "aiosqlite", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def set_request_context(request_id: str) -> None:
    """Set the current creation request ID for log correlation."""
    current_request_id.set(request_id)


def clear_request_context() -> None:
    """Clear the current request context."""
    current_request_id.set(None)
